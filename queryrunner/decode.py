"""
Decode block bodies into pydantic models.

Every attribute is evaluated against the scope, the values are validated
by the model, and validation errors are mapped back onto the attribute
(or the block header) they came from.

Usage:
    class RunnerConfig(BaseModel):
        model_config = ConfigDict(extra="forbid")
        region: str | None = None

    config, diags = decode_body(body, scope, RunnerConfig)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from pydantic import BaseModel, ValidationError

from .diagnostics import Diagnostic, Diagnostics
from .expressions import is_known

if TYPE_CHECKING:
    from .config.document import Body
    from .scope import EvaluationScope

M = TypeVar("M", bound=BaseModel)


def decode_body(
    body: Body, scope: EvaluationScope | None, model: type[M]
) -> tuple[M | None, Diagnostics]:
    """
    Evaluate and validate a body.

    Args:
        body: Block body to decode
        scope: Scope the attribute expressions are evaluated against
        model: Pydantic model; use ``extra="forbid"`` to reject unknown arguments

    Returns:
        (model instance or None, diagnostics)
    """
    attrs, diags = body.just_attributes()
    values = {}
    for name, attr in attrs.items():
        value, value_diags = attr.expr.value(scope)
        diags.extend(value_diags)
        if is_known(value):
            values[name] = value
    if diags.has_errors():
        return None, diags

    try:
        return model.model_validate(values), diags
    except ValidationError as e:
        for error in e.errors():
            loc = error.get("loc") or ()
            name = str(loc[0]) if loc else ""
            attr = attrs.get(name)
            subject = attr.name_range if attr is not None else body.missing_item_range
            if error["type"] == "missing":
                diags.append(
                    Diagnostic.error(
                        "Missing required argument",
                        f'The argument "{name}" is required, but no definition was found.',
                        subject,
                    )
                )
            elif error["type"] == "extra_forbidden":
                diags.append(
                    Diagnostic.error(
                        "Unsupported argument",
                        f'An argument named "{name}" is not expected here.',
                        subject,
                    )
                )
            else:
                where = ".".join(str(part) for part in loc)
                diags.append(
                    Diagnostic.error(
                        "Incorrect attribute value type",
                        f'Inappropriate value for attribute "{where}": {error["msg"]}.',
                        attr.expr.range if attr is not None else subject,
                    )
                )
        return None, diags


__all__ = ["decode_body"]
