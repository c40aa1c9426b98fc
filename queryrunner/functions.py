"""
Functions available to every configuration expression.

These make up the base scope shared by all queries of a configuration.
Time values are epoch seconds (float) so they can be added to and
subtracted from durations:

    start_time: ${now() - duration("15m")}
    sql: ${templatefile("queries/daily.sql", {"day": var.day})}
"""

from __future__ import annotations

import json
import os
import re
import time
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

from .scope import EvaluationScope

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def now() -> float:
    return time.time()


def duration(text: str) -> float:
    """
    Parse a duration such as ``15m``, ``1h30m`` or ``-500ms`` into seconds.

    Raises:
        ValueError: If the text is not a valid duration
    """
    text = text.strip()
    sign = 1.0
    if text[:1] in ("+", "-"):
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if text == "0":
        return 0.0
    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        raise ValueError(f"invalid duration {text!r}")
    return sign * total


def jsondecode(text: str) -> Any:
    return json.loads(text)


def jsonencode(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def env(name: str, default: str = "") -> str:
    return os.environ.get(name, default)


def must_env(name: str) -> str:
    if name not in os.environ:
        raise KeyError(f"environment variable {name} is not set")
    return os.environ[name]


def strftime(fmt: str, epoch: float | None = None) -> str:
    moment = datetime.fromtimestamp(time.time() if epoch is None else epoch).astimezone()
    return moment.strftime(fmt)


def strftime_in_zone(fmt: str, zone: str, epoch: float | None = None) -> str:
    moment = datetime.fromtimestamp(time.time() if epoch is None else epoch, tz=ZoneInfo(zone))
    return moment.strftime(fmt)


def join(separator: str, values: list[Any]) -> str:
    return separator.join(str(v) for v in values)


def split(separator: str, text: str) -> list[str]:
    return text.split(separator)


def trimspace(text: str) -> str:
    return text.strip()


def _file_functions(base_dir: Path, scope_ref: list[EvaluationScope]) -> dict[str, Callable[..., Any]]:
    def resolve(path: str) -> Path:
        candidate = Path(path).expanduser()
        return candidate if candidate.is_absolute() else base_dir / candidate

    def file(path: str) -> str:
        return resolve(path).read_text(encoding="utf-8")

    def templatefile(path: str, variables: Mapping[str, Any] | None = None) -> str:
        from .expressions import is_known, parse_template
        from .diagnostics import SourceRange

        target = resolve(path)
        expr, diags = parse_template(target.read_text(encoding="utf-8"), SourceRange.point(str(target)))
        if not diags.has_errors():
            value, value_diags = expr.value(scope_ref[0].new_child(variables=variables or {}))
            diags.extend(value_diags)
            if not diags.has_errors() and is_known(value):
                return value if isinstance(value, str) else jsonencode(value)
        raise ValueError(f"render template {path}: {diags}")

    return {"file": file, "templatefile": templatefile}


def new_base_scope(
    base_dir: str | Path = ".",
    *,
    variables: Mapping[str, Any] | None = None,
    functions: Mapping[str, Callable[..., Any]] | None = None,
) -> EvaluationScope:
    """
    Build the shared base scope for a configuration.

    Args:
        base_dir: Directory ``file``/``templatefile`` paths are relative to
        variables: Extra top-level variables
        functions: Extra functions (override the built-ins)

    Returns:
        Root EvaluationScope
    """
    scope_ref: list[EvaluationScope] = []
    builtins: dict[str, Callable[..., Any]] = {
        "now": now,
        "duration": duration,
        "jsondecode": jsondecode,
        "jsonencode": jsonencode,
        "env": env,
        "must_env": must_env,
        "strftime": strftime,
        "strftime_in_zone": strftime_in_zone,
        "join": join,
        "split": split,
        "lower": str.lower,
        "upper": str.upper,
        "trimspace": trimspace,
    }
    builtins.update(_file_functions(Path(base_dir), scope_ref))
    builtins.update(functions or {})
    scope = EvaluationScope(variables=variables, functions=builtins)
    scope_ref.append(scope)
    return scope


__all__ = [
    "duration",
    "jsondecode",
    "jsonencode",
    "new_base_scope",
    "now",
]
