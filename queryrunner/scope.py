"""
Evaluation Context Chain.

A scope is the variable/function namespace expressions are evaluated
against. Scopes chain: a child looks up anything it does not define in
its parent.

Ownership:
    - The base scope (templating helpers, file-relative functions) is built
      once per configuration and shared read-only by every query.
    - Each prepare/run call gets its own child scope carrying the caller's
      variables (e.g. ``var`` decoded from a JSON payload) and functions.
      The child is discarded when the call returns.

Writes always land in the child's own mapping, so a child can never
change what its parent or siblings see.
"""

from __future__ import annotations

from collections import ChainMap
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping


class EvaluationScope:
    """
    Variables and functions for expression evaluation.

    Example:
        base = EvaluationScope(functions={"upper": str.upper})
        child = base.new_child(variables={"var": {"name": "x"}})
        child.variables["var"]       # {"name": "x"}
        child.functions["upper"]     # inherited from base
        "var" in base.variables      # False
    """

    def __init__(
        self,
        variables: Mapping[str, Any] | None = None,
        functions: Mapping[str, Callable[..., Any]] | None = None,
        *,
        parent: EvaluationScope | None = None,
    ):
        self.parent = parent
        if parent is None:
            self.variables: ChainMap[str, Any] = ChainMap(dict(variables or {}))
            self.functions: ChainMap[str, Callable[..., Any]] = ChainMap(dict(functions or {}))
        else:
            self.variables = parent.variables.new_child(dict(variables or {}))
            self.functions = parent.functions.new_child(dict(functions or {}))

    def new_child(
        self,
        variables: Mapping[str, Any] | None = None,
        functions: Mapping[str, Callable[..., Any]] | None = None,
    ) -> EvaluationScope:
        """Create a child scope that falls back to this one."""
        return EvaluationScope(variables, functions, parent=self)

    @property
    def depth(self) -> int:
        return 0 if self.parent is None else self.parent.depth + 1

    def __repr__(self) -> str:
        return (
            f"<EvaluationScope depth={self.depth} "
            f"variables={list(self.variables)} functions={len(self.functions)}>"
        )


def new_child_scope(
    base: EvaluationScope | None,
    variables: Mapping[str, Any] | None = None,
    functions: Mapping[str, Callable[..., Any]] | None = None,
) -> EvaluationScope:
    """Child of ``base`` (or of an empty scope when base is None)."""
    return (base or EvaluationScope()).new_child(variables, functions)


__all__ = ["EvaluationScope", "new_child_scope"]
