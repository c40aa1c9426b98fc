"""
Typed references between configuration blocks.

A query names its runner with a reference expression:

    runner: ${query_runner.redshift_data.default}

The reference is read from the expression's syntax tree, never by
evaluating it. The accepted shape is fixed: exactly one variable
reference, rooted at ``query_runner``, with exactly two attribute steps.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .diagnostics import Diagnostic, Diagnostics, SourceRange
from .errors import QueryNotFoundError
from .expressions import TraverseAttr

if TYPE_CHECKING:
    from .expressions import Expression
    from .runner import PreparedQueries, PreparedQuery

RUNNER_ROOT = "query_runner"
QUERY_ROOT = "query"

_HINT = 'please write as runner: ${query_runner.<type>.<name>}'


@dataclass(frozen=True)
class RunnerRef:
    """Reference to a ``query_runner`` block by type and name."""

    runner_type: str
    runner_name: str
    range: SourceRange

    def __str__(self) -> str:
        return f"{RUNNER_ROOT}.{self.runner_type}.{self.runner_name}"


def _invalid(summary: str, detail: str, subject: SourceRange) -> tuple[None, Diagnostics]:
    return None, Diagnostics([Diagnostic.error(summary, detail, subject)])


def parse_runner_ref(expr: Expression) -> tuple[RunnerRef | None, Diagnostics]:
    """
    Read a RunnerRef from a ``runner`` attribute expression.

    Returns:
        (RunnerRef, no diagnostics) on success, otherwise (None, one error
        diagnostic anchored at the expression)
    """
    traversals = expr.variables()
    if not traversals:
        return _invalid(
            "Invalid Query Runner",
            f"can not set constant value. {_HINT}",
            expr.range,
        )
    if len(traversals) != 1:
        return _invalid(
            "Invalid Query Runner",
            f"can not set multiple query runners. {_HINT}",
            expr.range,
        )

    traversal = traversals[0]
    if traversal.root_name != RUNNER_ROOT:
        return _invalid(
            "Invalid Relation",
            f'invalid reference "{traversal.root_name}.*", query.runner depends on '
            f'"{RUNNER_ROOT}" block, {_HINT}',
            traversal.range,
        )
    if len(traversal) != 3:
        return _invalid(
            "Invalid Relation",
            f'query.runner depends on "{RUNNER_ROOT}" block, {_HINT}',
            traversal.range,
        )

    type_step, name_step = traversal.steps
    if not isinstance(type_step, TraverseAttr) or not isinstance(name_step, TraverseAttr):
        return _invalid(
            "Invalid Relation",
            f'query.runner depends on "{RUNNER_ROOT}" block, {_HINT}',
            traversal.range,
        )
    return RunnerRef(type_step.name, name_step.name, traversal.range), Diagnostics()


def resolve_query_ref(expr: Expression, queries: PreparedQueries) -> PreparedQuery:
    """
    Find the prepared query an expression such as ``${query.daily_users}`` refers to.

    Used by host configuration that points at queries (e.g. a schedule block).

    Raises:
        ValueError: If the expression is not a ``query.<name>`` reference
        QueryNotFoundError: If no query has that name
    """
    traversals = expr.variables()
    if len(traversals) != 1:
        raise ValueError(f"expected exactly one query reference, found {len(traversals)}")
    traversal = traversals[0]
    if traversal.root_name != QUERY_ROOT:
        raise ValueError(f"expected root name is `{QUERY_ROOT}`, actual {traversal.root_name}")
    if len(traversal) < 2:
        raise ValueError("traversal length < 2")
    step = traversal.steps[0]
    if not isinstance(step, TraverseAttr):
        raise ValueError("query name must be an attribute access")
    query = queries.get(step.name)
    if query is None:
        raise QueryNotFoundError(step.name)
    return query


__all__ = ["RunnerRef", "parse_runner_ref", "resolve_query_ref"]
