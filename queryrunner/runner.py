"""
Query/Runner Contract for queryrunner.

A QueryRunner is built once per ``query_runner`` block and owns its
backend client. It turns each ``query`` block bound to it into a
PreparedQuery, which can be run any number of times.

Lifecycle of a query:

    declared -> validated (prepare) -> ready -> running -> succeeded
                                                        -> failed
                                                        -> timed out

Runs are independent; a PreparedQuery is never mutated after prepare.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator, Mapping

    from .config.document import Body
    from .diagnostics import Diagnostics
    from .result import QueryResult
    from .scope import EvaluationScope


class QueryRunner(ABC):
    """
    Abstract base for runners (backend adapters).

    Subclasses set ``type_name`` and implement ``prepare``.
    """

    type_name: str = ""

    def __init__(self, name: str):
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @abstractmethod
    def prepare(self, base: QueryBase) -> tuple[PreparedQuery | None, Diagnostics]:
        """
        Validate a query's adapter-specific attributes.

        Args:
            base: The query's name, description, bound runner and remainder body

        Returns:
            (PreparedQuery or None, diagnostics)
        """
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.type_name}.{self.name}>"


class QueryBase:
    """
    What every query has regardless of its runner.

    Attributes:
        name: Query name, unique across the document
        description: Optional description ("" when not set)
        runner: The bound runner
        body: The full block body
        remain: Attributes left for the runner to decode
        scope: Base scope the query was resolved against
    """

    def __init__(
        self,
        name: str,
        runner: QueryRunner,
        body: Body,
        remain: Body,
        scope: EvaluationScope,
        description: str = "",
    ):
        self.name = name
        self.description = description
        self.runner = runner
        self.body = body
        self.remain = remain
        self.scope = scope

    @property
    def runner_type(self) -> str:
        return self.runner.type_name

    def new_scope(
        self,
        variables: Mapping[str, Any] | None = None,
        functions: Mapping[str, Callable[..., Any]] | None = None,
    ) -> EvaluationScope:
        """Fresh child of the base scope for one prepare or run call."""
        return self.scope.new_child(variables, functions)


class PreparedQuery(ABC):
    """
    A validated query, ready to run.

    Subclasses implement ``run``.
    """

    def __init__(self, base: QueryBase):
        self.base = base

    @property
    def name(self) -> str:
        return self.base.name

    @property
    def description(self) -> str:
        return self.base.description

    @property
    def runner_type(self) -> str:
        return self.base.runner_type

    @abstractmethod
    async def run(
        self,
        variables: Mapping[str, Any] | None = None,
        functions: Mapping[str, Callable[..., Any]] | None = None,
    ) -> QueryResult:
        """
        Execute the query.

        Args:
            variables: Per-run variables, e.g. ``{"var": {...}}``
            functions: Per-run functions

        Returns:
            Normalized QueryResult

        Raises:
            QueryValidationError: If an attribute evaluates to a bad value
            BackendError: If the backend call fails
            QueryTimeoutError: If polling runs out of time
        """
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} runner={self.runner_type}>"


class QueryRunners:
    """Runners in declaration order, looked up by (type, name)."""

    def __init__(self, runners: Iterable[QueryRunner] = ()):
        self._runners = list(runners)

    def get(self, runner_type: str, name: str) -> QueryRunner | None:
        for runner in self._runners:
            if runner.type_name == runner_type and runner.name == name:
                return runner
        return None

    def append(self, runner: QueryRunner) -> None:
        self._runners.append(runner)

    def __iter__(self) -> Iterator[QueryRunner]:
        return iter(self._runners)

    def __len__(self) -> int:
        return len(self._runners)


class PreparedQueries:
    """Prepared queries in declaration order, looked up by name."""

    def __init__(self, queries: Iterable[PreparedQuery] = ()):
        self._queries = list(queries)

    def get(self, name: str) -> PreparedQuery | None:
        for query in self._queries:
            if query.name == name:
                return query
        return None

    def append(self, query: PreparedQuery) -> None:
        self._queries.append(query)

    @property
    def names(self) -> list[str]:
        return [q.name for q in self._queries]

    def __contains__(self, name: object) -> bool:
        return any(q.name == name for q in self._queries)

    def __iter__(self) -> Iterator[PreparedQuery]:
        return iter(self._queries)

    def __len__(self) -> int:
        return len(self._queries)


__all__ = [
    "PreparedQueries",
    "PreparedQuery",
    "QueryBase",
    "QueryRunner",
    "QueryRunners",
]
