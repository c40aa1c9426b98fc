"""
Runner Registry for queryrunner.

Maps a runner type name (the first label of a ``query_runner`` block) to
the factory that builds runners of that type.

Design Principle:
    The registry is an explicit object, not process-wide state. Adapters
    expose a ``definition()`` function; the host collects the definitions
    it wants and hands the registry to the resolver. Tests build a fresh
    registry each time.

    Registration happens once at startup. After that the registry is only
    read, so it needs no locking.

Usage:
    registry = RunnerRegistry()
    registry.register(RunnerDefinition("redshift_data", build_redshift_runner))

    definition = registry.resolve("redshift_data")
    runner, diags = registry.build("redshift_data", "default", body, scope)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from .diagnostics import Diagnostic, Diagnostics
from .errors import InvalidDefinitionError, UnknownRunnerTypeError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .config.document import Body
    from .runner import QueryRunner
    from .scope import EvaluationScope

logger = logging.getLogger(__name__)

SUGGESTION_DISTANCE = 3


class RunnerFactory(Protocol):
    """Builds a runner from its block body."""

    def __call__(
        self, name: str, body: Body, scope: EvaluationScope
    ) -> tuple[QueryRunner | None, Diagnostics]: ...


@dataclass(frozen=True)
class RunnerDefinition:
    """A runner type and the factory that builds it."""

    type_name: str
    factory: RunnerFactory


def levenshtein(s1: str, s2: str) -> int:
    """Edit distance between two strings."""
    if len(s1) < len(s2):
        return levenshtein(s2, s1)
    if not s2:
        return len(s1)

    prev_row = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        curr_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = prev_row[j + 1] + 1
            deletions = curr_row[j] + 1
            substitutions = prev_row[j] + (c1 != c2)
            curr_row.append(min(insertions, deletions, substitutions))
        prev_row = curr_row
    return prev_row[-1]


class RunnerRegistry:
    """
    Registry of runner definitions by type name.

    Example:
        registry = RunnerRegistry([cloudwatch_logs_insights.definition()])
        registry.register(redshift_data.definition())
        "redshift_data" in registry   # True
    """

    def __init__(self, definitions: Iterable[RunnerDefinition] | None = None) -> None:
        self._definitions: dict[str, RunnerDefinition] = {}
        for definition in definitions or ():
            self.register(definition)

    def register(self, definition: RunnerDefinition | None) -> None:
        """
        Register a runner definition.

        A later registration for the same type name replaces the earlier one.

        Raises:
            InvalidDefinitionError: If the definition, its type name or its factory is missing
        """
        if definition is None:
            raise InvalidDefinitionError("RunnerDefinition is None")
        if not definition.type_name:
            raise InvalidDefinitionError("type_name is required")
        if definition.factory is None or not callable(definition.factory):
            raise InvalidDefinitionError(f"factory is required for `{definition.type_name}`")

        if definition.type_name in self._definitions:
            logger.debug(f"[registry] Overwriting runner type: {definition.type_name}")
        self._definitions[definition.type_name] = definition
        logger.debug(f"[registry] Registered runner type: {definition.type_name}")

    def resolve(self, type_name: str) -> RunnerDefinition:
        """
        Get the definition for a type name.

        Raises:
            UnknownRunnerTypeError: If not registered; carries the closest
                registered name within edit distance 2, if any
        """
        definition = self._definitions.get(type_name)
        if definition is not None:
            return definition
        raise UnknownRunnerTypeError(type_name, self.suggest(type_name))

    def suggest(self, type_name: str) -> str | None:
        """Closest registered type name with edit distance below 3."""
        best: str | None = None
        best_distance = SUGGESTION_DISTANCE
        for candidate in self._definitions:
            distance = levenshtein(type_name, candidate)
            if distance < best_distance:
                best, best_distance = candidate, distance
        return best

    def build(
        self,
        type_name: str,
        name: str,
        body: Body,
        scope: EvaluationScope,
    ) -> tuple[QueryRunner | None, Diagnostics]:
        """
        Build a runner for a ``query_runner`` block.

        Unknown types become an error diagnostic at the block header.
        """
        try:
            definition = self.resolve(type_name)
        except UnknownRunnerTypeError as e:
            return None, Diagnostics(
                [Diagnostic.error("Invalid query_runner type", str(e), body.missing_item_range)]
            )

        runner, diags = definition.factory(name, body, scope)
        diags = Diagnostics(diags)
        logger.debug(
            f"[registry] Built query_runner `{type_name}` as {type(runner).__name__}, "
            f"{len(diags.errors())} error diags"
        )
        if diags.has_errors():
            return None, diags
        return runner, diags

    @property
    def type_names(self) -> list[str]:
        return list(self._definitions)

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def __repr__(self) -> str:
        return f"<RunnerRegistry types={self.type_names}>"


__all__ = [
    "RunnerDefinition",
    "RunnerFactory",
    "RunnerRegistry",
    "levenshtein",
]
