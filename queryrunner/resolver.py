"""
Configuration Resolver.

Turns a configuration document into runners and prepared queries.

Flow:
    1. Split the document into ``query_runner`` blocks (labels: type, name),
       ``query`` blocks (label: name) and everything else (remain)
    2. Reject duplicate block labels, pointing at the first declaration
    3. Build every runner through the registry
    4. For every query: bind its runner reference, check its description,
       then let the runner prepare it

Resolution is best effort: a block with errors is left out of the result,
the rest is still resolved, and every diagnostic is returned.

Usage:
    registry = default_registry()
    resolution = load("~/.config/query-runner/", registry)
    if resolution.diagnostics.has_errors():
        print(DiagnosticTextWriter(resolution.files).format(resolution.diagnostics))
    query = resolution.queries.get("daily_users")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from .config.document import AttributeSchema, Body, Document, load_document
from .diagnostics import Diagnostic, Diagnostics, SourceRange
from .errors import ConfigurationError
from .expressions import is_known
from .functions import new_base_scope
from .references import RUNNER_ROOT, parse_runner_ref
from .runner import PreparedQueries, QueryBase, QueryRunners

if TYPE_CHECKING:
    from .config.document import Attribute, Block
    from .registry import RunnerRegistry
    from .runner import PreparedQuery, QueryRunner
    from .scope import EvaluationScope

logger = logging.getLogger(__name__)

QUERY_ROOT = "query"

BLOCK_SCHEMA = {
    RUNNER_ROOT: ("type", "name"),
    QUERY_ROOT: ("name",),
}

QUERY_SCHEMA = (
    AttributeSchema("description"),
    AttributeSchema("runner", required=True),
)


@dataclass
class Resolution:
    """
    Outcome of resolving a document.

    Attributes:
        runners: Runners that built without errors, in declaration order
        queries: Queries that prepared without errors, in declaration order
        remain: Top-level attributes that are not blocks
        diagnostics: Everything reported while resolving
        files: Source text by filename, for DiagnosticTextWriter
    """

    runners: QueryRunners = field(default_factory=QueryRunners)
    queries: PreparedQueries = field(default_factory=PreparedQueries)
    remain: Body = field(default_factory=lambda: Body([], SourceRange.point("<config>")))
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    files: dict[str, str] = field(default_factory=dict)

    def raise_for_errors(self) -> Resolution:
        """Raise ConfigurationError if any diagnostic is an error."""
        if self.diagnostics.has_errors():
            raise ConfigurationError(self.diagnostics)
        return self


def _duplicates(blocks: list[Block]) -> tuple[list[Block], Diagnostics]:
    seen: dict[tuple[str, ...], Block] = {}
    unique: list[Block] = []
    diags = Diagnostics()
    for block in blocks:
        key = (block.type, *block.labels)
        first = seen.get(key)
        if first is None:
            seen[key] = block
            unique.append(block)
            continue
        if block.type == RUNNER_ROOT:
            runner_type, runner_name = block.labels
            diags.append(
                Diagnostic.error(
                    f'Duplicate {RUNNER_ROOT} "{runner_type}" configuration',
                    f'A {RUNNER_ROOT} "{runner_type}" named "{runner_name}" was already '
                    f"declared at {first.def_range}. "
                    f"Names must be unique per {RUNNER_ROOT} type.",
                    block.def_range,
                )
            )
        else:
            diags.append(
                Diagnostic.error(
                    f"Duplicate {block.type} declaration",
                    f'A {block.type} named "{block.labels[0]}" was already declared at '
                    f"{first.def_range}. {block.type.capitalize()} names must be unique.",
                    block.def_range,
                )
            )
    return unique, diags


def _build_runners(
    blocks: list[Block], scope: EvaluationScope, registry: RunnerRegistry
) -> tuple[QueryRunners, Diagnostics]:
    runners = QueryRunners()
    diags = Diagnostics()
    for block in blocks:
        runner_type, runner_name = block.labels
        runner, build_diags = registry.build(runner_type, runner_name, block.body, scope)
        diags.extend(build_diags)
        if runner is None or build_diags.has_errors():
            logger.debug(f"[resolver] Skipping {block}: {len(build_diags.errors())} error diags")
            continue
        runners.append(runner)
    return runners, diags


def _description(attr: Attribute, scope: EvaluationScope) -> tuple[str, Diagnostics]:
    value, diags = attr.expr.value(scope)
    if diags.has_errors():
        return "", diags
    if not is_known(value):
        diags.append(
            Diagnostic.error("Invalid description", "description is unknown", attr.expr.range)
        )
    elif not isinstance(value, str):
        diags.append(
            Diagnostic.error("Invalid description", "description is not string", attr.expr.range)
        )
    else:
        return value, diags
    return "", diags


def _prepare_query(
    block: Block, scope: EvaluationScope, runners: QueryRunners
) -> tuple[PreparedQuery | None, Diagnostics]:
    name = block.labels[0]
    content, remain, diags = block.body.partial_content(QUERY_SCHEMA)

    runner: QueryRunner | None = None
    runner_attr = content.get("runner")
    if runner_attr is not None:
        ref, ref_diags = parse_runner_ref(runner_attr.expr)
        diags.extend(ref_diags)
        if ref is not None:
            logger.debug(f"[resolver] Query `{name}` refers to {ref}")
            runner = runners.get(ref.runner_type, ref.runner_name)
            if runner is None:
                diags.append(
                    Diagnostic.error(
                        "Invalid Relation",
                        f'{RUNNER_ROOT} "{ref.runner_type}.{ref.runner_name}" is not found',
                        ref.range,
                    )
                )

    description = ""
    description_attr = content.get("description")
    if description_attr is not None:
        description, description_diags = _description(description_attr, scope)
        diags.extend(description_diags)

    if diags.has_errors() or runner is None:
        return None, diags

    base = QueryBase(name, runner, block.body, remain, scope, description=description)
    prepared, prepare_diags = runner.prepare(base)
    diags.extend(prepare_diags)
    if diags.has_errors():
        return None, diags
    return prepared, diags


def resolve(
    document: Document, scope: EvaluationScope, registry: RunnerRegistry
) -> Resolution:
    """
    Resolve a document against a base scope and a runner registry.

    Args:
        document: Composed configuration document
        scope: Base scope shared by every runner and query
        registry: Runner types available to ``query_runner`` blocks

    Returns:
        Resolution with the runners and queries that resolved cleanly
    """
    blocks, remain, diags = document.partial_content(BLOCK_SCHEMA)
    blocks, duplicate_diags = _duplicates(blocks)
    diags.extend(duplicate_diags)

    runners, runner_diags = _build_runners(
        [b for b in blocks if b.type == RUNNER_ROOT], scope, registry
    )
    diags.extend(runner_diags)

    queries = PreparedQueries()
    for block in blocks:
        if block.type != QUERY_ROOT:
            continue
        prepared, query_diags = _prepare_query(block, scope, runners)
        diags.extend(query_diags)
        if prepared is not None:
            queries.append(prepared)

    logger.info(
        f"[resolver] Resolved {len(runners)} runner(s), {len(queries)} query(s), "
        f"{len(diags.errors())} error(s)"
    )
    return Resolution(runners, queries, remain, diags, dict(document.files))


def load(
    path: str | Path,
    registry: RunnerRegistry,
    scope: EvaluationScope | None = None,
) -> Resolution:
    """
    Load and resolve a configuration file or directory.

    Args:
        path: File, or directory of ``*.yaml``/``*.yml`` files
        registry: Runner types
        scope: Base scope (defaults to new_base_scope at the config directory)
    """
    document, diags = load_document(path)
    if diags.has_errors():
        return Resolution(diagnostics=diags, files=dict(document.files))

    if scope is None:
        scope = new_base_scope(document.base_dir)
    resolution = resolve(document, scope, registry)
    resolution.diagnostics[:0] = diags
    return resolution


__all__ = ["BLOCK_SCHEMA", "Resolution", "load", "resolve"]
