"""
query-runner CLI.

Thin layer: parse args -> resolve config -> run queries -> render results.

    query-runner -l
    query-runner [options] <query_name1> <query_name2> ...
    cat params.json | query-runner [options]

``params.json`` is ``{"queries": [...], "variables": {...}}``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import List, Optional

import typer
from pydantic import ValidationError

from queryrunner import __version__
from queryrunner.batch import run_queries
from queryrunner.config.settings import get_settings
from queryrunner.context import with_request_id
from queryrunner.diagnostics import DiagnosticTextWriter
from queryrunner.errors import DiagnosticsError, QueryRunnerError
from queryrunner.logging_config import setup_logging
from queryrunner.params import RunRequest
from queryrunner.resolver import load
from queryrunner.result import results_by_name
from queryrunner.runners import default_registry

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="query-runner is a helper tool that makes querying several AWS services convenient",
    add_completion=False,
)

# Exit codes
EXIT_SUCCESS = 0
EXIT_RUNTIME_ERROR = 1
EXIT_CONFIG_ERROR = 2

OUTPUT_FORMATS = ("json", "table", "markdown", "borderless", "vertical")


def _fail(message: str, code: int) -> typer.Exit:
    typer.secho(message, fg=typer.colors.RED, err=True)
    return typer.Exit(code=code)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"query-runner {__version__}")
        raise typer.Exit(code=EXIT_SUCCESS)


@app.command()
def main(
    query_names: Optional[List[str]] = typer.Argument(None, help="Queries to run"),
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Config file or directory (default: ~/.config/query-runner/)"
    ),
    show_list: bool = typer.Option(False, "--list", "-l", help="Display the list of queries."),
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="Output format [json|table|markdown|borderless|vertical]"
    ),
    variables: Optional[str] = typer.Option(None, "--variables", "-v", help="Variables JSON"),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Log level [debug|info|notice|warn|error] (default: info)"
    ),
    version: Optional[bool] = typer.Option(
        None, "--version", help="Show the version and exit.", is_eager=True, callback=_version_callback
    ),
) -> None:
    """Run named queries declared in the configuration."""
    settings = get_settings()
    config = config or settings.config_path
    output = output or settings.output
    log_level = log_level or settings.log_level

    try:
        setup_logging(log_level)
    except ValueError as e:
        raise _fail(f"Error: {e}", EXIT_CONFIG_ERROR)
    if output not in OUTPUT_FORMATS:
        raise _fail(
            f"Error: unknown output format {output!r}, expected one of {', '.join(OUTPUT_FORMATS)}",
            EXIT_CONFIG_ERROR,
        )

    resolution = load(config, default_registry())
    writer = DiagnosticTextWriter(resolution.files)
    if resolution.diagnostics:
        typer.echo(writer.format(resolution.diagnostics), err=True)
    if resolution.diagnostics.has_errors():
        raise typer.Exit(code=EXIT_CONFIG_ERROR)

    if show_list:
        typer.echo("query list:")
        for query in resolution.queries:
            typer.echo(f"\t{query.name}\t{query.runner_type}\t{query.description}")
        raise typer.Exit(code=EXIT_SUCCESS)

    try:
        request = RunRequest(queries=list(query_names or []))
        if variables:
            request.variables = json.loads(variables)
        if not request.queries:
            stdin_request = RunRequest.model_validate_json(sys.stdin.read())
            request.queries = stdin_request.queries
            if stdin_request.variables is not None:
                request.variables = stdin_request.variables
    except (json.JSONDecodeError, ValidationError) as e:
        raise _fail(f"Error: invalid parameters: {e}", EXIT_CONFIG_ERROR)

    queries = []
    for name in request.queries:
        query = resolution.queries.get(name)
        if query is None:
            logger.warning(f"[cli] query `{name}` is not found, skip this query")
            continue
        queries.append(query)

    try:
        with with_request_id():
            results = asyncio.run(run_queries(queries, request.scope_variables()))
    except DiagnosticsError as e:
        typer.echo(writer.format(e.diagnostics), err=True)
        raise typer.Exit(code=EXIT_RUNTIME_ERROR)
    except QueryRunnerError as e:
        raise _fail(f"Error: {e}", EXIT_RUNTIME_ERROR)

    if output == "json":
        typer.echo(json.dumps(results_by_name(results), ensure_ascii=False))
    else:
        for result in results:
            typer.echo(result.render(output), nl=False)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
