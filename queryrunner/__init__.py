"""
queryrunner - declarative, concurrent queries against external data services.

Operators declare runners (typed backend connections) and named,
parameterized queries in YAML; queryrunner resolves the document,
validates cross references, runs queries concurrently and normalizes
every answer into one tabular shape.

Quick Start:
    >>> from queryrunner import load, run_queries
    >>> from queryrunner.runners import default_registry
    >>>
    >>> resolution = load("~/.config/query-runner/", default_registry())
    >>> resolution.raise_for_errors()
    >>> query = resolution.queries.get("daily_users")
    >>> results = await run_queries([query], {"var": {"day": "2024-01-01"}})
    >>> print(results[0].to_table())
"""

__version__ = "0.1.0"

# Core exports for convenient imports
from queryrunner.batch import run_queries
from queryrunner.context import get_request_id, with_request_id
from queryrunner.diagnostics import Diagnostic, Diagnostics, DiagnosticTextWriter, SourceRange
from queryrunner.errors import (
    BackendError,
    ConfigurationError,
    DiagnosticsError,
    InvalidDefinitionError,
    QueryNotFoundError,
    QueryRunnerError,
    QueryTimeoutError,
    QueryValidationError,
    UnknownRunnerTypeError,
)
from queryrunner.functions import new_base_scope
from queryrunner.registry import RunnerDefinition, RunnerRegistry
from queryrunner.resolver import Resolution, load, resolve
from queryrunner.result import QueryResult, format_scalar
from queryrunner.runner import PreparedQueries, PreparedQuery, QueryBase, QueryRunner, QueryRunners
from queryrunner.scope import EvaluationScope
from queryrunner.waiter import Waiter

__all__ = [
    # Version info
    "__version__",
    # Resolution
    "Resolution",
    "RunnerDefinition",
    "RunnerRegistry",
    "load",
    "new_base_scope",
    "resolve",
    "EvaluationScope",
    # Contract
    "PreparedQueries",
    "PreparedQuery",
    "QueryBase",
    "QueryRunner",
    "QueryRunners",
    # Execution
    "QueryResult",
    "Waiter",
    "format_scalar",
    "get_request_id",
    "run_queries",
    "with_request_id",
    # Diagnostics and errors
    "BackendError",
    "ConfigurationError",
    "Diagnostic",
    "DiagnosticTextWriter",
    "Diagnostics",
    "DiagnosticsError",
    "InvalidDefinitionError",
    "QueryNotFoundError",
    "QueryRunnerError",
    "QueryTimeoutError",
    "QueryValidationError",
    "SourceRange",
    "UnknownRunnerTypeError",
]
