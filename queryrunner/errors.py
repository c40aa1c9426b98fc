"""
Error taxonomy for queryrunner.

Resolution-time problems are collected as diagnostics; the exceptions
here are what callers see when an operation has to fail:

- ConfigurationError: the document could not be resolved
- QueryValidationError: a query attribute evaluated to a bad value at run time
- BackendError: the remote call failed or ended in a failed/aborted state
- QueryTimeoutError: the polling budget elapsed without a terminal state

Cancellation is plain asyncio.CancelledError.
"""

from __future__ import annotations

from .diagnostics import Diagnostics


class QueryRunnerError(Exception):
    """Base error for queryrunner."""

    pass


class DiagnosticsError(QueryRunnerError):
    """Error carrying the diagnostics that caused it."""

    def __init__(self, diagnostics: Diagnostics, message: str | None = None):
        self.diagnostics = Diagnostics(diagnostics)
        super().__init__(message or str(self.diagnostics))


class ConfigurationError(DiagnosticsError):
    """Configuration document has error diagnostics."""

    pass


class QueryValidationError(DiagnosticsError):
    """A query attribute evaluated to an invalid value."""

    pass


class InvalidDefinitionError(QueryRunnerError, ValueError):
    """RunnerDefinition is missing its type name or factory."""

    pass


class UnknownRunnerTypeError(QueryRunnerError, LookupError):
    """No runner definition is registered for a type name."""

    def __init__(self, type_name: str, suggestion: str | None = None):
        self.type_name = type_name
        self.suggestion = suggestion
        if suggestion:
            message = f'The query runner type "{type_name}" is invalid. Did you mean "{suggestion}"?'
        else:
            message = (
                f'The query runner type "{type_name}" is invalid. '
                "maybe not implemented or typo"
            )
        super().__init__(message)


class QueryNotFoundError(QueryRunnerError, LookupError):
    """A query name does not match any prepared query."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"query `{name}` is not found")


class BackendError(QueryRunnerError):
    """Backend call failed or returned a terminal failure status."""

    pass


class QueryTimeoutError(BackendError, TimeoutError):
    """Polling budget elapsed before the backend reported a terminal state."""

    pass


__all__ = [
    "BackendError",
    "ConfigurationError",
    "DiagnosticsError",
    "InvalidDefinitionError",
    "QueryNotFoundError",
    "QueryRunnerError",
    "QueryTimeoutError",
    "QueryValidationError",
    "UnknownRunnerTypeError",
]
