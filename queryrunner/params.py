"""
Invocation parameters for queryrunner.

Pydantic models for what callers send (query names plus variables) and
what they get back. Shared by the CLI (stdin payload) and the HTTP
service (request/response bodies).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .result import QueryResult


class RunRequest(BaseModel):
    """
    Queries to run and the variables to run them with.

    ``variables`` becomes the ``var`` object of every query's scope.
    """

    queries: list[str] = Field(default_factory=list, description="Query names to run")
    variables: Any = Field(None, description="JSON value exposed as `var`")

    def scope_variables(self) -> dict[str, Any]:
        return {"var": self.variables}


class QueryResultModel(BaseModel):
    """Serialized QueryResult."""

    name: str
    query: str
    columns: list[str] = Field(default_factory=list)
    rows: list[list[str]] = Field(default_factory=list)
    records: list[dict[str, str]] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: QueryResult) -> QueryResultModel:
        return cls(
            name=result.name,
            query=result.query,
            columns=list(result.columns),
            rows=[list(row) for row in result.rows],
            records=result.to_records(),
        )


class RunResponse(BaseModel):
    """Results in the order the queries were requested."""

    results: list[QueryResultModel] = Field(default_factory=list)


class QueryInfo(BaseModel):
    """One entry of the query list."""

    name: str
    runner_type: str
    description: str = ""


__all__ = ["QueryInfo", "QueryResultModel", "RunRequest", "RunResponse"]
