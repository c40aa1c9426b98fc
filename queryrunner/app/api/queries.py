"""
Query endpoints.

    GET  /api/v1/queries       list prepared queries
    POST /api/v1/queries/run   run queries, like the CLI's stdin payload
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header

from queryrunner.app.dependencies import get_resolution
from queryrunner.batch import run_queries
from queryrunner.context import with_request_id
from queryrunner.errors import QueryNotFoundError
from queryrunner.params import QueryInfo, QueryResultModel, RunRequest, RunResponse
from queryrunner.resolver import Resolution

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/queries", tags=["queries"])


@router.get("")
async def list_queries(resolution: Resolution = Depends(get_resolution)) -> dict[str, Any]:
    """List all prepared queries."""
    return {
        "queries": [
            QueryInfo(name=q.name, runner_type=q.runner_type, description=q.description).model_dump()
            for q in resolution.queries
        ],
    }


@router.post("/run", response_model=RunResponse)
async def run(
    request: RunRequest,
    resolution: Resolution = Depends(get_resolution),
    x_request_id: Optional[str] = Header(None),
) -> RunResponse:
    """
    Run the requested queries concurrently.

    Every name must exist; nothing runs otherwise.
    """
    queries = []
    for name in request.queries:
        query = resolution.queries.get(name)
        if query is None:
            raise QueryNotFoundError(name)
        queries.append(query)

    with with_request_id(x_request_id) as request_id:
        logger.info(f"[api][{request_id}] run {request.queries}")
        results = await run_queries(queries, request.scope_variables())

    return RunResponse(results=[QueryResultModel.from_result(r) for r in results])


__all__ = ["router"]
