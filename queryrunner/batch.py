"""
Fan-out/fan-in execution of several prepared queries.

Every query runs in its own task. The first failure cancels the queries
still running and is re-raised; otherwise the results come back in the
order the queries were requested.

Usage:
    results = await run_queries(
        [resolution.queries.get("errors"), resolution.queries.get("daily_users")],
        variables={"var": {"day": "2024-01-01"}},
    )
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from .context import get_request_id

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from .result import QueryResult
    from .runner import PreparedQuery

logger = logging.getLogger(__name__)


async def _run_one(
    query: PreparedQuery,
    variables: Mapping[str, Any] | None,
    functions: Mapping[str, Callable[..., Any]] | None,
) -> QueryResult:
    request_id = get_request_id()
    logger.debug(f"[batch][{request_id}] start run `{query.name}` runner type `{query.runner_type}`")
    result = await query.run(variables, functions)
    logger.debug(f"[batch][{request_id}] finish run `{query.name}` runner type `{query.runner_type}`")
    return result


async def run_queries(
    queries: Sequence[PreparedQuery],
    variables: Mapping[str, Any] | None = None,
    functions: Mapping[str, Callable[..., Any]] | None = None,
) -> list[QueryResult]:
    """
    Run queries concurrently.

    Args:
        queries: Prepared queries, one task each
        variables: Variables shared by every run
        functions: Functions shared by every run

    Returns:
        Results in the order of ``queries``

    Raises:
        The first exception raised by any query, in completion order;
        the others are cancelled
    """
    if not queries:
        return []

    tasks = [
        asyncio.create_task(_run_one(query, variables, functions), name=f"query_{i}_{query.name}")
        for i, query in enumerate(queries)
    ]
    # Done callbacks fire in completion order
    finished: list[asyncio.Task[QueryResult]] = []
    for task in tasks:
        task.add_done_callback(finished.append)

    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    if pending:
        # Something failed; stop the rest before reporting it
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    ordered = finished + [task for task in tasks if task not in finished]
    for task in ordered:
        if task in done and not task.cancelled() and task.exception() is not None:
            error = task.exception()
            logger.warning(f"[batch][{get_request_id()}] Query failed: {error}")
            raise error

    return [task.result() for task in tasks]


__all__ = ["run_queries"]
