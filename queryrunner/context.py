"""
Request-scoped context for queryrunner.

The request id of the current invocation travels in a ContextVar, so it
follows the call into every task the batch spawns and shows up in adapter
log lines without being passed around.

Usage:
    with with_request_id("req-42"):
        results = await run_queries(queries, variables)

    get_request_id()   # "-" outside any request
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from uuid import uuid4

DEFAULT_REQUEST_ID = "-"

_request_id: ContextVar[str] = ContextVar("queryrunner_request_id", default=DEFAULT_REQUEST_ID)


def get_request_id() -> str:
    return _request_id.get()


@contextmanager
def with_request_id(request_id: str | None = None) -> Iterator[str]:
    """
    Set the request id for the enclosed block.

    Args:
        request_id: Id to use; a random one is generated when omitted
    """
    value = request_id or uuid4().hex
    token = _request_id.set(value)
    try:
        yield value
    finally:
        _request_id.reset(token)


__all__ = ["DEFAULT_REQUEST_ID", "get_request_id", "with_request_id"]
