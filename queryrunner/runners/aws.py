"""
Shared plumbing for AWS-backed runners.

boto3 clients are synchronous, so every call runs in a worker thread.
Clients are created on first use from a client factory; tests inject a
factory returning a fake client.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from ..errors import BackendError
from ..runner import QueryRunner
from ..waiter import Waiter

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    ClientFactory = Callable[[str, "str | None"], Any]

logger = logging.getLogger(__name__)

CANCEL_TIMEOUT = 1.0


def boto3_client(service_name: str, region: str | None = None) -> Any:
    """Default client factory: ``boto3.Session(region_name=region).client(service_name)``."""
    import boto3

    return boto3.Session(region_name=region).client(service_name)


class AwsQueryRunner(QueryRunner):
    """
    Base for runners talking to one AWS service.

    Subclasses set ``service_name``. Polling settings are class attributes
    so tests can shrink them per instance.
    """

    service_name: str = ""

    MIN_DELAY = 0.1
    MAX_DELAY = 5.0
    TIMEOUT = 15 * 60.0
    JITTER = 0.2

    def __init__(
        self,
        name: str,
        region: str | None = None,
        client_factory: ClientFactory | None = None,
    ):
        super().__init__(name)
        self.region = region
        self._client_factory = client_factory or boto3_client
        self._client: Any = None

    @property
    def client(self) -> Any:
        if self._client is None:
            logger.debug(f"[{self.type_name}] Creating {self.service_name} client (region={self.region})")
            self._client = self._client_factory(self.service_name, self.region)
        return self._client

    def new_waiter(self) -> Waiter:
        return Waiter(
            min_delay=self.MIN_DELAY,
            max_delay=self.MAX_DELAY,
            timeout=self.TIMEOUT,
            jitter=self.JITTER,
        )

    async def call(self, operation: str, **params: Any) -> Any:
        """
        Call a client operation in a worker thread.

        Raises:
            BackendError: Wrapping whatever the client raised
        """
        method = getattr(self.client, operation)
        try:
            return await asyncio.to_thread(method, **params)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise BackendError(f"{operation}: {e}") from e

    async def start_job(
        self,
        operation: str,
        stop: Callable[[Any], Awaitable[None]],
        **params: Any,
    ) -> Any:
        """
        Call an operation that starts a remote job.

        The worker thread cannot be interrupted, so a cancellation that
        arrives while the call is in flight waits up to CANCEL_TIMEOUT for
        its response and hands it to ``stop`` before re-raising.
        """
        call = asyncio.ensure_future(self.call(operation, **params))
        try:
            return await asyncio.shield(call)
        except asyncio.CancelledError:
            if call.done() and (call.cancelled() or call.exception() is not None):
                raise
            try:
                response = await asyncio.wait_for(call, timeout=CANCEL_TIMEOUT)
            except (BackendError, asyncio.TimeoutError) as e:
                logger.warning(f"[{self.type_name}] {operation} still unresolved after cancel: {e}")
            else:
                await stop(response)
            raise

    async def call_quietly(self, operation: str, **params: Any) -> None:
        """Best-effort call bounded by CANCEL_TIMEOUT; failures are only logged."""
        try:
            await asyncio.wait_for(self.call(operation, **params), timeout=CANCEL_TIMEOUT)
        except (BackendError, asyncio.TimeoutError) as e:
            logger.warning(f"[{self.type_name}] {operation} failed: {e}")


__all__ = ["AwsQueryRunner", "CANCEL_TIMEOUT", "boto3_client"]
