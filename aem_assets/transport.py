# ============================================================================
# aem_assets/transport.py
# ============================================================================
# Thin async HTTP transport shared by the token service and the asset client.
# Centralizes timeouts, cooperative cancellation and the mapping of httpx
# failures onto the aem_assets error taxonomy.
#
#   - per-call ``timeout`` overrides the transport default; it bounds each
#     httpx phase and, as an overall deadline, the whole call
#   - ``cancel_event`` (asyncio.Event) aborts an in-flight request with
#     RequestCancelledError; native task cancellation still propagates as
#     asyncio.CancelledError
#   - no retries: callers decide retry policy
# ============================================================================

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Optional, TypeVar

import httpx

from .errors import NetworkError, RequestCancelledError, RequestTimeoutError

logger = logging.getLogger("aem_assets.transport")

DEFAULT_TIMEOUT_SECONDS = 30.0

T = TypeVar("T")


class HttpTransport:
    """Async HTTP transport with timeout and cancellation support."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        verify: bool = True,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.timeout = timeout if timeout is not None else DEFAULT_TIMEOUT_SECONDS
        self._owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(
                base_url=(base_url or "").rstrip("/"),
                timeout=self.timeout,
                verify=verify,
            )
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def build_request(self, method: str, url: str, *, timeout: Optional[float] = None, **kwargs: Any) -> httpx.Request:
        effective = self.timeout if timeout is None else timeout
        return self._client.build_request(method, url, timeout=effective, **kwargs)

    def effective_timeout(self, timeout: Optional[float] = None) -> float:
        return self.timeout if timeout is None else timeout

    async def request(
        self,
        method: str,
        url: str,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
        follow_redirects: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and read the full response body."""
        request = self.build_request(method, url, timeout=timeout, **kwargs)
        return await self.send(request, timeout=timeout, cancel_event=cancel_event, follow_redirects=follow_redirects)

    async def send(
        self,
        request: httpx.Request,
        *,
        stream: bool = False,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
        follow_redirects: bool = False,
    ) -> httpx.Response:
        """
        Send a prepared request.

        Without ``stream`` the deadline covers the whole exchange including the
        body; with ``stream`` it covers the response headers only, and the
        caller bounds the body (see ``guard``).

        Raises:
            RequestTimeoutError: the timeout elapsed
            NetworkError: any other transport-level failure
            RequestCancelledError: ``cancel_event`` was set before completion
        """
        if cancel_event is not None and cancel_event.is_set():
            raise RequestCancelledError(f"{request.method} {request.url} cancelled before it was sent")

        logger.debug(f"{request.method} {request.url}")
        return await self.guard(
            request,
            self._client.send(request, stream=stream, follow_redirects=follow_redirects),
            timeout=timeout,
            cancel_event=cancel_event,
        )

    async def guard(
        self,
        request: httpx.Request,
        work: Awaitable[T],
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> T:
        """
        Await ``work`` (anything that talks to ``request``'s server) under an
        overall deadline and the caller's cancel event.

        httpx timeouts apply per phase (connect, each read, ...), so a server
        that keeps sending bytes slowly never trips them; the deadline here
        bounds the call as a whole.

        Raises:
            RequestTimeoutError: httpx timed out or the overall deadline passed
            NetworkError: any other httpx transport failure
            RequestCancelledError: ``cancel_event`` was set first
        """
        deadline = self.effective_timeout(timeout)
        label = f"{request.method} {request.url}"
        try:
            return await self._race(label, work, deadline, cancel_event)
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(f"{label} timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"{label} failed: {exc}") from exc

    async def _race(
        self,
        label: str,
        work: Awaitable[T],
        deadline: float,
        cancel_event: Optional[asyncio.Event],
    ) -> T:
        work_task = asyncio.ensure_future(work)
        waiters = {work_task}
        cancel_task = None
        if cancel_event is not None:
            cancel_task = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(waiters, timeout=deadline, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            for waiter in waiters:
                waiter.cancel()
            raise
        if cancel_task is not None:
            cancel_task.cancel()

        if work_task in done:
            return work_task.result()

        await _abort(work_task)
        if cancel_task is not None and cancel_task in done:
            logger.info(f"{label} cancelled by caller")
            raise RequestCancelledError(f"{label} cancelled by caller")
        logger.warning(f"{label} exceeded the {deadline}s deadline")
        raise RequestTimeoutError(f"{label} timed out after {deadline}s")


async def _abort(task: "asyncio.Future[Any]") -> None:
    task.cancel()
    # Drain the aborted work so its outcome is not reported as never retrieved.
    outcome = (await asyncio.gather(task, return_exceptions=True))[0]
    if isinstance(outcome, httpx.Response):
        await outcome.aclose()
