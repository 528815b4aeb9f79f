"""Throttled, retrying HTTP transport shared by every feed.

Each feed owns a ``Throttle`` bounding its in-flight requests; one
``ThrottledTransport`` (and one underlying ``aiohttp.ClientSession``) serves a
whole resolution session. A permit is held from the moment a request is sent
until the caller releases the returned ``ThrottledResponse``.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple

import aiohttp

from constants import Constants
from common.errors import TransportFailure
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

SESSION_ID_HEADER = "X-NuGet-Session-Id"


class ResultStatus(Enum):
    """Outcome of a feed request as seen by feed clients."""
    OK = "ok"
    NOT_FOUND = "not_found"
    NO_CONTENT = "no_content"


@dataclass(frozen=True)
class TransportRequest:
    """A GET request plus its retry and timeout budget."""
    url: str
    accept: Tuple[str, ...] = ("application/json",)
    request_timeout: float = Constants.REQUEST_TIMEOUT
    download_timeout: float = Constants.DOWNLOAD_TIMEOUT
    max_tries: int = Constants.HTTP_RETRY_MAX
    is_retry: bool = False
    is_last_attempt: bool = False
    ignore_not_found: bool = False


class Throttle:
    """Counting semaphore bounding concurrent requests to one feed.

    ``limit=None`` never blocks. ``peak`` records the highest number of permits
    held at once.
    """

    def __init__(self, limit: Optional[int] = None):
        if limit is not None and limit < 1:
            raise ValueError("Throttle limit must be at least 1")
        self.limit = limit
        self._semaphore = asyncio.Semaphore(limit) if limit else None
        self._in_flight = 0
        self.peak = 0

    @classmethod
    def unlimited(cls) -> "Throttle":
        return cls(None)

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def acquire(self) -> None:
        if self._semaphore is not None:
            await self._semaphore.acquire()
        self._in_flight += 1
        self.peak = max(self.peak, self._in_flight)

    def release(self) -> None:
        self._in_flight -= 1
        if self._semaphore is not None:
            self._semaphore.release()


class ThrottledResponse:
    """An HTTP response that owns a throttle permit.

    ``release()`` is idempotent: the permit goes back exactly once.
    """

    def __init__(self, response: Any, throttle: Throttle, request: TransportRequest):
        self._response = response
        self._throttle: Optional[Throttle] = throttle
        self._request = request

    @property
    def status(self) -> int:
        return self._response.status

    @property
    def headers(self):
        return self._response.headers

    @property
    def released(self) -> bool:
        return self._throttle is None

    async def read(self) -> bytes:
        """Read the full body within the request's download timeout."""
        try:
            return await asyncio.wait_for(
                self._response.read(), timeout=self._request.download_timeout
            )
        except asyncio.TimeoutError as exc:
            raise TransportFailure(
                safe_url(self._request.url), 1, "download timed out"
            ) from exc
        except aiohttp.ClientError as exc:
            raise TransportFailure(safe_url(self._request.url), 1, str(exc)) from exc

    def release(self) -> None:
        throttle, self._throttle = self._throttle, None
        if throttle is None:
            return
        try:
            self._response.release()
        finally:
            throttle.release()

    async def __aenter__(self) -> "ThrottledResponse":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()


@dataclass
class SourceResult:
    """Consumer view of a response: status plus the open response when OK."""
    status: ResultStatus
    response: Optional[ThrottledResponse] = None


SessionFactory = Callable[[], Awaitable[Any]]


class ThrottledTransport:
    """Retrying HTTP client with a lazily created shared session."""

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        retry_base_delay: float = Constants.HTTP_RETRY_BASE_DELAY_SEC,
    ):
        self._session: Optional[Any] = None
        self._session_lock = asyncio.Lock()
        self._session_factory = session_factory or self._create_session
        self._retry_base_delay = retry_base_delay
        self.session_id = str(uuid.uuid4())
        self.sessions_created = 0
        self.request_count = 0

    async def _create_session(self) -> aiohttp.ClientSession:
        connector = aiohttp.TCPConnector(limit=100)
        return aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=None),
            connector=connector,
            headers={"User-Agent": Constants.USER_AGENT},
        )

    async def _ensure_session(self) -> Any:
        if self._session is None:
            async with self._session_lock:
                # Double check
                if self._session is None:
                    self._session = await self._session_factory()
                    self.sessions_created += 1
        return self._session

    async def close(self) -> None:
        """Close the underlying session."""
        session, self._session = self._session, None
        if session is not None:
            await session.close()

    async def __aenter__(self) -> "ThrottledTransport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _headers(self, request: TransportRequest) -> Dict[str, str]:
        return {
            "Accept": ", ".join(request.accept),
            SESSION_ID_HEADER: self.session_id,
        }

    async def _open(self, session: Any, request: TransportRequest) -> Any:
        return await session.get(
            request.url, headers=self._headers(request), allow_redirects=True
        )

    async def send(self, request: TransportRequest, throttle: Throttle) -> ThrottledResponse:
        """Send ``request`` under ``throttle`` and return the open response.

        The caller must release the returned response. If sending fails (or the
        task is cancelled) the permit is released here before re-raising.

        Raises:
            TransportFailure: When every attempt failed.
        """
        session = await self._ensure_session()
        await throttle.acquire()
        try:
            response = await self._send_with_retries(session, request)
        except BaseException:
            throttle.release()
            raise
        return ThrottledResponse(response, throttle, request)

    async def _send_with_retries(self, session: Any, request: TransportRequest) -> Any:
        target = safe_url(request.url)
        attempts = max(1, request.max_tries)
        last_error = "no attempt made"
        for attempt in range(1, attempts + 1):
            final = attempt == attempts or request.is_last_attempt
            retrying = attempt > 1 or request.is_retry
            self.request_count += 1
            with Timer() as t:
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP request",
                        extra=extra_context(
                            event="http_request",
                            component="http_client",
                            action="GET",
                            target=target,
                            attempt=attempt,
                            retry=retrying,
                        ),
                    )
                try:
                    response = await asyncio.wait_for(
                        self._open(session, request), timeout=request.request_timeout
                    )
                except asyncio.TimeoutError as exc:
                    last_error = f"timed out after {request.request_timeout} seconds"
                    if final:
                        raise TransportFailure(target, attempt, last_error) from exc
                    await self._backoff(attempt, target, last_error)
                    continue
                except aiohttp.ClientError as exc:
                    last_error = str(exc) or exc.__class__.__name__
                    if final:
                        raise TransportFailure(target, attempt, last_error) from exc
                    await self._backoff(attempt, target, last_error)
                    continue

                if response.status in Constants.HTTP_RETRY_STATUSES and not final:
                    last_error = f"HTTP {response.status}"
                    response.release()
                    await self._backoff(attempt, target, last_error)
                    continue

                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP response",
                        extra=extra_context(
                            event="http_response",
                            component="http_client",
                            action="GET",
                            status_code=response.status,
                            duration_ms=t.duration_ms(),
                            target=target,
                            attempt=attempt,
                        ),
                    )
                return response
        raise TransportFailure(target, attempts, last_error)

    async def _backoff(self, attempt: int, target: str, reason: str) -> None:
        delay = self._retry_base_delay * (2 ** (attempt - 1))
        logger.warning(
            "Request to %s failed (%s); retrying in %.1fs",
            target,
            reason,
            delay,
            extra=extra_context(
                event="http_retry", component="http_client", attempt=attempt, target=target
            ),
        )
        await asyncio.sleep(delay)

    @asynccontextmanager
    async def get(
        self, request: TransportRequest, throttle: Throttle
    ) -> AsyncIterator[SourceResult]:
        """Open ``request`` and classify the response.

        Yields ``NOT_FOUND`` for a 404 when ``ignore_not_found`` is set and
        ``NO_CONTENT`` for 204; any other non-success status raises
        ``TransportFailure``. The permit is released when the block exits.
        """
        response = await self.send(request, throttle)
        try:
            if request.ignore_not_found and response.status == 404:
                yield SourceResult(ResultStatus.NOT_FOUND)
            elif response.status == 204:
                yield SourceResult(ResultStatus.NO_CONTENT)
            elif response.status >= 400:
                raise TransportFailure(
                    safe_url(request.url), 1, f"HTTP {response.status}", status=response.status
                )
            else:
                yield SourceResult(ResultStatus.OK, response)
        finally:
            response.release()


@dataclass(frozen=True)
class HttpSettings:
    """Per-request budget applied by feed clients."""
    request_timeout: float = Constants.REQUEST_TIMEOUT
    download_timeout: float = Constants.DOWNLOAD_TIMEOUT
    max_tries: int = Constants.HTTP_RETRY_MAX

    def request(self, url: str, accept: Tuple[str, ...], ignore_not_found: bool) -> TransportRequest:
        return TransportRequest(
            url=url,
            accept=accept,
            request_timeout=self.request_timeout,
            download_timeout=self.download_timeout,
            max_tries=self.max_tries,
            ignore_not_found=ignore_not_found,
        )
