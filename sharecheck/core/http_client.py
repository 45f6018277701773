"""Shared async HTTP client for provider probes and the REST record store.

Two very different callers share this wrapper around
:class:`httpx.AsyncClient`:

* **Probes** hit share pages and share APIs once per link.  They run with
  ``max_attempts=1`` (a retry storm is exactly what gets a client blocked),
  a short timeout, and a browser User-Agent picked per request.  Quark
  reports share errors as JSON in 4xx bodies, so probes may pass
  ``raise_for_status=False``; Baidu signals liveness through redirects, so
  it passes ``follow_redirects=False`` and gets the 3xx back.
* **The store client** talks to PostgREST with the service key in default
  headers and ``STORE_MAX_ATTEMPTS`` attempts; 5xx, 429 and network errors
  are retried by :mod:`tenacity` with exponential back-off, and 429 honours
  ``Retry-After``.

Whatever is still failing after the last attempt surfaces as
:class:`~sharecheck.core.exceptions.FetchError` (or
:class:`~sharecheck.core.exceptions.RateLimitError`), or as the original
:class:`httpx.TransportError` for network failures.

Typical usage::

    async with HttpClient(timeout=10.0, label="quark") as client:
        response = await client.post(token_url, json={"pwd_id": "abc", "passcode": ""})
"""

from __future__ import annotations

import logging
import random
from types import TracebackType
from typing import Any, Final

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
)

from sharecheck.core.exceptions import FetchError, RateLimitError

__all__ = ["HttpClient", "MOBILE_USER_AGENT"]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_SERVER_ERRORS: Final[frozenset[int]] = frozenset({500, 502, 503, 504})

#: Back-off before attempt n+1 is 2**(n-1) seconds plus jitter, capped here.
_BACKOFF_CAP: Final[float] = 20.0
_JITTER: Final[float] = 1.0

#: Mobile Safari.  Baidu answers mobile agents with the redirect the probe
#: inspects.
MOBILE_USER_AGENT: Final[str] = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 13_2_3 like Mac OS X) "
    "AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/13.0.3 Mobile/15E148 Safari/604.1"
)

_DESKTOP_USER_AGENTS: Final[tuple[str, ...]] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36 Edg/124.0.0.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0",
)

_BASE_HEADERS: Final[dict[str, str]] = {
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
}


class _RetryableServerError(FetchError):
    """A 5xx answer.  Retried; after the last attempt callers see a FetchError."""


# ---------------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------------


def _backoff_wait(retry_state: RetryCallState) -> float:
    """Seconds to wait before the next attempt.

    A 429 with a usable ``Retry-After`` waits exactly that long; everything
    else backs off exponentially with a little jitter.
    """
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if isinstance(exc, RateLimitError) and exc.retry_after:
        return exc.retry_after
    base = min(2.0 ** (retry_state.attempt_number - 1), _BACKOFF_CAP)
    return base + random.uniform(0.0, _JITTER)


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after", "").strip()
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        # HTTP-date form; not worth parsing for a short back-off.
        return None


def _check_status(
    response: httpx.Response,
    *,
    label: str,
    follow_redirects: bool,
    raise_for_status: bool,
) -> httpx.Response:
    """Return *response* if the caller should see it, else raise."""
    status = response.status_code
    if response.is_success or (not follow_redirects and response.is_redirect):
        return response
    if status == 429:
        retry_after = _retry_after(response)
        logger.warning("%s rate limited us (HTTP 429, Retry-After=%s).", label, retry_after)
        raise RateLimitError(label, retry_after=retry_after)
    if status in _SERVER_ERRORS:
        raise _RetryableServerError(label, f"HTTP {status}", status_code=status)
    if not raise_for_status:
        return response
    raise FetchError(label, f"HTTP {status}: {response.text[:200]}", status_code=status)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class HttpClient:
    """Lazily opened :class:`httpx.AsyncClient` with retries and status mapping.

    Args:
        base_url: Prefix for relative request paths (the store's
            ``/rest/v1`` root).  Probes pass absolute URLs and leave it empty.
        headers: Default headers sent with every request.
        timeout: Timeout in seconds applied to each phase of a request.
        max_attempts: Total attempts per request, including the first.
        label: Name used in log lines and in raised errors.
        transport: Transport override; tests pass :class:`httpx.MockTransport`.

    Raises:
        ValueError: If ``max_attempts`` is less than 1.
    """

    def __init__(
        self,
        *,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
        max_attempts: int = 1,
        label: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts!r}")
        self._base_url = base_url
        self._headers = {**_BASE_HEADERS, **(headers or {})}
        self._timeout = httpx.Timeout(timeout)
        self._max_attempts = max_attempts
        self._label = label
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> HttpClient:
        self._open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the connection pool.  Idempotent."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            logger.debug("HTTP client %r closed.", self._label or self._base_url)
        self._client = None

    def _open(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=self._headers,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    # ------------------------------------------------------------------
    # Verbs
    # ------------------------------------------------------------------

    async def get(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        follow_redirects: bool = True,
        raise_for_status: bool = True,
    ) -> httpx.Response:
        """GET *url*.

        Args:
            url: Absolute URL, or a path relative to ``base_url``.
            params: Query parameters.
            headers: Per-request headers.  A ``User-Agent`` here replaces the
                rotated desktop one.
            follow_redirects: With ``False`` a 3xx answer is returned as-is.
            raise_for_status: With ``False`` a 4xx answer other than 429 is
                returned for the caller to interpret.

        Raises:
            RateLimitError: HTTP 429 on the last attempt.
            FetchError: Any other non-success status on the last attempt.
            httpx.TransportError: Network failure (timeouts included) on the
                last attempt.
        """
        return await self.request(
            "GET",
            url,
            params=params,
            headers=headers,
            follow_redirects=follow_redirects,
            raise_for_status=raise_for_status,
        )

    async def head(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        return await self.request("HEAD", url, params=params, headers=headers)

    async def post(
        self,
        url: str,
        *,
        json: Any | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        raise_for_status: bool = True,
    ) -> httpx.Response:
        return await self.request(
            "POST",
            url,
            json=json,
            params=params,
            headers=headers,
            raise_for_status=raise_for_status,
        )

    async def patch(
        self,
        url: str,
        *,
        json: Any | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        return await self.request("PATCH", url, json=json, params=params, headers=headers)

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any | None = None,
        headers: dict[str, str] | None = None,
        follow_redirects: bool = True,
        raise_for_status: bool = True,
    ) -> httpx.Response:
        """Send one request, retrying transient failures.  See :meth:`get`."""
        label = self._label or self._base_url or url
        request_headers = {"User-Agent": random.choice(_DESKTOP_USER_AGENTS), **(headers or {})}

        def _log_retry(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            logger.warning(
                "%s %s failed on attempt %d/%d (%s); retrying.",
                method,
                url,
                state.attempt_number,
                self._max_attempts,
                exc,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=_backoff_wait,
            retry=retry_if_exception_type(
                (_RetryableServerError, RateLimitError, httpx.TransportError)
            ),
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                response = await self._open().request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=request_headers,
                    follow_redirects=follow_redirects,
                )
                logger.debug("%s %s -> %d", method, url, response.status_code)
                return _check_status(
                    response,
                    label=label,
                    follow_redirects=follow_redirects,
                    raise_for_status=raise_for_status,
                )

        raise AssertionError("unreachable: tenacity reraises the last failure")
