"""
HTTP fetcher with a browser-like identity and bounded retry.

Each call opens a fresh httpx client (no pooled connections between calls),
applies a per-attempt timeout and retries transient failures with exponential
backoff. Timeouts are never retried so callers can tell "too slow" apart from
"unreachable".
"""

from __future__ import annotations

import time
from typing import Any, Optional
from urllib.parse import urlparse

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from macbridge.config import get_settings
from macbridge.errors import FetchError, FetchTimeoutError
from macbridge.observability import metrics as obs_metrics

logger = structlog.get_logger()


BROWSER_HEADERS: dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}


def _is_retryable_fetch_error(exc: BaseException) -> bool:
    """Retry non-2xx and network failures; a timed-out attempt fails fast."""
    if isinstance(exc, FetchTimeoutError):
        return False
    return isinstance(exc, FetchError)


class HttpFetcher:
    """
    GET/POST a URL and return the body as text.

    Retries up to ``retries`` extra attempts (1s, 2s, 4s … scaled by
    ``backoff_base``) and re-raises the last error once the budget is spent.
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        backoff_base: Optional[float] = None,
    ) -> None:
        self._transport = transport
        if backoff_base is None:
            backoff_base = get_settings().search.backoff_base
        self.backoff_base = backoff_base

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[dict[str, str]] = None,
        timeout: float = 10.0,
        retries: int = 2,
        data: Optional[dict[str, Any]] = None,
    ) -> str:
        merged = {**BROWSER_HEADERS, **(headers or {})}
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(retries, 0) + 1),
            wait=wait_exponential(multiplier=self.backoff_base),
            retry=retry_if_exception(_is_retryable_fetch_error),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                n = attempt.retry_state.attempt_number
                if n > 1:
                    logger.debug("fetch_retry", url=url, attempt=n)
                return await self._attempt(url, method, merged, timeout, data)
        raise FetchError("Request failed", url=url)  # pragma: no cover

    async def _attempt(
        self,
        url: str,
        method: str,
        headers: dict[str, str],
        timeout: float,
        data: Optional[dict[str, Any]],
    ) -> str:
        domain = (urlparse(url).netloc or "unknown")[:64]
        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=timeout,
                follow_redirects=True,
            ) as client:
                response = await client.request(method, url, headers=headers, data=data)
        except httpx.TimeoutException as e:
            obs_metrics.record_fetch(domain, "timeout", time.perf_counter() - start)
            logger.warning("fetch_timeout", url=url, timeout=timeout)
            raise FetchTimeoutError(f"Request timed out after {timeout}s", url=url) from e
        except httpx.HTTPError as e:
            obs_metrics.record_fetch(domain, "network_error", time.perf_counter() - start)
            logger.warning("fetch_network_error", url=url, error=str(e))
            raise FetchError(str(e) or type(e).__name__, url=url) from e

        status = response.status_code
        if not 200 <= status < 300:
            obs_metrics.record_fetch(domain, f"http_{status}", time.perf_counter() - start)
            logger.warning("fetch_bad_status", url=url, status=status)
            raise FetchError(
                f"Request failed with status code {status}",
                url=url,
                status_code=status,
            )
        obs_metrics.record_fetch(domain, "ok", time.perf_counter() - start)
        return response.text
