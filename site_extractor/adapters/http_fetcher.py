"""
Light HTTP fetch adapter.

Plain GET with browser-like headers. Retries on rate limiting, server errors
and timeouts according to an explicit RetryPolicy; every other failure is
returned as a FetchResult with ok=False instead of being raised.
"""
import asyncio
import random
from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx

from site_extractor.config import config
from site_extractor.utils.logger import LayerLogger


RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


def exponential_backoff(attempt: int) -> float:
    """Seconds to wait before retry number `attempt` (1-based)."""
    return (2 ** attempt) + random.random()


@dataclass
class RetryPolicy:
    max_attempts: int = config.FETCH_MAX_ATTEMPTS
    backoff: Callable[[int], float] = exponential_backoff


@dataclass
class FetchResult:
    """Outcome of one fetch (light or headless)."""
    url: str
    html: Optional[str] = None
    status_code: Optional[int] = None
    final_url: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0
    content_type: Optional[str] = None
    headers: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Success status with a non-empty body."""
        return (
            self.error is None
            and self.status_code is not None
            and 200 <= self.status_code < 300
            and bool(self.html and self.html.strip())
        )


class HttpFetcher:
    """httpx-based page fetcher used for light fetches, samples and sitemaps."""

    def __init__(
        self,
        timeout: float = config.REQUEST_TIMEOUT,
        retry_policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.transport = transport
        self.logger = LayerLogger("http_fetcher")

    def _get_headers(self) -> dict:
        """Get request headers mimicking a browser."""
        return {
            "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            "Accept-Language": "tr-TR,tr;q=0.9,en-US;q=0.8,en;q=0.7",
        }

    async def fetch(self, url: str, timeout: Optional[float] = None) -> FetchResult:
        result = await self.fetch_bytes(url, timeout=timeout)
        return result[0]

    async def fetch_bytes(self, url: str, timeout: Optional[float] = None):
        """Fetch a URL, returning (FetchResult, raw body bytes or None)."""
        self.logger.log_action("fetch", "started", url=url)
        attempts = 0
        last_error: Optional[str] = None
        response: Optional[httpx.Response] = None

        async with httpx.AsyncClient(
            timeout=timeout or self.timeout,
            follow_redirects=True,
            transport=self.transport,
        ) as client:
            while attempts < max(1, self.retry_policy.max_attempts):
                attempts += 1
                try:
                    response = await client.get(url, headers=self._get_headers())
                    last_error = None
                except httpx.TimeoutException as e:
                    last_error = f"Timeout: {e}"
                    response = None
                except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
                    self.logger.log_error(
                        f"Failed to fetch URL: {e}",
                        error_type="transport_failure",
                        url=url,
                    )
                    return FetchResult(url=url, error=str(e) or type(e).__name__, attempts=attempts), None

                retryable = response is None or response.status_code in RETRYABLE_STATUS_CODES
                if not retryable or attempts >= self.retry_policy.max_attempts:
                    break
                delay = self.retry_policy.backoff(attempts)
                self.logger.log_fallback(
                    from_source=f"attempt_{attempts}",
                    to_source=f"attempt_{attempts + 1}",
                    reason=last_error or f"status_{response.status_code}",
                    url=url,
                    delay=round(delay, 2),
                )
                await asyncio.sleep(delay)

        if response is None:
            self.logger.log_fetch(url, "light", None, "timeout", attempts=attempts)
            return FetchResult(url=url, error=last_error or "No response", attempts=attempts), None

        result = FetchResult(
            url=url,
            html=response.text,
            status_code=response.status_code,
            final_url=str(response.url),
            attempts=attempts,
            content_type=response.headers.get("content-type"),
            headers=dict(response.headers),
        )
        if not (200 <= response.status_code < 300):
            result.error = f"HTTP {response.status_code}"
        self.logger.log_fetch(
            url,
            "light",
            response.status_code,
            "ok" if result.ok else "failed",
            attempts=attempts,
            content_length=len(response.content),
        )
        return result, response.content
