"""HTTP client for downloading ICS calendar feeds - smartcal."""

import asyncio
import logging
import random
import time
from typing import Any, Optional, Protocol
from urllib.parse import quote, urlparse

import httpx

from .exceptions import (
    EmptyContentError,
    FetchError,
    FetchHTTPError,
    FetchNetworkError,
    FetchTimeoutError,
)

logger = logging.getLogger(__name__)

# Backoff calculation constants
MAX_BACKOFF_SECONDS = 30.0
JITTER_MIN_FACTOR = 0.1
JITTER_MAX_FACTOR = 0.3

DEFAULT_HEADERS: dict[str, str] = {
    "User-Agent": "smartcal/0.1 (+https://github.com/smartcal/smartcal)",
    "Accept": "text/calendar, text/plain, application/octet-stream, */*",
    "Cache-Control": "no-cache",
}


class CalendarFetcher(Protocol):
    """Fetch collaborator: returns calendar text for a URL or raises FetchError."""

    async def fetch(self, url: str) -> str:
        """Retrieve raw calendar text.

        Raises:
            FetchError: On any retrieval failure
        """
        ...


def add_cache_buster(url: str, now_ms: Optional[int] = None) -> str:
    """Append a ``t=<epoch ms>`` query parameter so caches never answer."""
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}t={stamp}"


def build_proxy_url(proxy_url: str, target_url: str) -> str:
    """Wrap a target URL as the ``url`` parameter of a fetch proxy."""
    separator = "&" if "?" in proxy_url else "?"
    return f"{proxy_url}{separator}url={quote(target_url, safe='')}"


class ICSFetcher:
    """Async HTTP client for downloading ICS calendar feeds."""

    def __init__(
        self,
        request_timeout: float = 30.0,
        max_retries: int = 2,
        retry_backoff_factor: float = 1.5,
        proxy_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize ICS fetcher.

        Args:
            request_timeout: HTTP read timeout in seconds
            max_retries: Extra attempts after a timeout or network error
            retry_backoff_factor: Base of the exponential backoff
            proxy_url: Optional proxy endpoint receiving the target as ``?url=``
            client: Optional externally owned client (not closed by us)
        """
        self.request_timeout = request_timeout
        self.max_retries = max_retries
        self.retry_backoff_factor = retry_backoff_factor
        self.proxy_url = proxy_url
        self.client: Optional[httpx.AsyncClient] = client
        self._owns_client = client is None

        logger.debug(
            "ICS fetcher initialized (proxy: %s, shared_client: %s)",
            bool(proxy_url),
            not self._owns_client,
        )

    async def __aenter__(self) -> "ICSFetcher":
        self._ensure_client()
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self.client is None or self.client.is_closed:
            timeout = httpx.Timeout(connect=10.0, read=self.request_timeout, write=10.0, pool=30.0)
            limits = httpx.Limits(max_connections=10, max_keepalive_connections=5)
            self.client = httpx.AsyncClient(
                timeout=timeout,
                limits=limits,
                follow_redirects=True,
                headers=DEFAULT_HEADERS,
            )
            self._owns_client = True
        return self.client

    async def aclose(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self.client is not None and self._owns_client and not self.client.is_closed:
            await self.client.aclose()
            logger.debug("Closed HTTP client")
        if self._owns_client:
            self.client = None

    def _validate_url(self, url: str) -> None:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            raise FetchError(f"Invalid URL scheme: {parsed.scheme!r}", url)
        if not parsed.hostname:
            raise FetchError("URL missing hostname", url)

    def request_url(self, url: str) -> str:
        """URL actually requested for a feed: cache-busted, optionally proxied."""
        target = add_cache_buster(url)
        if self.proxy_url:
            return build_proxy_url(self.proxy_url, target)
        return target

    async def fetch(self, url: str) -> str:
        """Download ICS text for a feed URL.

        Args:
            url: Feed URL (http or https)

        Returns:
            Non-empty response body

        Raises:
            FetchHTTPError: Non-success HTTP status
            EmptyContentError: Successful response with empty body
            FetchTimeoutError: Timed out after all retries
            FetchNetworkError: Network failure after all retries
            FetchError: Invalid URL or unexpected client failure
        """
        url = url.strip()
        self._validate_url(url)
        client = self._ensure_client()
        request_url = self.request_url(url)

        logger.debug("Fetching ICS from %s", url)
        response = await self._get_with_retry(client, url, request_url)

        if response.status_code < 200 or response.status_code >= 300:
            raise FetchHTTPError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                url,
                status_code=response.status_code,
            )

        content = response.text
        if not content or not content.strip():
            raise EmptyContentError("Empty content received", url)

        content_type = response.headers.get("content-type", "").lower()
        if content_type and not any(ct in content_type for ct in ("text/calendar", "text/plain")):
            logger.debug("Unexpected content type %s from %s", content_type, url)

        logger.debug("Fetched %d bytes of ICS from %s", len(content), url)
        return content

    def _calculate_backoff(self, attempt: int) -> float:
        """Exponential backoff with jitter to avoid synchronized retries."""
        base_backoff = min(self.retry_backoff_factor**attempt, MAX_BACKOFF_SECONDS)
        jitter = random.uniform(JITTER_MIN_FACTOR, JITTER_MAX_FACTOR) * base_backoff  # nosec B311 - jitter not cryptographic
        return base_backoff + jitter

    async def _get_with_retry(
        self, client: httpx.AsyncClient, url: str, request_url: str
    ) -> httpx.Response:
        attempt = 0
        while True:
            try:
                return await client.get(request_url)
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                if attempt >= self.max_retries:
                    logger.warning(
                        "All %d attempts failed for %s: %s", attempt + 1, url, e
                    )
                    if isinstance(e, httpx.TimeoutException):
                        raise FetchTimeoutError(f"Request timeout: {e}", url) from e
                    raise FetchNetworkError(f"Network error: {e}", url) from e

                backoff_time = self._calculate_backoff(attempt)
                logger.warning(
                    "Request failed (attempt %d/%d), retrying in %.1fs: %s",
                    attempt + 1,
                    self.max_retries + 1,
                    backoff_time,
                    e,
                )
                await asyncio.sleep(backoff_time)
                attempt += 1
            except httpx.HTTPError as e:
                raise FetchError(f"HTTP client error: {e}", url) from e
