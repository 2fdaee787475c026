"""
HTTP client with retries, backoff, throttling and Retry-After support
for JSON career-site APIs.
"""
import os
import json
import time
import asyncio
import logging
from typing import Optional, Dict, Tuple, Any
from urllib.parse import urlparse
import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.errors import FetchError

logger = logging.getLogger(__name__)

DEFAULT_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
DEFAULT_TIMEOUT = 30.0
MAX_RETRIES = 2
RETRYABLE_STATUS = (429, 500, 502, 503, 504)


class RetryableStatusError(Exception):
    """Transient HTTP status (429/5xx) that should be retried."""

    def __init__(self, status_code: int, url: str):
        super().__init__(f"HTTP {status_code} for {url}")
        self.status_code = status_code
        self.url = url


class RateLimiter:
    """Simple token bucket rate limiter for throttling"""

    def __init__(self, requests_per_minute: int, burst: int = 5):
        """
        Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests per minute
            burst: Maximum burst capacity (number of requests that can be made immediately)
        """
        self.requests_per_minute = max(1, requests_per_minute)
        self.burst = max(1, burst)
        # Tokens per second
        self.refill_rate = self.requests_per_minute / 60.0
        self.tokens = float(self.burst)
        self.last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    async def wait_if_needed(self):
        """Wait if necessary to respect rate limit"""
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self.last_refill
            self.tokens = min(self.burst, self.tokens + elapsed * self.refill_rate)
            self.last_refill = now

            if self.tokens >= 1.0:
                self.tokens -= 1.0
                return

            wait_time = (1.0 - self.tokens) / self.refill_rate
            logger.debug(f"[rate_limiter] Waiting {wait_time:.2f}s for rate limit")
            await asyncio.sleep(wait_time)
            self.tokens = 0.0
            self.last_refill = time.monotonic()


class HTTPClient:
    """HTTP client with politeness, retries and throttling support"""

    def __init__(
        self,
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None,
        requests_per_minute: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.user_agent = user_agent or os.getenv("SCRAPER_USER_AGENT", DEFAULT_UA)
        self.timeout = httpx.Timeout(timeout or DEFAULT_TIMEOUT)
        self.rate_limiter = RateLimiter(requests_per_minute) if requests_per_minute else None
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> 'HTTPClient':
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def open(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport
            )

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_headers(self, custom_headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Build request headers"""
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/json,text/html;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }
        if custom_headers:
            headers.update(custom_headers)
        return headers

    async def _handle_retry_after(self, headers: Dict[str, str], url: str):
        """Handle Retry-After header if present"""
        retry_after = headers.get("retry-after") or headers.get("Retry-After")
        if not retry_after:
            return
        try:
            wait_seconds = int(retry_after)
        except ValueError:
            try:
                from email.utils import parsedate_to_datetime
                retry_date = parsedate_to_datetime(retry_after)
                wait_seconds = max(0, int(retry_date.timestamp() - time.time()))
            except (TypeError, ValueError):
                logger.warning(f"[net] Could not parse Retry-After header: {retry_after}")
                return

        wait_seconds = min(wait_seconds, 60)
        if wait_seconds > 0:
            logger.info(f"[net] Retry-After header: waiting {wait_seconds}s for {url}")
            await asyncio.sleep(wait_seconds)

    @retry(
        stop=stop_after_attempt(MAX_RETRIES + 1),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError, RetryableStatusError)),
        reraise=True
    )
    async def fetch(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None
    ) -> Tuple[int, Dict[str, str], bytes]:
        """
        Fetch URL with retries and throttling.

        Timeouts, connection errors and 429/5xx responses are retried
        with exponential backoff; other statuses are returned as-is.

        Returns:
            (status_code, headers, body)
        """
        if self.rate_limiter:
            await self.rate_limiter.wait_if_needed()

        await self.open()
        request_headers = self._get_headers(headers)
        start_time = time.time()

        try:
            response = await self._client.request(
                method.upper(), url, headers=request_headers, params=params, json=json_data
            )
        except httpx.TimeoutException as e:
            logger.error(f"[net] Timeout fetching {url}: {e}")
            raise
        except httpx.ConnectError as e:
            logger.error(f"[net] Connection error fetching {url}: {e}")
            raise

        elapsed_ms = int((time.time() - start_time) * 1000)
        response_headers = dict(response.headers)
        logger.info(f"[net] {method.upper()} {response.status_code} {url} ({len(response.content)} bytes, {elapsed_ms}ms)")

        if response.status_code in RETRYABLE_STATUS:
            if response.status_code in (429, 503):
                await self._handle_retry_after(response_headers, url)
            raise RetryableStatusError(response.status_code, url)

        return response.status_code, response_headers, response.content

    async def fetch_json(
        self,
        url: str,
        method: str = "GET",
        json_data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Fetch and decode a JSON document.

        Raises:
            FetchError: once retries are exhausted, on non-2xx status, or on invalid JSON
        """
        request_headers = {"Content-Type": "application/json"} if json_data is not None else {}
        request_headers.update(headers or {})

        try:
            status, _, body = await self.fetch(
                url, method=method, headers=request_headers, params=params, json_data=json_data
            )
        except RetryableStatusError as e:
            raise FetchError(str(e), url=url, status_code=e.status_code) from e
        except httpx.HTTPError as e:
            raise FetchError(f"Request failed for {url}: {e}", url=url) from e

        if status >= 400:
            raise FetchError(f"HTTP {status} for {url}", url=url, status_code=status)

        try:
            return json.loads(body)
        except ValueError as e:
            host = urlparse(url).netloc
            raise FetchError(f"Invalid JSON from {host}: {e}", url=url, status_code=status) from e
