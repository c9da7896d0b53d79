"""HTTP client with retries, size limits and error handling."""
import asyncio
import logging
from typing import Optional
import httpx
from tenacity import (
    AsyncRetrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from modwatch.config import config
from modwatch.errors import FetchError
from modwatch.fetch.base import Fetcher
from modwatch.fetch.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (httpx.TimeoutException, httpx.NetworkError)


class FetchClient(Fetcher):
    """Bounded page fetcher with rate limiting and retries on transient errors."""

    def __init__(
        self,
        timeout: float = config.TIMEOUT,
        max_bytes: int = config.MAX_PAGE_BYTES,
        max_retries: int = config.MAX_RETRIES,
        rate_per_domain: float = config.RATE_PER_DOMAIN,
        user_agent: str = config.USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.max_retries = max_retries
        limits = httpx.Limits(
            max_connections=20,
            max_keepalive_connections=10,
        )
        self.client = httpx.AsyncClient(
            http2=True,
            timeout=timeout,
            follow_redirects=True,
            limits=limits,
            headers={"User-Agent": user_agent},
            transport=transport,
        )
        self.rate_limiter = RateLimiter(rate_per_domain)
        self.retry_count = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def fetch(
        self,
        url: str,
        timeout: Optional[float] = None,
        max_bytes: Optional[int] = None,
    ) -> str:
        """Fetch a page as UTF-8 text. Raises FetchError on any failure."""
        timeout = timeout or self.timeout
        max_bytes = max_bytes or self.max_bytes
        await self.rate_limiter.acquire(url)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                wait=wait_exponential(multiplier=1, min=1, max=10),
                retry=retry_if_exception_type(RETRYABLE_ERRORS),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        self.retry_count += 1
                        logger.warning(f"Retrying {url} (attempt {attempt.retry_state.attempt_number})")
                    body = await asyncio.wait_for(self._get(url, timeout, max_bytes), timeout=timeout)
        except FetchError:
            raise
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise FetchError(url, f"timed out after {timeout}s") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchError(url, f"transport error: {e}") from e

        try:
            return body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FetchError(url, f"body is not valid UTF-8 ({e.reason} at byte {e.start})") from e

    async def _get(self, url: str, timeout: float, max_bytes: int) -> bytes:
        """Stream the body, aborting as soon as it exceeds max_bytes."""
        async with self.client.stream("GET", url, timeout=timeout) as response:
            if not response.is_success:
                raise FetchError(url, f"HTTP {response.status_code}", status_code=response.status_code)

            declared = response.headers.get("content-length", "")
            if declared.isdigit() and int(declared) > max_bytes:
                raise FetchError(url, f"response too large ({declared} bytes > {max_bytes})")

            body = bytearray()
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                if len(body) > max_bytes:
                    raise FetchError(url, f"response too large (> {max_bytes} bytes)")

        logger.debug(f"Fetched {url}: {len(body)} bytes")
        return bytes(body)
