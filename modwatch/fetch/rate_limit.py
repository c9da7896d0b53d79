"""Per-host request pacing."""
import asyncio
import logging
import time
from collections import defaultdict
from typing import Dict

from modwatch.cache.urls import hostname_of

logger = logging.getLogger(__name__)


class RateLimiter:
    """Spaces requests to the same host at least 1/rate seconds apart."""

    def __init__(self, rate_per_second: float):
        self.rate_per_second = rate_per_second
        self.min_interval = 1.0 / rate_per_second if rate_per_second > 0 else 0
        self._next_slot: Dict[str, float] = defaultdict(float)
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def acquire(self, url: str) -> None:
        """Wait for this host's next free slot."""
        if not self.min_interval:
            return
        host = hostname_of(url)
        async with self._locks[host]:
            wait_time = self._next_slot[host] - time.monotonic()
            if wait_time > 0:
                logger.debug(f"Rate limit: waiting {wait_time:.2f}s for {host}")
                await asyncio.sleep(wait_time)
            self._next_slot[host] = time.monotonic() + self.min_interval
