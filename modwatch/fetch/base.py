"""Fetch capability consumed by the page cache."""
from abc import ABC, abstractmethod
from typing import Optional


class Fetcher(ABC):
    """Bounded HTTP GET returning decoded HTML."""

    @abstractmethod
    async def fetch(
        self,
        url: str,
        timeout: Optional[float] = None,
        max_bytes: Optional[int] = None,
    ) -> str:
        """Fetch a page or raise FetchError. Nothing is returned partially."""
        pass
