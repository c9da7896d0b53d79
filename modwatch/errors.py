"""Error types shared across the pipeline.

Missing data (no stored record, no cached snapshot) is never an error: lookups
return ``None`` and callers fall back.
"""
from typing import Optional


class ModwatchError(Exception):
    """Base class for all modwatch errors."""


class ConfigError(ModwatchError):
    """Broken extraction configuration: missing list selector or malformed selector."""


class FetchError(ModwatchError):
    """A bounded page fetch failed (timeout, oversize, transport, status, decoding)."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Failed to fetch {url}: {reason}")


class StoreError(ModwatchError):
    """Persistence failure in one of the stores."""
