"""Counters for update-check runs."""
import time
import logging
from collections import defaultdict
from typing import Dict

logger = logging.getLogger(__name__)


class Metrics:
    """Track per-run counters and elapsed time."""

    def __init__(self, total_sites: int):
        self.total_sites = total_sites
        self.start_time = time.time()
        self.counters: Dict[str, int] = defaultdict(int)

    def increment(self, key: str, amount: int = 1) -> None:
        """Increment a counter."""
        self.counters[key] += amount

    def elapsed(self) -> float:
        return time.time() - self.start_time

    def report(self) -> None:
        """Log the run summary."""
        logger.info(
            f"Checked {self.counters['sites_ok'] + self.counters['sites_failed']}/{self.total_sites} sites "
            f"in {self.elapsed():.1f}s | "
            f"OK: {self.counters['sites_ok']} | "
            f"Failed: {self.counters['sites_failed']} | "
            f"New: {self.counters['new']} | "
            f"Updated: {self.counters['updated']} | "
            f"Unchanged: {self.counters['unchanged']} | "
            f"Store errors: {self.counters['store_failures']} | "
            f"Notify errors: {self.counters['notify_failures']} | "
            f"Cache hits: {self.counters['cache_hits']}"
        )

    def get_summary(self) -> Dict:
        """Get summary statistics."""
        return {
            "total_sites": self.total_sites,
            "sites_ok": self.counters["sites_ok"],
            "sites_failed": self.counters["sites_failed"],
            "new": self.counters["new"],
            "updated": self.counters["updated"],
            "unchanged": self.counters["unchanged"],
            "store_failures": self.counters["store_failures"],
            "notify_failures": self.counters["notify_failures"],
            "cache_hits": self.counters["cache_hits"],
            "elapsed_seconds": round(self.elapsed(), 3),
        }
