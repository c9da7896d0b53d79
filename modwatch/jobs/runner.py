"""Update checks: resolve each site's listing page, extract, detect, notify."""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from modwatch.cache.resolver import PageCacheResolver, Tier
from modwatch.config import config
from modwatch.jobs.detector import UpdateDetector
from modwatch.jobs.metrics import Metrics
from modwatch.notify.service import Notifier
from modwatch.parse.extractor import extract
from modwatch.parse.models import ChangeEvent, Site, parse_version
from modwatch.store.sites import SiteStore

logger = logging.getLogger(__name__)


@dataclass
class SiteCheckResult:
    site_id: int
    site_name: str
    url: str
    tier: Tier
    extracted: int = 0
    new: int = 0
    updated: int = 0
    unchanged: int = 0
    events: list[ChangeEvent] = field(default_factory=list)
    failures: list[tuple[str, str]] = field(default_factory=list)
    notify_failures: int = 0


@dataclass
class CheckReport:
    """Partial results: sites that failed are listed apart from those that succeeded."""

    run_id: str
    results: list[SiteCheckResult] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)
    summary: dict = field(default_factory=dict)

    @property
    def events(self) -> list[ChangeEvent]:
        return [event for result in self.results for event in result.events]


class UpdateChecker:
    """Runs update checks for one or all sites; each site is independent."""

    def __init__(
        self,
        sites: SiteStore,
        resolver: PageCacheResolver,
        detector: UpdateDetector,
        notifier: Optional[Notifier] = None,
        concurrency: int = config.CONCURRENCY,
    ):
        self.sites = sites
        self.resolver = resolver
        self.detector = detector
        self.notifier = notifier
        self.concurrency = concurrency

    async def check_site(self, site: Site, force_refresh: bool = False) -> SiteCheckResult:
        """Check one site. Fetch and config errors propagate to the caller."""
        page = await self.resolver.resolve_page(site.listing_url, site_id=site.id, force_refresh=force_refresh)
        # Stamping with the snapshot version keeps replays of the same page unchanged
        candidates = extract(
            page.html,
            site.parser_config,
            site_id=site.id,
            extracted_at=parse_version(page.version),
        )
        report = await self.detector.detect(candidates, site_id=site.id)

        notify_failures = 0
        for event in report.events:
            if not await self._notify(event):
                notify_failures += 1

        return SiteCheckResult(
            site_id=site.id,
            site_name=site.name,
            url=page.url,
            tier=page.tier,
            extracted=len(candidates),
            new=report.new,
            updated=report.updated,
            unchanged=report.unchanged,
            events=report.events,
            failures=report.failures,
            notify_failures=notify_failures,
        )

    async def check_updates(self, site_id: Optional[int] = None, force_refresh: bool = False) -> CheckReport:
        """Check one site (site_id) or every site concurrently."""
        report = CheckReport(run_id=str(uuid.uuid4()))
        if site_id is not None:
            site = await self.sites.get_site(site_id)
            if site is None:
                report.failed[site_id] = "no such site"
                return report
            sites = [site]
        else:
            sites = await self.sites.list_sites()

        logger.info(f"Run {report.run_id}: checking {len(sites)} site(s), force_refresh={force_refresh}")
        metrics = Metrics(len(sites))
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run_one(site: Site) -> SiteCheckResult:
            async with semaphore:
                return await self.check_site(site, force_refresh=force_refresh)

        outcomes = await asyncio.gather(*(run_one(site) for site in sites), return_exceptions=True)

        for site, outcome in zip(sites, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.error(f"Site {site.id} ({site.name}) failed: {outcome}")
                report.failed[site.id] = f"{type(outcome).__name__}: {outcome}"
                metrics.increment("sites_failed")
                continue
            report.results.append(outcome)
            metrics.increment("sites_ok")
            metrics.increment("new", outcome.new)
            metrics.increment("updated", outcome.updated)
            metrics.increment("unchanged", outcome.unchanged)
            metrics.increment("store_failures", len(outcome.failures))
            metrics.increment("notify_failures", outcome.notify_failures)
            if outcome.tier != Tier.FETCH:
                metrics.increment("cache_hits")

        metrics.report()
        report.summary = metrics.get_summary()
        return report

    async def run_forever(
        self,
        interval_seconds: float = config.CHECK_INTERVAL,
        max_cycles: Optional[int] = None,
        force_refresh: bool = True,
    ) -> None:
        """
        Check all sites now and then every interval. A failed cycle does not stop the loop.

        Scheduled checks refetch each listing by default; served from the cache, a
        listing keeps its snapshot version and can never yield an update.
        """
        cycle = 0
        while max_cycles is None or cycle < max_cycles:
            cycle += 1
            try:
                await self.check_updates(force_refresh=force_refresh)
            except Exception as e:
                logger.error(f"Update cycle {cycle} failed: {e}", exc_info=True)
            if max_cycles is not None and cycle >= max_cycles:
                break
            await asyncio.sleep(interval_seconds)

    async def _notify(self, event: ChangeEvent) -> bool:
        """Best-effort delivery; returns False when the notifier failed."""
        if self.notifier is None:
            return True
        try:
            await self.notifier.notify(event)
        except Exception as e:
            logger.warning(f"Notification for mod {event.mod_id} failed: {e}")
            return False
        return True
