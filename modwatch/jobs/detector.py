"""Classify freshly extracted mods against stored state."""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from modwatch.errors import StoreError
from modwatch.parse.models import ChangeEvent, ModRecord
from modwatch.store.base import RecordStore

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    NEW = "new"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass
class DetectionReport:
    """Result of one detect() call. events keeps candidate order."""

    events: list[ChangeEvent] = field(default_factory=list)
    outcomes: list[tuple[str, Outcome]] = field(default_factory=list)
    failures: list[tuple[str, str]] = field(default_factory=list)

    def count(self, outcome: Outcome) -> int:
        return sum(1 for _, o in self.outcomes if o == outcome)

    @property
    def new(self) -> int:
        return self.count(Outcome.NEW)

    @property
    def updated(self) -> int:
        return self.count(Outcome.UPDATED)

    @property
    def unchanged(self) -> int:
        return self.count(Outcome.UNCHANGED)


class UpdateDetector:
    """
    New mods are stored silently. A known mod is updated, and reported, only when
    the candidate's updated_at is strictly later than the stored one. Change
    detection trusts these timestamps; field contents are not compared.
    """

    def __init__(self, records: RecordStore):
        self.records = records

    async def detect(self, candidates: list[ModRecord], site_id: Optional[int] = None) -> DetectionReport:
        report = DetectionReport()
        for candidate in candidates:
            if site_id is not None and candidate.site_id is None:
                candidate = candidate.model_copy(update={"site_id": site_id})
            try:
                outcome, event = await self._classify(candidate)
            except StoreError as e:
                logger.error(f"Skipping {candidate.url} (site {candidate.site_id}): {e}")
                report.failures.append((candidate.url, str(e)))
                report.outcomes.append((candidate.url, Outcome.FAILED))
                continue
            report.outcomes.append((candidate.url, outcome))
            if event is not None:
                report.events.append(event)

        logger.info(
            f"Detection for site {site_id}: {report.new} new, {report.updated} updated, "
            f"{report.unchanged} unchanged, {len(report.failures)} failed"
        )
        return report

    async def _classify(self, candidate: ModRecord) -> tuple[Outcome, Optional[ChangeEvent]]:
        existing = await self.records.get_by_url(candidate.url)
        if existing is None:
            await self.records.put(candidate)
            logger.debug(f"New mod {candidate.url}")
            return Outcome.NEW, None

        if not candidate.updated_at > existing.updated_at:
            return Outcome.UNCHANGED, None

        merged = existing.model_copy(
            update={
                "title": candidate.title,
                "version": candidate.version,
                "author": candidate.author,
                "description": candidate.description,
                "image_url": candidate.image_url,
                "changes": candidate.changes,
                "updated_at": candidate.updated_at,
            }
        )
        await self.records.update(existing.id, merged)
        logger.debug(f"Updated mod {candidate.url}: {existing.version} -> {candidate.version}")
        return Outcome.UPDATED, ChangeEvent(
            mod_id=existing.id,
            site_id=existing.site_id if existing.site_id is not None else candidate.site_id,
            old_version=existing.version,
            new_version=candidate.version,
            changes=candidate.changes,
            title=candidate.title,
            url=candidate.url,
        )
