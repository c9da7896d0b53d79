from abc import ABC, abstractmethod
from typing import Optional

from modwatch.parse.models import ModRecord, PageSnapshot


class RecordStore(ABC):
    """
    Persisted mod records keyed by canonical URL.
    Implementations raise StoreError on persistence failures.
    """

    @abstractmethod
    async def get_by_url(self, url: str) -> Optional[ModRecord]:
        """Return the stored record for this URL, or None."""
        pass

    @abstractmethod
    async def put(self, record: ModRecord) -> ModRecord:
        """Insert a new record and return it with its assigned id."""
        pass

    @abstractmethod
    async def update(self, record_id: int, record: ModRecord) -> None:
        """Overwrite the mutable fields of an existing record."""
        pass


class SnapshotStore(ABC):
    """
    Append-only index of page snapshots: (site_id, url) -> versions, each pointing
    at a stored HTML payload. URLs are expected to be normalized by the caller.
    """

    @abstractmethod
    async def find_exact(self, site_id: Optional[int], url: str) -> Optional[PageSnapshot]:
        """Latest version for (site_id, url); any site when site_id is None."""
        pass

    @abstractmethod
    async def scan_all(self, site_id: Optional[int] = None) -> list[PageSnapshot]:
        """All snapshots of a site (or of every site), newest version first."""
        pass

    @abstractmethod
    async def versions(self, site_id: Optional[int], url: str) -> list[PageSnapshot]:
        """All versions of one page, newest first."""
        pass

    @abstractmethod
    async def write(self, site_id: Optional[int], url: str, version: str, html: str) -> PageSnapshot:
        """Persist a new version. All-or-nothing."""
        pass

    @abstractmethod
    async def read(self, snapshot: PageSnapshot) -> Optional[str]:
        """HTML of a snapshot, or None when its payload is gone."""
        pass

    @abstractmethod
    async def delete(self, version_id: int) -> bool:
        """Delete one version. Other versions of the same page are untouched."""
        pass
