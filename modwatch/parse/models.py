"""Data models for sites, extracted mods, change events and page snapshots."""
from datetime import datetime, timezone
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExtractionConfig(BaseModel):
    """Selectors describing how to pull mod records out of a site's listing page."""

    model_config = ConfigDict(extra="ignore")

    list_selector: Optional[str] = Field(default=None, description="Selector for repeated item elements")
    title_selector: Optional[str] = None
    url_selector: Optional[str] = Field(default=None, description="Anchor carrying the detail URL (href)")
    version_selector: Optional[str] = None
    author_selector: Optional[str] = None
    image_selector: Optional[str] = Field(default=None, description="Image carrying the cover URL (src)")
    description_selector: Optional[str] = None
    changes_selector: Optional[str] = None
    base_url: str = Field(default="", description="Prefix for relative href/src values")
    list_url: Optional[str] = Field(default=None, description="Listing page, defaults to the site URL")


class Site(BaseModel):
    """A watched site and its extraction config."""

    id: int
    name: str
    url: str
    parser_config: ExtractionConfig = Field(default_factory=ExtractionConfig)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def listing_url(self) -> str:
        return self.parser_config.list_url or self.url


class ModRecord(BaseModel):
    """One extracted mod, keyed by its canonical detail URL."""

    id: Optional[int] = None
    site_id: Optional[int] = None
    title: str
    url: str
    version: Optional[str] = None
    author: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    changes: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ChangeEvent(BaseModel):
    """A previously known mod was updated."""

    mod_id: int
    site_id: Optional[int] = None
    old_version: Optional[str] = None
    new_version: Optional[str] = None
    changes: Optional[str] = None
    title: str = ""
    url: str = ""


class PageSnapshot(BaseModel):
    """One stored capture of a page. Versions are RFC3339 UTC strings."""

    id: Optional[int] = None
    site_id: Optional[int] = None
    url: str
    location: str
    version: str
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def version_time(self) -> datetime:
        return parse_version(self.version)


class Notification(BaseModel):
    """Persisted notification about a mod update."""

    id: Optional[int] = None
    mod_id: int
    site_id: Optional[int] = None
    title: str
    message: str
    read: bool = False
    created_at: datetime = Field(default_factory=utcnow)


def make_version(moment: Optional[datetime] = None) -> str:
    """Build a snapshot version string; lexical order matches time order."""
    moment = (moment or utcnow()).astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_version(version: str) -> datetime:
    """Parse a version string back into an aware datetime."""
    if version.endswith("Z"):
        version = version[:-1] + "+00:00"
    parsed = datetime.fromisoformat(version)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def dump_record(record: BaseModel) -> dict[str, Any]:
    """JSON-friendly dict for CLI output."""
    return record.model_dump(mode="json")
