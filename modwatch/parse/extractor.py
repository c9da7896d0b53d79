"""Config-driven extraction of mod records from listing pages."""
import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

from selectolax.lexbor import LexborHTMLParser, LexborNode, SelectolaxError

from modwatch.errors import ConfigError
from modwatch.parse.models import ExtractionConfig, ModRecord

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Unknown"

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:")

FIELD_SELECTORS = (
    "title_selector",
    "url_selector",
    "version_selector",
    "author_selector",
    "image_selector",
    "description_selector",
    "changes_selector",
)


def is_absolute(value: str) -> bool:
    """True if the value starts with a URI scheme."""
    return bool(_SCHEME_RE.match(value))


def resolve_link(value: str, base_url: str) -> str:
    """Use absolute values as-is, otherwise prefix the configured base URL."""
    if is_absolute(value):
        return value
    return f"{base_url}{value}"


def _check_selector(parser: LexborHTMLParser, field: str, selector: str) -> None:
    try:
        parser.css(selector)
    except (SelectolaxError, ValueError) as e:
        raise ConfigError(f"Invalid CSS selector for {field}: {selector!r} ({e})") from e


def _active_selectors(config: ExtractionConfig) -> dict[str, str]:
    selectors = {}
    for field in FIELD_SELECTORS:
        selector = getattr(config, field)
        if selector and selector.strip():
            selectors[field] = selector.strip()
    return selectors


def _first_in_item(item: LexborNode, selector: Optional[str]) -> Optional[LexborNode]:
    # Node-level css() only walks the item's own subtree
    if not selector:
        return None
    return item.css_first(selector)


def _text(item: LexborNode, selector: Optional[str]) -> Optional[str]:
    node = _first_in_item(item, selector)
    if node is None:
        return None
    text = node.text().strip()
    return text or None


def _attribute(item: LexborNode, selector: Optional[str], attribute: str) -> Optional[str]:
    node = _first_in_item(item, selector)
    if node is None:
        return None
    value = node.attributes.get(attribute)
    if value is None or not value.strip():
        return None
    return value.strip()


def extract(
    html: str,
    config: ExtractionConfig,
    site_id: Optional[int] = None,
    extracted_at: Optional[datetime] = None,
) -> list[ModRecord]:
    """
    Extract mod records from a listing page.

    Items come back in document order. Field selectors are evaluated inside each
    item element only. Items without a usable detail URL are dropped; every other
    field degrades to None (title to "Unknown") when its selector finds nothing.
    Raises ConfigError when the list selector is missing or any selector is malformed.
    """
    list_selector = (config.list_selector or "").strip()
    if not list_selector:
        raise ConfigError("Missing list_selector in parser config")

    parser = LexborHTMLParser(html or "")
    selectors = _active_selectors(config)
    _check_selector(parser, "list_selector", list_selector)
    for field, selector in selectors.items():
        _check_selector(parser, field, selector)

    stamp = extracted_at or datetime.now(timezone.utc)
    records = []
    for position, item in enumerate(parser.css(list_selector)):
        href = _attribute(item, selectors.get("url_selector"), "href")
        if href is None:
            logger.debug(f"Dropping item #{position}: no detail URL")
            continue

        src = _attribute(item, selectors.get("image_selector"), "src")
        records.append(
            ModRecord(
                site_id=site_id,
                title=_text(item, selectors.get("title_selector")) or DEFAULT_TITLE,
                url=resolve_link(href, config.base_url),
                version=_text(item, selectors.get("version_selector")),
                author=_text(item, selectors.get("author_selector")),
                description=_text(item, selectors.get("description_selector")),
                image_url=resolve_link(src, config.base_url) if src else None,
                changes=_text(item, selectors.get("changes_selector")),
                created_at=stamp,
                updated_at=stamp,
            )
        )

    logger.debug(f"Extracted {len(records)} records with {list_selector!r}")
    return records


def _attributes(node: LexborNode) -> dict[str, str]:
    return {key: value or "" for key, value in node.attributes.items()}


def preview_selector(html: str, selector: str) -> dict[str, Any]:
    """List every element a selector matches, for building site configs."""
    selector = (selector or "").strip()
    if not selector:
        raise ConfigError("Selector must not be empty")
    parser = LexborHTMLParser(html or "")
    _check_selector(parser, "selector", selector)

    results = [
        {
            "text": node.text().strip(),
            "html": node.html or "",
            "attributes": _attributes(node),
        }
        for node in parser.css(selector)
    ]
    return {
        "selector": selector,
        "matches": len(results),
        "results": results,
    }
