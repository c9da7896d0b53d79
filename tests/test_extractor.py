"""Tests for selector-based extraction."""
from datetime import datetime, timezone

import pytest

from modwatch.errors import ConfigError
from modwatch.parse.extractor import extract, preview_selector, resolve_link
from modwatch.parse.models import ExtractionConfig

STAMP = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

LISTING = """
<html><body>
  <div class="card"><span class="t">Alpha</span><a href="/m/1">go</a><em class="v">1.0</em></div>
  <div class="card"><span class="t">Beta</span><a href="/m/2">go</a></div>
</body></html>
"""


def card_config(**overrides) -> ExtractionConfig:
    values = {
        "list_selector": ".card",
        "title_selector": ".t",
        "url_selector": "a",
        "version_selector": ".v",
        "base_url": "https://site.example",
    }
    values.update(overrides)
    return ExtractionConfig(**values)


def test_extract_cards_in_document_order():
    """Test two cards come back in order with base-prefixed URLs."""
    records = extract(LISTING, card_config(), site_id=7, extracted_at=STAMP)
    assert [r.title for r in records] == ["Alpha", "Beta"]
    assert [r.url for r in records] == ["https://site.example/m/1", "https://site.example/m/2"]
    assert records[0].version == "1.0"
    assert records[1].version is None
    assert all(r.site_id == 7 for r in records)
    assert all(r.updated_at == STAMP and r.created_at == STAMP for r in records)


def test_extract_is_idempotent_with_fixed_stamp():
    """Test same input and stamp give identical records."""
    first = extract(LISTING, card_config(), extracted_at=STAMP)
    second = extract(LISTING, card_config(), extracted_at=STAMP)
    assert first == second


def test_field_selectors_are_scoped_to_item():
    """Test a field missing in an item does not pick up a match elsewhere in the page."""
    html = """
    <div class="author">Page owner</div>
    <div class="card"><a href="/m/1">x</a><span class="t">One</span></div>
    """
    records = extract(html, card_config(author_selector=".author"), extracted_at=STAMP)
    assert len(records) == 1
    assert records[0].author is None


def test_item_without_url_is_dropped():
    """Test items lacking an href are skipped."""
    html = """
    <div class="card"><span class="t">No link</span></div>
    <div class="card"><span class="t">Empty link</span><a href="">x</a></div>
    <div class="card"><span class="t">Linked</span><a href="/m/3">x</a></div>
    """
    records = extract(html, card_config(), extracted_at=STAMP)
    assert [r.title for r in records] == ["Linked"]


def test_missing_title_defaults_to_unknown():
    """Test title falls back to Unknown."""
    html = '<div class="card"><a href="/m/1">x</a></div>'
    records = extract(html, card_config(), extracted_at=STAMP)
    assert records[0].title == "Unknown"


def test_absolute_links_are_kept():
    """Test absolute href and src are used as-is."""
    html = """
    <div class="card">
      <a href="https://cdn.example/m/9">x</a>
      <img src="https://img.example/9.png">
    </div>
    <div class="card"><a href="/m/10">x</a><img src="/i/10.png"></div>
    """
    records = extract(html, card_config(image_selector="img"), extracted_at=STAMP)
    assert records[0].url == "https://cdn.example/m/9"
    assert records[0].image_url == "https://img.example/9.png"
    assert records[1].image_url == "https://site.example/i/10.png"


def test_resolve_link():
    """Test relative values get the base prefix."""
    assert resolve_link("/a", "https://x.example") == "https://x.example/a"
    assert resolve_link("mailto:me@x.example", "https://x.example") == "mailto:me@x.example"


def test_missing_list_selector_raises():
    """Test a config without list selector is rejected."""
    with pytest.raises(ConfigError):
        extract(LISTING, ExtractionConfig(url_selector="a"))


@pytest.mark.parametrize("selector", ["div[[[", "div[", "div >", "a[href=", ":nth-child("])
def test_malformed_field_selector_raises(selector):
    """Test a malformed field selector is rejected before extraction."""
    with pytest.raises(ConfigError):
        extract(LISTING, card_config(title_selector=selector))


@pytest.mark.parametrize("selector", ["div >", ".card["])
def test_malformed_list_selector_raises(selector):
    """Test a malformed list selector is rejected."""
    with pytest.raises(ConfigError):
        extract(LISTING, card_config(list_selector=selector))


def test_preview_malformed_selector_raises():
    """Test preview rejects a malformed selector."""
    with pytest.raises(ConfigError):
        preview_selector(LISTING, "a[href=")


def test_no_items_gives_empty_list():
    """Test a list selector matching nothing yields no records."""
    assert extract(LISTING, card_config(list_selector=".nothing")) == []


def test_preview_selector():
    """Test preview reports text, html and attributes of each match."""
    preview = preview_selector(LISTING, "a")
    assert preview["selector"] == "a"
    assert preview["matches"] == 2
    assert preview["results"][0]["text"] == "go"
    assert preview["results"][0]["attributes"] == {"href": "/m/1"}
    assert "<a" in preview["results"][0]["html"]


def test_preview_empty_selector_raises():
    """Test empty selector is rejected."""
    with pytest.raises(ConfigError):
        preview_selector(LISTING, "  ")
