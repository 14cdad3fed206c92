"""Tests for the adapter registry and batch selection."""

import pytest

from grant_tracker.config.loader import Settings, SourceEntry
from grant_tracker.core.errors import ConfigError
from grant_tracker.sources import REGISTRY, batches
from grant_tracker.sources.base import SourceAdapter
from grant_tracker.sources.gov_uk import GovUkAdapter
from grant_tracker.sources.listing import ListingSourceAdapter
from grant_tracker.sources.registry import SourceRegistry


LISTING_OPTIONS = {
    "listing_url": "https://example.org/grants",
    "item_selector": ".card",
    "funder": "Example Trust",
}


class DummyAdapter(SourceAdapter):
    source_id = "dummy"

    async def fetch(self, http, today):
        return []


@pytest.fixture
def entries():
    return [
        SourceEntry(source_id="gov_uk", adapter="gov_uk", batch=1),
        SourceEntry(source_id="ukri", adapter="ukri", batch=1),
        SourceEntry(source_id="example_trust", adapter="listing", batch=2, options=LISTING_OPTIONS),
        SourceEntry(source_id="paused", adapter="gov_uk", batch=3, enabled=False),
    ]


class TestSourceRegistry:
    """Tests for SourceRegistry."""

    def test_builtin_adapters_registered(self):
        assert {"gov_uk", "360giving", "ukri", "community_fund", "heritage_fund", "listing"} <= set(
            REGISTRY.list_adapters()
        )

    def test_register_and_get(self):
        registry = SourceRegistry()
        registry.register("dummy", DummyAdapter)
        assert registry.get("dummy") is DummyAdapter

    def test_register_rejects_non_adapter(self):
        with pytest.raises(TypeError):
            SourceRegistry().register("bad", dict)

    def test_register_rejects_name_clash(self):
        registry = SourceRegistry()
        registry.register("dummy", DummyAdapter)
        with pytest.raises(ValueError):
            registry.register("dummy", GovUkAdapter)

    def test_unknown_adapter(self):
        with pytest.raises(ConfigError):
            SourceRegistry().get("missing")

    def test_build_passes_options(self):
        entry = SourceEntry(source_id="example_trust", adapter="listing", options=LISTING_OPTIONS)
        adapter = REGISTRY.build(entry, Settings(max_pages=4))

        assert isinstance(adapter, ListingSourceAdapter)
        assert adapter.source_id == "example_trust"
        assert adapter.max_pages == 4
        assert adapter.spec.funder == "Example Trust"


class TestSelectedEntries:
    """Tests for batch selection."""

    def test_select_batch(self, entries):
        selected = REGISTRY.selected_entries(entries, batch=1)
        assert [e.source_id for e in selected] == ["gov_uk", "ukri"]

    def test_select_all_skips_disabled(self, entries):
        selected = REGISTRY.selected_entries(entries)
        assert [e.source_id for e in selected] == ["gov_uk", "ukri", "example_trust"]

    def test_select_source_ids(self, entries):
        selected = REGISTRY.selected_entries(entries, source_ids=["ukri", "nowhere"])
        assert [e.source_id for e in selected] == ["ukri"]

    def test_unbuildable_entry_still_selected(self, entries):
        entries.append(SourceEntry(source_id="typo", adapter="gov_ukk", batch=1))

        selected = REGISTRY.selected_entries(entries, batch=1)

        assert [e.source_id for e in selected] == ["gov_uk", "ukri", "typo"]
        with pytest.raises(ConfigError):
            REGISTRY.build(selected[-1], Settings())

    def test_batches(self, entries):
        assert batches(entries) == [1, 2]
