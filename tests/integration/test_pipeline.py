"""Integration tests for the ingestion pipeline: adapters, orchestrator, store."""

import json

import httpx
import pytest

from grant_tracker.config.loader import Settings, SourceEntry
from grant_tracker.core.errors import StoreError
from grant_tracker.core.http_client import HttpClient
from grant_tracker.core.models import CrawlErrorKind
from grant_tracker.ingest.orchestrator import IngestionOrchestrator
from grant_tracker.sources.base import SourceAdapter
from grant_tracker.sources.listing import ListingSourceAdapter
from grant_tracker.sources.registry import SourceRegistry
from grant_tracker.store import MemoryGrantStore, SQLiteGrantStore, expire_grants


GOV_UK_RESULTS = [
    {
        "label": "community-ownership-fund",
        "grantName": "Community Ownership Fund",
        "grantMaximumAward": 250000,
        "grantApplicationCloseDate": "2026-05-14",
    },
    {
        "label": "expired-fund",
        "grantName": "Fund Closing Soon",
        "grantApplicationCloseDate": "2026-03-02",
    },
]

LOCAL_HTML = """
<html><body>
  <div class="grant"><h3><a href="/grants/neighbourhood-fund/">Neighbourhood Fund</a></h3>
    <p>Grants of £500 to £2,000 for residents' groups.</p></div>
  <div class="grant"><h3><a href="/grants/youth-fund/">Youth Fund</a></h3>
    <p>Up to £5,000 for youth clubs.</p></div>
</body></html>
"""

ENTRIES = [
    SourceEntry(source_id="gov_uk", adapter="gov_uk", batch=1),
    SourceEntry(source_id="ukri", adapter="ukri", batch=1),
    SourceEntry(
        source_id="example_cf",
        adapter="listing",
        batch=1,
        options={
            "listing_url": "https://www.example-cf.org.uk/grants/",
            "item_selector": ".grant",
            "title_selector": "h3",
            "funder": "Example Community Foundation",
            "funder_type": "trust_foundation",
            "is_local": True,
            "region": "Greater Manchester",
        },
    ),
    SourceEntry(source_id="heritage_fund", adapter="heritage_fund", batch=2),
]


def next_data_page(results, total):
    payload = {"props": {"pageProps": {"searchResult": results, "totalGrants": total}}}
    return f'<script id="__NEXT_DATA__" type="application/json">{json.dumps(payload)}</script>'


def site_handler(request):
    """One fake internet: Find a Grant and a community foundation work, UKRI is down."""
    host = request.url.host
    if host == "www.find-government-grants.service.gov.uk":
        return httpx.Response(200, text=next_data_page(GOV_UK_RESULTS, 2))
    if host == "www.example-cf.org.uk":
        return httpx.Response(200, text=LOCAL_HTML)
    if host == "gtr.ukri.org":
        return httpx.Response(503)
    return httpx.Response(404)


def http_factory():
    return HttpClient(requests_per_second=1000, max_retries=1, transport=httpx.MockTransport(site_handler))


@pytest.fixture
def settings():
    return Settings(cron_secret="test-secret", max_pages=2)


@pytest.fixture
def store():
    return MemoryGrantStore()


@pytest.fixture
def orchestrator(settings, store):
    return IngestionOrchestrator(settings, store, ENTRIES, http_client_factory=http_factory)


class TestOrchestrator:
    """Tests for IngestionOrchestrator against canned sites."""

    @pytest.mark.asyncio
    async def test_failed_source_isolated(self, orchestrator, store, today):
        summary = await orchestrator.run(batch=1, today=today)

        outcomes = {o.source: o for o in summary.outcomes}
        assert set(outcomes) == {"gov_uk", "ukri", "example_cf"}
        assert outcomes["ukri"].error_kind == CrawlErrorKind.TRANSPORT
        assert outcomes["gov_uk"].upserted_count == 2
        assert outcomes["example_cf"].upserted_count == 2
        assert summary.total_upserted == 4
        assert summary.failed_sources == ["ukri"]

        assert len(store.read_active_grants()) == 4

    @pytest.mark.asyncio
    async def test_summary_dict(self, orchestrator, today):
        data = (await orchestrator.run(batch=1, today=today)).to_dict()

        assert data["success"] is True
        assert data["batch"] == 1
        assert data["totalUpserted"] == 4
        assert data["failedSources"] == ["ukri"]
        assert {r["source"] for r in data["results"]} == {"gov_uk", "ukri", "example_cf"}

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, orchestrator, store, today):
        await orchestrator.run(batch=1, today=today)
        first = {r.external_id: r.first_seen_at for r in store.read_active_grants()}

        await orchestrator.run(batch=1, today=today)
        second = {r.external_id: r.first_seen_at for r in store.read_active_grants()}

        assert first == second

    @pytest.mark.asyncio
    async def test_crawl_logs_recorded(self, orchestrator, store, today):
        await orchestrator.run(batch=1, today=today)

        logs = store.recent_crawl_logs()
        assert {entry.source for entry in logs} == {"gov_uk", "ukri", "example_cf"}
        assert all(entry.batch == 1 for entry in logs)
        assert [entry.error_kind for entry in logs if entry.source == "ukri"] == ["transport"]

    @pytest.mark.asyncio
    async def test_source_ids_filter(self, orchestrator, today):
        summary = await orchestrator.run(source_ids=["example_cf"], today=today)
        assert [o.source for o in summary.outcomes] == ["example_cf"]

    @pytest.mark.asyncio
    async def test_unknown_batch_runs_nothing(self, orchestrator, store, today):
        summary = await orchestrator.run(batch=9, today=today)

        assert summary.outcomes == []
        assert summary.total_upserted == 0
        assert store.recent_crawl_logs() == []

    @pytest.mark.asyncio
    async def test_local_grants_carry_region(self, orchestrator, store, today):
        await orchestrator.run(source_ids=["example_cf"], today=today)

        record = store.get_grant("example_cf_neighbourhood-fund")
        assert record.is_local is True
        assert (record.amount_min, record.amount_max) == (500, 2_000)
        assert record.eligibility_criteria == ["Area of benefit: Greater Manchester"]


class FailingSourceStore(MemoryGrantStore):
    """Memory store that rejects one source's batch."""

    def __init__(self, failing_source):
        super().__init__()
        self.failing_source = failing_source

    def upsert(self, grants, now=None):
        if any(g.source == self.failing_source for g in grants):
            raise StoreError("disk full")
        return super().upsert(grants, now=now)


class CrashingAdapter(SourceAdapter):
    source_id = "crashing"

    async def fetch(self, http, today):
        raise RuntimeError("bug in adapter")


class TestFailureIsolation:
    """Tests for failures outside the fetch taxonomy."""

    @pytest.mark.asyncio
    async def test_store_failure_is_per_source(self, settings, today):
        store = FailingSourceStore("gov_uk")
        orchestrator = IngestionOrchestrator(settings, store, ENTRIES, http_client_factory=http_factory)

        summary = await orchestrator.run(batch=1, today=today)

        outcomes = {o.source: o for o in summary.outcomes}
        assert outcomes["gov_uk"].error_kind == CrawlErrorKind.STORE
        assert outcomes["gov_uk"].fetched_count == 2
        assert outcomes["gov_uk"].upserted_count == 0
        assert outcomes["example_cf"].upserted_count == 2
        assert {r.source for r in store.read_active_grants()} == {"example_cf"}

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_outcome(self, settings, store, today):
        registry = SourceRegistry()
        registry.register("crashing", CrashingAdapter)
        registry.register("listing", ListingSourceAdapter)
        entries = [
            SourceEntry(source_id="crashing", adapter="crashing"),
            ENTRIES[2],
        ]
        orchestrator = IngestionOrchestrator(
            settings, store, entries, registry=registry, http_client_factory=http_factory
        )

        summary = await orchestrator.run(today=today)

        outcomes = {o.source: o for o in summary.outcomes}
        assert outcomes["crashing"].error_kind == CrawlErrorKind.UNEXPECTED
        assert "bug in adapter" in outcomes["crashing"].error
        assert outcomes["example_cf"].ok

    @pytest.mark.asyncio
    async def test_misconfigured_entries_reported(self, settings, store, today):
        entries = [
            SourceEntry(source_id="typo_source", adapter="no_such_adapter", batch=1),
            SourceEntry(source_id="half_listing", adapter="listing", batch=1, options={"item_selector": ".grant"}),
            ENTRIES[2],
        ]
        orchestrator = IngestionOrchestrator(settings, store, entries, http_client_factory=http_factory)

        summary = await orchestrator.run(batch=1, today=today)

        assert [o.source for o in summary.outcomes] == ["typo_source", "half_listing", "example_cf"]
        outcomes = {o.source: o for o in summary.outcomes}
        assert outcomes["typo_source"].error_kind == CrawlErrorKind.CONFIG
        assert "no_such_adapter" in outcomes["typo_source"].error
        assert outcomes["half_listing"].error_kind == CrawlErrorKind.CONFIG
        assert outcomes["example_cf"].upserted_count == 2
        assert summary.failed_sources == ["typo_source", "half_listing"]
        assert summary.to_dict()["results"][0]["errorKind"] == "config"

        logged = {entry.source: entry.error_kind for entry in store.recent_crawl_logs()}
        assert logged["typo_source"] == "config"

    @pytest.mark.asyncio
    async def test_only_misconfigured_entries(self, settings, store, today):
        entries = [SourceEntry(source_id="typo_source", adapter="no_such_adapter", batch=1)]
        orchestrator = IngestionOrchestrator(settings, store, entries, http_client_factory=http_factory)

        summary = await orchestrator.run(batch=1, today=today)

        assert summary.failed_sources == ["typo_source"]
        assert len(store.recent_crawl_logs()) == 1


EMPTY_LISTING_ENTRY = SourceEntry(
    source_id="quiet_cf",
    adapter="listing",
    batch=1,
    options={
        "listing_url": "https://www.quiet-cf.org.uk/grants/",
        "item_selector": ".grant",
        "funder": "Quiet Community Foundation",
    },
)


def quiet_handler(request):
    if request.url.host == "www.quiet-cf.org.uk":
        return httpx.Response(200, text="<html><body><p>No programmes open right now.</p></body></html>")
    return site_handler(request)


def quiet_http_factory():
    return HttpClient(requests_per_second=1000, max_retries=1, transport=httpx.MockTransport(quiet_handler))


class TestEmptySources:
    """An empty fetch is a warning, kept apart from failures."""

    @pytest.mark.asyncio
    async def test_empty_not_counted_as_failed(self, settings, store, today):
        entries = [ENTRIES[0], ENTRIES[1], EMPTY_LISTING_ENTRY]
        orchestrator = IngestionOrchestrator(settings, store, entries, http_client_factory=quiet_http_factory)

        summary = await orchestrator.run(batch=1, today=today)

        outcomes = {o.source: o for o in summary.outcomes}
        assert outcomes["quiet_cf"].error_kind == CrawlErrorKind.EMPTY
        assert summary.failed_sources == ["ukri"]
        assert summary.empty_sources == ["quiet_cf"]

        data = summary.to_dict()
        assert data["failedSources"] == ["ukri"]
        assert data["emptySources"] == ["quiet_cf"]

    @pytest.mark.asyncio
    async def test_all_empty_has_no_failures(self, settings, store, today):
        orchestrator = IngestionOrchestrator(
            settings, store, [EMPTY_LISTING_ENTRY], http_client_factory=quiet_http_factory
        )

        summary = await orchestrator.run(batch=1, today=today)

        assert summary.failed_sources == []
        assert summary.empty_sources == ["quiet_cf"]


class TestEndToEnd:
    """Crawl into SQLite, then expire."""

    @pytest.mark.asyncio
    async def test_crawl_then_expire(self, settings, tmp_path, today):
        store = SQLiteGrantStore(str(tmp_path / "grants.db"))
        orchestrator = IngestionOrchestrator(settings, store, ENTRIES, http_client_factory=http_factory)

        await orchestrator.run(batch=1, today=today)
        expired = expire_grants(store, today.replace(day=3))

        assert [g.external_id for g in expired] == ["gov_uk_expired-fund"]
        assert store.get_grant("gov_uk_community-ownership-fund").is_active is True
        store.close()
