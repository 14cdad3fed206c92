"""
Ingestion orchestrator.

Coordinates:
- Batch selection from the source table
- Concurrent adapter runs sharing one HTTP client
- Per-source upsert, isolated from other sources' failures
- Crawl log persistence and the run summary
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Iterable, Optional

import structlog

from grant_tracker.config.loader import Settings, SourceEntry
from grant_tracker.core.errors import ConfigError, CrawlError, StoreError
from grant_tracker.core.http_client import HttpClient
from grant_tracker.core.models import CrawlErrorKind, CrawlOutcome
from grant_tracker.sources.base import SourceAdapter
from grant_tracker.sources.registry import REGISTRY, SourceRegistry
from grant_tracker.store.base import GrantStore

logger = structlog.get_logger(__name__)


@dataclass
class CrawlSummary:
    """Result of one orchestrator run; always produced, even if every source fails."""

    batch: Optional[int]
    outcomes: list[CrawlOutcome] = field(default_factory=list)
    started_at: Optional[datetime] = None
    duration_seconds: float = 0.0

    @property
    def total_upserted(self) -> int:
        return sum(o.upserted_count for o in self.outcomes)

    @property
    def failed_sources(self) -> list[str]:
        """Sources that errored; an empty fetch is a warning, not a failure."""
        return [
            o.source for o in self.outcomes
            if not o.ok and o.error_kind != CrawlErrorKind.EMPTY
        ]

    @property
    def empty_sources(self) -> list[str]:
        return [o.source for o in self.outcomes if o.error_kind == CrawlErrorKind.EMPTY]

    def to_dict(self) -> dict:
        return {
            "success": True,
            "batch": self.batch,
            "totalUpserted": self.total_upserted,
            "failedSources": self.failed_sources,
            "emptySources": self.empty_sources,
            "durationSeconds": round(self.duration_seconds, 2),
            "results": [o.to_dict() for o in self.outcomes],
        }


class IngestionOrchestrator:
    """
    Runs a batch of source adapters concurrently.

    Every adapter gets exactly one CrawlOutcome. Adapter failures are
    reported, not retried; the next scheduled run is the retry.

    Usage:
        orchestrator = IngestionOrchestrator(settings, store, entries)
        summary = await orchestrator.run(batch=1)
    """

    def __init__(
        self,
        settings: Settings,
        store: GrantStore,
        entries: Iterable[SourceEntry],
        registry: SourceRegistry = REGISTRY,
        http_client_factory: Optional[Callable[[], HttpClient]] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            settings: Process settings
            store: Grant store receiving upserts and crawl logs
            entries: Source table
            registry: Adapter registry
            http_client_factory: Builds the shared HTTP client for a run
        """
        self.settings = settings
        self.store = store
        self.entries = list(entries)
        self.registry = registry
        self.http_client_factory = http_client_factory or self._default_http_client

    def _default_http_client(self) -> HttpClient:
        return HttpClient(
            requests_per_second=self.settings.requests_per_second,
            timeout=self.settings.request_timeout,
            max_retries=self.settings.max_retries,
            user_agent=self.settings.user_agent,
        )

    async def run(
        self,
        batch: Optional[int] = None,
        source_ids: Optional[list[str]] = None,
        today: Optional[date] = None,
    ) -> CrawlSummary:
        """
        Crawl one batch (or every enabled source when batch is None).

        Args:
            batch: Batch number from sources.yml
            source_ids: Further restrict to these sources
            today: Reference date for deadline parsing (defaults to today)

        Returns:
            CrawlSummary with one outcome per selected source
        """
        today = today or date.today()
        started_at = datetime.now(timezone.utc)
        start = time.monotonic()

        entries = self.registry.selected_entries(self.entries, batch=batch, source_ids=source_ids)
        logger.info(
            "crawl_started",
            batch=batch,
            sources=[e.source_id for e in entries],
        )

        # One slot per entry, in source-table order
        outcomes: list[Optional[CrawlOutcome]] = [None] * len(entries)
        runnable: list[tuple[int, SourceAdapter]] = []
        for index, entry in enumerate(entries):
            try:
                runnable.append((index, self.registry.build(entry, self.settings)))
            except ConfigError as e:
                logger.error("adapter_build_failed", source=entry.source_id, error=str(e))
                outcomes[index] = CrawlOutcome(
                    source=entry.source_id,
                    error_kind=CrawlErrorKind.CONFIG,
                    error=str(e),
                )

        if runnable:
            async with self.http_client_factory() as http:
                results = await asyncio.gather(
                    *(self._crawl_source(adapter, http, today) for _, adapter in runnable),
                    return_exceptions=True,
                )

            for (index, adapter), result in zip(runnable, results):
                if isinstance(result, BaseException):
                    logger.error(
                        "source_crashed",
                        source=adapter.source_id,
                        error_type=type(result).__name__,
                        error=str(result),
                    )
                    result = CrawlOutcome(
                        source=adapter.source_id,
                        error_kind=CrawlErrorKind.UNEXPECTED,
                        error=f"{type(result).__name__}: {result}",
                    )
                outcomes[index] = result
        elif not entries:
            logger.warning("no_sources_selected", batch=batch, source_ids=source_ids)

        summary = CrawlSummary(
            batch=batch,
            outcomes=[o for o in outcomes if o is not None],
            started_at=started_at,
            duration_seconds=time.monotonic() - start,
        )

        await self._record_outcomes(summary)

        if summary.duration_seconds > self.settings.batch_budget_seconds:
            logger.warning(
                "batch_budget_exceeded",
                batch=batch,
                duration=round(summary.duration_seconds, 1),
                budget=self.settings.batch_budget_seconds,
            )

        logger.info(
            "crawl_complete",
            batch=batch,
            sources=len(summary.outcomes),
            failed=len(summary.failed_sources),
            empty=len(summary.empty_sources),
            total_upserted=summary.total_upserted,
            duration=round(summary.duration_seconds, 1),
        )
        return summary

    async def _crawl_source(self, adapter: SourceAdapter, http: HttpClient, today: date) -> CrawlOutcome:
        """Fetch, then upsert one source's records. Taxonomy faults become outcomes."""
        source = adapter.source_id

        try:
            grants = await adapter.collect(http, today)
        except CrawlError as e:
            log = logger.warning if e.kind == CrawlErrorKind.EMPTY else logger.error
            log("source_failed", source=source, kind=e.kind.value, error=e.message)
            return CrawlOutcome(source=source, error_kind=e.kind, error=e.message)

        try:
            upserted = await asyncio.to_thread(self.store.upsert, grants)
        except StoreError as e:
            logger.error("source_store_failed", source=source, fetched=len(grants), error=str(e))
            return CrawlOutcome(
                source=source,
                fetched_count=len(grants),
                error_kind=CrawlErrorKind.STORE,
                error=str(e),
            )

        logger.info("source_crawled", source=source, fetched=len(grants), upserted=upserted)
        return CrawlOutcome(source=source, fetched_count=len(grants), upserted_count=upserted)

    async def _record_outcomes(self, summary: CrawlSummary) -> None:
        if not summary.outcomes:
            return
        try:
            await asyncio.to_thread(
                self.store.record_crawl_outcomes, summary.outcomes, summary.batch, summary.started_at
            )
        except StoreError as e:
            logger.error("crawl_log_failed", error=str(e))
