"""In-process grant store for tests and dry runs."""

import threading
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional

import structlog

from grant_tracker.core.models import (
    CrawlOutcome,
    InteractionAction,
    NormalizedGrant,
    StoredGrantRecord,
)
from .base import (
    ActiveGrantFilter,
    CrawlLogEntry,
    GrantStore,
    InactiveCriteria,
    Interaction,
    sort_for_listing,
    unique_by_external_id,
    utcnow,
)

logger = structlog.get_logger(__name__)


class MemoryGrantStore(GrantStore):
    """
    Dict-backed store with the same write policy as SQLiteGrantStore.

    Usage:
        store = MemoryGrantStore()
        store.upsert(grants)
        active = store.read_active_grants()
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._grants: dict[str, StoredGrantRecord] = {}
        self._interactions: dict[tuple[str, str, InteractionAction], Interaction] = {}
        self._sent: dict[str, dict[str, datetime]] = {}
        self._crawl_logs: list[CrawlLogEntry] = []

    def upsert(self, grants: list[NormalizedGrant], now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        grants = unique_by_external_id(grants)

        with self._lock:
            for grant in grants:
                existing = self._grants.get(grant.external_id)
                first_seen = existing.first_seen_at if existing else now
                self._grants[grant.external_id] = StoredGrantRecord.from_grant(
                    grant, first_seen_at=first_seen, last_seen_at=now, is_active=True
                )

        logger.debug("grants_upserted", count=len(grants))
        return len(grants)

    def mark_inactive(self, criteria: InactiveCriteria) -> list[str]:
        with self._lock:
            affected = [r.external_id for r in self._grants.values() if criteria.matches(r)]
            for external_id in affected:
                self._grants[external_id] = replace(self._grants[external_id], is_active=False)
        return sorted(affected)

    def read_active_grants(self, grant_filter: Optional[ActiveGrantFilter] = None) -> list[StoredGrantRecord]:
        grant_filter = grant_filter or ActiveGrantFilter()
        with self._lock:
            records = [r for r in self._grants.values() if grant_filter.matches(r)]
        records = sort_for_listing(records)
        if grant_filter.limit is not None:
            records = records[: grant_filter.limit]
        return records

    def get_grant(self, external_id: str) -> Optional[StoredGrantRecord]:
        with self._lock:
            return self._grants.get(external_id)

    def record_interaction(
        self, org_id: str, grant_id: str, action: InteractionAction, now: Optional[datetime] = None
    ) -> bool:
        key = (org_id, grant_id, InteractionAction(action))
        with self._lock:
            if key in self._interactions:
                return False
            self._interactions[key] = Interaction(org_id, grant_id, key[2], now or utcnow())
        return True

    def remove_interaction(self, org_id: str, grant_id: str, action: InteractionAction) -> bool:
        with self._lock:
            return self._interactions.pop((org_id, grant_id, InteractionAction(action)), None) is not None

    def get_interactions(
        self, org_id: str, actions: Optional[Iterable[InteractionAction]] = None
    ) -> list[Interaction]:
        wanted = {InteractionAction(a) for a in actions} if actions is not None else None
        with self._lock:
            found = [
                i for i in self._interactions.values()
                if i.org_id == org_id and (wanted is None or i.action in wanted)
            ]
        return sorted(found, key=lambda i: (i.created_at, i.grant_id, i.action.value), reverse=True)

    def count_flags(self, grant_id: str) -> int:
        with self._lock:
            return len({
                org_id for (org_id, g, action) in self._interactions
                if g == grant_id and action == InteractionAction.FLAGGED
            })

    def sent_alert_ids(self, org_id: str) -> set[str]:
        with self._lock:
            return set(self._sent.get(org_id, {}))

    def mark_alerts_sent(self, org_id: str, grant_ids: Iterable[str], now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        added = 0
        with self._lock:
            sent = self._sent.setdefault(org_id, {})
            for grant_id in grant_ids:
                if grant_id not in sent:
                    sent[grant_id] = now
                    added += 1
        return added

    def record_crawl_outcomes(
        self, outcomes: list[CrawlOutcome], batch: Optional[int] = None, now: Optional[datetime] = None
    ) -> None:
        now = now or utcnow()
        with self._lock:
            self._crawl_logs.extend(CrawlLogEntry.from_outcome(o, batch, now) for o in outcomes)

    def recent_crawl_logs(self, limit: int = 50) -> list[CrawlLogEntry]:
        with self._lock:
            return list(reversed(self._crawl_logs))[:limit]
