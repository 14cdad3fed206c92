"""
Grant store interface.

The storage engine is pluggable; the write policy is not. Every store
implements the same upsert semantics:

- conflict key is external_id
- mutable fields are overwritten with the fresh crawl
- last_seen_at is refreshed, first_seen_at is kept from the first insert
- is_active is set back to true
- ingestion never deletes
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Iterable, Optional

from grant_tracker.core.errors import StoreError
from grant_tracker.core.models import (
    CrawlOutcome,
    FunderType,
    InteractionAction,
    NormalizedGrant,
    StoredGrantRecord,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class InactiveCriteria:
    """
    Which active grants to deactivate.

    Rolling grants are never matched by deadline_before, whatever their
    deadline says.
    """
    deadline_before: Optional[date] = None
    external_ids: Optional[frozenset] = None

    def matches(self, record: StoredGrantRecord) -> bool:
        if not record.is_active:
            return False
        if self.external_ids is not None and record.external_id not in self.external_ids:
            return False
        if self.deadline_before is not None:
            if record.is_rolling or record.deadline is None:
                return False
            if record.deadline >= self.deadline_before:
                return False
        return self.deadline_before is not None or self.external_ids is not None


@dataclass(frozen=True)
class ActiveGrantFilter:
    """Read filter over active grants; empty filter returns everything active."""
    sources: Optional[frozenset] = None
    funder_types: Optional[frozenset] = None
    is_local: Optional[bool] = None
    open_on: Optional[date] = None  # Drop dated grants closing before this day
    limit: Optional[int] = None

    def matches(self, record: StoredGrantRecord) -> bool:
        if not record.is_active:
            return False
        if self.sources is not None and record.source not in self.sources:
            return False
        if self.funder_types is not None and FunderType.coerce(record.funder_type) not in self.funder_types:
            return False
        if self.is_local is not None and record.is_local != self.is_local:
            return False
        if self.open_on is not None and record.deadline is not None and record.deadline < self.open_on:
            return False
        return True


def sort_for_listing(records: Iterable[StoredGrantRecord]) -> list[StoredGrantRecord]:
    """Soonest deadline first, undated grants last, then by external_id."""
    return sorted(
        records,
        key=lambda r: (r.deadline is None, r.deadline or date.max, r.external_id),
    )


def unique_by_external_id(grants: Iterable[NormalizedGrant]) -> list[NormalizedGrant]:
    """
    One record per external_id, the last occurrence winning.

    Raises:
        StoreError: If a record has no external_id
    """
    latest: dict[str, NormalizedGrant] = {}
    for grant in grants:
        if not grant.external_id:
            raise StoreError(f"Grant without external_id: {grant.title!r}")
        latest[grant.external_id] = grant
    return list(latest.values())


@dataclass(frozen=True)
class Interaction:
    """One organisation action against one grant."""
    org_id: str
    grant_id: str
    action: InteractionAction
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "org_id": self.org_id,
            "grant_id": self.grant_id,
            "action": self.action.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class CrawlLogEntry:
    """Persisted CrawlOutcome, one row per source per run."""
    source: str
    batch: Optional[int]
    fetched: int
    upserted: int
    error_kind: Optional[str] = None
    error: Optional[str] = None
    ran_at: Optional[datetime] = None

    @classmethod
    def from_outcome(cls, outcome: CrawlOutcome, batch: Optional[int], ran_at: datetime) -> "CrawlLogEntry":
        return cls(
            source=outcome.source,
            batch=batch,
            fetched=outcome.fetched_count,
            upserted=outcome.upserted_count,
            error_kind=outcome.error_kind.value if outcome.error_kind else None,
            error=outcome.error,
            ran_at=ran_at,
        )

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "batch": self.batch,
            "fetched": self.fetched,
            "upserted": self.upserted,
            "error_kind": self.error_kind,
            "error": self.error,
            "ran_at": self.ran_at.isoformat() if self.ran_at else None,
        }


class GrantStore(ABC):
    """
    Abstract grant store.

    Implementations are synchronous and thread-safe; the orchestrator
    calls them through asyncio.to_thread.
    """

    # Grants

    @abstractmethod
    def upsert(self, grants: list[NormalizedGrant], now: Optional[datetime] = None) -> int:
        """
        Insert or refresh grants keyed by external_id.

        Repeated external_ids in one call collapse to the last record.

        Returns:
            Number of distinct grants inserted or updated

        Raises:
            StoreError: If the write fails; nothing from this call is kept
        """
        pass

    @abstractmethod
    def mark_inactive(self, criteria: InactiveCriteria) -> list[str]:
        """Deactivate matching active grants; returns affected external_ids."""
        pass

    @abstractmethod
    def read_active_grants(self, grant_filter: Optional[ActiveGrantFilter] = None) -> list[StoredGrantRecord]:
        """Active grants, soonest deadline first."""
        pass

    @abstractmethod
    def get_grant(self, external_id: str) -> Optional[StoredGrantRecord]:
        """Grant by external_id, active or not."""
        pass

    # Interactions

    @abstractmethod
    def record_interaction(
        self, org_id: str, grant_id: str, action: InteractionAction, now: Optional[datetime] = None
    ) -> bool:
        """Record an action; returns False if it was already recorded."""
        pass

    @abstractmethod
    def remove_interaction(self, org_id: str, grant_id: str, action: InteractionAction) -> bool:
        pass

    @abstractmethod
    def get_interactions(
        self, org_id: str, actions: Optional[Iterable[InteractionAction]] = None
    ) -> list[Interaction]:
        pass

    @abstractmethod
    def count_flags(self, grant_id: str) -> int:
        """Distinct organisations that flagged the grant."""
        pass

    # Sent alerts

    @abstractmethod
    def sent_alert_ids(self, org_id: str) -> set[str]:
        pass

    @abstractmethod
    def mark_alerts_sent(self, org_id: str, grant_ids: Iterable[str], now: Optional[datetime] = None) -> int:
        """Idempotent on (org_id, grant_id); returns newly recorded count."""
        pass

    # Crawl log

    @abstractmethod
    def record_crawl_outcomes(
        self, outcomes: list[CrawlOutcome], batch: Optional[int] = None, now: Optional[datetime] = None
    ) -> None:
        pass

    @abstractmethod
    def recent_crawl_logs(self, limit: int = 50) -> list[CrawlLogEntry]:
        """Newest first."""
        pass

    def close(self) -> None:
        """Release resources held by the store."""
