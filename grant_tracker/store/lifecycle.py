"""
Lifecycle policies that deactivate grants outside ingestion.

Ingestion only ever (re)activates. These two policies are the only paths
to is_active = false, and each is triggered explicitly by the caller.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

import structlog

from grant_tracker.core.models import InteractionAction
from .base import GrantStore, InactiveCriteria

logger = structlog.get_logger(__name__)


DEFAULT_FLAG_THRESHOLD = 3


@dataclass(frozen=True)
class ExpiredGrant:
    external_id: str
    title: str
    deadline: Optional[date]

    def to_dict(self) -> dict:
        return {
            "id": self.external_id,
            "title": self.title,
            "deadline": self.deadline.isoformat() if self.deadline else None,
        }


@dataclass(frozen=True)
class FlagResult:
    flagged: bool  # False when this organisation had already flagged the grant
    flag_count: int
    deactivated: bool

    def to_dict(self) -> dict:
        return {
            "flagged": self.flagged,
            "flagCount": self.flag_count,
            "deactivated": self.deactivated,
        }


def expire_grants(store: GrantStore, today: date) -> list[ExpiredGrant]:
    """
    Deactivate every active, non-rolling grant whose deadline has passed.

    Rolling grants are exempt whatever their deadline. Grants with no
    deadline are left alone.

    Returns:
        The grants that were deactivated
    """
    affected = store.mark_inactive(InactiveCriteria(deadline_before=today))

    expired = []
    for external_id in affected:
        record = store.get_grant(external_id)
        expired.append(ExpiredGrant(
            external_id=external_id,
            title=record.title if record else "",
            deadline=record.deadline if record else None,
        ))

    logger.info("grants_expired", count=len(expired), today=today.isoformat())
    return expired


def flag_grant(
    store: GrantStore,
    grant_id: str,
    org_id: str,
    threshold: int = DEFAULT_FLAG_THRESHOLD,
    now: Optional[datetime] = None,
) -> FlagResult:
    """
    Record a community flag and deactivate the grant at the threshold.

    Flags are idempotent per organisation, so one organisation flagging
    repeatedly never counts more than once.
    """
    added = store.record_interaction(org_id, grant_id, InteractionAction.FLAGGED, now=now)
    count = store.count_flags(grant_id)

    deactivated = False
    if count >= threshold:
        affected = store.mark_inactive(InactiveCriteria(external_ids=frozenset({grant_id})))
        deactivated = bool(affected)
        if deactivated:
            logger.info("grant_deactivated_by_flags", grant_id=grant_id, flags=count)

    logger.debug("grant_flagged", grant_id=grant_id, org_id=org_id, new=added, flags=count)
    return FlagResult(flagged=added, flag_count=count, deactivated=deactivated)
