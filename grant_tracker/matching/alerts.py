"""
Alert/digest selection.

Picks the best not-yet-notified grants for an organisation. Recording
what was sent is the caller's job, once delivery is confirmed.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

import structlog

from grant_tracker.config.loader import Settings
from grant_tracker.core.models import (
    FeedbackSignals,
    MatchResult,
    NormalizedGrant,
    OrganisationProfile,
)
from grant_tracker.core.normalizer import format_range
from .scoring import MatchScorer

logger = structlog.get_logger(__name__)


DEFAULT_MIN_SCORE = 70
DEFAULT_LIMIT = 8


@dataclass(frozen=True)
class GrantAlert:
    grant: NormalizedGrant
    match: MatchResult

    def to_dict(self) -> dict:
        return {
            "id": self.grant.external_id,
            "title": self.grant.title,
            "funder": self.grant.funder,
            "amount": format_range(self.grant.amount_min, self.grant.amount_max),
            "deadline": self.grant.deadline.isoformat() if self.grant.deadline else None,
            "applyUrl": self.grant.apply_url,
            **self.match.to_dict(),
        }


class AlertSelector:
    """
    Top-N unsent grants above a score threshold.

    Usage:
        selector = AlertSelector.from_settings(settings)
        alerts = selector.select(org, grants, sent_ids=store.sent_alert_ids(org.id))
    """

    def __init__(
        self,
        min_score: int = DEFAULT_MIN_SCORE,
        limit: int = DEFAULT_LIMIT,
        scorer: Optional[MatchScorer] = None,
    ):
        self.min_score = min_score
        self.limit = limit
        self.scorer = scorer or MatchScorer()

    @classmethod
    def from_settings(cls, settings: Settings, scorer: Optional[MatchScorer] = None) -> "AlertSelector":
        return cls(min_score=settings.alert_min_score, limit=settings.alert_limit, scorer=scorer)

    def select(
        self,
        org: OrganisationProfile,
        grants: Iterable[NormalizedGrant],
        sent_ids: Optional[set[str]] = None,
        feedback: Optional[FeedbackSignals] = None,
    ) -> list[GrantAlert]:
        """
        Score, filter and rank grants for one organisation.

        Ties on score are broken by external_id so the digest is stable.
        """
        sent_ids = sent_ids or set()
        candidates = []

        for grant in grants:
            if grant.external_id in sent_ids:
                continue
            match = self.scorer.score(grant, org, feedback)
            if match.score < self.min_score:
                continue
            candidates.append(GrantAlert(grant=grant, match=match))

        candidates.sort(key=lambda a: (-a.match.score, a.grant.external_id))
        selected = candidates[: self.limit]

        logger.info(
            "alerts_selected",
            org_id=org.id,
            candidates=len(candidates),
            selected=len(selected),
            already_sent=len(sent_ids),
        )
        return selected


def select_alerts(
    org: OrganisationProfile,
    grants: Iterable[NormalizedGrant],
    sent_ids: Optional[set[str]] = None,
    min_score: int = DEFAULT_MIN_SCORE,
    limit: int = DEFAULT_LIMIT,
    feedback: Optional[FeedbackSignals] = None,
) -> list[GrantAlert]:
    """Functional form of AlertSelector.select."""
    return AlertSelector(min_score=min_score, limit=limit).select(org, grants, sent_ids, feedback)
