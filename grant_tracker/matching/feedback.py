"""
Feedback signals from liked/disliked interactions.

Likes and dislikes on specific grants are aggregated per sector tag and
per funder type; the scorer turns them into a bounded post-hoc adjustment.
"""

from collections import Counter
from typing import Iterable, Mapping, Optional

from grant_tracker.core.models import (
    FeedbackAdjustment,
    FeedbackSignals,
    FunderType,
    InteractionAction,
    NormalizedGrant,
)
from .policy import DEFAULT_POLICY, ScoringPolicy


def build_feedback_signals(
    interactions: Iterable,
    grants: Mapping[str, NormalizedGrant],
) -> FeedbackSignals:
    """
    Aggregate liked/disliked interactions into FeedbackSignals.

    Args:
        interactions: Objects with grant_id and action (store Interactions)
        grants: Grants by external_id; interactions on unknown grants are ignored

    Returns:
        Accumulated weights per sector tag and per funder type value
    """
    sector_boosts: Counter = Counter()
    sector_penalties: Counter = Counter()
    funder_boosts: Counter = Counter()
    funder_penalties: Counter = Counter()

    for interaction in interactions:
        action = InteractionAction(interaction.action)
        if action not in (InteractionAction.LIKED, InteractionAction.DISLIKED):
            continue
        grant = grants.get(interaction.grant_id)
        if grant is None:
            continue

        liked = action == InteractionAction.LIKED
        sectors = {s.lower().strip() for s in grant.sectors if s and s.strip()}
        (sector_boosts if liked else sector_penalties).update(sectors)
        (funder_boosts if liked else funder_penalties)[FunderType.coerce(grant.funder_type).value] += 1

    return FeedbackSignals(
        sector_boosts=dict(sorted(sector_boosts.items())),
        sector_penalties=dict(sorted(sector_penalties.items())),
        funder_type_boosts=dict(sorted(funder_boosts.items())),
        funder_type_penalties=dict(sorted(funder_penalties.items())),
    )


def apply_feedback(
    grant: NormalizedGrant,
    signals: Optional[FeedbackSignals],
    policy: Optional[ScoringPolicy] = None,
) -> FeedbackAdjustment:
    """
    Bounded score adjustment for one grant.

    Each accumulated like on a shared sector adds feedback_sector_boost,
    each dislike subtracts feedback_sector_penalty; the grant's funder
    type adds or subtracts feedback_funder_type_points per weight. The net
    is clamped to [-feedback_max_penalty, +feedback_max_boost].
    """
    policy = policy or DEFAULT_POLICY
    if signals is None or signals.is_empty:
        return FeedbackAdjustment()

    sectors = sorted({s.lower().strip() for s in grant.sectors if s and s.strip()})
    funder_type = FunderType.coerce(grant.funder_type).value

    boost = 0
    penalty = 0
    matched_boosts: list[str] = []
    matched_penalties: list[str] = []

    for sector in sectors:
        if signals.sector_boosts.get(sector):
            boost += signals.sector_boosts[sector] * policy.feedback_sector_boost
            matched_boosts.append(sector)
        if signals.sector_penalties.get(sector):
            penalty += signals.sector_penalties[sector] * policy.feedback_sector_penalty
            matched_penalties.append(sector)

    if signals.funder_type_boosts.get(funder_type):
        boost += signals.funder_type_boosts[funder_type] * policy.feedback_funder_type_points
        matched_boosts.append(f"funder:{funder_type}")
    if signals.funder_type_penalties.get(funder_type):
        penalty += signals.funder_type_penalties[funder_type] * policy.feedback_funder_type_points
        matched_penalties.append(f"funder:{funder_type}")

    points = max(-policy.feedback_max_penalty, min(policy.feedback_max_boost, boost - penalty))

    return FeedbackAdjustment(
        applied=bool(matched_boosts or matched_penalties),
        points=points,
        matched_boosts=tuple(matched_boosts),
        matched_penalties=tuple(matched_penalties),
    )
