"""
Matching: scoring, feedback, alert selection and free-text ranking.
"""

from .policy import DEFAULT_POLICY, INCOME_MIDPOINTS, ScoringPolicy
from .scoring import MatchScorer, compute_match_score
from .feedback import apply_feedback, build_feedback_signals
from .alerts import AlertSelector, GrantAlert, select_alerts
from .oracle import (
    OracleError,
    RankedGrant,
    RankingOracle,
    build_org_context,
    build_ranking_prompt,
    parse_ranking_response,
    prefilter_candidates,
)

__all__ = [
    "DEFAULT_POLICY",
    "INCOME_MIDPOINTS",
    "ScoringPolicy",
    "MatchScorer",
    "compute_match_score",
    "apply_feedback",
    "build_feedback_signals",
    "AlertSelector",
    "GrantAlert",
    "select_alerts",
    "OracleError",
    "RankedGrant",
    "RankingOracle",
    "build_org_context",
    "build_ranking_prompt",
    "parse_ranking_response",
    "prefilter_candidates",
]
