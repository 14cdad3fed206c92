"""
Scoring policy: every tunable number the match scorer uses.

The scorer reads nothing else, so a policy can be swapped in tests or
tuned without touching the algorithm.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from grant_tracker.core.models import OrgType


# Annual income band -> approximate midpoint (GBP)
INCOME_MIDPOINTS = {
    "Under £10,000": 5_000,
    "£10,000–£50,000": 30_000,
    "£50,000–£100,000": 75_000,
    "£100,000–£500,000": 300_000,
    "Over £500,000": 750_000,
}

# Words too common to say anything about a mission
STOPWORDS = frozenset({
    "about", "across", "also", "among", "been", "being", "both", "each", "from",
    "have", "help", "helping", "into", "more", "most", "other", "over", "people",
    "some", "such", "than", "that", "their", "them", "these", "they", "this",
    "those", "through", "very", "were", "what", "when", "where", "which", "while",
    "who", "will", "with", "within", "work", "working", "would", "your", "ours",
    "support", "supporting", "provide", "providing", "local", "community",
})

UK_NATIONS = ("england", "scotland", "wales", "northern ireland")

ORG_TYPE_LABELS = {
    OrgType.REGISTERED_CHARITY: "Registered Charity",
    OrgType.CIC: "Community Interest Company (CIC)",
    OrgType.SOCIAL_ENTERPRISE: "Social Enterprise",
    OrgType.COMMUNITY_GROUP: "Community Group",
    OrgType.OTHER: "Other",
}

# Phrases in eligibility text that name each legal form
LEGAL_FORM_PATTERNS = {
    OrgType.REGISTERED_CHARITY: r"\b(registered )?charit(y|ies)\b",
    OrgType.CIC: r"\b(cics?|community interest compan(y|ies))\b",
    OrgType.SOCIAL_ENTERPRISE: r"\bsocial enterprises?\b",
    OrgType.COMMUNITY_GROUP: r"\b(community|voluntary|constituted) groups?\b",
}

CHARITY_ONLY_PATTERN = (
    r"\b(only (open to |for )?(registered )?charities|(registered )?charities only"
    r"|must be a (registered )?charity)\b"
)

RESTRICTION_PATTERN = r"\b(only|must be based|based in|located in|restricted to|organisations in)\b"


def normalise_band(band: Optional[str]) -> str:
    """Band key tolerant of dash style, spacing and case."""
    text = (band or "").lower().replace("–", "-").replace("—", "-")
    return re.sub(r"\s+", "", text)


@dataclass(frozen=True)
class ScoringPolicy:
    """Named, overridable constants for the five-dimension match score."""

    # Location (cap 25)
    location_cap: int = 25
    location_national: int = 10
    location_local: int = 18
    location_local_match: int = 25

    # Themes & work (cap 25)
    themes_cap: int = 25
    themes_neutral: int = 12
    explicit_term_weight: float = 1.5
    derived_term_weight: float = 0.8
    min_word_length: int = 4
    max_derived_terms: int = 8
    sector_overlap_boost: int = 4
    strong_theme_hits: int = 3

    # Grant size (cap 20)
    grant_size_cap: int = 20
    size_neutral: int = 10
    size_in_target: int = 20
    size_too_small: int = 3
    size_too_large: int = 8
    size_suits_threshold: int = 18
    # (lower bound, upper bound inclusive, score) over award / income midpoint
    ratio_bands: tuple = (
        (0.05, 0.6, 20),
        (0.6, 1.2, 14),
        (1.2, 3.0, 8),
    )
    ratio_below_score: int = 15
    ratio_above_score: int = 3
    income_midpoints: dict = field(default_factory=lambda: dict(INCOME_MIDPOINTS))
    default_income: int = 50_000

    # Funder type (cap 15)
    funder_type_cap: int = 15
    funder_type_neutral: int = 8
    funder_type_preferred: int = 15
    funder_type_excluded: int = 3

    # Eligibility (cap 15)
    eligibility_cap: int = 15
    eligibility_base: dict = field(default_factory=lambda: {
        OrgType.REGISTERED_CHARITY: 12,
        OrgType.CIC: 10,
        OrgType.SOCIAL_ENTERPRISE: 9,
        OrgType.COMMUNITY_GROUP: 8,
        OrgType.OTHER: 7,
    })
    named_legal_form_bonus: int = 3
    named_location_bonus: int = 2
    nation_restriction_penalty: int = 6
    charity_only_penalty: int = 8

    # Feedback adjustment (outside the five dimensions)
    feedback_sector_boost: int = 3
    feedback_sector_penalty: int = 3
    feedback_funder_type_points: int = 2
    feedback_max_boost: int = 12
    feedback_max_penalty: int = 20

    # Fallback reason bands
    good_match_score: int = 75
    partial_match_score: int = 55

    @property
    def max_total(self) -> int:
        return (
            self.location_cap
            + self.themes_cap
            + self.grant_size_cap
            + self.funder_type_cap
            + self.eligibility_cap
        )

    def income_midpoint(self, band: Optional[str]) -> int:
        key = normalise_band(band)
        for name, midpoint in self.income_midpoints.items():
            if normalise_band(name) == key:
                return midpoint
        return self.default_income

    def ratio_score(self, ratio: float) -> int:
        if ratio < self.ratio_bands[0][0]:
            return self.ratio_below_score
        for low, high, score in self.ratio_bands:
            if low <= ratio <= high:
                return score
        return self.ratio_above_score


DEFAULT_POLICY = ScoringPolicy()
