"""
Data models for the grant tracker.

NormalizedGrant is the canonical shape every source adapter produces;
StoredGrantRecord adds the lifecycle fields owned by the store.
"""

from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from enum import Enum
from typing import Optional


class FunderType(str, Enum):
    """Kind of organisation offering the grant."""
    TRUST_FOUNDATION = "trust_foundation"
    LOCAL_AUTHORITY = "local_authority"
    HOUSING_ASSOCIATION = "housing_association"
    CORPORATE = "corporate"
    LOTTERY = "lottery"
    GOVERNMENT = "government"
    OTHER = "other"

    @classmethod
    def coerce(cls, value) -> "FunderType":
        """Map any stored value onto a known funder type (unknown -> OTHER)."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.OTHER


class OrgType(str, Enum):
    """Legal form of the applicant organisation."""
    REGISTERED_CHARITY = "registered_charity"
    CIC = "cic"
    SOCIAL_ENTERPRISE = "social_enterprise"
    COMMUNITY_GROUP = "community_group"
    OTHER = "other"

    @classmethod
    def coerce(cls, value) -> "OrgType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.OTHER


class CrawlErrorKind(str, Enum):
    """Closed set of per-source failure kinds."""
    TRANSPORT = "transport"  # Timeout, non-2xx, DNS/connection failure
    PARSE = "parse"  # Expected structured data or selectors missing
    EMPTY = "empty"  # Fetch worked, nothing extractable (warning level)
    STORE = "store"  # Upsert of this source's batch failed
    CONFIG = "config"  # Source table entry names an unknown adapter or bad options
    UNEXPECTED = "unexpected"  # Anything outside the taxonomy


class InteractionAction(str, Enum):
    """Organisation actions recorded against a grant."""
    SAVED = "saved"
    DISMISSED = "dismissed"
    APPLIED = "applied"
    LIKED = "liked"
    DISLIKED = "disliked"
    FLAGGED = "flagged"


@dataclass
class NormalizedGrant:
    """
    Canonical ingested grant record.

    external_id is "{source}_{slug}" and is recomputed from source-stable
    attributes, so re-crawling the same listing always hits the same row.
    """

    external_id: str
    source: str
    title: str

    funder: Optional[str] = None
    funder_type: FunderType = FunderType.OTHER
    description: str = ""

    # Funding (GBP, whole pounds)
    amount_min: Optional[int] = None
    amount_max: Optional[int] = None

    # Dates
    deadline: Optional[date] = None
    is_rolling: bool = False

    # Geography
    is_local: bool = False

    # Classification
    sectors: list[str] = field(default_factory=list)
    eligibility_criteria: list[str] = field(default_factory=list)

    apply_url: Optional[str] = None

    # Untouched source payload, kept for audit/debugging
    raw_source_payload: dict = field(default_factory=dict)

    def __post_init__(self):
        self.funder_type = FunderType.coerce(self.funder_type)
        for name in ("amount_min", "amount_max"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")
        if (
            self.amount_min is not None
            and self.amount_max is not None
            and self.amount_min > self.amount_max
        ):
            raise ValueError(
                f"amount_min {self.amount_min} exceeds amount_max {self.amount_max}"
            )

    @property
    def text(self) -> str:
        """Title, description and sectors joined for text matching."""
        return " ".join([self.title, self.description or "", " ".join(self.sectors)])

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["funder_type"] = self.funder_type.value
        data["deadline"] = self.deadline.isoformat() if self.deadline else None
        return data


@dataclass
class StoredGrantRecord(NormalizedGrant):
    """NormalizedGrant plus lifecycle metadata owned by the store."""

    first_seen_at: Optional[datetime] = None
    last_seen_at: Optional[datetime] = None
    is_active: bool = True

    @classmethod
    def from_grant(
        cls,
        grant: NormalizedGrant,
        first_seen_at: datetime,
        last_seen_at: datetime,
        is_active: bool = True,
    ) -> "StoredGrantRecord":
        fields = {k: getattr(grant, k) for k in NormalizedGrant.__dataclass_fields__}
        return cls(
            **fields,
            first_seen_at=first_seen_at,
            last_seen_at=last_seen_at,
            is_active=is_active,
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        for key in ("first_seen_at", "last_seen_at"):
            value = getattr(self, key)
            data[key] = value.isoformat() if value else None
        return data


@dataclass
class CrawlOutcome:
    """
    Per-source result of one crawl.

    Always a value: failures are carried in error_kind/error, never raised.
    """

    source: str
    fetched_count: int = 0
    upserted_count: int = 0
    error_kind: Optional[CrawlErrorKind] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "fetched": self.fetched_count,
            "upserted": self.upserted_count,
            "errorKind": self.error_kind.value if self.error_kind else None,
            "error": self.error,
        }


def coerce_amount(value) -> Optional[int]:
    """
    Whole pounds from a number or a form string such as "£5,000".

    Anything unreadable, negative or boolean gives None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.replace("£", "").replace(",", "").strip()
    try:
        amount = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None
    return amount if amount >= 0 else None


@dataclass(frozen=True)
class OrganisationProfile:
    """
    Applicant organisation, consumed read-only by the scorer.

    Every field is optional so an incomplete profile still scores.
    """

    id: str = ""
    name: str = ""
    primary_location: Optional[str] = None
    org_type: OrgType = OrgType.OTHER
    annual_income_band: Optional[str] = None
    themes: tuple[str, ...] = ()
    areas_of_work: tuple[str, ...] = ()
    beneficiaries: tuple[str, ...] = ()
    mission: Optional[str] = None
    key_outcomes: tuple[str, ...] = ()
    min_grant_target: Optional[int] = None
    max_grant_target: Optional[int] = None
    funder_type_preferences: tuple[FunderType, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "OrganisationProfile":
        """Build from a stored organisation row (snake_case keys)."""

        def _tuple(key: str) -> tuple[str, ...]:
            value = data.get(key) or ()
            if isinstance(value, str):
                value = [value]
            return tuple(str(v) for v in value if v)

        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            primary_location=data.get("primary_location") or None,
            org_type=OrgType.coerce(data.get("org_type")),
            annual_income_band=data.get("annual_income_band") or None,
            themes=_tuple("themes"),
            areas_of_work=_tuple("areas_of_work"),
            beneficiaries=_tuple("beneficiaries"),
            mission=data.get("mission") or None,
            key_outcomes=_tuple("key_outcomes"),
            min_grant_target=coerce_amount(data.get("min_grant_target")),
            max_grant_target=coerce_amount(data.get("max_grant_target")),
            funder_type_preferences=tuple(
                FunderType.coerce(v) for v in (data.get("funder_type_preferences") or ())
            ),
        )


@dataclass(frozen=True)
class DimensionScore:
    """One capped component of a match score."""
    score: int
    max: int
    label: str

    def to_dict(self) -> dict:
        return {"score": self.score, "max": self.max, "label": self.label}


@dataclass(frozen=True)
class FeedbackAdjustment:
    """Post-hoc adjustment from liked/disliked history, outside the five dimensions."""
    applied: bool = False
    points: int = 0
    matched_boosts: tuple[str, ...] = ()
    matched_penalties: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "applied": self.applied,
            "points": self.points,
            "matchedBoosts": list(self.matched_boosts),
            "matchedPenalties": list(self.matched_penalties),
        }


@dataclass(frozen=True)
class MatchBreakdown:
    """Per-dimension scores; the five dimensions sum to at most 100."""
    location: DimensionScore
    themes: DimensionScore
    grant_size: DimensionScore
    funder_type: DimensionScore
    eligibility: DimensionScore
    feedback: FeedbackAdjustment = FeedbackAdjustment()

    def dimensions(self) -> tuple[DimensionScore, ...]:
        return (self.location, self.themes, self.grant_size, self.funder_type, self.eligibility)

    @property
    def subtotal(self) -> int:
        return sum(d.score for d in self.dimensions())

    def to_dict(self) -> dict:
        return {
            "location": self.location.to_dict(),
            "themes": self.themes.to_dict(),
            "grantSize": self.grant_size.to_dict(),
            "funderType": self.funder_type.to_dict(),
            "eligibility": self.eligibility.to_dict(),
            "feedback": self.feedback.to_dict(),
        }


@dataclass(frozen=True)
class MatchResult:
    """Ephemeral, explainable score of one grant against one organisation."""
    score: int
    reason: str
    breakdown: MatchBreakdown

    def to_dict(self) -> dict:
        return {"score": self.score, "reason": self.reason, "breakdown": self.breakdown.to_dict()}


@dataclass(frozen=True)
class FeedbackSignals:
    """
    Aggregated per-organisation feedback weights.

    Maps are keyed by lowercase sector tag (or funder type value) and hold
    accumulated like/dislike counts.
    """
    sector_boosts: dict = field(default_factory=dict)
    sector_penalties: dict = field(default_factory=dict)
    funder_type_boosts: dict = field(default_factory=dict)
    funder_type_penalties: dict = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (
            self.sector_boosts
            or self.sector_penalties
            or self.funder_type_boosts
            or self.funder_type_penalties
        )
