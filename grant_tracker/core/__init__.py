"""
Core layer - stable foundation for the grant tracker.

Components:
- models: NormalizedGrant, StoredGrantRecord, CrawlOutcome, scoring types
- errors: CrawlError taxonomy and store errors
- http_client: Rate-limited, retrying async HTTP client
- normalizer: Sterling amounts, UK dates, slugs, text cleanup
- selectors: Embedded payloads, labelled fields, headed sections
"""

from .models import (
    FunderType,
    OrgType,
    CrawlErrorKind,
    InteractionAction,
    NormalizedGrant,
    StoredGrantRecord,
    CrawlOutcome,
    OrganisationProfile,
    DimensionScore,
    FeedbackAdjustment,
    MatchBreakdown,
    MatchResult,
    FeedbackSignals,
)
from .errors import (
    GrantTrackerError,
    ConfigError,
    CrawlError,
    TransportError,
    ParseError,
    EmptyResultError,
    StoreError,
    OracleError,
)
from .normalizer import (
    parse_amount,
    parse_currency_range,
    parse_uk_date,
    parse_deadline,
    slugify,
    build_external_id,
    normalise_sectors,
    normalise_list,
    format_currency,
    format_range,
)

__all__ = [
    "FunderType",
    "OrgType",
    "CrawlErrorKind",
    "InteractionAction",
    "NormalizedGrant",
    "StoredGrantRecord",
    "CrawlOutcome",
    "OrganisationProfile",
    "DimensionScore",
    "FeedbackAdjustment",
    "MatchBreakdown",
    "MatchResult",
    "FeedbackSignals",
    "GrantTrackerError",
    "ConfigError",
    "CrawlError",
    "TransportError",
    "ParseError",
    "EmptyResultError",
    "StoreError",
    "OracleError",
    "parse_amount",
    "parse_currency_range",
    "parse_uk_date",
    "parse_deadline",
    "slugify",
    "build_external_id",
    "normalise_sectors",
    "normalise_list",
    "format_currency",
    "format_range",
]
