"""
Source adapters.

Importing this package registers every adapter with REGISTRY:
- gov_uk: GOV.UK Find a Grant (embedded Next.js JSON)
- 360giving: 360Giving Datastore API
- ukri: UKRI Gateway to Research (JSON or XML)
- community_fund: National Lottery Community Fund programme cards
- heritage_fund: National Lottery Heritage Fund open funds
- listing: table-driven listing pages configured in sources.yml
"""

from .base import SourceAdapter
from .registry import REGISTRY, SourceRegistry, register_source, batches
from .gov_uk import GovUkAdapter
from .threesixty_giving import ThreeSixtyGivingAdapter
from .ukri import UkriAdapter
from .listing import ListingSourceAdapter, ListingSpec
from .community_fund import CommunityFundAdapter
from .heritage_fund import HeritageFundAdapter

__all__ = [
    "SourceAdapter",
    "SourceRegistry",
    "REGISTRY",
    "register_source",
    "batches",
    "GovUkAdapter",
    "ThreeSixtyGivingAdapter",
    "UkriAdapter",
    "ListingSourceAdapter",
    "ListingSpec",
    "CommunityFundAdapter",
    "HeritageFundAdapter",
]
