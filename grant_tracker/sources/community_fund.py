"""
The National Lottery Community Fund.

Programme cards list funding size, area and deadline as labelled rows.
Country-specific programmes are recorded as local, and the country is
carried into eligibility so the scorer can apply nation restrictions.
"""

from datetime import date
from typing import Optional

from bs4 import Tag

from grant_tracker.core.models import FunderType, NormalizedGrant
from .listing import ListingSourceAdapter
from .registry import register_source


NATIONS = {
    "england": "England",
    "scotland": "Scotland",
    "wales": "Wales",
    "northern ireland": "Northern Ireland",
}


@register_source("community_fund")
class CommunityFundAdapter(ListingSourceAdapter):
    """Funding programme cards, paginated with ?page=N."""

    source_id = "community_fund"
    funder_type = FunderType.LOTTERY

    defaults = {
        "listing_url": "https://www.tnlcommunityfund.org.uk/funding/funding-programmes",
        "item_selector": "article.programme-card",
        "title_selector": ".programme-card__title",
        "link_selector": "a.programme-card__link",
        "summary_selector": ".programme-card__summary",
        "funder": "The National Lottery Community Fund",
        "funder_type": "lottery",
        "page_param": "page",
        "labels": {
            "amount": "Funding size",
            "deadline": "Application deadline",
            "area": "Area",
            "eligibility": "Suitable for",
        },
        "rolling_default": True,
    }

    def parse_card(self, card: Tag, today: date) -> Optional[NormalizedGrant]:
        grant = super().parse_card(card, today)
        if grant is None:
            return None

        for criterion in list(grant.eligibility_criteria):
            if not criterion.startswith("Area: "):
                continue
            nation = NATIONS.get(criterion[len("Area: "):].strip().lower())
            if nation:
                grant.eligibility_criteria.append(f"Only open to organisations in {nation}")
        return grant
