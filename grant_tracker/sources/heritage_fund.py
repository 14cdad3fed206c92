"""
The National Lottery Heritage Fund.

The funding page lists "Open funds" and "Recently closed" with identical
card markup; only the enclosing heading tells them apart. Open funds
without a closing date accept applications all year.
"""

from grant_tracker.core.models import FunderType
from .listing import ListingSourceAdapter
from .registry import register_source


@register_source("heritage_fund")
class HeritageFundAdapter(ListingSourceAdapter):
    """Cards under the "Open funds" heading only."""

    source_id = "heritage_fund"
    funder_type = FunderType.LOTTERY

    defaults = {
        "listing_url": "https://www.heritagefund.org.uk/funding",
        "item_selector": ".funding-card",
        "title_selector": ".funding-card__title",
        "summary_selector": ".funding-card__description",
        "funder": "The National Lottery Heritage Fund",
        "funder_type": "lottery",
        "open_section": "Open funds",
        "labels": {
            "amount": "Grant amount",
            "deadline": "Deadline",
            "eligibility": "Who can apply",
        },
        "sectors": ["heritage"],
        "rolling_default": True,
        "follow_detail": True,
        "detail_selector": "main",
    }
