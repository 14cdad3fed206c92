"""
GOV.UK Find a Grant.

The listing pages are a Next.js app; every page embeds its search results
in the __NEXT_DATA__ script, so no HTML selectors are needed.
"""

import asyncio
import math
from datetime import date

from grant_tracker.core.errors import ParseError
from grant_tracker.core.http_client import HttpClient
from grant_tracker.core.models import FunderType, NormalizedGrant
from grant_tracker.core.normalizer import (
    build_external_id,
    normalise_list,
    normalize_title,
    parse_deadline,
)
from grant_tracker.core.selectors import extract_next_data
from .base import SourceAdapter
from .registry import register_source


BASE_URL = "https://www.find-government-grants.service.gov.uk/grants"
UK_WIDE = "All of United Kingdom"


@register_source("gov_uk")
class GovUkAdapter(SourceAdapter):
    """Find a Grant: paginated JSON embedded in each listing page."""

    source_id = "gov_uk"
    funder_type = FunderType.GOVERNMENT

    async def fetch(self, http: HttpClient, today: date) -> list[NormalizedGrant]:
        base_url = self.options.get("base_url", BASE_URL)

        first = await self._fetch_page(http, base_url, 1)
        results = list(first.get("searchResult") or [])
        total = int(first.get("totalGrants") or 0)
        per_page = len(results) or 10
        pages = min(math.ceil(total / per_page), self.max_pages)

        self.logger.info("listing_pages", total=total, pages=pages)

        # Later pages are best-effort; page 1 already proved the source works
        rest = await asyncio.gather(
            *(self._fetch_page(http, base_url, n) for n in range(2, pages + 1)),
            return_exceptions=True,
        )
        for page_number, page in enumerate(rest, start=2):
            if isinstance(page, BaseException):
                self.logger.warning("page_fetch_failed", page=page_number, error=str(page))
                continue
            results.extend(page.get("searchResult") or [])

        return self.map_records(results, lambda item: self._normalise(item, base_url, today))

    async def _fetch_page(self, http: HttpClient, base_url: str, page: int) -> dict:
        html = await http.get_text(base_url, params={"page": page})
        data = extract_next_data(html)
        if data is None:
            raise ParseError(f"No Next.js page data on page {page}", self.source_id)
        page_props = data["props"]["pageProps"]
        if not isinstance(page_props, dict):
            raise ParseError("pageProps is not an object", self.source_id)
        return page_props

    def _normalise(self, item: dict, base_url: str, today: date) -> NormalizedGrant:
        label = item.get("label") or item.get("id") or item["grantName"]
        locations = item.get("grantLocation") or []
        if not isinstance(locations, list):
            locations = [locations]

        return NormalizedGrant(
            external_id=build_external_id(self.source_id, label),
            source=self.source_id,
            title=normalize_title(item.get("grantName")) or "Untitled Grant",
            funder=item.get("grantFunder") or "UK Government",
            funder_type=self.funder_type,
            description=item.get("grantShortDescription") or item.get("grantDescription") or "",
            amount_min=_whole_pounds(item.get("grantMinimumAward")),
            amount_max=_whole_pounds(item.get("grantMaximumAward")),
            deadline=parse_deadline(item.get("grantApplicationCloseDate"), today),
            is_rolling=False,
            is_local=bool(locations) and UK_WIDE not in locations,
            sectors=[],
            eligibility_criteria=normalise_list(item.get("grantApplicantType")),
            apply_url=f"{base_url}/{label}",
            raw_source_payload=item,
        )


def _whole_pounds(value):
    """Numeric award fields only; strings are not trusted as amounts."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)
