"""
Table-driven HTML listing adapter.

Most funder sites are a page of programme cards. Rather than one module
per site, each is described in sources.yml by a selector/label table:

    options:
      listing_url: https://example.org/grants
      item_selector: .grant-card
      title_selector: h3
      labels:
        amount: Grant size
        deadline: Closing date
      open_section: Open programmes
      funder: Example Community Foundation
      funder_type: trust_foundation
      is_local: true
      region: Greater Manchester
"""

import asyncio
import re
from dataclasses import dataclass, field, fields, replace
from datetime import date
from typing import Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from grant_tracker.core.errors import ConfigError, ParseError
from grant_tracker.core.http_client import HttpClient
from grant_tracker.core.models import FunderType, NormalizedGrant
from grant_tracker.core.normalizer import (
    build_external_id,
    cleanup_text,
    normalise_sectors,
    normalize_title,
    parse_currency_range,
    parse_deadline,
)
from grant_tracker.core.selectors import (
    HEADING_TAGS,
    cleanup_navigation,
    get_main_container,
    labelled_value,
    select_href,
    select_in_section,
    select_text,
)
from .base import SourceAdapter
from .registry import register_source


ROLLING_MARKERS = ["rolling", "ongoing", "open all year", "no deadline", "no closing date"]
CLOSED_MARKERS = ["closed for applications", "now closed", "currently closed", "fund closed"]
UK_WIDE_AREAS = {"uk", "uk-wide", "united kingdom", "all of united kingdom", "uk wide"}


@dataclass
class ListingSpec:
    """Selector/label table describing one listing site."""

    listing_url: str
    item_selector: str
    funder: str

    funder_type: FunderType = FunderType.OTHER
    title_selector: str = "h2, h3, h4"
    link_selector: Optional[str] = None
    summary_selector: Optional[str] = "p"

    # field name -> label printed on the card (amount, deadline, eligibility, sectors, area)
    labels: dict = field(default_factory=dict)

    open_section: Optional[str] = None  # Heading that encloses the open programmes
    page_param: Optional[str] = None  # Query parameter for pagination

    is_local: bool = False
    region: Optional[str] = None
    rolling_default: bool = False  # No deadline on an open card means rolling
    sectors: list = field(default_factory=list)

    follow_detail: bool = False  # Read missing amount/deadline from the detail page
    detail_selector: Optional[str] = None
    max_details: int = 25

    @classmethod
    def from_options(cls, options: dict) -> "ListingSpec":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in options.items() if k in known}
        for required in ("listing_url", "item_selector", "funder"):
            if not values.get(required):
                raise ConfigError(f"Listing option missing: {required}")
        values["funder_type"] = FunderType.coerce(values.get("funder_type"))
        values["labels"] = dict(values.get("labels") or {})
        values["sectors"] = list(values.get("sectors") or [])
        return cls(**values)


@register_source("listing")
class ListingSourceAdapter(SourceAdapter):
    """Cards on a listing page, optionally paginated and section-scoped."""

    # Subclasses describing a fixed site put their table here
    defaults: dict = {}

    def __init__(self, source_id=None, options=None, max_pages=10):
        super().__init__(source_id=source_id, options=options, max_pages=max_pages)
        self.spec = ListingSpec.from_options({**self.defaults, **self.options})
        self.funder_type = self.spec.funder_type

    async def fetch(self, http: HttpClient, today: date) -> list[NormalizedGrant]:
        spec = self.spec
        grants: list[NormalizedGrant] = []
        seen: set[str] = set()
        seen_pages: set[tuple[str, ...]] = set()

        page_count = self.max_pages if spec.page_param else 1
        for page in range(1, page_count + 1):
            params = {spec.page_param: page} if spec.page_param else None
            html = await http.get_text(spec.listing_url, params=params)
            cards = self.find_cards(html, page)
            if not cards:
                break

            # Sites that ignore the page parameter serve the same cards again
            page_key = tuple(card.get_text(" ", strip=True) for card in cards)
            if page_key in seen_pages:
                break
            seen_pages.add(page_key)

            new = []
            for grant in self.map_records(cards, lambda card: self.parse_card(card, today)):
                if grant.external_id in seen:
                    continue
                seen.add(grant.external_id)
                new.append(grant)
            grants.extend(new)

            self.logger.debug("listing_page_parsed", page=page, cards=len(cards), grants=len(new))

        if spec.follow_detail:
            grants = await self.enrich_from_details(http, grants, today)

        return grants

    def find_cards(self, html: str, page: int = 1) -> list[Tag]:
        """Cards on one listing page, limited to the open section when configured."""
        soup = BeautifulSoup(html, "lxml")
        spec = self.spec

        if not spec.open_section:
            return soup.select(spec.item_selector)

        has_heading = any(
            spec.open_section.lower() in h.get_text(" ", strip=True).lower()
            for h in soup.find_all(HEADING_TAGS)
        )
        if not has_heading:
            if page > 1:
                return []
            raise ParseError(f"Section not found: {spec.open_section!r}", self.source_id)
        return select_in_section(soup, spec.open_section, spec.item_selector)

    def parse_card(self, card: Tag, today: date) -> Optional[NormalizedGrant]:
        """Map one card to a grant; None for cards marked closed."""
        spec = self.spec
        labels = spec.labels

        title = normalize_title(select_text(card, spec.title_selector))
        if not title:
            raise ValueError("card has no title")

        card_text = card.get_text(" ", strip=True)
        if any(marker in card_text.lower() for marker in CLOSED_MARKERS):
            self.logger.debug("closed_card_skipped", title=title)
            return None

        href = select_href(card, spec.link_selector)
        apply_url = urljoin(spec.listing_url, href) if href else None

        summary = cleanup_text(select_text(card, spec.summary_selector))
        if summary == title:
            summary = ""

        amount_text = _label(card, labels.get("amount")) or summary
        amount_min, amount_max = parse_currency_range(amount_text)

        deadline_text = _label(card, labels.get("deadline"))
        is_rolling, deadline = self.resolve_deadline(deadline_text, today)

        eligibility = []
        eligibility_text = _label(card, labels.get("eligibility"))
        if eligibility_text:
            eligibility.append(eligibility_text)

        is_local = spec.is_local
        area = _label(card, labels.get("area"))
        if area and area.strip().lower() not in UK_WIDE_AREAS:
            is_local = True
            eligibility.append(f"Area: {area}")
        if spec.region:
            eligibility.append(f"Area of benefit: {spec.region}")

        sectors = normalise_sectors(
            list(spec.sectors) + normalise_sectors(_label(card, labels.get("sectors")) or "")
        )

        return NormalizedGrant(
            external_id=build_external_id(self.source_id, apply_url or title),
            source=self.source_id,
            title=title,
            funder=spec.funder,
            funder_type=spec.funder_type,
            description=summary,
            amount_min=amount_min,
            amount_max=amount_max,
            deadline=deadline,
            is_rolling=is_rolling,
            is_local=is_local,
            sectors=sectors,
            eligibility_criteria=eligibility,
            apply_url=apply_url,
            raw_source_payload={
                "title": title,
                "url": apply_url,
                "text": card_text,
                "deadline_text": deadline_text,
                "amount_text": amount_text,
            },
        )

    def resolve_deadline(self, deadline_text: Optional[str], today: date) -> tuple[bool, Optional[date]]:
        """
        (is_rolling, deadline) for a card.

        Rolling wording wins over any date; otherwise a card with no
        deadline text is rolling only when the source says open cards are.
        """
        if deadline_text and any(m in deadline_text.lower() for m in ROLLING_MARKERS):
            return True, None
        if not deadline_text:
            return self.spec.rolling_default, None
        return False, parse_deadline(deadline_text, today)

    async def enrich_from_details(
        self, http: HttpClient, grants: list[NormalizedGrant], today: date
    ) -> list[NormalizedGrant]:
        """Fill missing amounts and deadlines from detail pages (best-effort)."""
        targets = [
            g for g in grants
            if g.apply_url and not g.is_rolling and (g.deadline is None or g.amount_max is None)
        ][: self.spec.max_details]
        if not targets:
            return grants

        pages = await asyncio.gather(
            *(http.get_text(g.apply_url) for g in targets), return_exceptions=True
        )

        enriched = {}
        for grant, html in zip(targets, pages):
            if isinstance(html, BaseException):
                self.logger.warning("detail_fetch_failed", url=grant.apply_url, error=str(html))
                continue
            enriched[grant.external_id] = self.apply_detail(grant, html, today)

        return [enriched.get(g.external_id, g) for g in grants]

    def apply_detail(self, grant: NormalizedGrant, html: str, today: date) -> NormalizedGrant:
        soup = BeautifulSoup(html, "lxml")
        cleanup_navigation(soup)
        container = soup.select_one(self.spec.detail_selector) if self.spec.detail_selector else None
        container = container or get_main_container(soup)
        labels = self.spec.labels

        updates = {}
        if grant.deadline is None:
            deadline_text = _label(container, labels.get("deadline"))
            is_rolling, deadline = self.resolve_deadline(deadline_text, today)
            if deadline or is_rolling:
                updates.update(deadline=deadline, is_rolling=is_rolling)
        if grant.amount_max is None:
            amount_min, amount_max = parse_currency_range(_label(container, labels.get("amount")))
            if amount_max is not None:
                updates.update(amount_min=amount_min, amount_max=amount_max)
        if not grant.description:
            paragraph = container.find("p")
            if paragraph:
                updates["description"] = cleanup_text(paragraph.get_text(" ", strip=True))

        return replace(grant, **updates) if updates else grant


def _label(element: Tag, label: Optional[str]) -> Optional[str]:
    if not label:
        return None
    value = labelled_value(element, label)
    if value:
        value = re.sub(r"\s+", " ", value).strip()
    return value or None
