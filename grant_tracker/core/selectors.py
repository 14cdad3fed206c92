"""
HTML selection helpers shared by source adapters.

Covers the ways funder sites expose grant data:
- Embedded structured payloads (Next.js __NEXT_DATA__)
- Labelled fields ("Closing date: 14 May 2026", <dt>/<dd>, table rows)
- Headed sections ("Open funds" vs "Recently closed")
"""

import json
import re
from typing import Optional

from bs4 import BeautifulSoup, Tag

import structlog

logger = structlog.get_logger(__name__)


MAIN_SELECTORS = [
    "main",
    "#main-content",
    "#content",
    ".content",
    ".page-content",
    "article",
]

HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]

_NEXT_DATA = re.compile(
    r'<script[^>]*id="__NEXT_DATA__"[^>]*>(.*?)</script>', re.DOTALL
)
_ANY_JSON_SCRIPT = re.compile(
    r'<script[^>]*type="application/json"[^>]*>(.*?)</script>', re.DOTALL
)


def extract_next_data(html: str) -> Optional[dict]:
    """
    Return the Next.js page payload embedded in the HTML.

    Falls back to the first application/json script. Returns None when no
    payload is present or it does not decode.
    """
    match = _NEXT_DATA.search(html) or _ANY_JSON_SCRIPT.search(html)
    if not match:
        return None
    try:
        return json.loads(match.group(1))
    except json.JSONDecodeError as e:
        logger.warning("next_data_decode_failed", error=str(e))
        return None


def get_main_container(soup: BeautifulSoup) -> BeautifulSoup:
    """
    Find the main content container in the page.

    Tries MAIN_SELECTORS in order, falls back to body/soup.
    """
    for selector in MAIN_SELECTORS:
        container = soup.select_one(selector)
        if container:
            return container
    return soup.body or soup


def cleanup_navigation(soup: BeautifulSoup) -> None:
    """Remove navigation, footer, scripts from soup in place."""
    for elem in soup.select("nav, footer, script:not([type]), style, header, aside, .cookie-banner"):
        elem.decompose()


def select_text(element: Tag, selector: Optional[str]) -> Optional[str]:
    """Text of the first match of selector inside element, or None."""
    if not selector:
        return None
    found = element.select_one(selector)
    if not found:
        return None
    text = found.get_text(" ", strip=True)
    return text or None


def select_href(element: Tag, selector: Optional[str]) -> Optional[str]:
    """href of the first link matching selector (or the element itself)."""
    if selector:
        link = element.select_one(selector)
    elif element.name == "a":
        link = element
    else:
        link = element.find("a", href=True)
    if not link or not link.get("href"):
        return None
    return link["href"]


def labelled_value(element: Tag, label: str) -> Optional[str]:
    """
    Find the value printed next to a label inside element.

    Handles:
    - <dt>Label</dt><dd>value</dd>
    - <th>Label</th><td>value</td>
    - <strong>Label:</strong> value
    - "Label: value" in running text
    """
    label_lower = label.lower().rstrip(":")

    for tag in element.find_all(["dt", "th", "strong", "b", "span", "h4", "h5", "p", "li"]):
        own_text = tag.get_text(" ", strip=True)
        own_lower = own_text.lower()
        if not own_lower.startswith(label_lower):
            continue
        # "Area" must not match "Areas we fund"
        if own_lower[len(label_lower):len(label_lower) + 1].isalnum():
            continue

        if tag.name in ("dt", "th"):
            sibling = tag.find_next_sibling(["dd", "td"])
            if sibling:
                return sibling.get_text(" ", strip=True) or None

        remainder = own_text[len(label_lower):].lstrip(" :").strip()
        if remainder:
            return remainder

        if tag.name in ("strong", "b", "span"):
            parent_text = tag.parent.get_text(" ", strip=True) if tag.parent else ""
            tail = parent_text[len(own_text):].lstrip(" :").strip()
            if tail:
                return tail

        sibling = tag.find_next_sibling()
        if sibling:
            return sibling.get_text(" ", strip=True) or None

    text = element.get_text(" ", strip=True)
    match = re.search(rf"\b{re.escape(label)}\b\s*:?\s*([^|\n]+)", text, re.IGNORECASE)
    if match:
        return match.group(1).strip() or None
    return None


def section_elements(soup: BeautifulSoup, heading_label: str) -> list[Tag]:
    """
    Elements between a heading containing heading_label and the next heading
    of the same or higher level.

    Used to keep "Open funds" cards apart from "Recently closed" cards that
    share the same markup.
    """
    label_lower = heading_label.lower()
    for heading in soup.find_all(HEADING_TAGS):
        if label_lower not in heading.get_text(" ", strip=True).lower():
            continue

        level = HEADING_TAGS.index(heading.name)
        elements: list[Tag] = []
        for sibling in heading.find_all_next():
            if sibling.name in HEADING_TAGS and HEADING_TAGS.index(sibling.name) <= level:
                break
            elements.append(sibling)
        return elements
    return []


def select_in_section(soup: BeautifulSoup, heading_label: str, selector: str) -> list[Tag]:
    """Elements matching selector that sit inside the headed section."""
    section_ids = {id(e) for e in section_elements(soup, heading_label)}
    return [e for e in soup.select(selector) if id(e) in section_ids]
