"""
Normalization utilities for UK grant data.

Handles:
- Sterling amounts and ranges (£5,000 to £10,000, up to £7.5k)
- UK date formats (14 May 2026 4:00pm UK time, 14/05/2026, ISO)
- Source-stable slugs and external identifiers
- Text and list cleanup
"""

import hashlib
import re
from datetime import date, datetime
from typing import Iterable, Optional
from urllib.parse import urlparse

import structlog

logger = structlog.get_logger(__name__)


MONTHS = {
    "jan": 1, "january": 1, "feb": 2, "february": 2, "mar": 3, "march": 3,
    "apr": 4, "april": 4, "may": 5, "jun": 6, "june": 6, "jul": 7, "july": 7,
    "aug": 8, "august": 8, "sep": 9, "sept": 9, "september": 9,
    "oct": 10, "october": 10, "nov": 11, "november": 11, "dec": 12, "december": 12,
}

_MAGNITUDES = {"k": 1_000, "thousand": 1_000, "m": 1_000_000, "million": 1_000_000}

_AMOUNT_PATTERN = re.compile(
    r"£\s*(\d[\d,]*(?:\.\d+)?)\s*(k|m|million|thousand)?\b",
    re.IGNORECASE,
)

# "14 May 2026", "14th May 2026", "Friday 14 May 2026 4:00pm"
_DAY_MONTH_YEAR = re.compile(
    r"\b(\d{1,2})(?:st|nd|rd|th)?\s+([A-Za-z]{3,9})\.?,?\s+(\d{4})\b"
)
# "May 14, 2026"
_MONTH_DAY_YEAR = re.compile(
    r"\b([A-Za-z]{3,9})\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})\b"
)
# "14/05/2026", "14.05.2026", "14-05-2026"
_NUMERIC_DMY = re.compile(r"\b(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{4})\b")
# "2026-05-14" with optional time suffix
_ISO_DATE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})")

SLUG_MAX_LENGTH = 80


def parse_amount(text: Optional[str]) -> Optional[int]:
    """
    Parse the first sterling amount in text.

    Examples:
        "£600,000" -> 600000
        "up to £7.5k" -> 7500
        "£1.5 million" -> 1500000
        "not specified" -> None
    """
    amounts = _find_amounts(text)
    return amounts[0] if amounts else None


def _find_amounts(text: Optional[str]) -> list[int]:
    if not text:
        return []

    amounts = []
    for match in _AMOUNT_PATTERN.finditer(text.replace("\u00a0", " ")):
        number_str = match.group(1).replace(",", "")
        magnitude = (match.group(2) or "").lower()
        try:
            value = float(number_str)
        except ValueError:
            continue
        amounts.append(int(round(value * _MAGNITUDES.get(magnitude, 1))))
    return amounts


def parse_currency_range(text: Optional[str]) -> tuple[Optional[int], Optional[int]]:
    """
    Extract a (min, max) pair of sterling amounts from free text.

    Uses the first two £-prefixed numbers; a single number is both min and
    max; no number gives (None, None). Ranges written largest-first are
    swapped so min <= max always holds.

    Examples:
        "£5,000 to £10,000" -> (5000, 10000)
        "£10,000" -> (10000, 10000)
        "" -> (None, None)
    """
    amounts = _find_amounts(text)
    if not amounts:
        return None, None

    low = amounts[0]
    high = amounts[1] if len(amounts) > 1 else low
    if low > high:
        low, high = high, low
    return low, high


def parse_uk_date(text: Optional[str]) -> Optional[date]:
    """
    Parse a UK-style date out of free text.

    Supported formats:
    - "14 May 2026 4:00pm UK time"
    - "Friday 14th May 2026"
    - "May 14, 2026"
    - "14/05/2026" (day first)
    - "2026-05-14" / "2026-05-14T16:00:00Z"

    Args:
        text: String containing a date

    Returns:
        date object or None if no valid date is found
    """
    if not text:
        return None

    text = str(text).strip()

    match = _ISO_DATE.search(text)
    if match:
        return _safe_date(text, int(match.group(1)), int(match.group(2)), int(match.group(3)))

    match = _DAY_MONTH_YEAR.search(text)
    if match and match.group(2).lower() in MONTHS:
        day, month_name, year = match.groups()
        return _safe_date(text, int(year), MONTHS[month_name.lower()], int(day))

    match = _MONTH_DAY_YEAR.search(text)
    if match and match.group(1).lower() in MONTHS:
        month_name, day, year = match.groups()
        return _safe_date(text, int(year), MONTHS[month_name.lower()], int(day))

    match = _NUMERIC_DMY.search(text)
    if match:
        day, month, year = match.groups()
        return _safe_date(text, int(year), int(month), int(day))

    return None


def _safe_date(text: str, year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError as e:
        logger.warning("invalid_date", text=text, error=str(e))
        return None


def parse_deadline(raw, today: date) -> Optional[date]:
    """
    Parse a closing date, treating past dates as absent.

    A date strictly before today means the source has rolled the listing
    forward or the page is stale, so it is not kept as a deadline.
    """
    if raw is None or raw == "":
        return None

    if isinstance(raw, datetime):
        parsed = raw.date()
    elif isinstance(raw, date):
        parsed = raw
    else:
        parsed = parse_uk_date(str(raw))

    if parsed is None or parsed < today:
        return None
    return parsed


def slugify(text: Optional[str]) -> str:
    """
    Build a filesystem-safe slug.

    Lowercase, runs of non-alphanumerics collapse to "-", trimmed to
    SLUG_MAX_LENGTH characters.
    """
    if not text:
        return ""
    slug = re.sub(r"[^a-z0-9]+", "-", str(text).lower()).strip("-")
    return slug[:SLUG_MAX_LENGTH].rstrip("-")


def slug_from_url(url: Optional[str]) -> str:
    """Slug of the last non-empty path segment of a detail-page URL."""
    if not url:
        return ""
    path = urlparse(url).path
    segments = [s for s in path.split("/") if s]
    if not segments:
        return ""
    return slugify(re.sub(r"\.(html?|aspx|php)$", "", segments[-1]))


def build_external_id(source: str, key) -> str:
    """
    Build the dedup key "{source}_{slug}" from a source-stable attribute.

    The key is a detail-page path, a source-native ID or a title. Keys that
    slugify to nothing fall back to a short SHA-256 of the raw key so the
    identifier stays deterministic.
    """
    raw = str(key if key is not None else "").strip()
    slug = slug_from_url(raw) if raw.startswith(("http://", "https://", "/")) else slugify(raw)
    if not slug:
        slug = hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]
    return f"{source}_{slug}"


def normalize_title(title: Optional[str]) -> str:
    """Collapse whitespace and strip."""
    if not title:
        return ""
    return re.sub(r"\s+", " ", str(title)).strip()


def cleanup_text(text: Optional[str]) -> str:
    """
    Clean up text extracted from HTML.

    - Decodes leftover entities
    - Collapses runs of spaces and blank lines
    """
    if not text:
        return ""

    cleaned = str(text).replace("\u00a0", " ")
    cleaned = re.sub(r"&nbsp;", " ", cleaned)
    cleaned = re.sub(r"&amp;", "&", cleaned)
    cleaned = re.sub(r"[ \t]+", " ", cleaned)
    cleaned = re.sub(r"\n\s*\n+", "\n\n", cleaned)
    return cleaned.strip()


def normalise_sectors(raw) -> list[str]:
    """Lowercase, trimmed, de-duplicated sector tags (order preserved)."""
    if isinstance(raw, str):
        items: Iterable = raw.split(",")
    elif isinstance(raw, (list, tuple, set)):
        items = raw
    else:
        return []
    return _unique(str(s).lower().strip() for s in items)


def normalise_list(raw) -> list[str]:
    """Trimmed, de-duplicated free-text clauses; strings split on newlines."""
    if isinstance(raw, str):
        items: Iterable = raw.split("\n")
    elif isinstance(raw, (list, tuple)):
        items = raw
    else:
        return []
    return _unique(normalize_title(s) for s in items)


def _unique(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


def format_currency(amount: Optional[int]) -> str:
    """
    Format a sterling amount for display.

    Examples:
        1_500_000 -> "£1.5m"
        750_000 -> "£750k"
        900 -> "£900"
    """
    if amount is None:
        return "Not specified"
    if amount >= 1_000_000:
        return f"£{amount / 1_000_000:.1f}m"
    if amount >= 1_000:
        return f"£{amount / 1_000:.0f}k"
    return f"£{amount:,}"


def format_range(amount_min: Optional[int], amount_max: Optional[int]) -> str:
    """Human-readable award range."""
    if not amount_min and not amount_max:
        return "Amount TBC"
    if not amount_min:
        return f"Up to {format_currency(amount_max)}"
    if not amount_max:
        return f"From {format_currency(amount_min)}"
    if amount_min == amount_max:
        return format_currency(amount_min)
    return f"{format_currency(amount_min)} to {format_currency(amount_max)}"
