"""
Error taxonomy.

Crawl errors are raised inside adapters and converted into CrawlOutcome
values at the adapter boundary; they never escape the orchestrator.
"""

from typing import Optional

from .models import CrawlErrorKind


class GrantTrackerError(Exception):
    """Base class for all grant tracker errors."""


class ConfigError(GrantTrackerError):
    """Invalid or missing configuration."""


class CrawlError(GrantTrackerError):
    """Failure of one source adapter."""

    kind: CrawlErrorKind = CrawlErrorKind.UNEXPECTED

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.source = source

    def __str__(self) -> str:
        if self.source:
            return f"[{self.source}] {self.message}"
        return self.message


class TransportError(CrawlError):
    """Timeout, non-2xx status, DNS or connection failure."""
    kind = CrawlErrorKind.TRANSPORT


class ParseError(CrawlError):
    """Expected structured payload or selectors absent or malformed."""
    kind = CrawlErrorKind.PARSE


class EmptyResultError(CrawlError):
    """Fetch succeeded but zero records were extracted."""
    kind = CrawlErrorKind.EMPTY


class StoreError(GrantTrackerError):
    """Write to the grant store failed."""


class OracleError(GrantTrackerError):
    """The ranking oracle failed or answered with something unusable."""
