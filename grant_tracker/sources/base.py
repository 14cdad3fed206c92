"""
Base class for source adapters.

An adapter turns one external funder site into a list of NormalizedGrant
records. Adapters do no writes; the orchestrator owns persistence.
"""

import json
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Callable, Iterable, Optional

import httpx
import structlog

from grant_tracker.core.errors import (
    CrawlError,
    EmptyResultError,
    ParseError,
    TransportError,
)
from grant_tracker.core.http_client import HttpClient
from grant_tracker.core.models import FunderType, NormalizedGrant

logger = structlog.get_logger(__name__)


DEFAULT_MAX_PAGES = 10


class SourceAdapter(ABC):
    """
    Abstract base class for source adapters.

    Subclasses implement fetch(); callers use collect(), which guarantees
    that every failure leaves the adapter as a CrawlError subclass.
    """

    source_id: str = ""
    funder_type: FunderType = FunderType.OTHER

    def __init__(
        self,
        source_id: Optional[str] = None,
        options: Optional[dict] = None,
        max_pages: int = DEFAULT_MAX_PAGES,
    ):
        """
        Initialize adapter.

        Args:
            source_id: Override the class-level source tag
            options: Source-specific options from sources.yml
            max_pages: Pagination cap per run
        """
        if source_id:
            self.source_id = source_id
        self.options = options or {}
        self.max_pages = max(1, max_pages)
        self.logger = logger.bind(adapter=self.get_adapter_name(), source=self.source_id)

    @abstractmethod
    async def fetch(self, http: HttpClient, today: date) -> list[NormalizedGrant]:
        """
        Fetch and normalise the source's current listings.

        Args:
            http: Shared HTTP client
            today: Reference date; deadlines before it are dropped

        Returns:
            Normalised grant records (may be empty)
        """
        pass

    async def collect(self, http: HttpClient, today: date) -> list[NormalizedGrant]:
        """
        Run fetch() and classify any fault into the crawl error taxonomy.

        Raises:
            TransportError: Timeout, non-2xx status, connection failure
            ParseError: Payload or selectors missing or malformed
            EmptyResultError: Fetch worked but produced zero records
        """
        try:
            grants = await self.fetch(http, today)
        except CrawlError as e:
            if e.source is None:
                e.source = self.source_id
            raise
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"{e.request.url} returned {e.response.status_code}", self.source_id
            ) from e
        except httpx.TimeoutException as e:
            raise TransportError(f"Timed out: {e}", self.source_id) from e
        except httpx.RequestError as e:
            raise TransportError(f"Request failed: {e}", self.source_id) from e
        except (json.JSONDecodeError, KeyError, IndexError, ValueError, TypeError, AttributeError) as e:
            raise ParseError(f"{type(e).__name__}: {e}", self.source_id) from e

        if not grants:
            raise EmptyResultError("No grants extracted", self.source_id)
        return grants

    def map_records(
        self,
        items: Iterable[Any],
        mapper: Callable[[Any], Optional[NormalizedGrant]],
    ) -> list[NormalizedGrant]:
        """
        Map raw items to grants, skipping items that fail to map.

        One malformed card does not sink the source, but if every item
        fails the structure has changed and a ParseError is raised.
        """
        items = list(items)
        grants: list[NormalizedGrant] = []
        failures = 0

        for item in items:
            try:
                grant = mapper(item)
            except (KeyError, IndexError, ValueError, TypeError, AttributeError) as e:
                failures += 1
                self.logger.warning("record_mapping_failed", error=str(e))
                continue
            if grant is not None:
                grants.append(grant)

        if items and failures == len(items):
            raise ParseError(f"All {failures} records failed to map", self.source_id)

        return grants

    def get_adapter_name(self) -> str:
        """Return human-readable adapter name."""
        return self.__class__.__name__
