"""
Adapter registry and batch selection.

Adapter classes self-register by name with @register_source; sources.yml
entries refer to those names and carry the batch each source runs in.
"""

from typing import Iterable, Optional

import structlog

from grant_tracker.config.loader import Settings, SourceEntry
from grant_tracker.core.errors import ConfigError
from .base import SourceAdapter

logger = structlog.get_logger(__name__)


class SourceRegistry:
    """Registry mapping adapter names to SourceAdapter classes."""

    def __init__(self):
        self._adapters: dict[str, type[SourceAdapter]] = {}

    def register(self, name: str, adapter_class: type[SourceAdapter]) -> None:
        """
        Register an adapter class under a name.

        Raises:
            TypeError: If the class is not a SourceAdapter
            ValueError: If the name is already taken by another class
        """
        if not (isinstance(adapter_class, type) and issubclass(adapter_class, SourceAdapter)):
            raise TypeError(f"Adapter must inherit from SourceAdapter, got {adapter_class!r}")
        existing = self._adapters.get(name)
        if existing is not None and existing is not adapter_class:
            raise ValueError(f"Adapter name already registered: {name}")
        self._adapters[name] = adapter_class
        logger.debug("adapter_registered", name=name, adapter=adapter_class.__name__)

    def get(self, name: str) -> type[SourceAdapter]:
        try:
            return self._adapters[name]
        except KeyError:
            raise ConfigError(f"Unknown adapter: {name}") from None

    def list_adapters(self) -> list[str]:
        return sorted(self._adapters)

    def build(self, entry: SourceEntry, settings: Settings) -> SourceAdapter:
        """
        Instantiate the adapter for one sources.yml entry.

        Raises:
            ConfigError: Unknown adapter name or invalid options
        """
        adapter_class = self.get(entry.adapter)
        return adapter_class(
            source_id=entry.source_id,
            options=entry.options,
            max_pages=settings.max_pages,
        )

    def selected_entries(
        self,
        entries: Iterable[SourceEntry],
        batch: Optional[int] = None,
        source_ids: Optional[Iterable[str]] = None,
    ) -> list[SourceEntry]:
        """
        Entries taking part in one run, in source-table order.

        Args:
            entries: Source table
            batch: Only sources assigned to this batch (None = every batch)
            source_ids: Only these sources (None = all)
        """
        wanted = set(source_ids) if source_ids else None
        selected = [
            entry for entry in entries
            if entry.enabled
            and (batch is None or entry.batch == batch)
            and (wanted is None or entry.source_id in wanted)
        ]

        if wanted:
            missing = wanted - {e.source_id for e in selected}
            if missing:
                logger.warning("sources_not_selected", sources=sorted(missing), batch=batch)

        return selected


REGISTRY = SourceRegistry()


def register_source(name: str):
    """Class decorator registering an adapter in the global registry."""
    def decorator(cls: type[SourceAdapter]) -> type[SourceAdapter]:
        REGISTRY.register(name, cls)
        return cls
    return decorator


def batches(entries: Iterable[SourceEntry]) -> list[int]:
    """Distinct batch numbers that have at least one enabled source."""
    return sorted({e.batch for e in entries if e.enabled})
