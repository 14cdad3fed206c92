"""Ingestion pipeline."""

from .orchestrator import CrawlSummary, IngestionOrchestrator

__all__ = ["CrawlSummary", "IngestionOrchestrator"]
