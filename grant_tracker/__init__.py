"""
Grant Tracker - UK grant ingestion and organisation match scoring.

Architecture:
- core/: Stable foundation (models, errors, HTTP client, normalizers)
- sources/: One adapter per external funding source
- ingest/: Batched, failure-isolated crawl orchestration
- store/: Upsert/dedup store contract and lifecycle policies
- matching/: Explainable match scoring, feedback, alerts, search pre-filter
- api/: HTTP trigger endpoints for the periodic scheduler
- config/: YAML-driven settings and source definitions
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
