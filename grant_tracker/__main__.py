"""
CLI entry point for grant-tracker.

Usage:
    python -m grant_tracker --mode crawl --batch 1
    python -m grant_tracker --mode crawl --sources gov_uk,ukri
    python -m grant_tracker --mode expire
    python -m grant_tracker --mode serve
    python -m grant_tracker --mode sources
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from pathlib import Path

import structlog

from . import __version__

# Log level mapping
LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def setup_logging(level: str = "INFO", json_output: bool = False):
    """Configure structured logging."""
    log_level = LOG_LEVELS.get(level.upper(), logging.INFO)

    if json_output:
        renderer = structlog.processors.JSONRenderer()
        timestamper = structlog.processors.TimeStamper(fmt="iso")
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
        timestamper = structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S")

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            timestamper,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="UK grant ingestion and matching",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Crawl every enabled source
  python -m grant_tracker --mode crawl

  # Crawl one batch and save the summary
  python -m grant_tracker --mode crawl --batch 2 --output summary.json

  # Expire grants whose deadline has passed
  python -m grant_tracker --mode expire

  # Serve the scheduler trigger endpoints
  python -m grant_tracker --mode serve
        """,
    )

    parser.add_argument(
        "--mode",
        choices=["crawl", "expire", "serve", "sources"],
        default="crawl",
        help="What to run (default: crawl)",
    )

    parser.add_argument(
        "--batch",
        type=int,
        help="Batch number from sources.yml (default: all batches)",
    )

    parser.add_argument(
        "--sources",
        type=str,
        help="Comma-separated list of source_ids to crawl (default: all in batch)",
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Directory holding settings.yml and sources.yml (default: packaged config)",
    )

    parser.add_argument(
        "--db",
        type=str,
        help="Database path, overrides settings (use 'memory' for a dry run)",
    )

    parser.add_argument(
        "--output",
        type=str,
        help="Write the run summary JSON to this file",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON (for production)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"grant-tracker {__version__}",
    )

    return parser.parse_args(argv)


def write_output(path: str, payload: dict) -> None:
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")


async def main_async(args) -> int:
    """Async main function; returns the process exit code."""
    from .config.loader import ConfigLoader
    from .ingest.orchestrator import IngestionOrchestrator
    from .sources.registry import batches
    from .store import expire_grants, open_store
    from .api.server import run_server

    logger = structlog.get_logger(__name__)

    loader = ConfigLoader(args.config)
    settings = loader.load_settings()
    entries = loader.load_sources()

    if args.mode == "sources":
        for entry in entries:
            state = "enabled" if entry.enabled else "disabled"
            print(f"{entry.batch}\t{entry.source_id}\t{entry.adapter}\t{state}")
        print(f"batches: {batches(entries)}")
        return 0

    store = open_store(args.db or settings.database_path)
    try:
        if args.mode == "expire":
            expired = await asyncio.to_thread(expire_grants, store, date.today())
            payload = {"success": True, "expired": len(expired), "grants": [g.to_dict() for g in expired]}
            if args.output:
                write_output(args.output, payload)
            return 0

        orchestrator = IngestionOrchestrator(settings, store, entries)

        if args.mode == "serve":
            await run_server(settings, store, orchestrator)
            return 0

        if args.batch is not None and args.batch not in batches(entries):
            logger.error("unknown_batch", batch=args.batch, batches=batches(entries))
            return 2

        source_ids = [s.strip() for s in args.sources.split(",")] if args.sources else None
        summary = await orchestrator.run(batch=args.batch, source_ids=source_ids)

        if args.output:
            write_output(args.output, summary.to_dict())
            logger.info("summary_written", path=args.output)

        return 0 if not summary.outcomes or len(summary.failed_sources) < len(summary.outcomes) else 1
    finally:
        store.close()


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(args.log_level, args.json_logs)

    logger = structlog.get_logger(__name__)
    logger.info("starting_grant_tracker", mode=args.mode, batch=args.batch, sources=args.sources)

    try:
        exit_code = asyncio.run(main_async(args))
    except KeyboardInterrupt:
        logger.info("interrupted")
        exit_code = 130

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
