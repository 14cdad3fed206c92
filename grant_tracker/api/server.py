"""
HTTP endpoints: scheduler triggers and community flagging.

Routes:
- GET /health
- GET /cron/crawl-grants?batch=N   run one ingestion batch (all when omitted)
- GET /cron/expire-grants          deactivate past-deadline, non-rolling grants
- GET /cron/crawl-logs?limit=N     recent per-source outcomes
- POST /grants/{id}/flag           community flag, body {"orgId": ...}

Every route except /health requires "Authorization: Bearer <cron_secret>" and
always answers JSON.
"""

import asyncio
import hmac
from datetime import date
from typing import Callable, Optional

import structlog
from aiohttp import web

from grant_tracker.config.loader import Settings
from grant_tracker.ingest.orchestrator import IngestionOrchestrator
from grant_tracker.sources.registry import batches
from grant_tracker.store.base import GrantStore
from grant_tracker.store.lifecycle import expire_grants, flag_grant

logger = structlog.get_logger(__name__)


SETTINGS_KEY = web.AppKey("settings", Settings)
STORE_KEY = web.AppKey("store", GrantStore)
ORCHESTRATOR_KEY = web.AppKey("orchestrator", IngestionOrchestrator)
TODAY_KEY = web.AppKey("today", Callable)


def is_authorized(request: web.Request) -> bool:
    """Constant-time bearer check; an unset secret rejects everything."""
    secret = request.app[SETTINGS_KEY].cron_secret
    if not secret:
        return False
    header = request.headers.get("Authorization", "")
    return hmac.compare_digest(header.encode(), f"Bearer {secret}".encode())


def unauthorized() -> web.Response:
    return web.json_response({"error": "Unauthorized"}, status=401)


async def handle_health(request: web.Request) -> web.Response:
    """Liveness probe."""
    return web.Response(text="OK", status=200)


async def handle_crawl(request: web.Request) -> web.Response:
    """Run one batch and return the per-source summary."""
    if not is_authorized(request):
        return unauthorized()

    orchestrator = request.app[ORCHESTRATOR_KEY]
    raw_batch = request.query.get("batch")
    batch: Optional[int] = None
    if raw_batch not in (None, ""):
        known = batches(orchestrator.entries)
        try:
            batch = int(raw_batch)
        except ValueError:
            batch = None
        if batch not in known:
            return web.json_response(
                {"error": f"Invalid batch {raw_batch!r}, expected one of {known}"},
                status=400,
            )

    summary = await orchestrator.run(batch=batch, today=request.app[TODAY_KEY]())
    return web.json_response(summary.to_dict())


async def handle_expire(request: web.Request) -> web.Response:
    """Deactivate grants whose deadline has passed."""
    if not is_authorized(request):
        return unauthorized()

    today = request.app[TODAY_KEY]()
    expired = await asyncio.to_thread(expire_grants, request.app[STORE_KEY], today)
    return web.json_response({
        "success": True,
        "expired": len(expired),
        "grants": [g.to_dict() for g in expired],
    })


async def handle_crawl_logs(request: web.Request) -> web.Response:
    """Most recent crawl outcomes, newest first."""
    if not is_authorized(request):
        return unauthorized()

    try:
        limit = max(1, min(500, int(request.query.get("limit", "50"))))
    except ValueError:
        return web.json_response({"error": "limit must be an integer"}, status=400)

    logs = await asyncio.to_thread(request.app[STORE_KEY].recent_crawl_logs, limit)
    return web.json_response({"logs": [entry.to_dict() for entry in logs]})


async def handle_flag(request: web.Request) -> web.Response:
    """Record a community flag; the grant is deactivated at the configured threshold."""
    if not is_authorized(request):
        return unauthorized()

    try:
        body = await request.json()
    except ValueError:
        return web.json_response({"error": "Body must be JSON"}, status=400)
    org_id = body.get("orgId") if isinstance(body, dict) else None
    if not org_id or not isinstance(org_id, str):
        return web.json_response({"error": "orgId is required"}, status=400)

    store = request.app[STORE_KEY]
    grant_id = request.match_info["grant_id"]
    if await asyncio.to_thread(store.get_grant, grant_id) is None:
        return web.json_response({"error": f"Unknown grant {grant_id!r}"}, status=404)

    result = await asyncio.to_thread(
        flag_grant,
        store,
        grant_id,
        org_id,
        threshold=request.app[SETTINGS_KEY].flag_threshold,
    )
    return web.json_response({"success": True, **result.to_dict()})


def create_app(
    settings: Settings,
    store: GrantStore,
    orchestrator: IngestionOrchestrator,
    today: Callable[[], date] = date.today,
) -> web.Application:
    """Build the aiohttp application."""
    app = web.Application()
    app[SETTINGS_KEY] = settings
    app[STORE_KEY] = store
    app[ORCHESTRATOR_KEY] = orchestrator
    app[TODAY_KEY] = today

    app.router.add_get("/health", handle_health)
    app.router.add_get("/cron/crawl-grants", handle_crawl)
    app.router.add_get("/cron/expire-grants", handle_expire)
    app.router.add_get("/cron/crawl-logs", handle_crawl_logs)
    app.router.add_post("/grants/{grant_id}/flag", handle_flag)
    return app


async def run_server(settings: Settings, store: GrantStore, orchestrator: IngestionOrchestrator) -> None:
    """Serve until cancelled."""
    if not settings.cron_secret:
        logger.warning("cron_secret_not_set", hint="every /cron request will be rejected")

    app = create_app(settings, store, orchestrator)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, settings.host, settings.port)
    await site.start()

    logger.info("server_started", host=settings.host, port=settings.port)

    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()
