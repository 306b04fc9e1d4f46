"""ARQ task functions and WorkerSettings for FLOWRUNNER background workers."""

from __future__ import annotations

import logging
import time
from typing import Any

from arq.connections import RedisSettings

from flowrunner.config import config as _config
from flowrunner.exceptions import InfrastructureError

logger = logging.getLogger(__name__)


# ── Task functions ────────────────────────────────────────────────────────────

async def dispatch_event_task(
    ctx: dict,
    event_type: str,
    event_data: dict[str, Any],
) -> dict:
    """Dispatch an event in the background and return the aggregate result."""
    matcher = ctx["matcher"]

    started = time.monotonic()
    try:
        result = await matcher.dispatch(event_type, event_data)
    except InfrastructureError as exc:
        logger.error("dispatch_event_task could not reach the store for event_type=%s: %s", event_type, exc)
        return {"success": False, "error": str(exc)}

    payload = result.model_dump(mode="json")
    payload["duration_ms"] = int((time.monotonic() - started) * 1000)
    return payload


# ── Worker lifecycle ──────────────────────────────────────────────────────────

async def startup(ctx: dict) -> None:
    """Initialize FLOWRUNNER components for the worker process."""
    import httpx

    from flowrunner.callbacks import LoggingCallback
    from flowrunner.db.database import async_session, init_db
    from flowrunner.db.repository import SessionRepository
    from flowrunner.triggers.matcher import TriggerMatcher
    from flowrunner.workflows.runner import build_runner

    logger.info("FLOWRUNNER worker starting up...")
    await init_db()

    # Each call opens its own session; runs in one dispatch are concurrent.
    repository = SessionRepository(async_session)
    http_client = httpx.AsyncClient(timeout=_config.webhook_timeout_seconds)
    callbacks = [LoggingCallback()] if _config.audit_log_enabled else []
    runner = build_runner(repository, http_client, _config, callbacks=callbacks)

    ctx["repository"] = repository
    ctx["http_client"] = http_client
    ctx["runner"] = runner
    ctx["matcher"] = TriggerMatcher(repository, runner, _config)
    logger.info("FLOWRUNNER worker startup complete")


async def shutdown(ctx: dict) -> None:
    """Clean up worker resources."""
    logger.info("FLOWRUNNER worker shutting down...")
    http_client = ctx.get("http_client")
    if http_client is not None:
        await http_client.aclose()

    from flowrunner.db.database import close_db
    await close_db()


# ── WorkerSettings ────────────────────────────────────────────────────────────

class WorkerSettings:
    functions = [dispatch_event_task]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(_config.task_queue_url)
    max_jobs = _config.worker_concurrency
    job_timeout = 3600
    max_tries = 1       # dispatches are never retried
    keep_result = 86400
