"""FastAPI application factory with lifespan management."""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flowrunner.config import config
from flowrunner.version import __version__

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    # ── Startup ──
    logger.info("FLOWRUNNER v%s starting...", __version__)

    # 1. Database
    from flowrunner.db.database import async_session, close_db, init_db
    await init_db()
    app.state.async_session = async_session

    # 2. Session-per-call repository, shared by concurrent runs
    from flowrunner.db.repository import SessionRepository
    repository = SessionRepository(async_session)
    app.state.repository = repository

    # 3. Outbound HTTP client for webhook steps
    import httpx
    http_client = httpx.AsyncClient(timeout=config.webhook_timeout_seconds)
    app.state.http_client = http_client

    # 4. Runner + matcher
    from flowrunner.callbacks import LoggingCallback
    from flowrunner.triggers import ResumeScheduler, TriggerMatcher
    from flowrunner.workflows.runner import build_runner

    callbacks = [LoggingCallback()] if config.audit_log_enabled else []
    runner = build_runner(repository, http_client, config, callbacks=callbacks)
    matcher = TriggerMatcher(repository, runner, config)
    app.state.runner = runner
    app.state.matcher = matcher

    # 5. Resume scheduler (in-process; use scheduler_runner for a dedicated process)
    scheduler = ResumeScheduler(runner, repository, config)
    if config.scheduler_enabled:
        await scheduler.start()
    app.state.scheduler = scheduler

    # 6. ARQ pool + EventDispatcher
    from flowrunner.workers.dispatcher import EventDispatcher
    arq_pool = None
    if config.queue_enabled:
        from arq import create_pool
        from arq.connections import RedisSettings
        try:
            arq_pool = await create_pool(RedisSettings.from_dsn(config.task_queue_url))
            logger.info("ARQ pool connected, background dispatch enabled")
        except Exception as exc:
            logger.warning("ARQ pool unavailable, background dispatch disabled: %s", exc)
    app.state.arq_pool = arq_pool
    app.state.dispatcher = EventDispatcher(matcher, arq_pool, config)

    logger.info("FLOWRUNNER v%s ready", __version__)

    yield

    # ── Shutdown ──
    logger.info("FLOWRUNNER shutting down...")
    await scheduler.stop()
    if arq_pool is not None:
        await arq_pool.aclose()
    await http_client.aclose()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="FLOWRUNNER",
        description="Event-triggered workflow execution for CRM automations.",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # Routes
    from flowrunner.api.routes import events, executions, health
    app.include_router(health.router, prefix="/v1")
    app.include_router(events.router, prefix="/v2")
    app.include_router(executions.router, prefix="/v2")

    return app


app = create_app()


def serve() -> None:
    """Run the API under uvicorn with host/port from config."""
    import uvicorn

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    uvicorn.run("flowrunner.api.main:app", host=config.host, port=config.port, reload=config.debug)
