"""GET /v1/health: Health check with real service probes."""

import logging
from fastapi import APIRouter, Request
from sqlalchemy import text

from flowrunner.api.schemas import HealthResponse
from flowrunner.version import __version__

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """Check health of the store, scheduler and background queue."""
    services: dict[str, bool] = {"api": True, "database": False, "scheduler": False, "queue": False}

    # Database
    try:
        async_session = request.app.state.async_session
        async with async_session() as session:
            await session.execute(text("SELECT 1"))
        services["database"] = True
    except Exception as exc:
        logger.warning("[health] DB check failed: %s", exc)

    scheduler = getattr(request.app.state, "scheduler", None)
    services["scheduler"] = bool(scheduler is not None and scheduler.running)

    dispatcher = getattr(request.app.state, "dispatcher", None)
    services["queue"] = bool(dispatcher is not None and dispatcher.background_available)

    # Scheduler and queue are optional deployments; only the store decides "ok".
    overall = "ok" if services["database"] else "degraded"
    return HealthResponse(status=overall, version=__version__, services=services)
