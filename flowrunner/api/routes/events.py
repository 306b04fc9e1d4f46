"""POST /v2/events: inbound application events."""

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from flowrunner.api.schemas import (
    DispatchResponse, ErrorResponse, EventRequest, JobStatusResponse, QueuedDispatchResponse,
)
from flowrunner.exceptions import InfrastructureError

logger = logging.getLogger(__name__)
router = APIRouter(tags=["events"])


def _get_dispatcher(request: Request):
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="Dispatcher not initialised")
    return dispatcher


@router.post(
    "/events",
    response_model=DispatchResponse,
    responses={
        202: {"model": QueuedDispatchResponse},
        500: {"model": ErrorResponse},
    },
)
async def dispatch_event(body: EventRequest, request: Request, background: bool = False):
    """Run every active workflow whose trigger_type matches ``event_type``.

    With ``?background=true`` the dispatch is queued and a job id returned.
    """
    dispatcher = _get_dispatcher(request)

    if background:
        if not dispatcher.background_available:
            raise HTTPException(status_code=503, detail="Background queue unavailable")
        queued = await dispatcher.enqueue(body.event_type, body.event_data)
        return JSONResponse(
            status_code=202,
            content=QueuedDispatchResponse(job_id=queued["job_id"]).model_dump(),
        )

    try:
        result = await dispatcher.dispatch(body.event_type, body.event_data)
    except InfrastructureError as exc:
        return JSONResponse(status_code=500, content=ErrorResponse(error=str(exc)).model_dump())

    logger.info(
        "[events] %s → %d workflow(s), %d succeeded",
        body.event_type, result.workflows_triggered, sum(1 for r in result.results if r.success),
    )
    return result.model_dump(mode="json")


@router.get("/events/jobs/{job_id}", response_model=JobStatusResponse)
async def get_dispatch_job(job_id: str, request: Request):
    """Status of a background dispatch."""
    dispatcher = _get_dispatcher(request)
    if not dispatcher.background_available:
        raise HTTPException(status_code=503, detail="Background queue unavailable")
    return await dispatcher.get_job_status(job_id)
