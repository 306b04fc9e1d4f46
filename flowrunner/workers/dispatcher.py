"""EventDispatcher: routes an event dispatch inline or to the background queue."""

from __future__ import annotations

import logging
from typing import Any

from arq.jobs import Job

from flowrunner.types import DispatchResult

logger = logging.getLogger(__name__)


class EventDispatcher:
    """Runs ``TriggerMatcher.dispatch`` in-process, or enqueues it on ARQ."""

    def __init__(self, matcher, redis_pool, config) -> None:
        self._matcher = matcher
        self._redis = redis_pool
        self._config = config

    @property
    def background_available(self) -> bool:
        return self._redis is not None

    # ── Public API ────────────────────────────────────────────────────────────

    async def dispatch(self, event_type: str, event_data: dict[str, Any] | None = None) -> DispatchResult:
        """Inline dispatch; raises InfrastructureError like the matcher does."""
        return await self._matcher.dispatch(event_type, event_data or {})

    async def enqueue(self, event_type: str, event_data: dict[str, Any] | None = None) -> dict:
        """Enqueue the dispatch in ARQ and return job metadata."""
        if self._redis is None:
            raise RuntimeError("Background queue is not configured")
        job = await self._redis.enqueue_job("dispatch_event_task", event_type, event_data or {})
        job_id = job.job_id if job else None
        logger.info("Enqueued event_type=%s job_id=%s", event_type, job_id)
        return {"job_id": job_id, "status": "queued", "mode": "background"}

    async def get_job_status(self, job_id: str) -> dict:
        """Status of a queued dispatch: {job_id, status, result, error}.

        ``result`` is the serialised DispatchResult once the job is complete.
        """
        info = {"job_id": job_id, "status": "not_found", "result": None, "error": None}
        try:
            job = Job(job_id, redis=self._redis)
            status = await job.status()
        except Exception as exc:
            logger.warning("Job lookup failed for job_id=%s: %s", job_id, exc)
            info["error"] = str(exc)
            return info

        info["status"] = getattr(status, "value", str(status))
        if info["status"] == "complete":
            try:
                info["result"] = await job.result(timeout=0)
            except Exception as exc:
                # the dispatch task itself raised
                info["error"] = str(exc)
        return info
