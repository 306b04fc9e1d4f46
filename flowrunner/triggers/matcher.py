"""TriggerMatcher: entry point that fans an event out to matching workflows."""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any

from flowrunner.exceptions import InfrastructureError
from flowrunner.types import DispatchResult, Workflow, WorkflowRunResult

logger = logging.getLogger(__name__)


class TriggerMatcher:
    """Selects active workflows by ``trigger_type`` and runs each one independently.

    Matched workflows run concurrently, bounded by ``max_concurrent_workflows``.
    Steps inside a workflow stay sequential; that is the runner's concern.
    """

    def __init__(self, repository, runner, config) -> None:
        self._repository = repository
        self._runner = runner
        self._config = config
        self._semaphore = asyncio.Semaphore(max(1, config.max_concurrent_workflows))

    async def dispatch(self, event_type: str, event_data: dict[str, Any] | None = None) -> DispatchResult:
        """Run every active workflow whose trigger_type equals *event_type*.

        Raises InfrastructureError if the workflow store cannot be queried; no
        execution records exist in that case.
        """
        event_data = event_data or {}
        try:
            workflows = await self._repository.list_active_workflows(event_type)
        except Exception as exc:
            logger.error("Workflow store unavailable for event_type=%s: %s", event_type, exc)
            raise InfrastructureError(
                f"Workflow store unavailable: {exc}", details={"event_type": event_type},
            ) from exc

        logger.info("Event %s matched %d workflow(s)", event_type, len(workflows))
        results = await asyncio.gather(*(self._run_one(wf, event_data) for wf in workflows))
        return DispatchResult(
            event_type=event_type,
            workflows_triggered=len(results),
            results=list(results),
        )

    async def _run_one(self, workflow: Workflow, event_data: dict[str, Any]) -> WorkflowRunResult:
        async with self._semaphore:
            try:
                # Each run gets its own snapshot of the payload.
                return await self._runner.run(workflow, copy.deepcopy(event_data))
            except Exception as exc:
                logger.exception("Workflow %s (%s) crashed", workflow.id, workflow.name)
                return WorkflowRunResult(
                    workflow_id=workflow.id,
                    workflow_name=workflow.name,
                    success=False,
                    error=str(exc),
                )
