"""ExecutionRecorder: the only writer of WorkflowExecution rows during a run."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from flowrunner.types import (
    ACTIVE_STATUSES, SUSPENDED_STATUSES, TERMINAL_STATUSES, ExecutionStatus, WorkflowExecution,
)

logger = logging.getLogger(__name__)


class ExecutionRecorder:
    """Opens, suspends, re-claims and finalizes execution records.

    Terminal writes are guarded on the row still being active, so a run's
    terminal status is written exactly once even if a cancel races a finish.
    """

    def __init__(self, repository) -> None:
        self._repository = repository

    async def create(self, workflow_id: str, trigger_data: dict[str, Any]) -> str:
        """Insert a ``running`` execution with empty logs and return its id."""
        execution = await self._repository.create_execution(workflow_id, trigger_data)
        return execution.id

    async def get(self, execution_id: str) -> Optional[WorkflowExecution]:
        return await self._repository.get_execution(execution_id)

    async def finalize(
        self,
        execution_id: str,
        status: ExecutionStatus,
        logs: list[str],
        completed_at: Optional[datetime] = None,
        only_from: Optional[set] = None,
        **fields: Any,
    ) -> bool:
        """Single terminal write. Returns False if the row was already terminal.

        ``only_from`` narrows which current statuses may be overwritten
        (defaults to any non-terminal status).
        """
        status = ExecutionStatus(status)
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"finalize() needs a terminal status, got {status}")
        updates = {
            "status": status,
            "logs": list(logs),
            "completed_at": completed_at or datetime.now(timezone.utc),
            "resume_at": None,
            **fields,
        }
        written = await self._repository.update_execution(
            execution_id, updates, expected_statuses=only_from or ACTIVE_STATUSES,
        )
        if not written:
            logger.warning("Execution %s already terminal; %s not recorded", execution_id, status.value)
        return written

    async def suspend(
        self,
        execution_id: str,
        status: ExecutionStatus,
        logs: list[str],
        variables: dict[str, Any],
        step_cursor: Optional[int],
        resume_at: Optional[datetime] = None,
        approval: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Persist a continuation so the run can be re-entered later."""
        status = ExecutionStatus(status)
        if status not in SUSPENDED_STATUSES:
            raise ValueError(f"suspend() needs a waiting status, got {status}")
        updates = {
            "status": status,
            "logs": list(logs),
            "variables": dict(variables),
            "step_cursor": step_cursor,
            "resume_at": resume_at,
            "approval": approval,
        }
        return await self._repository.update_execution(
            execution_id, updates, expected_statuses={ExecutionStatus.RUNNING},
        )

    async def claim(self, execution_id: str, from_status: ExecutionStatus) -> Optional[WorkflowExecution]:
        """Compare-and-set a suspended run back to ``running``.

        Returns the execution when this caller won the claim, None otherwise.
        """
        won = await self._repository.update_execution(
            execution_id,
            {"status": ExecutionStatus.RUNNING, "resume_at": None},
            expected_statuses={from_status},
        )
        if not won:
            return None
        try:
            return await self._repository.get_execution(execution_id)
        except Exception as exc:
            # a won claim never leaves the row running
            logger.error("Execution %s claimed but could not be reloaded: %s", execution_id, exc)
            await self._repository.update_execution(
                execution_id,
                {
                    "status": ExecutionStatus.FAILED,
                    "error": f"Failed to reload execution: {exc}",
                    "completed_at": datetime.now(timezone.utc),
                },
                expected_statuses={ExecutionStatus.RUNNING},
            )
            raise

    async def request_cancel(self, execution_id: str) -> bool:
        return await self._repository.update_execution(
            execution_id, {"cancel_requested": True}, expected_statuses={ExecutionStatus.RUNNING},
        )

    async def cancel_requested(self, execution_id: str) -> bool:
        execution = await self._repository.get_execution(execution_id)
        return bool(execution and execution.cancel_requested)
