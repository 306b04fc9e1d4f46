"""StepExecutor: runs a workflow's loaded steps strictly in order.

Each run owns one ``ExecutionLog``.  The executor appends one line per handler
return, merges returned variables into the context on success, and stops at
the first failure, raised exception, or suspension request.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Sequence

from flowrunner.callbacks.base import fire_callbacks
from flowrunner.types import (
    ExecutionContext, ExecutionOutcome, ExecutionStatus, LoadedStep, StepOutcome,
)
from flowrunner.workflows.steps import StepServices, get_step_registration

logger = logging.getLogger(__name__)

# Checked before every step; returns (terminal status, reason) to halt the run.
HaltCheck = Callable[[], Awaitable[Optional[tuple[ExecutionStatus, str]]]]


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ExecutionLog:
    """Append-only, timestamped log lines for one run."""

    def __init__(self, lines: Optional[Sequence[str]] = None) -> None:
        self._lines: list[str] = list(lines or [])

    def record(self, sort_order: int, step_type: str, message: str) -> None:
        self._lines.append(f"[{_timestamp()}] Step {sort_order} ({step_type}): {message}")

    def record_error(self, sort_order: int, message: str) -> None:
        self._lines.append(f"[{_timestamp()}] Step {sort_order} ERROR: {message}")

    def note(self, message: str) -> None:
        """Run-level line not tied to a step (resume, approval decision, cancel)."""
        self._lines.append(f"[{_timestamp()}] {message}")

    @property
    def lines(self) -> list[str]:
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)


class StepExecutor:
    """Dispatches steps to registered handlers by ``step_type``."""

    def __init__(self, services: StepServices, callbacks: Optional[list] = None) -> None:
        self._services = services
        self.callbacks = callbacks or []

    async def execute(
        self,
        steps: Sequence[LoadedStep],
        context: ExecutionContext,
        log: ExecutionLog,
        after: Optional[int] = None,
        halt_check: Optional[HaltCheck] = None,
    ) -> ExecutionOutcome:
        """Run *steps* (already sorted) whose sort_order is greater than *after*."""
        for loaded in steps:
            step = loaded.step
            if after is not None and step.sort_order <= after:
                continue

            if halt_check is not None:
                halt = await halt_check()
                if halt is not None:
                    status, reason = halt
                    log.note(reason)
                    return ExecutionOutcome(status=status, step_cursor=step.sort_order, error=reason)

            try:
                outcome = await self._run_step(loaded, context)
            except Exception as exc:
                logger.warning(
                    "Step %d (%s) raised in execution=%s: %s",
                    step.sort_order, step.step_type, context.execution_id, exc,
                )
                log.record_error(step.sort_order, str(exc) or type(exc).__name__)
                await fire_callbacks(self.callbacks, "step_failed", {
                    "execution_id": context.execution_id,
                    "sort_order": step.sort_order,
                    "step_type": step.step_type,
                    "error": str(exc),
                })
                return ExecutionOutcome(
                    status=ExecutionStatus.FAILED, step_cursor=step.sort_order, error=str(exc),
                )

            log.record(step.sort_order, step.step_type, outcome.message)
            await fire_callbacks(self.callbacks, "step_completed", {
                "execution_id": context.execution_id,
                "sort_order": step.sort_order,
                "step_type": step.step_type,
                "success": outcome.success,
                "message": outcome.message,
            })

            if not outcome.success:
                return ExecutionOutcome(
                    status=ExecutionStatus.FAILED, step_cursor=step.sort_order, error=outcome.message,
                )

            if outcome.variables:
                context.variables.update(outcome.variables)

            if outcome.suspend is not None:
                return ExecutionOutcome(
                    status=outcome.suspend.status,
                    step_cursor=step.sort_order,
                    suspension=outcome.suspend,
                )

        return ExecutionOutcome(status=ExecutionStatus.COMPLETED)

    async def _run_step(self, loaded: LoadedStep, context: ExecutionContext) -> StepOutcome:
        registration = get_step_registration(loaded.step.step_type)
        if registration is None:
            return StepOutcome(success=False, message=f"Unknown step type: {loaded.step.step_type}")
        return await registration.handler(loaded.config, context, self._services)
