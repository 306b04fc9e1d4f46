"""ResumeScheduler: asyncio loop that re-enters suspended runs when they fall due."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from flowrunner.exceptions import FlowRunnerError
from flowrunner.types import ExecutionStatus

logger = logging.getLogger(__name__)


class ResumeScheduler:
    """Polls the store every *tick_seconds* for continuations whose ``resume_at`` passed.

    ``waiting`` runs are resumed from their cursor; ``waiting_approval`` runs
    whose approval window closed are failed.  Claims are compare-and-set in
    the store, so several schedulers may poll the same rows safely.
    """

    def __init__(self, runner, repository, config, tick_seconds: int | None = None) -> None:
        self._runner       = runner
        self._repository   = repository
        self._config       = config
        self._tick_seconds = tick_seconds or config.resume_check_interval
        self._task: asyncio.Task | None = None

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Start the background loop."""
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._loop(), name="flowrunner-resume-scheduler")
        logger.info("ResumeScheduler started (tick=%ss)", self._tick_seconds)

    async def stop(self) -> None:
        """Cancel the background loop."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("ResumeScheduler stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── Core tick ────────────────────────────────────────────────────────────

    async def check_due(self, now: datetime | None = None) -> int:
        """Handle every due continuation once (single tick). Returns how many were handled."""
        now = now or datetime.now(timezone.utc)
        due = await self._repository.list_due_executions(now, limit=self._config.resume_batch_size)
        handled = 0
        for execution in due:
            try:
                if execution.status == ExecutionStatus.WAITING:
                    result = await self._runner.resume(execution.id)
                else:
                    result = await self._runner.expire_approval(execution.id)
            except FlowRunnerError as exc:
                logger.warning("Continuation of execution '%s' blocked: %s", execution.id, exc)
                continue
            except Exception:
                logger.exception("Continuation of execution '%s' raised", execution.id)
                continue
            if result is not None:
                handled += 1
        return handled

    # ── Internal ─────────────────────────────────────────────────────────────

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._tick_seconds)
            try:
                await self.check_due()
            except Exception:
                logger.exception("ResumeScheduler tick raised unexpectedly")
