"""WorkflowRunner: one workflow run from open to settle, plus its continuations.

A run is opened by the recorder, its steps are loaded and executed, and the
outcome is settled: either a terminal ``finalize`` or a ``suspend`` that
persists the continuation (cursor, variables, logs, resume time).  Suspended
runs are re-entered through ``resume`` (due waits), ``decide_approval`` and
``expire_approval``; ``cancel`` ends them from outside.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

from flowrunner.callbacks.base import fire_callbacks
from flowrunner.exceptions import (
    ApprovalError, ExecutionNotFound, ExecutionStateError, StepConfigError,
)
from flowrunner.types import (
    SUSPENDED_STATUSES, TERMINAL_STATUSES, ApprovalStatus, ExecutionContext, ExecutionOutcome,
    ExecutionStatus, Workflow, WorkflowExecution, WorkflowRunResult,
)
from flowrunner.workflows.executor import ExecutionLog, StepExecutor
from flowrunner.workflows.loader import StepLoader
from flowrunner.workflows.recorder import ExecutionRecorder
from flowrunner.workflows.steps import StepServices

logger = logging.getLogger(__name__)

_UNSUCCESSFUL = {ExecutionStatus.FAILED, ExecutionStatus.CANCELLED}


def _context_for(execution: WorkflowExecution) -> ExecutionContext:
    return ExecutionContext(
        workflow_id=execution.workflow_id,
        execution_id=execution.id,
        trigger_data=execution.trigger_data,
        variables=dict(execution.variables),
    )


class WorkflowRunner:
    """Drives a single workflow's execution and its later re-entries."""

    def __init__(
        self,
        repository,
        recorder: ExecutionRecorder,
        loader: StepLoader,
        executor: StepExecutor,
        config,
        callbacks: Optional[list] = None,
    ) -> None:
        self._repository = repository
        self._recorder = recorder
        self._loader = loader
        self._executor = executor
        self._config = config
        self.callbacks = callbacks or []

    # ── Entry points ──────────────────────────────────────────────────────────

    async def run(self, workflow: Workflow, trigger_data: dict[str, Any]) -> WorkflowRunResult:
        """Open an execution for *workflow* and run it until it settles."""
        try:
            execution_id = await self._recorder.create(workflow.id, trigger_data)
        except Exception as exc:
            logger.error("Could not open execution for workflow=%s: %s", workflow.id, exc)
            return WorkflowRunResult(
                workflow_id=workflow.id,
                workflow_name=workflow.name,
                success=False,
                error=f"Failed to create execution: {exc}",
            )

        context = ExecutionContext(
            workflow_id=workflow.id,
            execution_id=execution_id,
            trigger_data=trigger_data,
        )
        await fire_callbacks(self.callbacks, "workflow_started", {
            "workflow_id": workflow.id,
            "workflow_name": workflow.name,
            "execution_id": execution_id,
            "trigger_type": workflow.trigger_type,
        })
        return await self._drive(workflow.name, context, ExecutionLog())

    async def resume(self, execution_id: str) -> Optional[WorkflowRunResult]:
        """Continue a ``waiting`` run after its delay. None if someone else claimed it."""
        execution = await self._recorder.get(execution_id)
        if execution is None or execution.status != ExecutionStatus.WAITING:
            return None
        # Reads happen before the claim so a failed read leaves the run waiting.
        workflow_name = await self._workflow_name(execution.workflow_id)

        claimed = await self._recorder.claim(execution_id, ExecutionStatus.WAITING)
        if claimed is None:
            logger.debug("Execution %s not claimable for resume", execution_id)
            return None
        log = ExecutionLog(claimed.logs)
        log.note(f"Resumed after wait (step {claimed.step_cursor})")
        return await self._drive(workflow_name, _context_for(claimed), log, after=claimed.step_cursor)

    async def decide_approval(
        self,
        execution_id: str,
        approved: bool,
        approver: str,
        comment: Optional[str] = None,
    ) -> WorkflowRunResult:
        """Apply a human decision to a ``waiting_approval`` run.

        Approving continues from the step after the approval; denying fails the
        run.  When the approval step listed ``approvers``, only they may decide.
        """
        execution = await self._recorder.get(execution_id)
        if execution is None:
            raise ExecutionNotFound(f"Execution '{execution_id}' not found", execution_id=execution_id)
        if execution.status != ExecutionStatus.WAITING_APPROVAL:
            raise ExecutionStateError(
                f"Execution '{execution_id}' is {execution.status.value}, not waiting for approval",
                execution_id=execution_id,
                status=execution.status.value,
            )

        approval = dict(execution.approval or {})
        allowed = approval.get("approvers") or []
        if allowed and approver not in allowed:
            raise ApprovalError(
                f"'{approver}' is not allowed to decide this approval",
                execution_id=execution_id,
                approver=approver,
            )

        workflow_name = await self._workflow_name(execution.workflow_id)
        claimed = await self._recorder.claim(execution_id, ExecutionStatus.WAITING_APPROVAL)
        if claimed is None:
            raise ExecutionStateError(
                f"Execution '{execution_id}' was decided or cancelled concurrently",
                execution_id=execution_id,
            )

        approval.update({
            "status": (ApprovalStatus.APPROVED if approved else ApprovalStatus.DENIED).value,
            "decided_by": approver,
            "decided_at": datetime.now(timezone.utc).isoformat(),
            "comment": comment,
        })
        log = ExecutionLog(claimed.logs)
        context = _context_for(claimed)

        if not approved:
            log.note(f"Approval denied by {approver}" + (f": {comment}" if comment else ""))
            outcome = ExecutionOutcome(status=ExecutionStatus.FAILED, error="Approval denied")
            return await self._settle(workflow_name, context, log, outcome, approval=approval)

        log.note(f"Approval granted by {approver}")
        return await self._drive(
            workflow_name, context, log, after=claimed.step_cursor, approval=approval,
        )

    async def expire_approval(self, execution_id: str) -> Optional[WorkflowRunResult]:
        """Fail a ``waiting_approval`` run whose approval window has passed."""
        execution = await self._recorder.get(execution_id)
        if execution is None or execution.status != ExecutionStatus.WAITING_APPROVAL:
            return None
        workflow_name = await self._workflow_name(execution.workflow_id)

        execution = await self._recorder.claim(execution_id, ExecutionStatus.WAITING_APPROVAL)
        if execution is None:
            return None
        approval = dict(execution.approval or {})
        approval["status"] = ApprovalStatus.EXPIRED.value
        log = ExecutionLog(execution.logs)
        log.note("Approval timed out")
        outcome = ExecutionOutcome(status=ExecutionStatus.FAILED, error="Approval timed out")
        return await self._settle(workflow_name, _context_for(execution), log, outcome, approval=approval)

    async def cancel(self, execution_id: str) -> WorkflowExecution:
        """Cancel a run.

        Suspended runs are cancelled immediately.  A running run is flagged and
        stops before its next step.
        """
        execution = await self._recorder.get(execution_id)
        if execution is None:
            raise ExecutionNotFound(f"Execution '{execution_id}' not found", execution_id=execution_id)

        if execution.status in SUSPENDED_STATUSES:
            log = ExecutionLog(execution.logs)
            log.note("Run cancelled")
            written = await self._recorder.finalize(
                execution_id,
                ExecutionStatus.CANCELLED,
                log.lines,
                only_from={execution.status},
                error="Run cancelled",
            )
            if written:
                await fire_callbacks(self.callbacks, "workflow_finished", {
                    "workflow_id": execution.workflow_id,
                    "execution_id": execution_id,
                    "status": ExecutionStatus.CANCELLED.value,
                    "error": "Run cancelled",
                })
                return await self._recorder.get(execution_id)
            # Resumed between our read and the write; fall through to the running path.
            execution = await self._recorder.get(execution_id)

        if execution.status == ExecutionStatus.RUNNING:
            await self._recorder.request_cancel(execution_id)
            return await self._recorder.get(execution_id)

        raise ExecutionStateError(
            f"Execution '{execution_id}' is already {execution.status.value}",
            execution_id=execution_id,
            status=execution.status.value,
        )

    # ── Internal ──────────────────────────────────────────────────────────────

    async def _workflow_name(self, workflow_id: str) -> str:
        workflow = await self._repository.get_workflow(workflow_id)
        return workflow.name if workflow is not None else ""

    async def _drive(
        self,
        workflow_name: str,
        context: ExecutionContext,
        log: ExecutionLog,
        after: Optional[int] = None,
        **extra: Any,
    ) -> WorkflowRunResult:
        try:
            outcome = await self._execute(context, log, after)
        except Exception as exc:
            logger.exception("Execution %s aborted", context.execution_id)
            log.note(f"ERROR: {exc}")
            outcome = ExecutionOutcome(status=ExecutionStatus.FAILED, error=str(exc))
        return await self._settle(workflow_name, context, log, outcome, **extra)

    async def _execute(
        self,
        context: ExecutionContext,
        log: ExecutionLog,
        after: Optional[int],
    ) -> ExecutionOutcome:
        try:
            steps = await self._loader.load(context.workflow_id)
        except StepConfigError as exc:
            log.note(f"ERROR: {exc}")
            return ExecutionOutcome(status=ExecutionStatus.FAILED, error=str(exc))

        timeout = self._config.workflow_execution_timeout
        deadline = time.monotonic() + timeout

        async def halt_check():
            if time.monotonic() > deadline:
                return ExecutionStatus.FAILED, f"Run timed out after {timeout}s"
            if await self._recorder.cancel_requested(context.execution_id):
                return ExecutionStatus.CANCELLED, "Run cancelled"
            return None

        return await self._executor.execute(steps, context, log, after=after, halt_check=halt_check)

    async def _settle(
        self,
        workflow_name: str,
        context: ExecutionContext,
        log: ExecutionLog,
        outcome: ExecutionOutcome,
        **extra: Any,
    ) -> WorkflowRunResult:
        """Persist the outcome in its own fault boundary and build the run result."""
        status = outcome.status
        result = WorkflowRunResult(
            workflow_id=context.workflow_id,
            workflow_name=workflow_name,
            execution_id=context.execution_id,
            success=status not in _UNSUCCESSFUL,
            status=status,
            error=outcome.error,
        )

        try:
            if status in SUSPENDED_STATUSES:
                suspension = outcome.suspension
                written = await self._recorder.suspend(
                    context.execution_id,
                    status,
                    log.lines,
                    context.variables,
                    outcome.step_cursor,
                    resume_at=suspension.resume_at if suspension else None,
                    approval=(suspension.approval if suspension and suspension.approval
                              else extra.get("approval")),
                )
            else:
                written = await self._recorder.finalize(
                    context.execution_id,
                    status,
                    log.lines,
                    error=outcome.error,
                    variables=context.variables,
                    **extra,
                )
        except Exception as exc:
            # Side effects already happened; only the audit trail is lost.
            logger.error("Failed to record outcome of execution=%s: %s", context.execution_id, exc)
            return result.model_copy(update={"error": f"Failed to record execution: {exc}"})

        if not written:
            return result.model_copy(update={"error": "Execution was already finalized"})

        if status in TERMINAL_STATUSES:
            await fire_callbacks(self.callbacks, "workflow_finished", {
                "workflow_id": context.workflow_id,
                "execution_id": context.execution_id,
                "status": status.value,
                "error": outcome.error,
            })
        else:
            await fire_callbacks(self.callbacks, "workflow_suspended", {
                "workflow_id": context.workflow_id,
                "execution_id": context.execution_id,
                "status": status.value,
                "resume_at": outcome.suspension.resume_at.isoformat()
                if outcome.suspension and outcome.suspension.resume_at else None,
            })
        return result


def build_runner(repository, http_client, config, callbacks: Optional[list] = None) -> WorkflowRunner:
    """Wire a WorkflowRunner whose collaborators are all backed by *repository*."""
    services = StepServices(
        tickets=repository,
        agents=repository,
        notifications=repository,
        http_client=http_client,
        config=config,
    )
    return WorkflowRunner(
        repository=repository,
        recorder=ExecutionRecorder(repository),
        loader=StepLoader(repository),
        executor=StepExecutor(services, callbacks),
        config=config,
        callbacks=callbacks,
    )
