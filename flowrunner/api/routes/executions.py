"""Execution history, approval decision, and cancel API routes."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from flowrunner.api.schemas import (
    ApprovalDecisionRequest, ExecutionDetail, ExecutionListResponse, ExecutionSummary,
)
from flowrunner.exceptions import ApprovalError, ExecutionNotFound, ExecutionStateError
from flowrunner.types import ExecutionStatus, WorkflowExecution, WorkflowRunResult

logger = logging.getLogger(__name__)
router = APIRouter(tags=["executions"])


# ── Helpers ───────────────────────────────────────────────────────────────────

def _summary_fields(execution: WorkflowExecution) -> dict:
    return {
        "id": execution.id,
        "workflow_id": execution.workflow_id,
        "status": execution.status.value,
        "started_at": execution.started_at,
        "completed_at": execution.completed_at,
        "resume_at": execution.resume_at,
        "error": execution.error,
    }


def _to_detail(execution: WorkflowExecution) -> ExecutionDetail:
    return ExecutionDetail(
        **_summary_fields(execution),
        trigger_data=execution.trigger_data,
        logs=execution.logs,
        variables=execution.variables,
        step_cursor=execution.step_cursor,
        approval=execution.approval,
        cancel_requested=execution.cancel_requested,
    )


def _raise_for(exc: Exception):
    if isinstance(exc, ExecutionNotFound):
        raise HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ApprovalError):
        raise HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, ExecutionStateError):
        raise HTTPException(status_code=409, detail=str(exc))
    raise exc


# ── Routes ────────────────────────────────────────────────────────────────────

@router.get("/executions", response_model=ExecutionListResponse)
async def list_executions(
    request: Request,
    workflow_id: Optional[str] = None,
    status: Optional[ExecutionStatus] = None,
    limit: int = Query(default=50, ge=1, le=500),
):
    """List executions with optional filters, newest first."""
    repository = request.app.state.repository
    executions = await repository.list_executions(workflow_id=workflow_id, status=status, limit=limit)
    return ExecutionListResponse(
        executions=[ExecutionSummary(**_summary_fields(e)) for e in executions],
        total=len(executions),
    )


@router.get("/executions/{execution_id}", response_model=ExecutionDetail)
async def get_execution(execution_id: str, request: Request):
    """Execution detail including step logs."""
    execution = await request.app.state.repository.get_execution(execution_id)
    if execution is None:
        raise HTTPException(status_code=404, detail="Execution not found")
    return _to_detail(execution)


@router.post("/executions/{execution_id}/approval", response_model=WorkflowRunResult)
async def decide_approval(execution_id: str, body: ApprovalDecisionRequest, request: Request):
    """Approve or deny a run parked in ``waiting_approval``.

    Approving resumes the run from the step after the approval and returns
    once it settles again.
    """
    runner = request.app.state.runner
    try:
        result = await runner.decide_approval(
            execution_id, approved=body.approved, approver=body.approver, comment=body.comment,
        )
    except (ExecutionNotFound, ExecutionStateError, ApprovalError) as exc:
        _raise_for(exc)
    logger.info(
        "[executions] approval %s for %s by %s",
        "granted" if body.approved else "denied", execution_id, body.approver,
    )
    return result


@router.post("/executions/{execution_id}/cancel", response_model=ExecutionDetail)
async def cancel_execution(execution_id: str, request: Request):
    """Cancel a suspended run, or flag a running one to stop before its next step."""
    runner = request.app.state.runner
    try:
        execution = await runner.cancel(execution_id)
    except (ExecutionNotFound, ExecutionStateError) as exc:
        _raise_for(exc)
    return _to_detail(execution)
