"""Pydantic models for API request/response. Mirrors types.py for API I/O."""

from datetime import datetime
from pydantic import BaseModel, Field
from typing import Any, Optional

from flowrunner.types import WorkflowRunResult


# ── Requests ──

class EventRequest(BaseModel):
    event_type: str = Field(..., min_length=1, max_length=200)   # "ticket_created"
    event_data: dict[str, Any] = Field(default_factory=dict)


class ApprovalDecisionRequest(BaseModel):
    approved: bool
    approver: str = Field(..., min_length=1)
    comment: Optional[str] = Field(default=None, max_length=2000)


# ── Responses ──

class DispatchResponse(BaseModel):
    success: bool = True
    event_type: str
    workflows_triggered: int
    results: list[WorkflowRunResult]

class QueuedDispatchResponse(BaseModel):
    success: bool = True
    job_id: Optional[str]
    status: str = "queued"

class ErrorResponse(BaseModel):
    success: bool = False
    error: str

class ExecutionSummary(BaseModel):
    id: str
    workflow_id: str
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    resume_at: Optional[datetime] = None
    error: Optional[str] = None

class ExecutionDetail(ExecutionSummary):
    trigger_data: dict[str, Any]
    logs: list[str]
    variables: dict[str, Any]
    step_cursor: Optional[int] = None
    approval: Optional[dict[str, Any]] = None
    cancel_requested: bool = False

class ExecutionListResponse(BaseModel):
    executions: list[ExecutionSummary]
    total: int

class JobStatusResponse(BaseModel):
    job_id: str
    status: str
    result: Any = None
    error: Optional[str] = None

class HealthResponse(BaseModel):
    status: str                         # "ok" | "degraded"
    version: str
    services: dict[str, bool]
