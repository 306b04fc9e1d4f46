"""All shared types, enums, and type aliases. Everything imports from here."""

from enum import Enum
from typing import Any, NamedTuple, Optional
from datetime import datetime, timezone
from pydantic import BaseModel, Field
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Enums ──────────────────────────────────────────────────────────────

class ExecutionStatus(str, Enum):
    RUNNING = "running"
    WAITING = "waiting"                    # durable wait, resumes at resume_at
    WAITING_APPROVAL = "waiting_approval"  # parked until a human decides
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

class StepType(str, Enum):
    CONDITION = "condition"
    FUNCTION = "function"
    TASK = "task"
    NOTIFY = "notify"
    APPROVAL = "approval"
    WEBHOOK = "webhook"
    WAIT = "wait"

class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"


TERMINAL_STATUSES = frozenset({
    ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED,
})
SUSPENDED_STATUSES = frozenset({ExecutionStatus.WAITING, ExecutionStatus.WAITING_APPROVAL})
ACTIVE_STATUSES = frozenset({ExecutionStatus.RUNNING}) | SUSPENDED_STATUSES


# ── Definitions (read-only to the engine) ──────────────────────────────

class Workflow(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    description: str = ""
    trigger_type: str                      # matched against incoming event_type
    trigger_config: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

class WorkflowStep(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    sort_order: int
    step_type: str                         # not an enum: unknown tags must survive loading
    step_config: dict[str, Any] = Field(default_factory=dict)


class LoadedStep(NamedTuple):
    """A step paired with its decoded config model (raw dict for unknown step types)."""
    step: WorkflowStep
    config: Any


# ── Runs ───────────────────────────────────────────────────────────────

class WorkflowExecution(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    status: ExecutionStatus = ExecutionStatus.RUNNING
    trigger_data: dict[str, Any] = Field(default_factory=dict)
    logs: list[str] = Field(default_factory=list)
    variables: dict[str, Any] = Field(default_factory=dict)
    step_cursor: Optional[int] = None      # sort_order of the step that suspended the run
    resume_at: Optional[datetime] = None
    approval: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    cancel_requested: bool = False
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

class ExecutionContext(BaseModel):
    """Per-run state visible to step handlers."""
    workflow_id: str
    execution_id: str
    trigger_data: dict[str, Any] = Field(default_factory=dict)
    variables: dict[str, Any] = Field(default_factory=dict)


class Suspension(BaseModel):
    status: ExecutionStatus
    resume_at: Optional[datetime] = None
    approval: Optional[dict[str, Any]] = None

class StepOutcome(BaseModel):
    success: bool
    message: str
    variables: Optional[dict[str, Any]] = None
    suspend: Optional[Suspension] = None

class ExecutionOutcome(BaseModel):
    """What the step executor hands back to the runner."""
    status: ExecutionStatus
    step_cursor: Optional[int] = None
    suspension: Optional[Suspension] = None
    error: Optional[str] = None


# ── Dispatch results ───────────────────────────────────────────────────

class WorkflowRunResult(BaseModel):
    workflow_id: str
    workflow_name: str
    execution_id: Optional[str] = None
    success: bool
    status: Optional[ExecutionStatus] = None
    error: Optional[str] = None

class DispatchResult(BaseModel):
    success: bool = True
    event_type: str
    workflows_triggered: int = 0
    results: list[WorkflowRunResult] = Field(default_factory=list)
