"""All ORM models. These map 1:1 to the Pydantic types but are SQLAlchemy models.

Tables: workflows, workflow_steps, workflow_executions, tickets, agents, notifications
Indexes on the engine's query patterns (trigger lookup, step order, due continuations).
"""

from sqlalchemy import Column, String, Integer, DateTime, JSON, Boolean, Text, ForeignKey, Index
from sqlalchemy.orm import DeclarativeBase
from datetime import datetime, timezone
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


# ── Workflow definitions (written by the authoring layer) ───────────────────


class WorkflowModel(Base):
    __tablename__ = "workflows"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    description = Column(Text, default="")
    trigger_type = Column(String, nullable=False)
    trigger_config = Column(JSON, default=dict)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (Index("ix_workflow_trigger_active", "trigger_type", "is_active"),)


class WorkflowStepModel(Base):
    __tablename__ = "workflow_steps"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    workflow_id = Column(String, ForeignKey("workflows.id"), nullable=False, index=True)
    sort_order = Column(Integer, nullable=False)
    step_type = Column(String, nullable=False)
    step_config = Column(JSON, default=dict)

    __table_args__ = (Index("ix_step_workflow_order", "workflow_id", "sort_order"),)


# ── Runs ─────────────────────────────────────────────────────────────────────


class WorkflowExecutionModel(Base):
    __tablename__ = "workflow_executions"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    workflow_id = Column(String, ForeignKey("workflows.id"), nullable=False, index=True)
    status = Column(String, default="running")      # ExecutionStatus value
    trigger_data = Column(JSON, default=dict)
    logs = Column(JSON, default=list)
    variables = Column(JSON, default=dict)          # continuation snapshot
    step_cursor = Column(Integer, nullable=True)
    resume_at = Column(DateTime(timezone=True), nullable=True)
    approval = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    cancel_requested = Column(Boolean, default=False)
    started_at = Column(DateTime(timezone=True), default=_utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_exec_workflow_started", "workflow_id", "started_at"),
        Index("ix_exec_status_resume", "status", "resume_at"),
    )


# ── Records touched by steps ─────────────────────────────────────────────────


class TicketModel(Base):
    __tablename__ = "tickets"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    subject = Column(String, nullable=False, default="")
    status = Column(String, default="open")
    priority = Column(String, default="normal")
    assignee_id = Column(String, ForeignKey("agents.id"), nullable=True, index=True)
    requester_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)


class AgentModel(Base):
    __tablename__ = "agents"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    email = Column(String, default="")
    role = Column(String, default="agent")          # agent | manager
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class NotificationModel(Base):
    __tablename__ = "notifications"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    recipient_id = Column(String, nullable=False, index=True)
    recipient_type = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    message = Column(Text, default="")
    execution_id = Column(String, nullable=True, index=True)
    status = Column(String, default="queued")
    created_at = Column(DateTime(timezone=True), default=_utcnow)
