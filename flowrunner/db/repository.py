"""Data access layer.

This is the ONLY layer that talks to the database.  ``Repository`` wraps one
AsyncSession; ``SessionRepository`` opens a fresh session per call and is what
long-lived components (API, worker, scheduler) hold.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, desc

from flowrunner.db.models import (
    WorkflowModel, WorkflowStepModel, WorkflowExecutionModel, TicketModel, AgentModel,
    NotificationModel,
)
from flowrunner.types import (
    SUSPENDED_STATUSES, ExecutionStatus, Workflow, WorkflowExecution, WorkflowStep,
)

# Columns a task step may patch on a ticket
TICKET_FIELDS = frozenset({"subject", "status", "priority", "assignee_id", "requester_id"})
CLOSED_TICKET_STATUSES = ("closed", "resolved")


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _status_value(status: Any) -> str:
    return status.value if hasattr(status, "value") else str(status)


class Repository:
    """All database operations for one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ── Workflows ──
    @staticmethod
    def _model_to_workflow(m: WorkflowModel) -> Workflow:
        return Workflow(
            id=m.id,
            name=m.name,
            description=m.description or "",
            trigger_type=m.trigger_type,
            trigger_config=m.trigger_config or {},
            is_active=bool(m.is_active),
            created_at=_as_utc(m.created_at),
            updated_at=_as_utc(m.updated_at),
        )

    async def save_workflow(self, workflow: Workflow) -> Workflow:
        """Persist a workflow definition (authoring layer and seeding)."""
        record = WorkflowModel(
            id=workflow.id,
            name=workflow.name,
            description=workflow.description,
            trigger_type=workflow.trigger_type,
            trigger_config=workflow.trigger_config,
            is_active=workflow.is_active,
            created_at=workflow.created_at,
            updated_at=workflow.updated_at,
        )
        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)
        return self._model_to_workflow(record)

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        result = await self.session.execute(
            select(WorkflowModel).where(WorkflowModel.id == workflow_id)
        )
        m = result.scalar_one_or_none()
        return self._model_to_workflow(m) if m is not None else None

    async def list_active_workflows(self, trigger_type: str) -> list[Workflow]:
        """Active workflows whose trigger_type equals *trigger_type*."""
        result = await self.session.execute(
            select(WorkflowModel).where(
                WorkflowModel.trigger_type == trigger_type,
                WorkflowModel.is_active.is_(True),
            )
        )
        return [self._model_to_workflow(m) for m in result.scalars().all()]

    # ── Steps ──
    @staticmethod
    def _model_to_step(m: WorkflowStepModel) -> WorkflowStep:
        return WorkflowStep(
            id=m.id,
            workflow_id=m.workflow_id,
            sort_order=m.sort_order,
            step_type=m.step_type,
            step_config=m.step_config or {},
        )

    async def save_step(self, step: WorkflowStep) -> WorkflowStep:
        record = WorkflowStepModel(
            id=step.id,
            workflow_id=step.workflow_id,
            sort_order=step.sort_order,
            step_type=step.step_type,
            step_config=step.step_config,
        )
        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)
        return self._model_to_step(record)

    async def list_steps(self, workflow_id: str) -> list[WorkflowStep]:
        """Steps of a workflow, ascending by sort_order."""
        result = await self.session.execute(
            select(WorkflowStepModel)
            .where(WorkflowStepModel.workflow_id == workflow_id)
            .order_by(WorkflowStepModel.sort_order.asc())
        )
        return [self._model_to_step(m) for m in result.scalars().all()]

    # ── Executions ──
    @staticmethod
    def _model_to_execution(m: WorkflowExecutionModel) -> WorkflowExecution:
        return WorkflowExecution(
            id=m.id,
            workflow_id=m.workflow_id,
            status=ExecutionStatus(m.status),
            trigger_data=m.trigger_data or {},
            logs=list(m.logs or []),
            variables=m.variables or {},
            step_cursor=m.step_cursor,
            resume_at=_as_utc(m.resume_at),
            approval=m.approval,
            error=m.error,
            cancel_requested=bool(m.cancel_requested),
            started_at=_as_utc(m.started_at),
            completed_at=_as_utc(m.completed_at),
        )

    async def create_execution(self, workflow_id: str, trigger_data: dict[str, Any]) -> WorkflowExecution:
        """Insert a running execution with empty logs."""
        record = WorkflowExecutionModel(
            workflow_id=workflow_id,
            status=ExecutionStatus.RUNNING.value,
            trigger_data=trigger_data,
            logs=[],
            variables={},
        )
        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)
        return self._model_to_execution(record)

    async def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        result = await self.session.execute(
            select(WorkflowExecutionModel).where(WorkflowExecutionModel.id == execution_id)
        )
        m = result.scalar_one_or_none()
        return self._model_to_execution(m) if m is not None else None

    async def update_execution(
        self,
        execution_id: str,
        updates: dict[str, Any],
        expected_statuses: Optional[Iterable[Any]] = None,
    ) -> bool:
        """Apply partial updates to an execution row.

        With *expected_statuses* the write is a compare-and-set on the current
        status. Returns True when a row was written.
        """
        values = dict(updates)
        if "status" in values:
            values["status"] = _status_value(values["status"])
        stmt = update(WorkflowExecutionModel).where(WorkflowExecutionModel.id == execution_id)
        if expected_statuses is not None:
            stmt = stmt.where(
                WorkflowExecutionModel.status.in_([_status_value(s) for s in expected_statuses])
            )
        result = await self.session.execute(stmt.values(**values))
        await self.session.commit()
        return result.rowcount > 0

    async def list_executions(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
    ) -> list[WorkflowExecution]:
        """List executions, newest first."""
        query = select(WorkflowExecutionModel)
        if workflow_id is not None:
            query = query.where(WorkflowExecutionModel.workflow_id == workflow_id)
        if status is not None:
            query = query.where(WorkflowExecutionModel.status == _status_value(status))
        query = query.order_by(desc(WorkflowExecutionModel.started_at)).limit(limit)
        result = await self.session.execute(query)
        return [self._model_to_execution(m) for m in result.scalars().all()]

    async def list_due_executions(self, now: datetime, limit: int = 100) -> list[WorkflowExecution]:
        """Suspended executions whose resume_at has passed (waits and expiring approvals)."""
        result = await self.session.execute(
            select(WorkflowExecutionModel)
            .where(
                WorkflowExecutionModel.status.in_([s.value for s in SUSPENDED_STATUSES]),
                WorkflowExecutionModel.resume_at.is_not(None),
                WorkflowExecutionModel.resume_at <= now,
            )
            .order_by(WorkflowExecutionModel.resume_at.asc())
            .limit(limit)
        )
        return [self._model_to_execution(m) for m in result.scalars().all()]

    # ── Tickets ──
    async def create_ticket(self, subject: str, requester_id: Optional[str] = None, **fields: Any) -> TicketModel:
        ticket = TicketModel(subject=subject, requester_id=requester_id, **fields)
        self.session.add(ticket)
        await self.session.commit()
        await self.session.refresh(ticket)
        return ticket

    async def get_ticket(self, ticket_id: str) -> Optional[TicketModel]:
        result = await self.session.execute(select(TicketModel).where(TicketModel.id == ticket_id))
        return result.scalar_one_or_none()

    async def update_ticket(self, ticket_id: str, updates: dict[str, Any]) -> bool:
        """Patch a ticket by id. Raises ValueError for columns that are not patchable."""
        unknown = set(updates) - TICKET_FIELDS
        if unknown:
            raise ValueError(f"Unknown ticket field(s): {', '.join(sorted(unknown))}")
        result = await self.session.execute(
            update(TicketModel)
            .where(TicketModel.id == ticket_id)
            .values(**updates, updated_at=datetime.now(timezone.utc))
        )
        await self.session.commit()
        return result.rowcount > 0

    # ── Agents ──
    async def create_agent(self, name: str, role: str = "agent", **fields: Any) -> AgentModel:
        agent = AgentModel(name=name, role=role, **fields)
        self.session.add(agent)
        await self.session.commit()
        await self.session.refresh(agent)
        return agent

    async def get_least_busy_agent(self) -> Optional[str]:
        """Active agent (role=agent) with the fewest open tickets; oldest agent wins ties."""
        open_counts = (
            select(TicketModel.assignee_id, func.count(TicketModel.id).label("open_count"))
            .where(TicketModel.status.not_in(CLOSED_TICKET_STATUSES))
            .group_by(TicketModel.assignee_id)
            .subquery()
        )
        result = await self.session.execute(
            select(AgentModel.id)
            .outerjoin(open_counts, open_counts.c.assignee_id == AgentModel.id)
            .where(AgentModel.is_active.is_(True), AgentModel.role == "agent")
            .order_by(func.coalesce(open_counts.c.open_count, 0), AgentModel.created_at, AgentModel.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_manager_ids(self) -> list[str]:
        result = await self.session.execute(
            select(AgentModel.id).where(AgentModel.role == "manager", AgentModel.is_active.is_(True))
        )
        return list(result.scalars().all())

    # ── Notifications ──
    async def enqueue_notification(
        self,
        recipient_id: str,
        recipient_type: str,
        subject: str,
        message: str,
        execution_id: Optional[str] = None,
    ) -> Optional[str]:
        """Write a queued notification. The committed row id is the enqueue confirmation."""
        record = NotificationModel(
            recipient_id=recipient_id,
            recipient_type=recipient_type,
            subject=subject,
            message=message,
            execution_id=execution_id,
        )
        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)
        return record.id

    async def list_notifications(self, execution_id: Optional[str] = None) -> list[NotificationModel]:
        query = select(NotificationModel)
        if execution_id is not None:
            query = query.where(NotificationModel.execution_id == execution_id)
        result = await self.session.execute(query.order_by(NotificationModel.created_at))
        return list(result.scalars().all())


class SessionRepository:
    """Session-per-call proxy: safe for concurrent runs and long-lived processes.

    The Repository class takes a single AsyncSession; sharing one session
    across concurrently running workflows is not safe, and keeping one open
    for the lifetime of a process risks stale connections.  Every forwarded
    call opens its own session instead.
    """

    _FORWARDED = frozenset({
        "save_workflow", "get_workflow", "list_active_workflows",
        "save_step", "list_steps",
        "create_execution", "get_execution", "update_execution", "list_executions",
        "list_due_executions",
        "create_ticket", "get_ticket", "update_ticket",
        "create_agent", "get_least_busy_agent", "list_manager_ids",
        "enqueue_notification", "list_notifications",
    })

    def __init__(self, session_factory) -> None:
        self._sf = session_factory

    def __getattr__(self, name: str):
        if name not in self._FORWARDED:
            raise AttributeError(name)

        async def _call(*args, **kwargs):
            async with self._sf() as session:
                return await getattr(Repository(session), name)(*args, **kwargs)

        _call.__name__ = name
        return _call
