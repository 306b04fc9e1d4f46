"""Repository against a real SQLite database (aiosqlite)."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from flowrunner.db.models import Base
from flowrunner.db.repository import SessionRepository
from flowrunner.types import ExecutionStatus, Workflow, WorkflowStep
from flowrunner.workflows.runner import build_runner


@pytest.fixture
async def store(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'flowrunner.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield SessionRepository(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))
    await engine.dispose()


async def _workflow(store, trigger_type="ticket_created", is_active=True, steps=()):
    wf = await store.save_workflow(Workflow(name="wf", trigger_type=trigger_type, is_active=is_active))
    for order, step_type, cfg in steps:
        await store.save_step(WorkflowStep(workflow_id=wf.id, sort_order=order, step_type=step_type, step_config=cfg))
    return wf


class TestWorkflows:

    async def test_list_active_by_trigger(self, store):
        on = await _workflow(store)
        await _workflow(store, is_active=False)
        await _workflow(store, trigger_type="ticket_closed")

        found = await store.list_active_workflows("ticket_created")
        assert [w.id for w in found] == [on.id]

    async def test_steps_ordered(self, store):
        wf = await _workflow(store, steps=[(3, "wait", {}), (1, "wait", {}), (2, "wait", {})])
        assert [s.sort_order for s in await store.list_steps(wf.id)] == [1, 2, 3]

    async def test_unknown_attribute(self, store):
        with pytest.raises(AttributeError):
            store.drop_everything


class TestExecutions:

    async def test_create_and_get(self, store):
        wf = await _workflow(store)
        execution = await store.create_execution(wf.id, {"ticket_id": "t-1"})

        fetched = await store.get_execution(execution.id)
        assert fetched.status == ExecutionStatus.RUNNING
        assert fetched.logs == []
        assert fetched.trigger_data == {"ticket_id": "t-1"}
        assert fetched.started_at.tzinfo is not None

    async def test_update_is_compare_and_set(self, store):
        wf = await _workflow(store)
        execution = await store.create_execution(wf.id, {})

        assert await store.update_execution(
            execution.id, {"status": ExecutionStatus.WAITING}, expected_statuses=[ExecutionStatus.RUNNING],
        ) is True
        assert await store.update_execution(
            execution.id, {"status": ExecutionStatus.COMPLETED}, expected_statuses=[ExecutionStatus.RUNNING],
        ) is False
        assert (await store.get_execution(execution.id)).status == ExecutionStatus.WAITING

    async def test_list_due_executions(self, store):
        wf = await _workflow(store)
        now = datetime.now(timezone.utc)
        due = await store.create_execution(wf.id, {})
        later = await store.create_execution(wf.id, {})
        running = await store.create_execution(wf.id, {})
        await store.update_execution(due.id, {"status": "waiting", "resume_at": now - timedelta(seconds=1)})
        await store.update_execution(later.id, {"status": "waiting_approval", "resume_at": now + timedelta(hours=1)})
        await store.update_execution(running.id, {"resume_at": now - timedelta(hours=1)})

        found = await store.list_due_executions(now)
        assert [e.id for e in found] == [due.id]
        assert found[0].resume_at.tzinfo is not None

    async def test_list_executions_filters(self, store):
        wf = await _workflow(store)
        other = await _workflow(store)
        a = await store.create_execution(wf.id, {})
        await store.create_execution(other.id, {})
        await store.update_execution(a.id, {"status": "failed"})

        assert [e.id for e in await store.list_executions(workflow_id=wf.id)] == [a.id]
        assert [e.id for e in await store.list_executions(status="failed")] == [a.id]


class TestCollaborators:

    async def test_update_ticket(self, store):
        ticket = await store.create_ticket("Printer on fire")
        assert await store.update_ticket(ticket.id, {"priority": "urgent"}) is True
        assert (await store.get_ticket(ticket.id)).priority == "urgent"
        assert await store.update_ticket("missing", {"priority": "low"}) is False

    async def test_update_ticket_rejects_unknown_columns(self, store):
        ticket = await store.create_ticket("x")
        with pytest.raises(ValueError, match="Unknown ticket field"):
            await store.update_ticket(ticket.id, {"id": "hijack"})

    async def test_least_busy_agent(self, store):
        busy = await store.create_agent("Busy")
        idle = await store.create_agent("Idle")
        await store.create_agent("Boss", role="manager")
        await store.create_agent("Gone", is_active=False)
        await store.create_ticket("a", assignee_id=busy.id)
        await store.create_ticket("b", assignee_id=busy.id)
        await store.create_ticket("c", assignee_id=idle.id, status="closed")

        assert await store.get_least_busy_agent() == idle.id

    async def test_no_agents(self, store):
        assert await store.get_least_busy_agent() is None

    async def test_managers_and_notifications(self, store):
        boss = await store.create_agent("Boss", role="manager")
        await store.create_agent("Agent")
        assert await store.list_manager_ids() == [boss.id]

        notification_id = await store.enqueue_notification(boss.id, "managers", "Hi", "Body", execution_id="ex-1")
        assert notification_id
        [notification] = await store.list_notifications("ex-1")
        assert notification.status == "queued"
        assert notification.recipient_id == boss.id


async def test_end_to_end_run_against_sqlite(store, config):
    agent = await store.create_agent("Ada")
    ticket = await store.create_ticket("Login broken", requester_id="cust-1")
    wf = await _workflow(store, steps=[
        (1, "function", {"function_name": "assign_to_least_busy_agent"}),
        (2, "notify", {"recipient_type": "assigned_agent", "subject": "New: {{subject}}"}),
        (3, "wait", {"delay_ms": 60_000}),
        (4, "task", {"action": "update_ticket", "field": "status", "value": "pending"}),
    ])

    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))) as client:
        runner = build_runner(store, client, config)
        result = await runner.run(wf, {"ticket_id": ticket.id, "subject": "Login broken"})
        assert result.status == ExecutionStatus.WAITING

        due = await store.list_due_executions(datetime.now(timezone.utc) + timedelta(minutes=2))
        assert [e.id for e in due] == [result.execution_id]
        resumed = await runner.resume(result.execution_id)

    assert resumed.status == ExecutionStatus.COMPLETED
    execution = await store.get_execution(result.execution_id)
    assert execution.status == ExecutionStatus.COMPLETED
    assert execution.variables == {"assignee_id": agent.id}
    assert len(execution.logs) == 5
    refreshed = await store.get_ticket(ticket.id)
    assert refreshed.assignee_id == agent.id
    assert refreshed.status == "pending"
    [notification] = await store.list_notifications(result.execution_id)
    assert notification.subject == "New: Login broken"
