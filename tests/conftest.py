"""Shared fixtures: in-memory store, mock HTTP transport, wired runner and matcher.

The FakeRepository mirrors the Repository/SessionRepository surface the engine
uses, so workflow tests run without a database.  Repository behaviour itself
is covered against SQLite in test_repository.py.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

import httpx
import pytest

from flowrunner.config import FlowRunnerConfig
from flowrunner.triggers.matcher import TriggerMatcher
from flowrunner.types import (
    ExecutionStatus, Workflow, WorkflowExecution, WorkflowStep,
)
from flowrunner.workflows.runner import build_runner

TICKET_FIELDS = {"subject", "status", "priority", "assignee_id", "requester_id"}


# ── Fake infrastructure ───────────────────────────────────────────────────────

class FakeRepository:
    """In-memory workflow/step/execution/ticket/agent/notification store."""

    def __init__(self) -> None:
        self.workflows: dict[str, Workflow] = {}
        self.steps: dict[str, list[WorkflowStep]] = {}
        self.executions: dict[str, WorkflowExecution] = {}
        self.tickets: dict[str, dict[str, Any]] = {}
        self.agents: list[dict[str, Any]] = []
        self.notifications: list[dict[str, Any]] = []
        self.fail_create_for: set[str] = set()
        self.fail_update_for: set[str] = set()
        self.list_steps_calls = 0

    # ── helpers for tests ──
    def add_workflow(self, name: str, trigger_type: str, steps: list[tuple[int, str, dict]],
                     is_active: bool = True, workflow_id: Optional[str] = None) -> Workflow:
        kwargs = {"id": workflow_id} if workflow_id else {}
        wf = Workflow(name=name, trigger_type=trigger_type, is_active=is_active, **kwargs)
        self.workflows[wf.id] = wf
        self.steps[wf.id] = [
            WorkflowStep(workflow_id=wf.id, sort_order=order, step_type=step_type, step_config=cfg)
            for order, step_type, cfg in steps
        ]
        return wf

    def executions_for(self, workflow_id: str) -> list[WorkflowExecution]:
        return [e for e in self.executions.values() if e.workflow_id == workflow_id]

    # ── workflows / steps ──
    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        return self.workflows.get(workflow_id)

    async def list_active_workflows(self, trigger_type: str) -> list[Workflow]:
        return [w for w in self.workflows.values() if w.is_active and w.trigger_type == trigger_type]

    async def list_steps(self, workflow_id: str) -> list[WorkflowStep]:
        self.list_steps_calls += 1
        # Storage order on purpose; callers must sort.
        return list(self.steps.get(workflow_id, []))

    # ── executions ──
    async def create_execution(self, workflow_id: str, trigger_data: dict) -> WorkflowExecution:
        if workflow_id in self.fail_create_for:
            raise ConnectionError("insert failed")
        execution = WorkflowExecution(workflow_id=workflow_id, trigger_data=trigger_data)
        self.executions[execution.id] = execution
        return execution

    async def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        execution = self.executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    async def update_execution(self, execution_id: str, updates: dict, expected_statuses=None) -> bool:
        execution = self.executions.get(execution_id)
        if execution is None:
            return False
        if execution.workflow_id in self.fail_update_for and "completed_at" in updates:
            raise ConnectionError("finalize failed")
        if expected_statuses is not None and execution.status not in set(expected_statuses):
            return False
        values = dict(updates)
        if "status" in values:
            values["status"] = ExecutionStatus(values["status"])
        self.executions[execution_id] = execution.model_copy(update=values)
        return True

    async def list_executions(self, workflow_id=None, status=None, limit=50) -> list[WorkflowExecution]:
        out = list(self.executions.values())
        if workflow_id is not None:
            out = [e for e in out if e.workflow_id == workflow_id]
        if status is not None:
            out = [e for e in out if e.status == ExecutionStatus(status)]
        out.sort(key=lambda e: e.started_at, reverse=True)
        return out[:limit]

    async def list_due_executions(self, now: datetime, limit: int = 100) -> list[WorkflowExecution]:
        due = [
            e for e in self.executions.values()
            if e.status in (ExecutionStatus.WAITING, ExecutionStatus.WAITING_APPROVAL)
            and e.resume_at is not None and e.resume_at <= now
        ]
        return sorted(due, key=lambda e: e.resume_at)[:limit]

    # ── collaborators ──
    async def update_ticket(self, ticket_id: str, updates: dict) -> bool:
        unknown = set(updates) - TICKET_FIELDS
        if unknown:
            raise ValueError(f"Unknown ticket field(s): {', '.join(sorted(unknown))}")
        if ticket_id not in self.tickets:
            return False
        self.tickets[ticket_id].update(updates)
        return True

    async def get_least_busy_agent(self) -> Optional[str]:
        candidates = [a for a in self.agents if a["is_active"] and a["role"] == "agent"]
        if not candidates:
            return None

        def load(agent):
            return sum(
                1 for t in self.tickets.values()
                if t.get("assignee_id") == agent["id"] and t.get("status", "open") not in ("closed", "resolved")
            )
        return min(candidates, key=load)["id"]

    async def list_manager_ids(self) -> list[str]:
        return [a["id"] for a in self.agents if a["is_active"] and a["role"] == "manager"]

    async def enqueue_notification(self, recipient_id, recipient_type, subject, message, execution_id=None):
        notification_id = f"n-{len(self.notifications) + 1}"
        self.notifications.append({
            "id": notification_id,
            "recipient_id": recipient_id,
            "recipient_type": recipient_type,
            "subject": subject,
            "message": message,
            "execution_id": execution_id,
        })
        return notification_id


class RecordingTransport:
    """httpx.MockTransport handler that records requests and replays a canned response."""

    def __init__(self, status_code: int = 200, json_body: Any = None, text: Optional[str] = None) -> None:
        self.status_code = status_code
        self.json_body = json_body
        self.text = text
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.text is not None:
            return httpx.Response(self.status_code, text=self.text)
        return httpx.Response(self.status_code, json=self.json_body if self.json_body is not None else {})


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def config():
    """Test configuration with safe defaults."""
    return FlowRunnerConfig(
        debug=True,
        database_url="sqlite+aiosqlite:///:memory:",
        scheduler_enabled=False,
        queue_enabled=False,
        max_concurrent_workflows=4,
        workflow_execution_timeout=60,
    )


@pytest.fixture
def repository():
    return FakeRepository()


@pytest.fixture
def transport():
    return RecordingTransport(json_body={"ok": True, "id": 7})


@pytest.fixture
async def http_client(transport):
    async with httpx.AsyncClient(transport=httpx.MockTransport(transport)) as client:
        yield client


@pytest.fixture
def events():
    """Collected (event, data) callback pairs."""
    return []


@pytest.fixture
def runner(repository, http_client, config, events):
    async def _collect(event, data):
        events.append((event, data))
    return build_runner(repository, http_client, config, callbacks=[_collect])


@pytest.fixture
def matcher(repository, runner, config):
    return TriggerMatcher(repository, runner, config)


@pytest.fixture
def now():
    return datetime.now(timezone.utc)
