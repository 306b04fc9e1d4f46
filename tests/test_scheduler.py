"""ResumeScheduler: due waits resume, expired approvals fail, lifecycle."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from freezegun import freeze_time

import flowrunner.triggers.scheduler_runner as scheduler_runner
from flowrunner.triggers.scheduler import ResumeScheduler
from flowrunner.triggers.scheduler_runner import LOCK_KEY, LOCK_TTL_S, SchedulerLock
from flowrunner.types import ExecutionStatus, WorkflowExecution


class TestCheckDue:

    async def test_nothing_due_before_resume_at(self, runner, repository, config):
        wf = repository.add_workflow("w", "ticket_created", [(1, "wait", {"delay_ms": 60_000})])
        result = await runner.run(wf, {})
        scheduler = ResumeScheduler(runner, repository, config)

        assert await scheduler.check_due() == 0
        assert repository.executions[result.execution_id].status == ExecutionStatus.WAITING

    async def test_due_wait_resumed(self, runner, repository, config):
        wf = repository.add_workflow("w", "ticket_created", [
            (1, "wait", {"delay_ms": 60_000}),
            (2, "wait", {"delay_ms": 0}),
        ])
        result = await runner.run(wf, {})
        scheduler = ResumeScheduler(runner, repository, config)
        later = datetime.now(timezone.utc) + timedelta(minutes=5)

        assert await scheduler.check_due(now=later) == 1
        assert repository.executions[result.execution_id].status == ExecutionStatus.COMPLETED
        # already handled; a second tick finds nothing
        assert await scheduler.check_due(now=later) == 0

    async def test_expired_approval_failed(self, runner, repository, config):
        wf = repository.add_workflow("w", "refund_requested", [
            (1, "approval", {"timeout_seconds": 600}),
            (2, "wait", {"delay_ms": 0}),
        ])
        with freeze_time("2026-03-01 09:00:00"):
            result = await runner.run(wf, {})
        scheduler = ResumeScheduler(runner, repository, config)

        early = datetime(2026, 3, 1, 9, 5, tzinfo=timezone.utc)
        assert await scheduler.check_due(now=early) == 0

        late = datetime(2026, 3, 1, 9, 11, tzinfo=timezone.utc)
        assert await scheduler.check_due(now=late) == 1
        execution = repository.executions[result.execution_id]
        assert execution.status == ExecutionStatus.FAILED
        assert execution.error == "Approval timed out"

    async def test_approval_without_timeout_never_due(self, runner, repository, config):
        wf = repository.add_workflow("w", "refund_requested", [(1, "approval", {})])
        await runner.run(wf, {})
        scheduler = ResumeScheduler(runner, repository, config)
        assert await scheduler.check_due(now=datetime.now(timezone.utc) + timedelta(days=365)) == 0

    async def test_one_failing_continuation_does_not_stop_the_batch(self, config):
        due = [
            WorkflowExecution(id="a", workflow_id="w", status=ExecutionStatus.WAITING),
            WorkflowExecution(id="b", workflow_id="w", status=ExecutionStatus.WAITING),
        ]
        repository = MagicMock()
        repository.list_due_executions = AsyncMock(return_value=due)
        runner = MagicMock()
        runner.resume = AsyncMock(side_effect=[RuntimeError("db gone"), MagicMock()])

        scheduler = ResumeScheduler(runner, repository, config)
        assert await scheduler.check_due() == 1
        assert runner.resume.await_count == 2

    async def test_batch_size_passed_to_store(self, config):
        repository = MagicMock()
        repository.list_due_executions = AsyncMock(return_value=[])
        scheduler = ResumeScheduler(MagicMock(), repository, config)
        await scheduler.check_due()
        assert repository.list_due_executions.await_args.kwargs["limit"] == config.resume_batch_size


class TestLifecycle:

    async def test_start_and_stop(self, runner, repository, config):
        scheduler = ResumeScheduler(runner, repository, config, tick_seconds=3600)
        assert scheduler.running is False
        await scheduler.start()
        assert scheduler.running is True
        await scheduler.stop()
        assert scheduler.running is False

    async def test_loop_ticks(self, config):
        repository = MagicMock()
        repository.list_due_executions = AsyncMock(return_value=[])
        scheduler = ResumeScheduler(MagicMock(), repository, config, tick_seconds=0.01)
        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()
        assert repository.list_due_executions.await_count >= 1


class TestSchedulerLock:

    def _redis(self, set_result=True, script_result=1):
        redis = MagicMock()
        redis.set = AsyncMock(return_value=set_result)
        redis.get = AsyncMock(return_value="other-instance")
        redis.register_script = MagicMock(return_value=AsyncMock(return_value=script_result))
        return redis

    async def test_acquire_uses_set_nx(self):
        redis = self._redis()
        lock = SchedulerLock(redis, "me")
        assert await lock.acquire() is True
        redis.set.assert_awaited_once_with(LOCK_KEY, "me", nx=True, ex=LOCK_TTL_S)

    async def test_acquire_fails_when_held(self):
        lock = SchedulerLock(self._redis(set_result=None), "me")
        assert await lock.acquire() is False
        assert await lock.holder() == "other-instance"

    async def test_renew_reports_lost_lock(self):
        assert await SchedulerLock(self._redis(script_result=1), "me").renew() is True
        assert await SchedulerLock(self._redis(script_result=0), "me").renew() is False

    async def test_keepalive_stops_when_lock_lost(self, monkeypatch):
        monkeypatch.setattr(scheduler_runner, "KEEPALIVE_EVERY_S", 0.01)
        stop = asyncio.Event()
        await SchedulerLock(self._redis(script_result=0), "me").keepalive(stop)
        assert stop.is_set()

    async def test_standby_gives_up_on_stop(self):
        stop = asyncio.Event()
        stop.set()
        assert await SchedulerLock(self._redis(set_result=None), "me").wait_until_acquired(stop) is False
