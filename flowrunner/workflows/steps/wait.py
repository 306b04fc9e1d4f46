"""Wait step: durable delay.

A zero delay succeeds inline.  Anything longer suspends the run with a
``resume_at`` timestamp; the resume scheduler re-enters it once due, so no
worker sits in ``asyncio.sleep`` for the duration.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from flowrunner.types import ExecutionContext, ExecutionStatus, StepOutcome, StepType, Suspension
from flowrunner.workflows.step_configs import WaitConfig
from flowrunner.workflows.steps.base import StepServices, step_handler


@step_handler(StepType.WAIT, WaitConfig)
async def wait_step(
    config: WaitConfig,
    context: ExecutionContext,
    services: StepServices,
) -> StepOutcome:
    if config.delay_ms == 0:
        return StepOutcome(success=True, message="Delayed 0ms")

    resume_at = datetime.now(timezone.utc) + timedelta(milliseconds=config.delay_ms)
    return StepOutcome(
        success=True,
        message=f"Waiting {config.delay_ms}ms until {resume_at.isoformat()}",
        suspend=Suspension(status=ExecutionStatus.WAITING, resume_at=resume_at),
    )
