"""Approval step: parks the run in ``waiting_approval`` until someone decides."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from flowrunner.types import (
    ApprovalStatus, ExecutionContext, ExecutionStatus, StepOutcome, StepType, Suspension,
)
from flowrunner.workflows.interpolation import interpolate
from flowrunner.workflows.step_configs import ApprovalConfig
from flowrunner.workflows.steps.base import StepServices, step_handler


@step_handler(StepType.APPROVAL, ApprovalConfig)
async def approval_step(
    config: ApprovalConfig,
    context: ExecutionContext,
    services: StepServices,
) -> StepOutcome:
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(seconds=config.timeout_seconds) if config.timeout_seconds else None
    instructions = interpolate(config.instructions, context)

    approval = {
        "status": ApprovalStatus.PENDING.value,
        "instructions": instructions,
        "approvers": list(config.approvers),
        "requested_at": now.isoformat(),
        "expires_at": expires_at.isoformat() if expires_at else None,
    }
    return StepOutcome(
        success=True,
        message=f"Awaiting approval: {instructions}",
        suspend=Suspension(
            status=ExecutionStatus.WAITING_APPROVAL,
            resume_at=expires_at,       # the scheduler expires the approval at this time
            approval=approval,
        ),
    )
