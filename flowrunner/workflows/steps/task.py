"""Task step: generic record mutation."""

from __future__ import annotations

from flowrunner.types import ExecutionContext, StepOutcome, StepType
from flowrunner.workflows.step_configs import TaskConfig
from flowrunner.workflows.steps.base import StepServices, step_handler


async def _update_ticket(config: TaskConfig, context: ExecutionContext, services: StepServices) -> StepOutcome:
    ticket_id = context.trigger_data.get("ticket_id")
    if not ticket_id:
        return StepOutcome(success=False, message="No ticket_id provided")

    # Unknown columns raise ValueError from the store; the executor logs it as an error.
    if not await services.tickets.update_ticket(str(ticket_id), {config.field: config.value}):
        return StepOutcome(success=False, message=f"Ticket {ticket_id} not found")
    return StepOutcome(success=True, message=f"Updated ticket {ticket_id}: {config.field}")


_ACTIONS = {
    "update_ticket": _update_ticket,
}


@step_handler(StepType.TASK, TaskConfig)
async def task_step(
    config: TaskConfig,
    context: ExecutionContext,
    services: StepServices,
) -> StepOutcome:
    action = _ACTIONS.get(config.action)
    if action is None:
        return StepOutcome(success=False, message=f"Unknown task action: {config.action}")
    return await action(config, context, services)
