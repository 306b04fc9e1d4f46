"""Function step: named built-in routines."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from flowrunner.types import ExecutionContext, StepOutcome, StepType
from flowrunner.workflows.step_configs import FunctionConfig
from flowrunner.workflows.steps.base import StepServices, step_handler

logger = logging.getLogger(__name__)

BuiltinFn = Callable[[FunctionConfig, ExecutionContext, StepServices], Awaitable[StepOutcome]]


async def assign_to_least_busy_agent(
    config: FunctionConfig,
    context: ExecutionContext,
    services: StepServices,
) -> StepOutcome:
    ticket_id = context.trigger_data.get("ticket_id")
    if not ticket_id:
        return StepOutcome(success=False, message="No ticket_id in trigger data")

    agent_id = await services.agents.get_least_busy_agent()
    if agent_id is None:
        return StepOutcome(success=False, message="No agents available")

    if not await services.tickets.update_ticket(str(ticket_id), {"assignee_id": agent_id}):
        return StepOutcome(success=False, message=f"Failed to assign ticket {ticket_id}: ticket not found")

    logger.debug("Assigned ticket=%s to agent=%s", ticket_id, agent_id)
    return StepOutcome(
        success=True,
        message=f"Assigned ticket to agent {agent_id}",
        variables={"assignee_id": agent_id},
    )


BUILTIN_FUNCTIONS: dict[str, BuiltinFn] = {
    "assign_to_least_busy_agent": assign_to_least_busy_agent,
}


@step_handler(StepType.FUNCTION, FunctionConfig)
async def function_step(
    config: FunctionConfig,
    context: ExecutionContext,
    services: StepServices,
) -> StepOutcome:
    fn = BUILTIN_FUNCTIONS.get(config.function_name)
    if fn is None:
        return StepOutcome(success=False, message=f"Unknown function: {config.function_name}")
    return await fn(config, context, services)
