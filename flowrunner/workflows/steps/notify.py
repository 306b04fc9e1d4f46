"""Notify step: resolve recipients, render the message, hand off to the channel."""

from __future__ import annotations

from flowrunner.types import ExecutionContext, StepOutcome, StepType
from flowrunner.workflows.interpolation import interpolate, lookup
from flowrunner.workflows.step_configs import NotifyConfig
from flowrunner.workflows.steps.base import StepServices, step_handler

# recipient_type → context key holding the recipient's id
_DIRECT_RECIPIENTS = {
    "assigned_agent": "assignee_id",
    "requester": "requester_id",
}


async def _resolve_recipients(config: NotifyConfig, context: ExecutionContext, services: StepServices) -> list[str]:
    if config.recipient_type == "managers":
        return list(await services.agents.list_manager_ids())
    recipient_id = lookup(_DIRECT_RECIPIENTS[config.recipient_type], context)
    return [str(recipient_id)] if recipient_id else []


@step_handler(StepType.NOTIFY, NotifyConfig)
async def notify_step(
    config: NotifyConfig,
    context: ExecutionContext,
    services: StepServices,
) -> StepOutcome:
    recipients = await _resolve_recipients(config, context, services)
    if not recipients:
        return StepOutcome(success=False, message=f"No recipients found for {config.recipient_type}")

    subject = interpolate(config.subject, context)
    message = interpolate(config.message, context)

    for recipient_id in recipients:
        notification_id = await services.notifications.enqueue_notification(
            recipient_id=recipient_id,
            recipient_type=config.recipient_type,
            subject=subject,
            message=message,
            execution_id=context.execution_id,
        )
        if not notification_id:
            return StepOutcome(
                success=False,
                message=f"Notification channel did not confirm enqueue for {recipient_id}",
            )

    return StepOutcome(
        success=True,
        message=f"Notification queued for {config.recipient_type} ({len(recipients)} recipient(s))",
    )
