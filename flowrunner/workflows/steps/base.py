"""Step handler registry and the collaborators handlers may call.

Usage:
    @step_handler("condition", ConditionConfig)
    async def condition_step(config: ConditionConfig, context, services) -> StepOutcome:
        ...

Registration happens at import time; ``flowrunner.workflows.steps`` imports
every built-in handler module.  New step types only need a new module here,
the executor and loader look handlers up by tag.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, NamedTuple, Optional, Protocol, runtime_checkable

from pydantic import BaseModel

from flowrunner.types import ExecutionContext, StepOutcome

StepHandlerFn = Callable[[Any, ExecutionContext, "StepServices"], Awaitable[StepOutcome]]


class StepRegistration(NamedTuple):
    handler: StepHandlerFn
    config_model: type[BaseModel]


# Global registry: collected at import time
_registered_steps: dict[str, StepRegistration] = {}


def step_handler(step_type: str, config_model: type[BaseModel]):
    """Register *func* as the handler for ``step_type``."""
    key = getattr(step_type, "value", step_type)

    def decorator(func: StepHandlerFn) -> StepHandlerFn:
        _registered_steps[key] = StepRegistration(func, config_model)
        return func

    return decorator


def get_step_registration(step_type: str) -> Optional[StepRegistration]:
    return _registered_steps.get(step_type)


def get_registered_steps() -> dict[str, StepRegistration]:
    return dict(_registered_steps)


# ── Collaborators ────────────────────────────────────────────────────────────

@runtime_checkable
class TicketStore(Protocol):
    async def update_ticket(self, ticket_id: str, updates: dict[str, Any]) -> bool:
        """Patch a ticket. Returns False when the ticket does not exist."""
        ...


@runtime_checkable
class AgentDirectory(Protocol):
    async def get_least_busy_agent(self) -> Optional[str]:
        """Active agent with the fewest open tickets, or None."""
        ...

    async def list_manager_ids(self) -> list[str]:
        ...


@runtime_checkable
class NotificationChannel(Protocol):
    async def enqueue_notification(
        self,
        recipient_id: str,
        recipient_type: str,
        subject: str,
        message: str,
        execution_id: Optional[str] = None,
    ) -> Optional[str]:
        """Queue a notification. A returned id is the enqueue confirmation."""
        ...


class StepServices:
    """Everything a handler may reach outside its (config, context) pair."""

    def __init__(
        self,
        tickets: TicketStore,
        agents: AgentDirectory,
        notifications: NotificationChannel,
        http_client,
        config,
    ) -> None:
        self.tickets = tickets
        self.agents = agents
        self.notifications = notifications
        self.http = http_client           # httpx.AsyncClient
        self.config = config
