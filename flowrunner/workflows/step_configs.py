"""Typed configuration shapes, one per step type.

Decoded from ``WorkflowStep.step_config`` when a run loads its steps, so a
malformed step fails the run before anything executes instead of surfacing as
a missing key half-way through.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class StepConfig(BaseModel):
    model_config = {"extra": "ignore"}


class ConditionConfig(StepConfig):
    field: str = Field(min_length=1)
    operator: Literal["equals", "contains", "greater_than", "less_than"]
    value: Any = None


class FunctionConfig(StepConfig):
    function_name: str = Field(min_length=1)   # checked against the built-ins at run time


class TaskConfig(StepConfig):
    action: str = Field(min_length=1)
    field: Optional[str] = None
    value: Any = None

    @model_validator(mode="after")
    def _update_ticket_needs_field(self) -> "TaskConfig":
        if self.action == "update_ticket" and not self.field:
            raise ValueError("update_ticket requires 'field'")
        return self


class NotifyConfig(StepConfig):
    recipient_type: Literal["assigned_agent", "requester", "managers"]
    subject: str = "Notification"
    message: str = ""


class ApprovalConfig(StepConfig):
    instructions: str = "Manual approval required."
    approvers: list[str] = Field(default_factory=list)  # empty = anyone may decide
    timeout_seconds: Optional[int] = Field(default=None, gt=0)


class WebhookConfig(StepConfig):
    url: str = Field(min_length=1)
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"] = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class WaitConfig(StepConfig):
    delay_ms: int = Field(default=1000, ge=0)
