"""Condition step: abort-on-false gate over a trigger payload field."""

from __future__ import annotations

from typing import Any, Optional

from flowrunner.types import ExecutionContext, StepOutcome, StepType
from flowrunner.workflows.step_configs import ConditionConfig
from flowrunner.workflows.steps.base import StepServices, step_handler

_ABSENT = object()


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _read_field(field: str, trigger_data: dict) -> Any:
    if field in trigger_data:
        return trigger_data[field]
    value: Any = trigger_data
    for part in field.split("."):
        if not isinstance(value, dict) or part not in value:
            return _ABSENT
        value = value[part]
    return value


def evaluate(operator: str, actual: Any, expected: Any) -> bool:
    """Compare a payload value with the configured one."""
    if operator == "equals":
        # bools only equal bools; True == 1 must not pass
        if isinstance(actual, bool) or isinstance(expected, bool):
            return isinstance(actual, bool) and isinstance(expected, bool) and actual is expected
        return actual == expected
    if operator == "contains":
        if isinstance(actual, (list, tuple)):
            return expected in actual
        return str(expected) in str(actual)
    if operator in ("greater_than", "less_than"):
        left, right = _to_number(actual), _to_number(expected)
        if left is None or right is None:
            return False
        return left > right if operator == "greater_than" else left < right
    return False


@step_handler(StepType.CONDITION, ConditionConfig)
async def condition_step(
    config: ConditionConfig,
    context: ExecutionContext,
    services: StepServices,
) -> StepOutcome:
    actual = _read_field(config.field, context.trigger_data)
    if actual is _ABSENT:
        return StepOutcome(
            success=False,
            message=f"Condition failed: field '{config.field}' not in trigger data",
        )
    passed = evaluate(config.operator, actual, config.value)
    summary = f"{config.field} {config.operator} {config.value!r}"
    return StepOutcome(
        success=passed,
        message=f"Condition passed: {summary}" if passed else f"Condition failed: {summary}",
    )
