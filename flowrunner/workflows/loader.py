"""StepLoader: fetches a workflow's steps in execution order and decodes their configs."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from flowrunner.exceptions import StepConfigError
from flowrunner.types import LoadedStep, WorkflowStep
from flowrunner.workflows.steps import get_step_registration

logger = logging.getLogger(__name__)


def _describe(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
        for err in exc.errors()
    )


def decode_step(step: WorkflowStep) -> LoadedStep:
    """Validate ``step.step_config`` against the handler's config model.

    Unknown step types keep their raw dict; they fail when reached, not here.
    """
    registration = get_step_registration(step.step_type)
    if registration is None:
        return LoadedStep(step, dict(step.step_config))
    try:
        config = registration.config_model.model_validate(step.step_config)
    except ValidationError as exc:
        raise StepConfigError(
            f"Step {step.sort_order} ({step.step_type}) has invalid config: {_describe(exc)}",
            sort_order=step.sort_order,
            step_type=step.step_type,
            details={"errors": exc.errors(include_url=False)},
        ) from exc
    return LoadedStep(step, config)


class StepLoader:
    """Loads steps fresh on every call. No caching."""

    def __init__(self, repository) -> None:
        self._repository = repository

    async def load(self, workflow_id: str) -> list[LoadedStep]:
        steps = await self._repository.list_steps(workflow_id)
        # The store orders by sort_order too; sorting here keeps the guarantee
        # independent of whichever store is plugged in.
        ordered = sorted(steps, key=lambda s: s.sort_order)
        logger.debug("Loaded %d steps for workflow=%s", len(ordered), workflow_id)
        return [decode_step(step) for step in ordered]
