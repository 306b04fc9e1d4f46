"""Built-in step handlers. Importing this package registers all of them."""

from flowrunner.workflows.steps import approval, condition, function, notify, task, wait, webhook  # noqa: F401
from flowrunner.workflows.steps.base import (
    StepServices,
    get_registered_steps,
    get_step_registration,
    step_handler,
)

__all__ = ["StepServices", "get_registered_steps", "get_step_registration", "step_handler"]
