"""Callback protocol for FLOWRUNNER lifecycle hooks.

Callbacks are plain async (or sync) callables ``cb(event: str, data: dict)``
invoked at key points of a run:

    workflow_started    {workflow_id, workflow_name, execution_id, trigger_type}
    step_completed      {execution_id, sort_order, step_type, success, message}
    step_failed         {execution_id, sort_order, step_type, error}
    workflow_suspended  {workflow_id, execution_id, status, resume_at}
    workflow_finished   {workflow_id, execution_id, status, error}

Usage:
    async def my_callback(event, data):
        print(event, data)

    runner = build_runner(..., callbacks=[my_callback])
"""

import inspect
import logging
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class FlowRunnerCallback(Protocol):
    async def __call__(self, event: str, data: dict[str, Any]) -> None:
        ...


async def fire_callbacks(callbacks: list, event: str, data: dict[str, Any]) -> None:
    """Invoke all registered callbacks for a lifecycle event.

    A failing callback is logged and skipped; it never affects the run.
    """
    for cb in callbacks or []:
        try:
            result = cb(event, data)
            if inspect.isawaitable(result):
                await result
        except Exception as cb_exc:
            logger.warning("Callback error on '%s': %s", event, cb_exc)
