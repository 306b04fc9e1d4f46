"""FLOWRUNNER: event-triggered workflow execution.

Usage:
    from flowrunner.triggers import TriggerMatcher

    result = await matcher.dispatch("ticket_created", {"ticket_id": "42", "priority": "high"})
"""

from flowrunner.types import (
    Workflow, WorkflowStep, WorkflowExecution, ExecutionContext, ExecutionStatus,
    StepType, StepOutcome, WorkflowRunResult, DispatchResult,
)
from flowrunner.exceptions import (
    FlowRunnerError, InfrastructureError, StepConfigError, ExecutionNotFound,
    ExecutionStateError, ApprovalError,
)
from flowrunner.version import __version__

__all__ = [
    "Workflow", "WorkflowStep", "WorkflowExecution", "ExecutionContext", "ExecutionStatus",
    "StepType", "StepOutcome", "WorkflowRunResult", "DispatchResult",
    "FlowRunnerError", "InfrastructureError", "StepConfigError", "ExecutionNotFound",
    "ExecutionStateError", "ApprovalError",
    "__version__",
]
