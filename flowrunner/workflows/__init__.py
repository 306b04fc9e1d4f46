"""flowrunner.workflows: step loading, execution, recording and interpolation."""

from .executor import ExecutionLog, StepExecutor
from .interpolation import interpolate, interpolate_value
from .loader import StepLoader
from .recorder import ExecutionRecorder
from .runner import WorkflowRunner, build_runner

__all__ = [
    "ExecutionLog", "StepExecutor", "StepLoader", "ExecutionRecorder",
    "WorkflowRunner", "build_runner", "interpolate", "interpolate_value",
]
