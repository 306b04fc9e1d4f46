"""Typed exception hierarchy. Every error FLOWRUNNER can raise."""


class FlowRunnerError(Exception):
    """Base exception for all FLOWRUNNER errors."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.details = details or {}


class InfrastructureError(FlowRunnerError):
    """Store or network unreachable before any run could start."""
    pass


class StepConfigError(FlowRunnerError):
    """A step's configuration could not be decoded into its typed shape."""
    def __init__(self, message: str, sort_order: int = 0, step_type: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.sort_order = sort_order
        self.step_type = step_type


class ExecutionNotFound(FlowRunnerError):
    """Requested execution does not exist."""
    def __init__(self, message: str, execution_id: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.execution_id = execution_id


class ExecutionStateError(FlowRunnerError):
    """The execution is not in a status that allows the requested transition."""
    def __init__(self, message: str, execution_id: str = "", status: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.execution_id = execution_id
        self.status = status


class ApprovalError(FlowRunnerError):
    """Approval decision rejected (e.g. approver not on the allowed list)."""
    def __init__(self, message: str, execution_id: str = "", approver: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.execution_id = execution_id
        self.approver = approver
