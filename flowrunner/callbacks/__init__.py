"""Callback/hook system for FLOWRUNNER lifecycle events."""

from flowrunner.callbacks.base import FlowRunnerCallback, fire_callbacks
from flowrunner.callbacks.logging import LoggingCallback

__all__ = ["FlowRunnerCallback", "LoggingCallback", "fire_callbacks"]
