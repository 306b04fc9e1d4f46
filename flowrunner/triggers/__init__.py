"""FLOWRUNNER trigger side: event matching and the resume scheduler."""

from flowrunner.triggers.matcher import TriggerMatcher
from flowrunner.triggers.scheduler import ResumeScheduler

__all__ = ["TriggerMatcher", "ResumeScheduler"]
