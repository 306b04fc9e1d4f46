"""Structured JSON logging callback for FLOWRUNNER lifecycle events."""

import json
import logging
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("flowrunner.audit")

_KNOWN_EVENTS = {
    "workflow_started", "step_completed", "step_failed", "workflow_suspended", "workflow_finished",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _clip(value: Any) -> Any:
    if value is None or isinstance(value, (int, float, bool)):
        return value
    return str(value)[:200]


class LoggingCallback:
    """Emits one self-contained JSON object per lifecycle event.

    Each line carries ``event`` and ``ts`` plus the event's fields.
    Log level: INFO for normal events, WARNING for step failures and failed runs.
    Logger name: flowrunner.audit (configure in your logging setup)
    """

    async def __call__(self, event: str, data: dict) -> None:
        if event not in _KNOWN_EVENTS:
            return
        payload = {"event": event, "ts": _now(), **{k: _clip(v) for k, v in data.items()}}
        failed = event == "step_failed" or (
            event == "workflow_finished" and data.get("status") in ("failed", "cancelled")
        )
        logger.log(logging.WARNING if failed else logging.INFO, json.dumps(payload))
