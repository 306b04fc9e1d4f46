"""Webhook step: outbound HTTP call with an interpolated, JSON-encoded body."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from flowrunner.types import ExecutionContext, StepOutcome, StepType
from flowrunner.workflows.interpolation import interpolate, interpolate_value
from flowrunner.workflows.step_configs import WebhookConfig
from flowrunner.workflows.steps.base import StepServices, step_handler

logger = logging.getLogger(__name__)


def _parse_response_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


@step_handler(StepType.WEBHOOK, WebhookConfig)
async def webhook_step(
    config: WebhookConfig,
    context: ExecutionContext,
    services: StepServices,
) -> StepOutcome:
    url = interpolate(config.url, context)
    headers = {name: interpolate(value, context) for name, value in config.headers.items()}

    request_kwargs: dict[str, Any] = {}
    if config.body is not None:
        body = interpolate_value(config.body, context)
        if isinstance(body, (dict, list)):
            request_kwargs["json"] = body
        else:
            request_kwargs["content"] = str(body)

    response = await services.http.request(
        config.method,
        url,
        headers=headers,
        timeout=services.config.webhook_timeout_seconds,
        **request_kwargs,
    )
    logger.debug("Webhook %s %s → %d", config.method, url, response.status_code)

    if not 200 <= response.status_code < 400:
        return StepOutcome(success=False, message=f"HTTP request failed: {response.status_code}")

    return StepOutcome(
        success=True,
        message=f"Webhook {config.method} to {url} succeeded",
        variables={"http_response": _parse_response_body(response)},
    )
