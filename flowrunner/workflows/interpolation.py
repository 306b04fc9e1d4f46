"""``{{token}}`` substitution against a run's variables and trigger payload.

Resolution order for a token: ``context.variables`` first, then
``context.trigger_data``.  A token is resolved by key *presence*, so falsy
values (``0``, ``""``, ``False``) are substituted like any other.  Dotted tokens
(``http_response.id``) resolve their first segment the same way and then walk
nested mappings/lists.  Tokens that resolve nowhere are kept as ``{{token}}``
with the whitespace inside the braces trimmed.
"""

from __future__ import annotations

import json
import re
from typing import Any

_TOKEN_RE = re.compile(r"\{\{([^}]+)\}\}")
_MISSING = object()


def _sources(context) -> tuple[dict, dict]:
    return context.variables, context.trigger_data


def _walk(value: Any, parts: list[str]) -> Any:
    for part in parts:
        if isinstance(value, dict) and part in value:
            value = value[part]
        elif isinstance(value, list) and part.isdigit() and int(part) < len(value):
            value = value[int(part)]
        else:
            return _MISSING
    return value


def lookup(token: str, context) -> Any:
    """Resolve *token* against the context. Returns ``None`` when absent."""
    value = _resolve(token.strip(), context)
    return None if value is _MISSING else value


def _resolve(token: str, context) -> Any:
    sources = _sources(context)
    for source in sources:
        if token in source:
            return source[token]

    head, _, rest = token.partition(".")
    if not rest:
        return _MISSING
    for source in sources:
        if head in source:
            value = _walk(source[head], rest.split("."))
            if value is not _MISSING:
                return value
    return _MISSING


def render(value: Any) -> str:
    """String form of a resolved value as it appears inside a template."""
    if value is None:
        return ""
    if isinstance(value, (dict, list, bool)):
        return json.dumps(value, default=str)
    return str(value)


def interpolate(template: str, context) -> str:
    """Replace every ``{{ token }}`` in *template*. Pure and idempotent."""
    if not isinstance(template, str) or "{{" not in template:
        return template

    def _sub(match: re.Match) -> str:
        token = match.group(1).strip()
        value = _resolve(token, context)
        if value is _MISSING:
            return "{{" + token + "}}"
        return render(value)

    return _TOKEN_RE.sub(_sub, template)


def interpolate_value(value: Any, context) -> Any:
    """Interpolate a structured value tree (dicts, lists, strings).

    A string that is exactly one ``{{token}}`` resolves to the raw value, so
    numbers, booleans and nested objects keep their type when the tree is
    later serialized as JSON.
    """
    if isinstance(value, str):
        full = _TOKEN_RE.fullmatch(value.strip())
        if full:
            resolved = _resolve(full.group(1).strip(), context)
            if resolved is not _MISSING:
                return resolved
        return interpolate(value, context)
    if isinstance(value, dict):
        return {k: interpolate_value(v, context) for k, v in value.items()}
    if isinstance(value, list):
        return [interpolate_value(v, context) for v in value]
    return value
