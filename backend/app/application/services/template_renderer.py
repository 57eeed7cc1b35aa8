"""Webhook payload templates.

A template is a JSON document with ``{{ path }}`` placeholders. A placeholder
in value position is replaced by the JSON encoding of the value it points at;
one inside a JSON string is replaced by the escaped text of the value. Either
way a flag description containing quotes or newlines cannot break the document.
A placeholder may pipe the value through one filter: ``{{ flag.name | upper }}``.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

TEMPLATE_VAR_PATTERN = re.compile(r"{{\s*([a-zA-Z0-9_.-]+)\s*(?:\|\s*([a-zA-Z_]+)\s*)?}}")
_DELIMITER_PATTERN = re.compile(r"{{|{%")

DEFAULT_TEMPLATE = """{
  "event": {{ event_type }},
  "flag": {
    "name": {{ flag.name }},
    "type": {{ flag.type }},
    "description": {{ flag.description }},
    "environments": {{ environments }}
  },
  "previous": {{ previous }},
  "changed_environment": {{ changed_environment }},
  "previous_environment": {{ previous_environment }},
  "timestamp": {{ timestamp }}
}"""

RENDER_FAILURE_DOCUMENT = json.dumps(
    {
        "error": "Webhook rendering failed",
        "message": "Both custom and default templates failed to render.",
    }
)


class TemplateRenderError(ValueError):
    pass


def _upper(value: Any) -> Any:
    return value.upper() if isinstance(value, str) else value


def _lower(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


def _string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), default=str)


def _length(value: Any) -> int:
    if value is None:
        return 0
    try:
        return len(value)
    except TypeError as exc:
        raise TemplateRenderError(f"Filter 'length' cannot be applied to {type(value).__name__}") from exc


FILTERS = {
    "upper": _upper,
    "lower": _lower,
    "string": _string,
    "length": _length,
}


def _resolve_path(payload: dict[str, Any], path: str) -> Any:
    current: Any = payload
    for token in path.split("."):
        if isinstance(current, dict) and token in current:
            current = current[token]
        elif isinstance(current, list) and token.isdigit() and int(token) < len(current):
            current = current[int(token)]
        else:
            raise TemplateRenderError(f"Unknown template variable '{path}'")
    return current


def _ends_inside_string(segment: str, inside: bool) -> bool:
    escaped = False
    for char in segment:
        if escaped:
            escaped = False
        elif inside and char == "\\":
            escaped = True
        elif char == '"':
            inside = not inside
    return inside


def _evaluate(match: re.Match[str], variables: dict[str, Any]) -> Any:
    value = _resolve_path(variables, match.group(1).strip())
    filter_name = match.group(2)
    if filter_name:
        filter_fn = FILTERS.get(filter_name)
        if filter_fn is None:
            raise TemplateRenderError(f"Unknown template filter '{filter_name}'")
        value = filter_fn(value)
    return value


def render_json_template(template: str, variables: dict[str, Any]) -> str:
    """Render ``template`` strictly; raises ``TemplateRenderError`` on any problem.

    A placeholder standing as a JSON value becomes a JSON literal. A
    placeholder inside a JSON string is interpolated as escaped text, with
    ``null`` printed as nothing: ``{"text": "Flag {{ flag.name }} was {{ event_type }}"}``.
    """
    parts: list[str] = []
    inside_string = False
    position = 0
    for match in TEMPLATE_VAR_PATTERN.finditer(template):
        literal = template[position:match.start()]
        parts.append(literal)
        inside_string = _ends_inside_string(literal, inside_string)
        value = _evaluate(match, variables)
        if inside_string:
            parts.append(json.dumps(_string(value), ensure_ascii=False)[1:-1])
        else:
            parts.append(json.dumps(value, ensure_ascii=False, default=str))
        position = match.end()
    parts.append(template[position:])
    rendered = "".join(parts)

    leftover = _DELIMITER_PATTERN.search(TEMPLATE_VAR_PATTERN.sub("", template))
    if leftover is not None:
        raise TemplateRenderError(f"Malformed template near '{leftover.group(0)}'")
    try:
        json.loads(rendered)
    except json.JSONDecodeError as exc:
        raise TemplateRenderError(f"Rendered template is not valid JSON: {exc.msg}") from exc
    return rendered


def render_payload(template: str | None, variables: dict[str, Any]) -> str:
    """Render a webhook payload, falling back to the default template and then to a fixed error document."""
    if template:
        try:
            return render_json_template(template, variables)
        except Exception as exc:
            logger.warning("webhook_template_render_failed error=%s", exc)
    try:
        return render_json_template(DEFAULT_TEMPLATE, variables)
    except Exception as exc:
        logger.error("webhook_default_template_render_failed error=%s", exc)
    return RENDER_FAILURE_DOCUMENT
