"""Tool call parsing utilities.

Models frequently emit slightly wrong tool arguments: malformed JSON, ``null``
for optional parameters, or booleans and numbers quoted as strings. The helpers
here normalize those into a plain arguments object instead of failing the turn.
They also recover tool calls from the ``failed_generation`` text some
providers attach to an HTTP 400 when they reject the model's own tool output.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from typing import Any, Mapping

from .types import ParsedToolCall

__all__ = [
    "MAX_TOOL_RESULT_CHARS",
    "parse_tool_arguments",
    "normalize_arguments",
    "coerce_value",
    "recover_tool_calls",
    "failed_generation_from_error",
    "truncate_result",
    "recovered_tool_call_id",
]

LOGGER = logging.getLogger(__name__)

MAX_TOOL_RESULT_CHARS = 15_000

_NUMERIC_RE = re.compile(r"^-?\d+(\.\d+)?$")
_MAX_NUMERIC_LENGTH = 16
_EMBEDDED_ARRAY_RE = re.compile(r"\[[\s\S]*?\{[\s\S]*?\"name\"[\s\S]*?\}[\s\S]*?\]")
_FUNCTION_MARKER_RE = re.compile(r"<function=(\w+)\s*(\{[\s\S]*?\})\s*>")


def parse_tool_arguments(arguments: str | Mapping[str, Any] | None) -> dict[str, Any]:
    """Parse raw argument text into a normalized arguments object.

    Malformed JSON and non-object JSON both degrade to ``{}``.
    """
    if isinstance(arguments, Mapping):
        return normalize_arguments(arguments)
    if not arguments or not arguments.strip():
        return {}
    try:
        parsed = json.loads(arguments)
    except json.JSONDecodeError as exc:
        LOGGER.debug("Tool arguments are not valid JSON (%s); using {}", exc)
        return {}
    return normalize_arguments(parsed)


def normalize_arguments(value: Any) -> dict[str, Any]:
    """Drop ``None`` values and coerce quoted booleans/numbers (shallow)."""
    if not isinstance(value, Mapping):
        return {}
    return {str(key): coerce_value(item) for key, item in value.items() if item is not None}


def coerce_value(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    if value == "true":
        return True
    if value == "false":
        return False
    if len(value) < _MAX_NUMERIC_LENGTH and _NUMERIC_RE.match(value):
        return float(value) if "." in value else int(value)
    return value


# -----------------------------------------------------------------------------
# failed_generation recovery
# -----------------------------------------------------------------------------


def failed_generation_from_error(error: BaseException) -> str | None:
    """Return the provider's ``failed_generation`` text for a rejected 400 turn."""
    if getattr(error, "status_code", None) != 400:
        return None
    body = getattr(error, "body", None)
    if not isinstance(body, Mapping):
        return None
    text = body.get("failed_generation")
    if text is None and isinstance(body.get("error"), Mapping):
        text = body["error"].get("failed_generation")
    return text if isinstance(text, str) and text.strip() else None


def recover_tool_calls(failed_generation: str, start_index: int = 0) -> list[ParsedToolCall]:
    """Extract tool calls from rejected generation text.

    Three shapes are understood, tried in order: a pure JSON array of
    ``{"name", "parameters"}`` objects, such an array embedded in prose, and
    ``<function=name{...}>`` markers.
    """
    if not failed_generation:
        return []

    entries = _parse_call_array(failed_generation)
    if entries is None:
        match = _EMBEDDED_ARRAY_RE.search(failed_generation)
        if match:
            entries = _parse_call_array(match.group(0))
    if entries is None:
        entries = _parse_function_markers(failed_generation)

    calls: list[ParsedToolCall] = []
    for offset, (name, parameters) in enumerate(entries or []):
        index = start_index + offset
        calls.append(
            ParsedToolCall(
                call_id=recovered_tool_call_id(index),
                name=name,
                arguments=json.dumps(normalize_arguments(parameters), ensure_ascii=False),
                index=index,
            )
        )
    if calls:
        LOGGER.info("Recovered %d tool call(s) from failed generation", len(calls))
    return calls


def recovered_tool_call_id(index: int) -> str:
    return f"recovered_{uuid.uuid4().hex[:12]}_{index}"


def _parse_call_array(text: str) -> list[tuple[str, Any]] | None:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, list):
        return None
    entries: list[tuple[str, Any]] = []
    for item in parsed:
        if isinstance(item, Mapping) and item.get("name"):
            entries.append((str(item["name"]), item.get("parameters") or {}))
    return entries


def _parse_function_markers(text: str) -> list[tuple[str, Any]]:
    entries: list[tuple[str, Any]] = []
    for match in _FUNCTION_MARKER_RE.finditer(text):
        try:
            parameters = json.loads(match.group(2))
        except json.JSONDecodeError:
            continue
        entries.append((match.group(1), parameters))
    return entries


# -----------------------------------------------------------------------------
# Result truncation
# -----------------------------------------------------------------------------


def truncate_result(content: str, max_chars: int = MAX_TOOL_RESULT_CHARS) -> str:
    """Cut an oversized tool result and append a note telling the model so."""
    if len(content) <= max_chars:
        return content
    return (
        f"{content[:max_chars]}\n\n... [TRUNCATED: result was {round(len(content) / 1024)}KB, "
        f"kept first {round(max_chars / 1024)}KB. Summarize what you have and suggest "
        "the user narrow the query if needed.]"
    )
