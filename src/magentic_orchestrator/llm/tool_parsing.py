"""
Text-embedded tool call extraction.

Local models that do not emit native tool calls describe them in their
reply text instead. Three syntaxes are recognized, in order:

1. ``<tool_call>{"name": ..., "arguments": {...}}</tool_call>`` tags
2. fenced ```json blocks holding ``{"tool_calls": [...]}`` or a single call
3. the whole reply being one of the JSON shapes above

The first syntax that yields calls wins. Malformed fragments are skipped.
"""

import json
import logging
import re
from typing import Any

from .base import ToolCall, new_tool_call_id

logger = logging.getLogger(__name__)

_TAG_PATTERN = re.compile(r"<tool_call>\s*(\{.*?\})\s*</tool_call>", re.DOTALL)
_FENCE_PATTERN = re.compile(r"```json\s*\n(.*?)\n\s*```", re.DOTALL)

_ARGUMENT_KEYS = ("arguments", "input", "parameters")


def _call_from_object(obj: Any) -> ToolCall | None:
    """Normalize one ``{name, arguments|input|parameters}`` object."""
    if not isinstance(obj, dict) or not isinstance(obj.get("name"), str):
        return None

    arguments: Any = None
    for key in _ARGUMENT_KEYS:
        if key in obj:
            arguments = obj[key]
            break
    if arguments is None:
        return None

    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments)
        except json.JSONDecodeError:
            arguments = {"input": arguments}
    if not isinstance(arguments, dict):
        return None

    return ToolCall(
        id=str(obj.get("id") or new_tool_call_id()),
        name=obj["name"],
        arguments=arguments,
    )


def _calls_from_payload(payload: Any) -> list[ToolCall]:
    """Extract calls from a decoded JSON payload of either accepted shape."""
    if isinstance(payload, dict) and isinstance(payload.get("tool_calls"), list):
        calls = []
        for item in payload["tool_calls"]:
            # OpenAI-style {"function": {...}} wrappers
            if isinstance(item, dict) and isinstance(item.get("function"), dict):
                item = {"id": item.get("id"), **item["function"]}
            call = _call_from_object(item)
            if call:
                calls.append(call)
        return calls

    call = _call_from_object(payload)
    return [call] if call else []


def _decode(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def extract_tool_calls(content: str) -> list[ToolCall]:
    """
    Extract tool calls embedded in a model's reply text.

    Args:
        content: Reply text from the model

    Returns:
        Tool calls in the order they appear (empty if none were found)
    """
    if not content:
        return []

    calls: list[ToolCall] = []
    for fragment in _TAG_PATTERN.findall(content):
        payload = _decode(fragment)
        if payload is None:
            logger.warning("Skipping malformed <tool_call> fragment")
            continue
        calls.extend(_calls_from_payload(payload))
    if calls:
        return calls

    for block in _FENCE_PATTERN.findall(content):
        payload = _decode(block)
        if payload is None:
            logger.debug("Skipping fenced JSON block that does not parse")
            continue
        calls.extend(_calls_from_payload(payload))
    if calls:
        return calls

    stripped = content.strip()
    if stripped.startswith("{"):
        payload = _decode(stripped)
        if payload is not None:
            calls.extend(_calls_from_payload(payload))

    return calls


def describe_tools_for_prompt(tools: list[dict[str, Any]]) -> str:
    """
    Render tool definitions as a system-prompt section for text-only models.

    Args:
        tools: Tool definitions ({"name", "description", "parameters"})

    Returns:
        Prompt text listing each tool and the expected call syntax
    """
    if not tools:
        return ""

    lines = ["AVAILABLE TOOLS:"]
    for tool in tools:
        lines.append(f"- {tool.get('name', '')}: {tool.get('description', '')}")
        properties = (tool.get("parameters") or {}).get("properties") or {}
        if properties:
            lines.append(f"  Parameters: {', '.join(properties)}")
    lines.append("")
    lines.append("To call a tool, reply with a JSON block:")
    lines.append("```json")
    lines.append('{"tool_calls": [{"id": "call_1", "name": "tool_name", "input": {...}}]}')
    lines.append("```")
    return "\n".join(lines)
