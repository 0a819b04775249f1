"""
Tool Converter - OpenAI function calling format conversion.

Utilities for converting registered tools to the format required by
OpenAI-style native function calling, and tool results back into
conversation messages.
"""

import json
from collections.abc import Iterable
from typing import Any

from agentloop.core.domain.messages import Message, Role, ToolCall, ToolResult
from agentloop.core.interfaces.tools import ToolProtocol


def tools_to_openai_format(tools: Iterable[ToolProtocol]) -> list[dict[str, Any]]:
    """
    Convert tools to OpenAI function calling format.

    Args:
        tools: Registered tools (e.g. a ToolRegistry)

    Returns:
        List of tool definitions:
        [
            {
                "type": "function",
                "function": {
                    "name": "tool_name",
                    "description": "Tool description",
                    "parameters": { JSON Schema }
                }
            },
            ...
        ]
    """
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters_schema,
            },
        }
        for tool in tools
    ]


def tool_result_to_message(
    call: ToolCall,
    result: ToolResult,
    max_output_chars: int = 20000,
) -> Message:
    """
    Convert a tool result into the tool message appended to history.

    Large outputs are truncated to keep the next model request within
    token limits. The default limit is 20,000 chars (~5,000 tokens).

    Args:
        call: The call being answered
        result: Its result
        max_output_chars: Max characters for the output and error fields

    Returns:
        Message with role TOOL whose content is the JSON result payload
    """
    payload = _truncate_payload(result.to_payload(), max_output_chars)
    return Message(
        role=Role.TOOL,
        content=json.dumps(payload, ensure_ascii=False, default=str),
        tool_call_id=call.id,
        name=call.name,
    )


def _truncate_payload(payload: dict[str, Any], max_chars: int) -> dict[str, Any]:
    truncated = payload.copy()
    for field in ("output", "error"):
        value = truncated.get(field)
        if isinstance(value, str) and len(value) > max_chars:
            overflow = len(value) - max_chars
            truncated[field] = value[:max_chars] + f"\n\n[... TRUNCATED - {overflow} more chars ...]"
    return truncated


def truncate_for_display(text: str, max_length: int = 200) -> str:
    """Shorten text for one-line display in logs and the CLI."""
    text = text or ""
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."
