"""Conversion between the typed conversation model and Bedrock Converse JSON.

Tool result wrapping convention
-------------------------------
Converse requires the ``json`` member of a tool result to be an object.
Payloads are therefore normalized before transmission:

- a list ``[...]`` is sent as ``{"data": [...]}``
- a dict is sent unchanged
- any scalar (string, number, bool, null) is sent as ``{"value": x}``

``unwrap_result_payload()`` reverses this. A dict whose only key is
``data`` holding a list, or whose only key is ``value``, is treated as
wrapped. Tools should therefore not return an object shaped exactly like
a wrapper if they need it back verbatim on the consuming side.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable
from typing import Any

from lumen.agent.schemas import (
    ContentBlock,
    Conversation,
    OtherBlock,
    TextBlock,
    ToolDefinition,
    ToolResultBlock,
    ToolStatus,
    ToolUseBlock,
    Turn,
)

logger = logging.getLogger(__name__)

ARRAY_KEY = "data"
SCALAR_KEY = "value"


# ---------------------------------------------------------------------------
# Tool specs
# ---------------------------------------------------------------------------


def to_wire_tool_spec(definitions: Iterable[ToolDefinition]) -> list[dict[str, Any]]:
    """Convert tool definitions to Converse ``toolSpec`` entries.

    Schemas are deep-copied so nothing downstream can alias (and mutate)
    the registry's own schema objects.
    """
    return [
        {
            "toolSpec": {
                "name": d.name,
                "description": d.description,
                "inputSchema": {"json": copy.deepcopy(d.input_schema)},
            }
        }
        for d in definitions
    ]


def to_wire_tool_config(definitions: Iterable[ToolDefinition]) -> dict[str, Any] | None:
    specs = to_wire_tool_spec(definitions)
    if not specs:
        return None
    return {"tools": specs}


# ---------------------------------------------------------------------------
# Content extraction
# ---------------------------------------------------------------------------


def extract_text(turn: Turn) -> str:
    """Join all text blocks of a turn with newlines."""
    return "\n".join(b.text for b in turn.content if isinstance(b, TextBlock))


def extract_invocations(turn: Turn) -> list[ToolUseBlock]:
    """Tool invocations of a turn, in emitted order."""
    return [b for b in turn.content if isinstance(b, ToolUseBlock)]


# ---------------------------------------------------------------------------
# Tool results
# ---------------------------------------------------------------------------


def wrap_result_payload(payload: Any) -> dict[str, Any]:
    """Object-shaped copy of ``payload``; never aliases the tool's own data."""
    if isinstance(payload, dict):
        return copy.deepcopy(payload)
    if isinstance(payload, (list, tuple)):
        return {ARRAY_KEY: copy.deepcopy(list(payload))}
    return {SCALAR_KEY: payload}


def unwrap_result_payload(payload: dict[str, Any]) -> Any:
    if len(payload) == 1:
        if ARRAY_KEY in payload and isinstance(payload[ARRAY_KEY], list):
            return payload[ARRAY_KEY]
        if SCALAR_KEY in payload:
            return payload[SCALAR_KEY]
    return payload


def to_wire_result(
    invocation_id: str,
    payload: Any,
    status: ToolStatus = "success",
) -> ToolResultBlock:
    return ToolResultBlock(
        tool_use_id=invocation_id,
        payload=wrap_result_payload(payload),
        status=status,
    )


# ---------------------------------------------------------------------------
# Turn <-> wire
# ---------------------------------------------------------------------------


def block_to_wire(block: ContentBlock) -> dict[str, Any]:
    if isinstance(block, TextBlock):
        return {"text": block.text}
    if isinstance(block, ToolUseBlock):
        return {
            "toolUse": {
                "toolUseId": block.id,
                "name": block.name,
                "input": copy.deepcopy(block.input),
            }
        }
    if isinstance(block, ToolResultBlock):
        return {
            "toolResult": {
                "toolUseId": block.tool_use_id,
                "content": [{"json": copy.deepcopy(block.payload)}],
                "status": block.status,
            }
        }
    return copy.deepcopy(block.raw)


def block_from_wire(data: dict[str, Any]) -> ContentBlock:
    if "text" in data:
        return TextBlock(text=data["text"])
    if "toolUse" in data:
        tool_use = data["toolUse"]
        return ToolUseBlock(
            id=tool_use["toolUseId"],
            name=tool_use["name"],
            input=tool_use.get("input", {}),
        )
    if "toolResult" in data:
        result = data["toolResult"]
        payload: dict[str, Any] = {}
        for item in result.get("content", []):
            if "json" in item:
                payload = item["json"]
                break
            if "text" in item:
                payload = {"text": item["text"]}
                break
        return ToolResultBlock(
            tool_use_id=result["toolUseId"],
            payload=payload,
            status=result.get("status", "success"),
        )
    logger.debug("Keeping uninterpreted content block: %s", list(data))
    return OtherBlock(raw=data)


def turn_to_wire(turn: Turn) -> dict[str, Any]:
    return {"role": turn.role, "content": [block_to_wire(b) for b in turn.content]}


def turn_from_wire(message: dict[str, Any]) -> Turn:
    return Turn(
        role=message["role"],
        content=tuple(block_from_wire(b) for b in message.get("content", [])),
    )


def conversation_to_wire(conversation: Conversation) -> list[dict[str, Any]]:
    return [turn_to_wire(t) for t in conversation]


def conversation_from_wire(messages: Iterable[dict[str, Any]]) -> Conversation:
    return Conversation(turn_from_wire(m) for m in messages)
