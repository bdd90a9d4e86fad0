"""Shared fixtures: settings, a populated tool registry, a scripted model client."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from typing import Any

import pytest

from lumen.agent.client import ModelResponse
from lumen.agent.schemas import (
    Conversation,
    InferenceConfig,
    StopSignal,
    TextBlock,
    TokenUsage,
    ToolDefinition,
    ToolUseBlock,
    Turn,
)
from lumen.config import Settings
from lumen.tools.registry import ToolRegistry

# ---------------------------------------------------------------------------
# Scripted model client
# ---------------------------------------------------------------------------


def model_response(
    text: str = "",
    stop_reason: str = "end_turn",
    tool_uses: Sequence[dict[str, Any]] | None = None,
    input_tokens: int = 10,
    output_tokens: int = 5,
) -> ModelResponse:
    """Build an assistant ModelResponse with text and/or tool_use blocks."""
    content: list[Any] = []
    if text:
        content.append(TextBlock(text))
    for i, tu in enumerate(tool_uses or []):
        content.append(ToolUseBlock(
            id=tu.get("id", f"toolu_{i}"),
            name=tu["name"],
            input=tu.get("input", {}),
        ))
    return ModelResponse(
        turn=Turn(role="assistant", content=tuple(content)),
        stop_signal=StopSignal.from_stop_reason(stop_reason),
        usage=TokenUsage(input_tokens, output_tokens, input_tokens + output_tokens),
        raw_stop_reason=stop_reason,
    )


class StubModelClient:
    """ModelClient that replays scripted responses and records each call.

    Script entries may be ModelResponse objects, exceptions (raised), or
    callables taking the conversation and returning a ModelResponse. Once
    the script is exhausted the last entry is repeated.
    """

    def __init__(self, *script: Any) -> None:
        self.script: list[Any] = list(script)
        self.calls: list[dict[str, Any]] = []

    async def send(
        self,
        conversation: Conversation,
        tool_specs: Sequence[dict[str, Any]],
        system_prompt: str,
        inference: InferenceConfig,
    ) -> ModelResponse:
        self.calls.append({
            "conversation": conversation.copy(),
            "tool_specs": list(tool_specs),
            "system_prompt": system_prompt,
            "inference": inference,
        })
        await asyncio.sleep(0)
        index = min(len(self.calls), len(self.script)) - 1
        entry = self.script[index]
        if isinstance(entry, BaseException):
            raise entry
        if callable(entry) and not isinstance(entry, ModelResponse):
            return entry(conversation)
        return entry

    async def start(self) -> None:
        pass

    async def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Settings independent of the developer's environment."""
    return Settings(
        bedrock_api_key="test-key",
        aws_region="us-east-1",
        bedrock_endpoint_url="",
        max_iterations=10,
        mcp_enabled=False,
        _env_file=None,
    )


def _object_schema(**properties: Any) -> dict[str, Any]:
    return {"type": "object", "properties": properties, "required": list(properties)}


@pytest.fixture
def registry() -> ToolRegistry:
    """Registry with small deterministic tools."""
    reg = ToolRegistry()

    async def echo(tool_input: dict[str, Any]) -> dict[str, Any]:
        return {"echo": tool_input["message"]}

    async def add(tool_input: dict[str, Any]) -> dict[str, Any]:
        return {"sum": tool_input["a"] + tool_input["b"]}

    async def numbers(tool_input: dict[str, Any]) -> list[int]:
        return [1, 2, 3]

    async def boom(tool_input: dict[str, Any]) -> dict[str, Any]:
        raise ValueError("tool exploded")

    reg.register(ToolDefinition("echo", "Echo a message", _object_schema(message={"type": "string"})), echo)
    reg.register(
        ToolDefinition("add", "Add two numbers", _object_schema(a={"type": "number"}, b={"type": "number"})),
        add,
    )
    reg.register(ToolDefinition("numbers", "Return a list", {"type": "object"}), numbers)
    reg.register(ToolDefinition("boom", "Always fails", {"type": "object"}), boom)
    return reg


@pytest.fixture
def make_client() -> Callable[..., StubModelClient]:
    return StubModelClient
