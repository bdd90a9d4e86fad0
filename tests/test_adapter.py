"""Tests for the Converse wire adapter."""

import pytest

from lumen.agent.adapter import (
    block_from_wire,
    block_to_wire,
    conversation_from_wire,
    conversation_to_wire,
    extract_invocations,
    extract_text,
    to_wire_result,
    to_wire_tool_config,
    to_wire_tool_spec,
    unwrap_result_payload,
    wrap_result_payload,
)
from lumen.agent.schemas import (
    Conversation,
    OtherBlock,
    TextBlock,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
    Turn,
)


def _definition() -> ToolDefinition:
    return ToolDefinition(
        name="lookup",
        description="Look something up",
        input_schema={"type": "object", "properties": {"q": {"type": "string"}}},
    )


class TestToolSpecs:
    def test_tool_spec_shape(self):
        [spec] = to_wire_tool_spec([_definition()])
        assert spec == {
            "toolSpec": {
                "name": "lookup",
                "description": "Look something up",
                "inputSchema": {"json": {"type": "object", "properties": {"q": {"type": "string"}}}},
            }
        }

    def test_schema_is_copied(self):
        definition = _definition()
        [spec] = to_wire_tool_spec([definition])
        spec["toolSpec"]["inputSchema"]["json"]["properties"]["q"]["type"] = "integer"
        assert definition.input_schema["properties"]["q"]["type"] == "string"

    def test_empty_tool_config(self):
        assert to_wire_tool_config([]) is None
        assert to_wire_tool_config([_definition()]) == {"tools": to_wire_tool_spec([_definition()])}


class TestExtraction:
    def test_extract_text_joins_blocks(self):
        turn = Turn(role="assistant", content=(
            TextBlock("first"),
            ToolUseBlock(id="t1", name="lookup", input={}),
            TextBlock("second"),
        ))
        assert extract_text(turn) == "first\nsecond"

    def test_extract_text_without_text_blocks(self):
        turn = Turn(role="assistant", content=(ToolUseBlock(id="t1", name="lookup"),))
        assert extract_text(turn) == ""

    def test_extract_invocations_in_order(self):
        turn = Turn(role="assistant", content=(
            ToolUseBlock(id="b", name="second"),
            TextBlock("between"),
            ToolUseBlock(id="a", name="first"),
        ))
        assert [i.id for i in extract_invocations(turn)] == ["b", "a"]


class TestResultWrapping:
    @pytest.mark.parametrize("payload, wrapped", [
        ({"rate": 0.8}, {"rate": 0.8}),
        ([1, 2, 3], {"data": [1, 2, 3]}),
        ([], {"data": []}),
        ("text", {"value": "text"}),
        (42, {"value": 42}),
        (None, {"value": None}),
    ])
    def test_wrap(self, payload, wrapped):
        assert wrap_result_payload(payload) == wrapped

    def test_wrap_copies_payload(self):
        rows = [{"id": 1}]
        obj = {"rows": rows}
        wrapped_obj = wrap_result_payload(obj)
        wrapped_list = wrap_result_payload(rows)
        rows[0]["id"] = 2

        assert wrapped_obj is not obj
        assert wrapped_obj == {"rows": [{"id": 1}]}
        assert wrapped_list == {"data": [{"id": 1}]}

    def test_unwrap_reverses_wrap(self):
        assert unwrap_result_payload({"data": [{"a": 1}]}) == [{"a": 1}]
        assert unwrap_result_payload({"value": 7}) == 7
        assert unwrap_result_payload({"rate": 0.8}) == {"rate": 0.8}

    def test_unwrap_keeps_objects_with_extra_keys(self):
        payload = {"data": [1], "count": 1}
        assert unwrap_result_payload(payload) == payload

    def test_to_wire_result(self):
        block = to_wire_result("toolu_1", [{"x": 1}], "error")
        assert block == ToolResultBlock(tool_use_id="toolu_1", payload={"data": [{"x": 1}]}, status="error")


class TestTurnWire:
    def test_tool_use_block(self):
        wire = block_to_wire(ToolUseBlock(id="t1", name="lookup", input={"q": "x"}))
        assert wire == {"toolUse": {"toolUseId": "t1", "name": "lookup", "input": {"q": "x"}}}

    def test_tool_result_block(self):
        wire = block_to_wire(ToolResultBlock(tool_use_id="t1", payload={"data": [1]}, status="success"))
        assert wire == {"toolResult": {"toolUseId": "t1", "content": [{"json": {"data": [1]}}], "status": "success"}}

    def test_unknown_block_is_preserved(self):
        raw = {"reasoningContent": {"reasoningText": {"text": "thinking"}}}
        block = block_from_wire(raw)
        assert isinstance(block, OtherBlock)
        assert block_to_wire(block) == raw

    def test_text_tool_result_from_wire(self):
        block = block_from_wire({"toolResult": {"toolUseId": "t1", "content": [{"text": "plain"}]}})
        assert block == ToolResultBlock(tool_use_id="t1", payload={"text": "plain"}, status="success")

    def test_conversation_round_trip(self):
        conv = Conversation([
            Turn.user_text("hello"),
            Turn(role="assistant", content=(TextBlock("calling"), ToolUseBlock(id="t1", name="lookup", input={"q": "a"}))),
            Turn(role="user", content=(ToolResultBlock(tool_use_id="t1", payload={"value": 1}),)),
        ])
        messages = conversation_to_wire(conv)
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assert conversation_from_wire(messages).turns == conv.turns

    def test_from_wire_rejects_consecutive_roles(self):
        with pytest.raises(ValueError):
            conversation_from_wire([
                {"role": "user", "content": [{"text": "a"}]},
                {"role": "user", "content": [{"text": "b"}]},
            ])
