"""Conversation data model shared by the loop, adapter and model client."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Union

Role = Literal["user", "assistant"]
ToolStatus = Literal["success", "error"]


class StopSignal(str, Enum):
    """Why the model ended a turn."""

    DONE = "done"
    LENGTH_LIMITED = "length_limited"
    TOOL_REQUESTED = "tool_requested"
    OTHER = "other"

    @classmethod
    def from_stop_reason(cls, stop_reason: str | None) -> StopSignal:
        """Map a Bedrock Converse ``stopReason`` onto a StopSignal."""
        if stop_reason in ("end_turn", "stop_sequence"):
            return cls.DONE
        if stop_reason == "max_tokens":
            return cls.LENGTH_LIMITED
        if stop_reason == "tool_use":
            return cls.TOOL_REQUESTED
        return cls.OTHER


# ---------------------------------------------------------------------------
# Content blocks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextBlock:
    text: str


@dataclass(frozen=True)
class ToolUseBlock:
    """A tool invocation emitted by the model. ``id`` is opaque."""

    id: str
    name: str
    input: Any = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResultBlock:
    """Outcome of one invocation. ``payload`` is always object-shaped."""

    tool_use_id: str
    payload: dict[str, Any]
    status: ToolStatus = "success"


@dataclass(frozen=True)
class OtherBlock:
    """Wire block the adapter does not interpret, kept verbatim."""

    raw: dict[str, Any]


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock, OtherBlock]


@dataclass(frozen=True)
class Turn:
    """One message in the conversation. Immutable once built."""

    role: Role
    content: tuple[ContentBlock, ...] = ()

    def __post_init__(self) -> None:
        if self.role not in ("user", "assistant"):
            raise ValueError(f"Invalid role: {self.role!r}")
        # Accept any iterable but always store a tuple
        object.__setattr__(self, "content", tuple(self.content))

    @classmethod
    def user_text(cls, text: str) -> Turn:
        return cls(role="user", content=(TextBlock(text),))


class Conversation:
    """Append-only sequence of turns with alternating roles."""

    def __init__(self, turns: Iterable[Turn] = ()) -> None:
        self._turns: list[Turn] = []
        for turn in turns:
            self.append(turn)

    def append(self, turn: Turn) -> None:
        if self._turns and self._turns[-1].role == turn.role:
            raise ValueError(
                f"Cannot append two consecutive '{turn.role}' turns to a conversation"
            )
        self._turns.append(turn)

    def copy(self) -> Conversation:
        return Conversation(self._turns)

    @property
    def turns(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    @property
    def last(self) -> Turn | None:
        return self._turns[-1] if self._turns else None

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))

    def __getitem__(self, index: int) -> Turn:
        return self._turns[index]


# ---------------------------------------------------------------------------
# Tools and inference
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    input_schema: dict[str, Any]


@dataclass(frozen=True)
class InferenceConfig:
    max_tokens: int = 4096
    temperature: float = 0.7

    def to_wire(self) -> dict[str, Any]:
        return {"maxTokens": self.max_tokens, "temperature": self.temperature}


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_wire(cls, usage: dict[str, Any] | None) -> TokenUsage:
        usage = usage or {}
        input_tokens = int(usage.get("inputTokens") or 0)
        output_tokens = int(usage.get("outputTokens") or 0)
        total = int(usage.get("totalTokens") or input_tokens + output_tokens)
        return cls(input_tokens, output_tokens, total)

    def add(self, other: TokenUsage) -> None:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.total_tokens += other.total_tokens

    def to_dict(self) -> dict[str, int]:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass
class RunStats:
    """Countable quantities of one loop run, for usage accounting."""

    iterations: int = 0
    usage: TokenUsage = field(default_factory=TokenUsage)
    duration_ms: int = 0
    tool_calls: int = 0


@dataclass
class LoopResult:
    final_text: str
    conversation: Conversation
    stats: RunStats
    available_tools: list[str] = field(default_factory=list)
