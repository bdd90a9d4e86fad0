"""Exception taxonomy for the agent loop.

Tool-side failures (ToolExecutionError and subclasses) are contained by
the loop and turned into error tool results. Everything deriving from
LoopError ends the current run and carries the partial conversation plus
the run statistics collected up to the failure.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lumen.agent.schemas import Conversation, RunStats


class LumenError(Exception):
    """Base class for all Lumen errors."""


# ---------------------------------------------------------------------------
# Contained (tool-side) errors
# ---------------------------------------------------------------------------


class ToolExecutionError(LumenError):
    """A tool could not produce a result."""


class ToolNotFound(ToolExecutionError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Tool not found: {name}")
        self.name = name


class InvalidToolInput(ToolExecutionError):
    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"Invalid input for {name}: {reason}")
        self.name = name
        self.reason = reason


# ---------------------------------------------------------------------------
# Fatal (run-ending) errors
# ---------------------------------------------------------------------------


class LoopError(LumenError):
    """A failure that terminates an agent run.

    ``conversation`` and ``stats`` are attached by the loop before the
    error reaches the caller so the partial transcript can be inspected
    and usage can still be accounted for.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.conversation: Conversation | None = None
        self.stats: RunStats | None = None


class ProtocolViolation(LoopError):
    """The model produced a turn the loop cannot act on."""


class NoToolInvocations(ProtocolViolation):
    def __init__(self) -> None:
        super().__init__("Model indicated tool_use but no tool calls found")


class UnexpectedStopReason(ProtocolViolation):
    def __init__(self, stop_reason: str) -> None:
        super().__init__(f"Model stopped with unsupported reason: {stop_reason}")
        self.stop_reason = stop_reason


class EmptyModelResponse(ProtocolViolation):
    def __init__(self) -> None:
        super().__init__("No response message from model")


class IterationBoundExceeded(LoopError):
    def __init__(self, limit: int) -> None:
        super().__init__(f"Max iterations ({limit}) exceeded")
        self.limit = limit


class TransportFailure(LoopError):
    """Network, auth or quota failure talking to the model endpoint."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
