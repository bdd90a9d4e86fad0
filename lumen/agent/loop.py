"""Agent tool-use loop.

Drives rounds of: call the model -> either return its text or run the
tools it asked for -> feed the results back, until the model finishes or
the iteration bound is hit.

State transitions per iteration:
  AwaitingModel --done/max_tokens--> Responding (return LoopResult)
  AwaitingModel --tool_use---------> Dispatching --> AwaitingModel
  bound reached -------------------> Exceeded (IterationBoundExceeded)

Tool failures are contained as ``status=error`` tool results. Model and
transport failures end the run with a LoopError carrying the partial
conversation and run stats.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from lumen.agent.adapter import (
    extract_invocations,
    extract_text,
    to_wire_result,
    to_wire_tool_spec,
)
from lumen.agent.client import ModelClient
from lumen.agent.errors import (
    IterationBoundExceeded,
    LoopError,
    NoToolInvocations,
    ProtocolViolation,
    ToolExecutionError,
    ToolNotFound,
    UnexpectedStopReason,
)
from lumen.agent.schemas import (
    Conversation,
    InferenceConfig,
    LoopResult,
    RunStats,
    StopSignal,
    ToolResultBlock,
    ToolUseBlock,
    Turn,
)
from lumen.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from lumen.config import Settings
    from lumen.site.config import SiteConfig

logger = logging.getLogger(__name__)

_TERMINAL_SIGNALS = frozenset({StopSignal.DONE, StopSignal.LENGTH_LIMITED})


@dataclass(frozen=True)
class LoopConfig:
    max_iterations: int = 10
    inference: InferenceConfig = field(default_factory=InferenceConfig)
    parallel_tool_calls: bool = True

    def __post_init__(self) -> None:
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")

    @classmethod
    def from_settings(cls, settings: Settings, site: SiteConfig | None = None) -> LoopConfig:
        from lumen.config import resolve_llm

        return cls(
            max_iterations=settings.max_iterations,
            inference=resolve_llm(settings, site).inference,
            parallel_tool_calls=settings.parallel_tool_calls,
        )


class LoopObserver:
    """Receives loop notifications. Override the hooks you need.

    Ordering: all ``on_tool_call`` notifications of a turn are delivered,
    in invocation order, before the next model call. ``on_response`` is
    called exactly once, and only when the run succeeds.
    """

    def on_tool_call(self, name: str, tool_input: Any, result: Any) -> None:
        pass

    def on_response(self, text: str) -> None:
        pass


@dataclass
class ToolCallRecord:
    name: str
    input: Any
    result: Any


class ToolCallCollector(LoopObserver):
    """Observer that keeps every tool call of a run."""

    def __init__(self) -> None:
        self.calls: list[ToolCallRecord] = []
        self.response: str | None = None

    def on_tool_call(self, name: str, tool_input: Any, result: Any) -> None:
        self.calls.append(ToolCallRecord(name=name, input=tool_input, result=result))

    def on_response(self, text: str) -> None:
        self.response = text


@dataclass
class _Outcome:
    block: ToolResultBlock
    result: Any


class AgentLoop:
    """Runs the model/tool loop against explicit collaborators."""

    def __init__(
        self,
        registry: ToolRegistry,
        client: ModelClient,
        system_prompt: str = "",
        config: LoopConfig | None = None,
    ) -> None:
        self._registry = registry
        self._client = client
        self._system_prompt = system_prompt
        self._config = config or LoopConfig()

    @property
    def config(self) -> LoopConfig:
        return self._config

    async def run(
        self,
        user_message: str,
        conversation: Conversation | None = None,
        *,
        config: LoopConfig | None = None,
        observer: LoopObserver | None = None,
        tool_names: Iterable[str] | None = None,
        system_prompt: str | None = None,
    ) -> LoopResult:
        """Answer ``user_message`` given prior ``conversation``.

        The prior conversation is copied, never modified. ``tool_names``
        restricts the tools offered to the model (default: all registered).
        """
        cfg = config or self._config
        observer = observer or LoopObserver()
        prompt = self._system_prompt if system_prompt is None else system_prompt

        started = time.monotonic()
        stats = RunStats()
        conv = conversation.copy() if conversation is not None else Conversation()
        conv.append(Turn.user_text(user_message))

        definitions = self._registry.list_definitions(tool_names)
        offered = {d.name for d in definitions}
        tool_specs = to_wire_tool_spec(definitions)

        try:
            while stats.iterations < cfg.max_iterations:
                stats.iterations += 1
                response = await self._client.send(conv, tool_specs, prompt, cfg.inference)
                stats.usage.add(response.usage)

                if response.turn.role != "assistant":
                    raise ProtocolViolation(
                        f"Model returned a '{response.turn.role}' turn instead of 'assistant'"
                    )
                conv.append(response.turn)

                signal = response.stop_signal
                logger.debug(
                    "Iteration %d/%d stop=%s", stats.iterations, cfg.max_iterations, signal.value
                )

                if signal in _TERMINAL_SIGNALS:
                    if signal is StopSignal.LENGTH_LIMITED:
                        logger.warning("Model response truncated by max_tokens=%d", cfg.inference.max_tokens)
                    final_text = extract_text(response.turn)
                    stats.duration_ms = _elapsed_ms(started)
                    observer.on_response(final_text)
                    return LoopResult(
                        final_text=final_text,
                        conversation=conv,
                        stats=stats,
                        available_tools=[d.name for d in definitions],
                    )

                if signal is not StopSignal.TOOL_REQUESTED:
                    raise UnexpectedStopReason(response.raw_stop_reason or signal.value)

                invocations = extract_invocations(response.turn)
                if not invocations:
                    raise NoToolInvocations()

                outcomes = await self._dispatch_all(invocations, offered, cfg.parallel_tool_calls)
                stats.tool_calls += len(outcomes)
                for invocation, outcome in zip(invocations, outcomes):
                    observer.on_tool_call(invocation.name, invocation.input, outcome.result)

                # All results of this round in a single user turn, invocation order
                conv.append(Turn(role="user", content=tuple(o.block for o in outcomes)))

            raise IterationBoundExceeded(cfg.max_iterations)

        except LoopError as e:
            stats.duration_ms = _elapsed_ms(started)
            e.conversation = conv
            e.stats = stats
            logger.error("Agent run failed after %d iteration(s): %s", stats.iterations, e)
            raise

    # ------------------------------------------------------------------
    # Tool dispatch
    # ------------------------------------------------------------------

    async def _dispatch_all(
        self,
        invocations: list[ToolUseBlock],
        offered: set[str],
        parallel: bool,
    ) -> list[_Outcome]:
        if parallel and len(invocations) > 1:
            # gather() returns results in argument order, not completion order
            return list(await asyncio.gather(
                *(self._dispatch_one(inv, offered) for inv in invocations)
            ))
        return [await self._dispatch_one(inv, offered) for inv in invocations]

    async def _dispatch_one(self, invocation: ToolUseBlock, offered: set[str]) -> _Outcome:
        """Run one invocation. Never raises: failures become error results."""
        start_time = time.monotonic()
        try:
            if invocation.name not in offered:
                raise ToolNotFound(invocation.name)
            # The executor gets its own copy; the appended turn keeps the original
            tool_input = copy.deepcopy(invocation.input)
            result = await self._registry.execute(invocation.name, tool_input)
            try:
                json.dumps(result)
            except (TypeError, ValueError) as e:
                raise ToolExecutionError(f"Tool returned a non-JSON result: {e}") from e
        except ToolExecutionError as e:
            logger.warning("Tool %s failed: %s", invocation.name, e)
            return _error_outcome(invocation, str(e) or type(e).__name__)
        except Exception as e:
            logger.exception("Tool dispatch error for %s", invocation.name)
            return _error_outcome(invocation, str(e) or type(e).__name__)

        logger.info(
            "Tool %s completed in %dms", invocation.name, _elapsed_ms(start_time)
        )
        return _Outcome(block=to_wire_result(invocation.id, result, "success"), result=result)


def _error_outcome(invocation: ToolUseBlock, message: str) -> _Outcome:
    result = {"error": message}
    return _Outcome(block=to_wire_result(invocation.id, result, "error"), result=result)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
