"""Tool registry: name -> (definition, async executor).

Populated once at startup and read-only afterwards, so concurrent agent
runs can share one instance without locking. Registering a name twice
replaces the earlier entry (last writer wins).
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from jsonschema import Draft202012Validator

from lumen.agent.errors import InvalidToolInput, ToolNotFound
from lumen.agent.schemas import ToolDefinition

logger = logging.getLogger(__name__)

# Executor type: async function taking the tool input, returning JSON
Executor = Callable[[Any], Awaitable[Any]]


@dataclass(frozen=True)
class _Entry:
    definition: ToolDefinition
    executor: Executor
    validator: Draft202012Validator


class ToolRegistry:
    """Holds callable tools and dispatches invocations to them."""

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}

    def register(self, definition: ToolDefinition, executor: Executor) -> None:
        """Register a tool. A duplicate name overwrites the previous entry."""
        Draft202012Validator.check_schema(definition.input_schema)
        if definition.name in self._entries:
            logger.warning("Tool %s registered twice, replacing previous entry", definition.name)
            # Re-insert so listing order reflects the latest registration
            del self._entries[definition.name]
        self._entries[definition.name] = _Entry(
            definition=definition,
            executor=executor,
            validator=Draft202012Validator(definition.input_schema),
        )

    def lookup(self, name: str) -> Executor:
        entry = self._entries.get(name)
        if entry is None:
            raise ToolNotFound(name)
        return entry.executor

    def has(self, name: str) -> bool:
        return name in self._entries

    def names(self) -> list[str]:
        return list(self._entries)

    def list_definitions(self, names: Iterable[str] | None = None) -> list[ToolDefinition]:
        """Snapshot of tool definitions in registration order.

        If ``names`` is given, only those tools are returned (unknown names
        are ignored).
        """
        if names is None:
            return [e.definition for e in self._entries.values()]
        wanted = set(names)
        return [e.definition for n, e in self._entries.items() if n in wanted]

    async def execute(self, name: str, tool_input: Any) -> Any:
        """Validate ``tool_input`` and run the tool.

        Raises ToolNotFound or InvalidToolInput; executor exceptions
        propagate unchanged.
        """
        entry = self._entries.get(name)
        if entry is None:
            raise ToolNotFound(name)

        error = next(iter(entry.validator.iter_errors(tool_input)), None)
        if error is not None:
            where = "/".join(str(p) for p in error.absolute_path)
            reason = f"{where}: {error.message}" if where else error.message
            raise InvalidToolInput(name, reason)

        return await entry.executor(tool_input)
