"""In-memory conversation store for the HTTP front door.

Conversations live only as long as the process; the least recently used
one is evicted once capacity is reached. Each session has an asyncio.Lock
so two requests for the same conversation never run the loop concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field

from lumen.agent.schemas import Conversation

logger = logging.getLogger(__name__)


@dataclass
class Session:
    conversation_id: str
    conversation: Conversation = field(default_factory=Conversation)
    query_count: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_used: float = field(default_factory=time.monotonic)


def new_conversation_id() -> str:
    return f"conv_{int(time.time() * 1000)}_{uuid.uuid4().hex[:7]}"


class ConversationStore:
    def __init__(self, max_conversations: int = 100) -> None:
        self._max = max_conversations
        self._sessions: OrderedDict[str, Session] = OrderedDict()

    def get_or_create(self, conversation_id: str | None = None) -> Session:
        """Get existing or create new session with LRU eviction."""
        conversation_id = conversation_id or new_conversation_id()
        session = self._sessions.get(conversation_id)
        if session is not None:
            self._sessions.move_to_end(conversation_id)
            session.last_used = time.monotonic()
            return session

        while len(self._sessions) >= self._max:
            evicted_id, _ = self._sessions.popitem(last=False)
            logger.debug("Evicted conversation %s", evicted_id)

        session = Session(conversation_id=conversation_id)
        self._sessions[conversation_id] = session
        return session

    def get(self, conversation_id: str) -> Session | None:
        return self._sessions.get(conversation_id)

    def discard(self, conversation_id: str) -> bool:
        return self._sessions.pop(conversation_id, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)
