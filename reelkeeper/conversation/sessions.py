"""Per-chat session storage and update serialization.

`MemorySessionStore` keeps one `Session` per chat for the process
lifetime. `ChatLocks` hands out one `asyncio.Lock` per chat so that two
updates from the same chat never interleave their state transitions.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional

from .states import State


@dataclass
class Session:
    state: State
    draft: Dict[str, Any] = field(default_factory=dict)


class MemorySessionStore:
    def __init__(self) -> None:
        self._sessions: Dict[int, Session] = {}

    def get(self, chat_id: int) -> Optional[Session]:
        return self._sessions.get(chat_id)

    def set(self, chat_id: int, session: Session) -> None:
        self._sessions[chat_id] = session

    def delete(self, chat_id: int) -> None:
        self._sessions.pop(chat_id, None)

    def __len__(self) -> int:
        return len(self._sessions)


class ChatLocks:
    def __init__(self) -> None:
        self._locks: Dict[int, asyncio.Lock] = {}
        self._users: Dict[int, int] = {}

    @contextlib.asynccontextmanager
    async def hold(self, chat_id: int) -> AsyncIterator[None]:
        """Serialize the enclosed block against other holders of `chat_id`."""
        lock = self._locks.setdefault(chat_id, asyncio.Lock())
        self._users[chat_id] = self._users.get(chat_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[chat_id] -= 1
            if self._users[chat_id] == 0:
                # cleanup
                del self._users[chat_id]
                del self._locks[chat_id]

    def __len__(self) -> int:
        return len(self._locks)
