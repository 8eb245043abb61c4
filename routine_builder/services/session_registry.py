from __future__ import annotations

import asyncio
import time
from typing import Callable

from routine_builder.services.conversation import ConversationSession


SessionFactory = Callable[[], ConversationSession]


class ConversationRegistry:
    def __init__(
        self,
        factory: SessionFactory,
        *,
        idle_ttl_s: float = 6 * 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._factory = factory
        self._clock = clock
        self._idle_ttl_s = idle_ttl_s
        self._lock = asyncio.Lock()
        self._sessions: dict[str, tuple[ConversationSession, float]] = {}

    async def get(self, session_id: str) -> ConversationSession:
        now = self._clock()
        async with self._lock:
            self._evict_idle(now)
            record = self._sessions.get(session_id)
            session = record[0] if record else self._factory()
            self._sessions[session_id] = (session, now)
            return session

    async def drop(self, session_id: str) -> None:
        async with self._lock:
            self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)

    def _evict_idle(self, now: float) -> None:
        if self._idle_ttl_s <= 0:
            return
        stale = [
            key
            for key, (session, touched_at) in self._sessions.items()
            if session.state == "idle" and now - touched_at >= self._idle_ttl_s
        ]
        for key in stale:
            self._sessions.pop(key, None)
