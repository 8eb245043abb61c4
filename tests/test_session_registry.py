from __future__ import annotations

from pathlib import Path
import sys
import unittest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from routine_builder.services.conversation import ConversationSession
from routine_builder.services.session_registry import ConversationRegistry


class NullAssistant:
    async def send(self, transcript):
        return "ok"


class TestConversationRegistry(unittest.IsolatedAsyncioTestCase):
    async def test_same_id_returns_same_session(self) -> None:
        registry = ConversationRegistry(lambda: ConversationSession(NullAssistant()))
        first = await registry.get("a")
        self.assertIs(await registry.get("a"), first)
        self.assertIsNot(await registry.get("b"), first)
        self.assertEqual(len(registry), 2)

    async def test_drop_forgets_session(self) -> None:
        registry = ConversationRegistry(lambda: ConversationSession(NullAssistant()))
        first = await registry.get("a")
        await first.ask_followup("hi")
        await registry.drop("a")
        self.assertEqual(len((await registry.get("a")).transcript), 1)

    async def test_idle_sessions_are_evicted(self) -> None:
        ticks = iter([0.0, 50.0, 100.0])
        registry = ConversationRegistry(
            lambda: ConversationSession(NullAssistant()),
            idle_ttl_s=60.0,
            clock=lambda: next(ticks),
        )
        first = await registry.get("a")
        await registry.get("b")
        self.assertIsNot(await registry.get("a"), first)
        self.assertEqual(len(registry), 2)
