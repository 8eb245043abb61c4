from __future__ import annotations

import json
from pathlib import Path
import sys
import unittest

import httpx

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from routine_builder.models import Message
from routine_builder.services.assistant_client import AssistantClient, AssistantNetworkError


ENDPOINT = "https://assistant.example.test/"
TRANSCRIPT = [
    Message(role="system", content="be helpful"),
    Message(role="user", content="hi"),
]


def _client(handler) -> AssistantClient:
    return AssistantClient(
        endpoint_url=ENDPOINT,
        model="gpt-test",
        timeout_s=1.0,
        transport=httpx.MockTransport(handler),
    )


class TestAssistantClient(unittest.IsolatedAsyncioTestCase):
    async def test_posts_transcript_and_returns_first_choice(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "id": "cmpl_1",
                    "choices": [
                        {"index": 0, "message": {"role": "assistant", "content": "first"}},
                        {"index": 1, "message": {"role": "assistant", "content": "second"}},
                    ],
                },
            )

        reply = await _client(handler).send(TRANSCRIPT)

        self.assertEqual(reply, "first")
        self.assertEqual(len(seen), 1)
        request = seen[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(str(request.url), ENDPOINT)
        self.assertEqual(request.headers["content-type"], "application/json")
        body = json.loads(request.content)
        self.assertEqual(body["model"], "gpt-test")
        self.assertEqual(
            body["messages"],
            [{"role": "system", "content": "be helpful"}, {"role": "user", "content": "hi"}],
        )

    async def test_error_status_raises(self) -> None:
        client = _client(lambda request: httpx.Response(500, json={"error": "boom"}))
        with self.assertRaises(AssistantNetworkError):
            await client.send(TRANSCRIPT)

    async def test_non_json_body_raises(self) -> None:
        client = _client(lambda request: httpx.Response(200, text="<html>oops</html>"))
        with self.assertRaises(AssistantNetworkError):
            await client.send(TRANSCRIPT)

    async def test_malformed_envelopes_raise(self) -> None:
        bodies = [
            {},
            {"choices": []},
            {"choices": [{}]},
            {"choices": [{"message": {"content": None}}]},
            {"choices": [{"message": {"content": ""}}]},
            ["not", "an", "object"],
        ]
        for body in bodies:
            client = _client(lambda request, body=body: httpx.Response(200, json=body))
            with self.assertRaises(AssistantNetworkError, msg=repr(body)):
                await client.send(TRANSCRIPT)

    async def test_transport_failure_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with self.assertRaises(AssistantNetworkError) as ctx:
            await _client(handler).send(TRANSCRIPT)
        self.assertIsInstance(ctx.exception.__cause__, httpx.ConnectError)
