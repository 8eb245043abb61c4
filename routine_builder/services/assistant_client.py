from __future__ import annotations

import logging
from typing import Optional, Sequence

import httpx
from pydantic import ValidationError

from routine_builder.models import ChatCompletionRequest, ChatCompletionResponse, Message


logger = logging.getLogger("routine-builder.assistant")


class AssistantNetworkError(Exception):
    """Any failure to obtain a reply from the chat-completion endpoint."""


class AssistantClient:
    def __init__(
        self,
        *,
        endpoint_url: str,
        model: str,
        timeout_s: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._endpoint_url = endpoint_url
        self._model = model
        self._timeout_s = timeout_s
        self._transport = transport

    @property
    def model(self) -> str:
        return self._model

    async def send(self, transcript: Sequence[Message]) -> str:
        payload = ChatCompletionRequest(messages=list(transcript), model=self._model)

        try:
            async with httpx.AsyncClient(timeout=self._timeout_s, transport=self._transport) as client:
                res = await client.post(
                    self._endpoint_url,
                    headers={"Content-Type": "application/json"},
                    json=payload.model_dump(mode="json"),
                )
        except httpx.HTTPError as exc:
            raise AssistantNetworkError(f"request failed: {exc!r}") from exc

        if res.status_code >= 400:
            logger.warning("assistant_http_error status=%s body=%s", res.status_code, res.text[:500])
            raise AssistantNetworkError(f"assistant returned status {res.status_code}")

        try:
            data = res.json()
        except ValueError as exc:
            raise AssistantNetworkError("assistant returned a non-JSON body") from exc

        try:
            envelope = ChatCompletionResponse.model_validate(data)
        except ValidationError as exc:
            raise AssistantNetworkError("assistant response failed validation") from exc

        if not envelope.choices:
            raise AssistantNetworkError("assistant response has no choices")

        content = envelope.choices[0].message.content
        if not content:
            raise AssistantNetworkError("assistant response has an empty reply")
        return content
