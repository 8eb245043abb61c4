from __future__ import annotations

import json
import logging
from typing import Literal, Protocol, Sequence, Union

from routine_builder.models import Message, Product, ProductBrief
from routine_builder.services.assistant_client import AssistantNetworkError


logger = logging.getLogger("routine-builder.conversation")


SYSTEM_PROMPT = (
    "You are a helpful skincare and beauty routine assistant. You have access to real-time web search. "
    "When answering, always include the most current information about L'Oréal products or routines, "
    "and provide any relevant links or citations you find. Only answer questions about the generated routine, "
    "skincare, haircare, makeup, fragrance, or related beauty topics. If a question is off-topic, "
    "politely say you can only answer beauty-related questions."
)

SYSTEM_MESSAGE = Message(role="system", content=SYSTEM_PROMPT)

SELECTION_PREAMBLE = "Here are the selected products as JSON:\n"


SessionState = Literal["idle", "pending"]


class ConversationError(Exception):
    code = "CONVERSATION_ERROR"


class EmptySelection(ConversationError):
    code = "EMPTY_SELECTION"


class EmptyQuestion(ConversationError):
    code = "EMPTY_QUESTION"


class SessionBusy(ConversationError):
    code = "SESSION_BUSY"


class AssistantUnavailable(ConversationError):
    code = "ASSISTANT_UNAVAILABLE"


class AssistantTransport(Protocol):
    async def send(self, transcript: Sequence[Message]) -> str: ...


def serialize_selection(selected: Sequence[Union[Product, ProductBrief]]) -> str:
    briefs = [p if isinstance(p, ProductBrief) else ProductBrief.from_product(p) for p in selected]
    body = json.dumps([b.model_dump() for b in briefs], indent=2, ensure_ascii=False)
    return f"{SELECTION_PREAMBLE}{body}"


class ConversationSession:
    """Transcript owner for one client.

    The transcript always starts with SYSTEM_MESSAGE. A routine request
    discards everything after it; a follow-up appends. User turns are
    appended before the assistant is called and assistant turns only
    after it answers, so a failed follow-up leaves its question in place
    without a reply.

    With ``single_flight`` a call made while another is awaiting the
    assistant raises SessionBusy, and so does reset(). Without it, overlapping calls both
    write into the same transcript and replies land in arrival order.
    """

    def __init__(self, client: AssistantTransport, *, single_flight: bool = True) -> None:
        self._client = client
        self._single_flight = single_flight
        self._transcript: list[Message] = [SYSTEM_MESSAGE]
        self._in_flight = 0

    @property
    def transcript(self) -> list[Message]:
        return list(self._transcript)

    @property
    def state(self) -> SessionState:
        return "pending" if self._in_flight else "idle"

    def reset(self) -> None:
        self._check_idle()
        self._transcript = [SYSTEM_MESSAGE]

    async def start_routine_request(self, selected: Sequence[Union[Product, ProductBrief]]) -> str:
        if not selected:
            raise EmptySelection("Please select at least one product to generate a routine.")
        self._check_idle()

        self._transcript = [SYSTEM_MESSAGE, Message(role="user", content=serialize_selection(selected))]
        return await self._exchange()

    async def ask_followup(self, question: str) -> str:
        if not question or not question.strip():
            raise EmptyQuestion("Please type a question first.")
        self._check_idle()

        self._transcript.append(Message(role="user", content=question))
        return await self._exchange()

    def _check_idle(self) -> None:
        if self._single_flight and self._in_flight:
            raise SessionBusy("Still waiting for the previous reply.")

    async def _exchange(self) -> str:
        self._in_flight += 1
        try:
            reply = await self._client.send(list(self._transcript))
        except AssistantNetworkError as exc:
            logger.error("assistant_call_failed turns=%s err=%s", len(self._transcript), exc)
            raise AssistantUnavailable("There was an error connecting to the AI. Please try again.") from exc
        finally:
            self._in_flight -= 1

        self._transcript.append(Message(role="assistant", content=reply))
        return reply
