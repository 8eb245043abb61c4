from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, NoReturn, Optional

from fastapi import APIRouter, Body, Header, HTTPException, Request

from routine_builder.models import Message, Product
from routine_builder.services.catalog import (
    CatalogUnavailable,
    filter_products,
    find_product,
    list_categories,
    load_catalog,
)
from routine_builder.services.conversation import (
    AssistantUnavailable,
    ConversationError,
    ConversationSession,
    EmptyQuestion,
    EmptySelection,
    SessionBusy,
)
from routine_builder.services.markup import render_markup
from routine_builder.store.selection_store import MAX_SESSION_ID_LENGTH, SelectionSet


router = APIRouter()

logger = logging.getLogger("routine-builder.v1")


_ERROR_STATUS = {
    EmptySelection: 400,
    EmptyQuestion: 400,
    SessionBusy: 409,
    AssistantUnavailable: 502,
}


def _require_session_id(x_session_id: Optional[str]) -> str:
    session_id = (x_session_id or "").strip()
    if not session_id:
        raise HTTPException(status_code=400, detail="Missing X-Session-ID")
    if len(session_id) > MAX_SESSION_ID_LENGTH:
        raise HTTPException(status_code=400, detail="Invalid X-Session-ID")
    return session_id


def _raise_conversation_error(exc: ConversationError) -> NoReturn:
    status = _ERROR_STATUS.get(type(exc), 500)
    raise HTTPException(status_code=status, detail={"error": exc.code, "notice": str(exc)}) from exc


def _catalog(request: Request) -> list[Product]:
    path: Path = request.app.state.catalog_path
    try:
        return load_catalog(path)
    except CatalogUnavailable as exc:
        logger.error("catalog_unavailable path=%s err=%s", path, exc.__cause__)
        raise HTTPException(
            status_code=503,
            detail={"error": "CATALOG_UNAVAILABLE", "notice": "Products could not be loaded. Please try again."},
        ) from exc


async def _selection(request: Request, session_id: str) -> SelectionSet:
    selection = SelectionSet(
        request.app.state.selection_store,
        session_id,
        key_prefix=request.app.state.selection_key_prefix,
    )
    await selection.load()
    return selection


async def _conversation(request: Request, session_id: str) -> ConversationSession:
    return await request.app.state.conversations.get(session_id)


def _product_out(product: Product, selection: Optional[SelectionSet] = None) -> dict[str, Any]:
    data = product.model_dump(mode="json")
    if selection is not None:
        data["selected"] = selection.contains(product.id)
    return data


def _selection_out(selection: SelectionSet) -> dict[str, Any]:
    products = selection.products
    return {
        "products": [p.model_dump(mode="json") for p in products],
        "count": len(products),
    }


def _message_out(message: Message) -> dict[str, Any]:
    out: dict[str, Any] = {"role": message.role, "content": message.content}
    if message.role == "assistant":
        out["html"] = render_markup(message.content)
    return out


@router.get("/categories")
async def categories(request: Request):
    return {"categories": list_categories(_catalog(request))}


@router.get("/products")
async def products(
    request: Request,
    category: Optional[str] = None,
    q: Optional[str] = None,
    x_session_id: Optional[str] = Header(default=None, alias="X-Session-ID"),
):
    matches = filter_products(_catalog(request), category=category, search=q)
    selection = await _selection(request, _require_session_id(x_session_id)) if (x_session_id or "").strip() else None
    return {
        "products": [_product_out(p, selection) for p in matches],
        "count": len(matches),
    }


@router.get("/products/{product_id}")
async def product_detail(request: Request, product_id: str):
    product = find_product(_catalog(request), product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Unknown product")
    return {"product": _product_out(product)}


@router.get("/selection")
async def get_selection(
    request: Request,
    x_session_id: Optional[str] = Header(default=None, alias="X-Session-ID"),
):
    session_id = _require_session_id(x_session_id)
    return _selection_out(await _selection(request, session_id))


@router.post("/selection/toggle")
async def toggle_selection(
    request: Request,
    body: dict[str, Any] = Body(...),
    x_session_id: Optional[str] = Header(default=None, alias="X-Session-ID"),
):
    session_id = _require_session_id(x_session_id)
    product_id = body.get("product_id")
    if product_id is None or not str(product_id).strip():
        raise HTTPException(status_code=400, detail="Missing `product_id`")

    product = find_product(_catalog(request), product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Unknown product")

    async with request.app.state.selection_locks.for_session(session_id):
        selection = await _selection(request, session_id)
        selected = await selection.toggle(product)
    logger.info("selection_toggled session=%s product=%s selected=%s", session_id, product.id, selected)
    return {"selected": selected, **_selection_out(selection)}


@router.delete("/selection/{product_id}")
async def remove_from_selection(
    request: Request,
    product_id: str,
    x_session_id: Optional[str] = Header(default=None, alias="X-Session-ID"),
):
    session_id = _require_session_id(x_session_id)
    async with request.app.state.selection_locks.for_session(session_id):
        selection = await _selection(request, session_id)
        await selection.remove(product_id)
    return _selection_out(selection)


@router.delete("/selection")
async def clear_selection(
    request: Request,
    x_session_id: Optional[str] = Header(default=None, alias="X-Session-ID"),
):
    session_id = _require_session_id(x_session_id)
    async with request.app.state.selection_locks.for_session(session_id):
        selection = await _selection(request, session_id)
        await selection.clear()
    return _selection_out(selection)


@router.post("/routine")
async def generate_routine(
    request: Request,
    x_session_id: Optional[str] = Header(default=None, alias="X-Session-ID"),
):
    session_id = _require_session_id(x_session_id)
    selection = await _selection(request, session_id)
    conversation = await _conversation(request, session_id)

    try:
        reply = await conversation.start_routine_request(selection.brief())
    except ConversationError as exc:
        logger.info("routine_request_rejected session=%s error=%s", session_id, exc.code)
        _raise_conversation_error(exc)

    return {
        "reply": reply,
        "reply_html": render_markup(reply),
        "turns": len(conversation.transcript),
    }


@router.post("/chat")
async def chat(
    request: Request,
    body: dict[str, Any] = Body(...),
    x_session_id: Optional[str] = Header(default=None, alias="X-Session-ID"),
):
    session_id = _require_session_id(x_session_id)
    message = body.get("message")
    if not isinstance(message, str):
        message = ""

    conversation = await _conversation(request, session_id)
    try:
        reply = await conversation.ask_followup(message.strip())
    except ConversationError as exc:
        logger.info("followup_rejected session=%s error=%s", session_id, exc.code)
        _raise_conversation_error(exc)

    return {
        "reply": reply,
        "reply_html": render_markup(reply),
        "turns": len(conversation.transcript),
    }


@router.get("/chat/transcript")
async def chat_transcript(
    request: Request,
    x_session_id: Optional[str] = Header(default=None, alias="X-Session-ID"),
):
    session_id = _require_session_id(x_session_id)
    conversation = await _conversation(request, session_id)
    messages = [m for m in conversation.transcript if m.role != "system"]
    return {
        "state": conversation.state,
        "messages": [_message_out(m) for m in messages],
    }


@router.post("/chat/reset")
async def chat_reset(
    request: Request,
    x_session_id: Optional[str] = Header(default=None, alias="X-Session-ID"),
):
    session_id = _require_session_id(x_session_id)
    conversation = await _conversation(request, session_id)
    try:
        conversation.reset()
    except ConversationError as exc:
        _raise_conversation_error(exc)
    return {"ok": True, "turns": len(conversation.transcript)}
