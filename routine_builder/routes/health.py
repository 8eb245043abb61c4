from __future__ import annotations

import os

from fastapi import APIRouter, Request

router = APIRouter()


def _get_commit_sha() -> str | None:
    for key in (
        "RAILWAY_GIT_COMMIT_SHA",
        "GITHUB_SHA",
        "VERCEL_GIT_COMMIT_SHA",
        "COMMIT_SHA",
        "GIT_SHA",
    ):
        value = os.getenv(key)
        if value:
            return value
    return None


@router.get("/healthz")
def healthz(request: Request):
    state = request.app.state
    return {
        "ok": True,
        "service": "routine-builder",
        "commit_sha": _get_commit_sha(),
        "environment": os.getenv("ENVIRONMENT"),
        "selection_store_backend": state.selection_store.backend_kind,
        "assistant_model": getattr(state.assistant_client, "model", None),
        "active_conversations": len(state.conversations),
    }
