from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import os
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from routine_builder import config
from routine_builder.routes.health import router as health_router
from routine_builder.routes.v1 import router as v1_router
from routine_builder.services.assistant_client import AssistantClient
from routine_builder.services.conversation import AssistantTransport, ConversationSession
from routine_builder.services.session_registry import ConversationRegistry
from routine_builder.store.selection_store import PersistentBlobStore, SelectionLocks


logger = logging.getLogger("routine-builder.main")


def _parse_cors_origins(raw: Optional[str]) -> list[str]:
    if not raw:
        return ["*"]
    parts = [p.strip() for p in raw.split(",")]
    return [p for p in parts if p]


def _setup_logging() -> None:
    level = (os.getenv("LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    *,
    assistant_client: Optional[AssistantTransport] = None,
    catalog_path: Optional[Path] = None,
    single_flight: Optional[bool] = None,
) -> FastAPI:
    _setup_logging()

    client = assistant_client or AssistantClient(
        endpoint_url=config.ASSISTANT_ENDPOINT_URL,
        model=config.ASSISTANT_MODEL,
        timeout_s=config.ASSISTANT_TIMEOUT_S,
    )
    single = config.SINGLE_FLIGHT if single_flight is None else single_flight
    selection_store = PersistentBlobStore(
        redis_url=os.getenv("REDIS_URL"),
        default_ttl_days=config.SELECTION_TTL_DAYS,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await selection_store.initialize()
        try:
            yield
        finally:
            await selection_store.close()

    app = FastAPI(title="Routine Builder", version="0.1.0", lifespan=lifespan)

    app.state.assistant_client = client
    app.state.selection_store = selection_store
    app.state.selection_key_prefix = config.SELECTION_KEY_PREFIX
    app.state.selection_locks = SelectionLocks()
    app.state.catalog_path = catalog_path or config.CATALOG_PATH
    app.state.conversations = ConversationRegistry(lambda: ConversationSession(client, single_flight=single))

    origins = _parse_cors_origins(os.getenv("CORS_ORIGINS"))
    allow_all = "*" in origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=86400,
    )

    app.include_router(health_router)
    app.include_router(v1_router, prefix="/v1")

    logger.info(
        "app_created model=%s catalog=%s single_flight=%s",
        getattr(client, "model", "custom"),
        app.state.catalog_path,
        single,
    )
    return app


app = create_app()
