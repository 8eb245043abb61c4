from __future__ import annotations

import os
from pathlib import Path


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "y"}


PACKAGE_DIR = Path(__file__).resolve().parent

ASSISTANT_ENDPOINT_URL = (os.getenv("ASSISTANT_ENDPOINT_URL") or "https://loreal-worker.robertalamo.workers.dev/").strip()
ASSISTANT_MODEL = (os.getenv("ASSISTANT_MODEL") or "gpt-4o-search-preview").strip()
ASSISTANT_TIMEOUT_S = _env_float("ASSISTANT_TIMEOUT_S", 30.0)

CATALOG_PATH = Path((os.getenv("CATALOG_PATH") or "").strip() or PACKAGE_DIR / "data" / "products.json")

SELECTION_TTL_DAYS = _env_float("SELECTION_TTL_DAYS", 30.0)
SELECTION_KEY_PREFIX = (os.getenv("SELECTION_KEY_PREFIX") or "routine_selection").strip()

SINGLE_FLIGHT = _env_bool("SINGLE_FLIGHT", True)
