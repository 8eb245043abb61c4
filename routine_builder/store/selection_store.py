from __future__ import annotations

import asyncio
import json
import logging
import time
import weakref
from typing import Any, Optional, Protocol

import redis.asyncio as aioredis
from pydantic import TypeAdapter, ValidationError
from redis.exceptions import RedisError

from routine_builder.models import Product, ProductBrief
from routine_builder.services.catalog import same_id


logger = logging.getLogger("routine-builder.selection-store")

MAX_KEY_LENGTH = 200
MAX_SESSION_ID_LENGTH = 128


class StorageCorrupt(Exception):
    pass


class BlobStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, *, ttl_days: Optional[float] = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def close(self) -> None: ...


def _normalize_key(key: str) -> str:
    if not isinstance(key, str):
        raise TypeError("key must be a string")
    normalized = key.strip()
    if not normalized:
        raise ValueError("key must be non-empty")
    if len(normalized) > MAX_KEY_LENGTH:
        raise ValueError("key too long")
    return normalized


def _coerce_ttl_seconds(ttl_days: Optional[float], default_ttl_days: float) -> float:
    days = default_ttl_days if ttl_days is None else float(ttl_days)
    if days <= 0:
        return 0.0
    return days * 86400.0


class InMemoryBlobStore(BlobStore):
    def __init__(self, *, default_ttl_days: float = 30.0) -> None:
        self._default_ttl_days = default_ttl_days
        self._lock = asyncio.Lock()
        self._items: dict[str, tuple[str, Optional[float]]] = {}

    async def get(self, key: str) -> Optional[str]:
        key = _normalize_key(key)
        async with self._lock:
            record = self._items.get(key)
            if not record:
                return None
            value, expires_at = record
            if expires_at is not None and time.monotonic() >= expires_at:
                self._items.pop(key, None)
                return None
            return value

    async def set(self, key: str, value: str, *, ttl_days: Optional[float] = None) -> None:
        key = _normalize_key(key)
        ttl_seconds = _coerce_ttl_seconds(ttl_days, self._default_ttl_days)
        expires_at = None if ttl_seconds <= 0 else (time.monotonic() + ttl_seconds)
        async with self._lock:
            self._items[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        key = _normalize_key(key)
        async with self._lock:
            self._items.pop(key, None)

    async def close(self) -> None:
        return None


class RedisBlobStore(BlobStore):
    def __init__(
        self,
        *,
        redis_url: str,
        default_ttl_days: float = 30.0,
        connect_timeout_s: float = 1.0,
        socket_timeout_s: float = 1.0,
    ) -> None:
        self._default_ttl_days = default_ttl_days
        self._redis = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=connect_timeout_s,
            socket_timeout=socket_timeout_s,
        )

    async def ping(self) -> None:
        await self._redis.ping()

    async def get(self, key: str) -> Optional[str]:
        raw = await self._redis.get(_normalize_key(key))
        return raw or None

    async def set(self, key: str, value: str, *, ttl_days: Optional[float] = None) -> None:
        ttl_seconds = _coerce_ttl_seconds(ttl_days, self._default_ttl_days)
        ttl_seconds_int = int(max(1.0, ttl_seconds)) if ttl_seconds > 0 else 0
        if ttl_seconds_int > 0:
            await self._redis.set(_normalize_key(key), value, ex=ttl_seconds_int)
        else:
            await self._redis.set(_normalize_key(key), value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(_normalize_key(key))

    async def close(self) -> None:
        await self._redis.aclose()


class PersistentBlobStore(BlobStore):
    """Redis when REDIS_URL is set and reachable, otherwise process memory.

    Runtime Redis errors drop the store to memory for the rest of the
    process instead of failing the request.
    """

    def __init__(
        self,
        *,
        redis_url: Optional[str] = None,
        default_ttl_days: float = 30.0,
        connect_timeout_s: float = 1.0,
        socket_timeout_s: float = 1.0,
    ) -> None:
        self._redis_url = (redis_url or "").strip() or None
        self._default_ttl_days = default_ttl_days
        self._connect_timeout_s = connect_timeout_s
        self._socket_timeout_s = socket_timeout_s
        self._backend: BlobStore = InMemoryBlobStore(default_ttl_days=default_ttl_days)
        self._backend_kind = "memory"

    @property
    def backend_kind(self) -> str:
        return self._backend_kind

    async def initialize(self) -> None:
        if not self._redis_url:
            logger.info("selection_store_backend=memory reason=missing_REDIS_URL")
            return

        try:
            redis_backend = RedisBlobStore(
                redis_url=self._redis_url,
                default_ttl_days=self._default_ttl_days,
                connect_timeout_s=self._connect_timeout_s,
                socket_timeout_s=self._socket_timeout_s,
            )
        except ValueError as exc:
            logger.warning("selection_store_backend=memory reason=invalid_REDIS_URL err=%s", exc)
            return

        try:
            await redis_backend.ping()
        except (RedisError, OSError) as exc:
            logger.warning("selection_store_backend=memory reason=redis_unavailable err=%s", exc)
            try:
                await redis_backend.close()
            except RedisError:
                pass
            return

        self._backend = redis_backend
        self._backend_kind = "redis"
        logger.info("selection_store_backend=redis")

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._backend.get(key)
        except RedisError as exc:
            logger.warning("selection_store_get_failed backend=%s err=%s", self._backend_kind, exc)
            await self._fallback_to_memory(reason="redis_error")
            return None

    async def set(self, key: str, value: str, *, ttl_days: Optional[float] = None) -> None:
        try:
            await self._backend.set(key, value, ttl_days=ttl_days)
        except RedisError as exc:
            logger.warning("selection_store_set_failed backend=%s err=%s", self._backend_kind, exc)
            await self._fallback_to_memory(reason="redis_error")
            await self._backend.set(key, value, ttl_days=ttl_days)

    async def delete(self, key: str) -> None:
        try:
            await self._backend.delete(key)
        except RedisError as exc:
            logger.warning("selection_store_delete_failed backend=%s err=%s", self._backend_kind, exc)
            await self._fallback_to_memory(reason="redis_error")

    async def _fallback_to_memory(self, *, reason: str) -> None:
        if self._backend_kind == "memory":
            return
        try:
            await self._backend.close()
        except RedisError:
            pass
        self._backend = InMemoryBlobStore(default_ttl_days=self._default_ttl_days)
        self._backend_kind = "memory"
        logger.warning("selection_store_backend=memory reason=%s", reason)

    async def close(self) -> None:
        await self._backend.close()


_PRODUCT_LIST = TypeAdapter(list[Product])


def encode_selection(products: list[Product]) -> str:
    return json.dumps([p.model_dump(mode="json") for p in products], ensure_ascii=False, separators=(",", ":"))


def decode_selection(raw: str) -> list[Product]:
    try:
        data: Any = json.loads(raw)
        return _PRODUCT_LIST.validate_python(data)
    except (ValueError, ValidationError) as exc:
        raise StorageCorrupt("persisted selection is not a list of products") from exc


class SelectionSet:
    """Chosen products for one client, unique by id, in the order picked.

    Every mutation writes the whole list back to the store.
    """

    def __init__(self, store: BlobStore, session_id: str, *, key_prefix: str = "routine_selection") -> None:
        self._store = store
        session_id = session_id.strip()
        if not session_id or len(session_id) > MAX_SESSION_ID_LENGTH:
            raise ValueError("session id must be 1-%d characters" % MAX_SESSION_ID_LENGTH)
        self._key = _normalize_key(f"{key_prefix.strip(':') or 'routine_selection'}:{session_id}")
        self._products: list[Product] = []

    @property
    def products(self) -> list[Product]:
        return list(self._products)

    def contains(self, product_id: Any) -> bool:
        return any(same_id(p.id, product_id) for p in self._products)

    def brief(self) -> list[ProductBrief]:
        return [ProductBrief.from_product(p) for p in self._products]

    async def load(self) -> list[Product]:
        raw = await self._store.get(self._key)
        if not raw:
            self._products = []
            return self.products
        try:
            self._products = decode_selection(raw)
        except StorageCorrupt as exc:
            logger.warning("selection_blob_corrupt key=%s err=%s", self._key, exc.__cause__)
            self._products = []
        return self.products

    async def save(self) -> None:
        await self._store.set(self._key, encode_selection(self._products))

    async def add(self, product: Product) -> None:
        if not self.contains(product.id):
            self._products.append(product)
        await self.save()

    async def remove(self, product_id: Any) -> None:
        self._products = [p for p in self._products if not same_id(p.id, product_id)]
        await self.save()

    async def toggle(self, product: Product) -> bool:
        if self.contains(product.id):
            await self.remove(product.id)
            return False
        await self.add(product)
        return True

    async def clear(self) -> None:
        self._products = []
        await self.save()


class SelectionLocks:
    """One asyncio.Lock per session id, held across load, mutate and save.

    Locks live only while some request holds a reference to them.
    """

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def for_session(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock
