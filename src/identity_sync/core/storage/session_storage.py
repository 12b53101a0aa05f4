"""Where login-flow and identity sessions live between requests.

Keys are namespaced by purpose (``auth:<id>``, ``identity:<id>``). Redis is
used when configured and reachable; otherwise sessions stay in process memory
and are lost on restart.
"""

from __future__ import annotations

import fnmatch
import json
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from src.identity_sync.runtime.config.config_data import RedisConfig

T = TypeVar("T", bound=BaseModel)


class SessionStorageError(RuntimeError):
    """Storage backend failure."""


class SessionDecodeError(SessionStorageError):
    """A stored session exists but cannot be decoded into its model."""


class SessionStorage(ABC):
    """Async key/value store for pydantic session models with per-key TTL."""

    @abstractmethod
    async def set(self, key: str, value: BaseModel, ttl_seconds: int) -> None: ...

    @abstractmethod
    async def get(self, key: str, model_class: type[T]) -> T | None:
        """The stored model, or None when absent or expired.

        A value that no longer matches ``model_class`` is removed.

        Raises:
            SessionDecodeError: The stored value does not match ``model_class``
        """

    @abstractmethod
    async def delete(self, key: str) -> None: ...

    @abstractmethod
    async def cleanup_expired(self) -> int:
        """Drop expired entries; returns how many went away."""

    @abstractmethod
    async def list_keys(self, pattern: str) -> list[str]:
        """Live keys matching a glob such as ``identity:*``."""

    @abstractmethod
    def is_available(self) -> bool: ...


@dataclass
class _Entry:
    data: Any
    expires_at: float

    @property
    def expired(self) -> bool:
        return time.time() > self.expires_at


class InMemorySessionStorage(SessionStorage):
    """Single-process storage. Expiry is checked lazily on access."""

    def __init__(self):
        self._entries: dict[str, _Entry] = {}

    async def set(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        await self.set_raw(key, json.loads(value.model_dump_json()), ttl_seconds)

    async def set_raw(self, key: str, data: Any, ttl_seconds: int) -> None:
        """Store an arbitrary JSON value; used to seed fixtures."""
        self._entries[key] = _Entry(data=data, expires_at=time.time() + ttl_seconds)

    def _live(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is not None and entry.expired:
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str, model_class: type[T]) -> T | None:
        entry = self._live(key)
        if entry is None:
            return None
        try:
            return model_class.model_validate(entry.data)
        except ValidationError as e:
            del self._entries[key]
            raise SessionDecodeError(f"Corrupted session {key!r}") from e

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def cleanup_expired(self) -> int:
        stale = [key for key, entry in self._entries.items() if entry.expired]
        for key in stale:
            del self._entries[key]
        return len(stale)

    async def list_keys(self, pattern: str) -> list[str]:
        return [
            key
            for key in list(self._entries)
            if fnmatch.fnmatch(key, pattern) and self._live(key) is not None
        ]

    def is_available(self) -> bool:
        return True


class RedisSessionStorage(SessionStorage):
    """Sessions as JSON strings under Redis keys with native expiry."""

    def __init__(self, redis_client):
        self._redis = redis_client
        self._available = True

    async def _call(self, operation: str, pending: Awaitable[Any]) -> Any:
        """Await a Redis command, tracking availability from its outcome."""
        try:
            result = await pending
        except Exception as e:
            self._available = False
            raise SessionStorageError(f"Redis {operation} failed: {e}") from e
        self._available = True
        return result

    async def set(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        payload = value.model_dump_json()
        await self._call("set", self._redis.setex(key, ttl_seconds, payload))

    async def get(self, key: str, model_class: type[T]) -> T | None:
        raw = await self._call("get", self._redis.get(key))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")

        try:
            return model_class.model_validate_json(raw)
        except ValidationError as e:
            await self.delete(key)
            raise SessionDecodeError(f"Corrupted session {key!r}") from e

    async def delete(self, key: str) -> None:
        await self._call("delete", self._redis.delete(key))

    async def cleanup_expired(self) -> int:
        # Redis expires keys itself
        return 0

    async def list_keys(self, pattern: str) -> list[str]:
        keys: list[str] = []
        cursor = 0
        while True:
            cursor, batch = await self._call(
                "scan", self._redis.scan(cursor, match=pattern, count=100)
            )
            keys.extend(batch)
            if cursor == 0:
                return keys

    def is_available(self) -> bool:
        return self._available

    async def ping(self) -> bool:
        try:
            await self._call("ping", self._redis.ping())
        except SessionStorageError:
            return False
        return True

    async def close(self) -> None:
        await self._redis.aclose()


async def create_session_storage(redis_config: RedisConfig) -> SessionStorage:
    """Redis storage when enabled and reachable, else in-memory storage."""
    if not redis_config.enabled or not redis_config.url:
        logger.info("Session storage: in-memory")
        return InMemorySessionStorage()

    import redis.asyncio as redis

    storage = RedisSessionStorage(
        redis.from_url(
            redis_config.connection_string,
            encoding="utf-8",
            decode_responses=redis_config.decode_responses,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
    )
    if await storage.ping():
        logger.info("Session storage: Redis connected")
        return storage

    logger.warning("Redis unavailable, using in-memory session storage")
    await storage.close()
    return InMemorySessionStorage()
