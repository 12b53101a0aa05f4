"""Tests for the session storage backends."""

import fnmatch

import pytest

from src.identity_sync.core.models.session import AuthSession
from src.identity_sync.core.storage.session_storage import (
    InMemorySessionStorage,
    RedisSessionStorage,
    SessionDecodeError,
    SessionStorageError,
    create_session_storage,
)
from src.identity_sync.runtime.config.config_data import RedisConfig


class FakeRedis:
    """The handful of redis.asyncio commands the storage uses."""

    def __init__(self, fail: bool = False):
        self.values: dict[str, str] = {}
        self.fail = fail

    async def setex(self, key, ttl, value):
        self._check()
        self.values[key] = value

    async def get(self, key):
        self._check()
        return self.values.get(key)

    async def delete(self, key):
        self._check()
        self.values.pop(key, None)

    async def scan(self, cursor, match, count):
        self._check()
        return 0, [key for key in self.values if fnmatch.fnmatch(key, match)]

    async def ping(self):
        self._check()

    async def aclose(self):
        pass

    def _check(self):
        if self.fail:
            raise ConnectionError("redis down")


def _auth_session(session_id="a1") -> AuthSession:
    return AuthSession.create(
        session_id=session_id,
        pkce_verifier="verifier",
        state="state",
        nonce="nonce",
        return_to="/dashboard",
    )


class TestInMemorySessionStorage:
    @pytest.mark.asyncio
    async def test_round_trip(self):
        storage = InMemorySessionStorage()
        await storage.set("auth:a1", _auth_session(), 60)

        loaded = await storage.get("auth:a1", AuthSession)

        assert loaded.return_to == "/dashboard"

    @pytest.mark.asyncio
    async def test_expired_entries_vanish(self):
        storage = InMemorySessionStorage()
        await storage.set("auth:a1", _auth_session(), -1)

        assert await storage.get("auth:a1", AuthSession) is None
        assert await storage.list_keys("auth:*") == []

    @pytest.mark.asyncio
    async def test_corrupted_entry_raises_once(self):
        storage = InMemorySessionStorage()
        await storage.set_raw("auth:bad", {"id": "bad"}, 60)

        with pytest.raises(SessionDecodeError):
            await storage.get("auth:bad", AuthSession)
        assert await storage.get("auth:bad", AuthSession) is None

    @pytest.mark.asyncio
    async def test_cleanup_counts_removed(self):
        storage = InMemorySessionStorage()
        await storage.set("auth:old", _auth_session("old"), -1)
        await storage.set("auth:new", _auth_session("new"), 60)

        assert await storage.cleanup_expired() == 1
        assert await storage.list_keys("auth:*") == ["auth:new"]


class TestRedisSessionStorage:
    @pytest.mark.asyncio
    async def test_round_trip_and_scan(self):
        storage = RedisSessionStorage(FakeRedis())
        await storage.set("auth:a1", _auth_session(), 60)

        assert (await storage.get("auth:a1", AuthSession)).state == "state"
        assert await storage.list_keys("auth:*") == ["auth:a1"]

    @pytest.mark.asyncio
    async def test_corrupted_value_is_deleted(self):
        redis_client = FakeRedis()
        redis_client.values["auth:bad"] = '{"id": "bad"}'
        storage = RedisSessionStorage(redis_client)

        with pytest.raises(SessionDecodeError):
            await storage.get("auth:bad", AuthSession)
        assert "auth:bad" not in redis_client.values

    @pytest.mark.asyncio
    async def test_backend_failure_marks_unavailable(self):
        storage = RedisSessionStorage(FakeRedis(fail=True))

        with pytest.raises(SessionStorageError):
            await storage.get("auth:a1", AuthSession)
        assert not storage.is_available()
        assert await storage.ping() is False


@pytest.mark.asyncio
async def test_disabled_redis_uses_memory():
    storage = await create_session_storage(RedisConfig(enabled=False))

    assert isinstance(storage, InMemorySessionStorage)
