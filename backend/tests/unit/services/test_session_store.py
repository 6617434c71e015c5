"""
Unit Tests for the planning Session Store
Tests for: in-memory store semantics, single-flight, TTL sweep, Redis CAS wiring
"""
import asyncio
import json
import time
import pytest
from unittest.mock import AsyncMock, MagicMock
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.exceptions import SessionAlreadyExistsError, StorageError
from app.modules.planning.models import SessionStatus
from app.services.session_store import (
    InMemorySessionStore,
    RedisSessionStore,
    StartResult,
    create_session_store,
)


class TestInMemoryBasics:
    """Test create/get/set_status/delete"""

    @pytest.mark.asyncio
    async def test_create_is_pending(self, session_store, concept, layout_manifest):
        session = await session_store.create("s1", concept, layout_manifest)

        assert session.status == SessionStatus.PENDING
        assert (await session_store.get("s1")).concept == concept

    @pytest.mark.asyncio
    async def test_duplicate_create_fails(self, session_store, concept, layout_manifest):
        await session_store.create("s1", concept, layout_manifest)

        with pytest.raises(SessionAlreadyExistsError):
            await session_store.create("s1", concept, layout_manifest)

    @pytest.mark.asyncio
    async def test_get_missing(self, session_store):
        assert await session_store.get("missing") is None

    @pytest.mark.asyncio
    async def test_set_status_on_missing_is_noop(self, session_store):
        await session_store.set_status("missing", SessionStatus.COMPLETE)
        assert await session_store.get("missing") is None

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, session_store, concept, layout_manifest):
        await session_store.create("s1", concept, layout_manifest)

        await session_store.delete("s1")
        await session_store.delete("s1")

        assert await session_store.get("s1") is None


class TestSingleFlight:
    """Test the atomic pending -> running transition"""

    @pytest.mark.asyncio
    async def test_second_start_conflicts(self, session_store, concept, layout_manifest):
        await session_store.create("s1", concept, layout_manifest)

        assert await session_store.try_start("s1") == StartResult.STARTED
        assert await session_store.try_start("s1") == StartResult.ALREADY_RUNNING
        assert (await session_store.get("s1")).status == SessionStatus.RUNNING

    @pytest.mark.asyncio
    async def test_missing_session(self, session_store):
        assert await session_store.try_start("missing") == StartResult.NOT_FOUND

    @pytest.mark.asyncio
    async def test_finished_session_cannot_restart(self, session_store, concept, layout_manifest):
        await session_store.create("s1", concept, layout_manifest)
        await session_store.set_status("s1", SessionStatus.COMPLETE)

        assert await session_store.try_start("s1") == StartResult.NOT_FOUND

    @pytest.mark.asyncio
    async def test_racing_starts_admit_exactly_one(self, session_store, concept, layout_manifest):
        await session_store.create("s1", concept, layout_manifest)

        results = await asyncio.gather(*(session_store.try_start("s1") for _ in range(20)))

        assert results.count(StartResult.STARTED) == 1
        assert results.count(StartResult.ALREADY_RUNNING) == 19


class TestSweep:
    """Test TTL expiry"""

    @pytest.mark.asyncio
    async def test_sweeps_old_pending_sessions(self, session_store, concept, layout_manifest):
        await session_store.create("old", concept, layout_manifest)
        await session_store.create("new", concept, layout_manifest)
        (await session_store.get("old")).created_at = time.time() - 7200

        removed = await session_store.sweep_expired()

        assert removed == 1
        assert await session_store.get("old") is None
        assert await session_store.get("new") is not None

    @pytest.mark.asyncio
    async def test_running_sessions_survive_sweep(self, session_store, concept, layout_manifest):
        await session_store.create("s1", concept, layout_manifest)
        await session_store.try_start("s1")

        removed = await session_store.sweep_expired(now=time.time() + 7200)

        assert removed == 0
        assert await session_store.get("s1") is not None

    @pytest.mark.asyncio
    async def test_create_sweeps_opportunistically(self, session_store, concept, layout_manifest):
        await session_store.create("old", concept, layout_manifest)
        (await session_store.get("old")).created_at = time.time() - 7200

        await session_store.create("new", concept, layout_manifest)

        assert await session_store.get("old") is None

    @pytest.mark.asyncio
    async def test_cleanup_task_sweeps_periodically(self, concept, layout_manifest):
        store = InMemorySessionStore(ttl_seconds=0)
        await store.create("s1", concept, layout_manifest)

        await store.start_cleanup_task(interval_seconds=0.01)
        try:
            await asyncio.sleep(0.1)
        finally:
            store.stop_cleanup_task()

        assert await store.get("s1") is None

    @pytest.mark.asyncio
    async def test_stats(self, session_store, concept, layout_manifest):
        await session_store.create("a", concept, layout_manifest)
        await session_store.create("b", concept, layout_manifest)
        await session_store.try_start("b")

        stats = await session_store.get_stats()

        assert stats["backend"] == "memory"
        assert stats["active_sessions"] == 2
        assert stats["by_status"] == {"pending": 1, "running": 1}


class TestRedisSessionStore:
    """Test the Redis backend against a mocked client"""

    @pytest.fixture
    def redis(self):
        return AsyncMock()

    @pytest.fixture
    def store(self, redis):
        return RedisSessionStore(redis=redis, ttl_seconds=3600)

    @pytest.mark.asyncio
    async def test_create_uses_atomic_script(self, store, redis, concept, layout_manifest):
        redis.eval.return_value = 1

        session = await store.create("s1", concept, layout_manifest)

        assert session.status == SessionStatus.PENDING
        args = redis.eval.call_args.args
        assert args[1:3] == (1, "planning:session:s1")
        assert json.loads(args[3])["concept"] == concept
        assert args[4] == 3600

    @pytest.mark.asyncio
    async def test_create_duplicate(self, store, redis, concept, layout_manifest):
        redis.eval.return_value = 0

        with pytest.raises(SessionAlreadyExistsError):
            await store.create("s1", concept, layout_manifest)

    @pytest.mark.asyncio
    async def test_try_start_results(self, store, redis):
        redis.eval.side_effect = ["started", "already_running", "not_found"]

        assert await store.try_start("s1") == StartResult.STARTED
        assert await store.try_start("s1") == StartResult.ALREADY_RUNNING
        assert await store.try_start("s2") == StartResult.NOT_FOUND

    @pytest.mark.asyncio
    async def test_get_merges_status_and_payload(self, store, redis, concept, layout_manifest):
        redis.hgetall.return_value = {
            "status": "running",
            "payload": json.dumps({
                "session_id": "s1",
                "concept": concept,
                "layout_manifest": layout_manifest,
                "cached_intelligence": None,
                "created_at": 1700000000.0,
            }),
        }

        session = await store.get("s1")

        assert session.status == SessionStatus.RUNNING
        assert session.concept == concept
        redis.hgetall.assert_awaited_once_with("planning:session:s1")

    @pytest.mark.asyncio
    async def test_get_missing(self, store, redis):
        redis.hgetall.return_value = {}
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_set_status_passes_status_and_ttl(self, store, redis):
        await store.set_status("s1", SessionStatus.ERROR)

        args = redis.eval.call_args.args
        assert args[2:] == ("planning:session:s1", "error", 3600)

    @pytest.mark.asyncio
    async def test_delete(self, store, redis):
        await store.delete("s1")
        redis.delete.assert_awaited_once_with("planning:session:s1")

    @pytest.mark.asyncio
    async def test_redis_errors_become_storage_errors(self, store, redis):
        redis.eval.side_effect = RedisConnectionError("down")

        with pytest.raises(StorageError):
            await store.try_start("s1")

    @pytest.mark.asyncio
    async def test_sweep_left_to_redis_ttl(self, store, redis):
        assert await store.sweep_expired() == 0
        redis.eval.assert_not_called()

    def test_unconnected_store_raises(self):
        store = RedisSessionStore()
        with pytest.raises(StorageError):
            store.redis


class TestFactory:
    """Test backend selection"""

    def test_memory_backend(self):
        assert isinstance(create_session_store("memory"), InMemorySessionStore)

    def test_redis_backend(self):
        assert isinstance(create_session_store("redis"), RedisSessionStore)

    def test_unknown_backend_falls_back_to_memory(self):
        assert isinstance(create_session_store("etcd"), InMemorySessionStore)
