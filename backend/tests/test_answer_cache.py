"""
Tests for the answer cache
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
import redis

from examica.core.errors import DependencyUnavailable
from examica.services.answer_cache import (
    AnswerCache,
    InMemoryAnswerStore,
    RedisAnswerStore,
    WRITE_MISSING,
    WRITE_STALE,
    WRITE_STORED,
)


@pytest.fixture
def answer_cache(clock):
    return AnswerCache(InMemoryAnswerStore(clock=clock), grace_seconds=300, unlimited_minutes=480, clock=clock)


class TestAnswerCacheWrites:
    """Last-writer-wins by client timestamp"""

    async def test_write_and_read_back(self, answer_cache):
        await answer_cache.init("s1", "exam-1", 60, user_id="u1")
        assert await answer_cache.set("s1", "q1", "B", 1000) == WRITE_STORED

        answers = await answer_cache.get_all("s1")
        assert answers["q1"].response == "B"
        assert answers["q1"].timestamp == 1000

    async def test_older_write_is_ignored(self, answer_cache):
        await answer_cache.init("s1", "exam-1", 60)
        await answer_cache.set("s1", "q1", "new", 2000)

        assert await answer_cache.set("s1", "q1", "old", 1000) == WRITE_STALE
        answers = await answer_cache.get_all("s1")
        assert answers["q1"].response == "new"

    async def test_equal_timestamp_keeps_first_write(self, answer_cache):
        await answer_cache.init("s1", "exam-1", 60)
        assert await answer_cache.set("s1", "q1", "first", 1000) == WRITE_STORED

        assert await answer_cache.set("s1", "q1", "retry", 1000) == WRITE_STALE
        answers = await answer_cache.get_all("s1")
        assert answers["q1"].response == "first"

    async def test_newer_write_replaces(self, answer_cache):
        await answer_cache.init("s1", "exam-1", 60)
        await answer_cache.set("s1", "q1", "first", 1000)
        await answer_cache.set("s1", "q1", "second", 3000)

        answers = await answer_cache.get_all("s1")
        assert answers["q1"].response == "second"
        assert await answer_cache.count("s1") == 1

    async def test_write_without_session_reports_missing(self, answer_cache):
        assert await answer_cache.set("nope", "q1", "A", 1000) == WRITE_MISSING
        assert await answer_cache.get_all("nope") is None

    async def test_structured_responses_survive(self, answer_cache):
        await answer_cache.init("s1", "exam-1", None)
        await answer_cache.set("s1", "q-match", {"a": "1", "b": "2"}, 1000)
        answers = await answer_cache.get_all("s1")
        assert answers["q-match"].response == {"a": "1", "b": "2"}


class TestAnswerCacheLifetime:
    """TTL and metadata handling"""

    def test_ttl_includes_grace_period(self, answer_cache):
        assert answer_cache.ttl_for(60) == 60 * 60 + 300
        assert answer_cache.ttl_for(None) == 480 * 60 + 300

    async def test_entries_expire_after_ttl(self, answer_cache, clock):
        await answer_cache.init("s1", "exam-1", 10)
        await answer_cache.set("s1", "q1", "A", 1000)

        clock.advance(10 * 60 + 301)
        assert await answer_cache.get_all("s1") is None
        assert await answer_cache.session_ids() == []

    async def test_extend_ttl_keeps_answers(self, answer_cache, clock):
        await answer_cache.init("s1", "exam-1", 10)
        await answer_cache.set("s1", "q1", "A", 1000)

        clock.advance(10 * 60)
        assert await answer_cache.extend_ttl("s1", 30)
        clock.advance(20 * 60)

        assert (await answer_cache.get_all("s1"))["q1"].response == "A"
        assert await answer_cache.ttl("s1") == 10 * 60 + 300

    async def test_metadata_and_status(self, answer_cache):
        await answer_cache.init("s1", "exam-1", 45, user_id="u1", start_time=123)
        await answer_cache.update_status("s1", "paused")

        meta = await answer_cache.metadata("s1")
        assert meta["exam_id"] == "exam-1"
        assert meta["time_limit"] == "45"
        assert meta["start_time"] == "123"
        assert meta["user_id"] == "u1"
        assert meta["status"] == "paused"

    async def test_metadata_is_not_reported_as_answers(self, answer_cache):
        await answer_cache.init("s1", "exam-1", 45)
        assert await answer_cache.get_all("s1") == {}

    async def test_clear(self, answer_cache):
        await answer_cache.init("s1", "exam-1", 45)
        await answer_cache.set("s1", "q1", "A", 1000)
        assert await answer_cache.clear("s1") is True
        assert await answer_cache.get_all("s1") is None
        assert await answer_cache.update_status("s1", "active") is False


class TestRedisAnswerStore:
    """Redis failures surface as DependencyUnavailable"""

    async def test_redis_error_is_wrapped(self):
        client = MagicMock()
        client.hgetall = AsyncMock(side_effect=redis.ConnectionError("connection refused"))
        manager = MagicMock()
        manager.get_async_client = AsyncMock(return_value=client)

        store = RedisAnswerStore(manager)
        with pytest.raises(DependencyUnavailable):
            await store.read("s1")
        manager.reset_async_client.assert_called_once()

    async def test_write_maps_script_result(self):
        client = MagicMock()
        client.eval = AsyncMock(return_value=0)
        manager = MagicMock()
        manager.get_async_client = AsyncMock(return_value=client)

        store = RedisAnswerStore(manager)
        outcome = await store.write_if_newer("s1", "q1", {"response": "A", "timestamp": 5, "server_timestamp": 6})

        assert outcome == WRITE_STALE
        args = client.eval.call_args.args
        assert args[2] == "session:s1"
        assert args[3] == "answer:q1"
