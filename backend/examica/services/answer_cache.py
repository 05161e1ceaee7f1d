"""
TTL-bounded cache of in-progress answers.

The cache is authoritative while an exam is in progress; the durable
``question_responses`` table is authoritative once answers are reconciled.
Each session is a single hash: ``meta:*`` fields hold exam id, time limit,
start time and status, ``answer:<question id>`` fields hold one JSON entry
per question. Every answer write is a single atomic field set that keeps the
entry with the later client timestamp.
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional
import json
import logging
import threading
import time

import redis

from ..core.cache import CacheManager, deserialize_value, serialize_value
from ..core.errors import DependencyUnavailable

logger = logging.getLogger(__name__)

KEY_PREFIX = "session:"
META_PREFIX = "meta:"
ANSWER_PREFIX = "answer:"

WRITE_STORED = "stored"
WRITE_STALE = "stale"
WRITE_MISSING = "missing"

# KEYS[1] session hash; ARGV: field, entry json, client timestamp
_WRITE_IF_NEWER = """
if redis.call('EXISTS', KEYS[1]) == 0 then
  return -1
end
local current = redis.call('HGET', KEYS[1], ARGV[1])
if current then
  local decoded = cjson.decode(current)
  if tonumber(decoded['timestamp']) >= tonumber(ARGV[3]) then
    return 0
  end
end
redis.call('HSET', KEYS[1], ARGV[1], ARGV[2])
return 1
"""

_WRITE_RESULTS = {1: WRITE_STORED, 0: WRITE_STALE, -1: WRITE_MISSING}


class AnswerStore(ABC):
    """Backing store for the answer cache"""

    @abstractmethod
    async def init_session(self, session_id: str, meta: Dict[str, str], ttl_seconds: int): ...

    @abstractmethod
    async def write_if_newer(self, session_id: str, question_id: str, entry: Dict[str, Any]) -> str: ...

    @abstractmethod
    async def read(self, session_id: str) -> Optional[Dict[str, str]]: ...

    @abstractmethod
    async def set_meta(self, session_id: str, field: str, value: str) -> bool: ...

    @abstractmethod
    async def delete(self, session_id: str) -> bool: ...

    @abstractmethod
    async def expire(self, session_id: str, ttl_seconds: int) -> bool: ...

    @abstractmethod
    async def ttl(self, session_id: str) -> Optional[int]: ...

    @abstractmethod
    async def session_ids(self) -> List[str]: ...


class InMemoryAnswerStore(AnswerStore):
    """Single-process store; entries expire lazily on access"""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: Dict[str, Dict[str, Any]] = {}

    def _live(self, session_id: str) -> Optional[Dict[str, Any]]:
        record = self._sessions.get(session_id)
        if record is None:
            return None
        if record["expires_at"] <= self._clock():
            del self._sessions[session_id]
            return None
        return record

    async def init_session(self, session_id, meta, ttl_seconds):
        with self._lock:
            record = self._live(session_id)
            fields = record["fields"] if record else {}
            fields.update({META_PREFIX + key: value for key, value in meta.items()})
            self._sessions[session_id] = {"fields": fields, "expires_at": self._clock() + ttl_seconds}

    async def write_if_newer(self, session_id, question_id, entry):
        with self._lock:
            record = self._live(session_id)
            if record is None:
                return WRITE_MISSING
            field = ANSWER_PREFIX + question_id
            current = record["fields"].get(field)
            if current is not None and json.loads(current)["timestamp"] >= entry["timestamp"]:
                return WRITE_STALE
            record["fields"][field] = serialize_value(entry)
            return WRITE_STORED

    async def read(self, session_id):
        with self._lock:
            record = self._live(session_id)
            return dict(record["fields"]) if record else None

    async def set_meta(self, session_id, field, value):
        with self._lock:
            record = self._live(session_id)
            if record is None:
                return False
            record["fields"][META_PREFIX + field] = value
            return True

    async def delete(self, session_id):
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    async def expire(self, session_id, ttl_seconds):
        with self._lock:
            record = self._live(session_id)
            if record is None:
                return False
            record["expires_at"] = self._clock() + ttl_seconds
            return True

    async def ttl(self, session_id):
        with self._lock:
            record = self._live(session_id)
            if record is None:
                return None
            return max(0, int(record["expires_at"] - self._clock()))

    async def session_ids(self):
        with self._lock:
            return [session_id for session_id in list(self._sessions) if self._live(session_id)]


class RedisAnswerStore(AnswerStore):

    def __init__(self, cache_manager: CacheManager):
        self.cache_manager = cache_manager

    async def _client(self):
        return await self.cache_manager.get_async_client()

    async def _call(self, operation: str, coro_factory):
        try:
            client = await self._client()
            return await coro_factory(client)
        except redis.RedisError as e:
            logger.error(f"Answer cache {operation} failed: {e}")
            self.cache_manager.reset_async_client()
            raise DependencyUnavailable("Answer cache unavailable") from e

    async def init_session(self, session_id, meta, ttl_seconds):
        key = KEY_PREFIX + session_id
        mapping = {META_PREFIX + field: value for field, value in meta.items()}

        async def run(client):
            async with client.pipeline(transaction=True) as pipe:
                pipe.hset(key, mapping=mapping)
                pipe.expire(key, ttl_seconds)
                await pipe.execute()

        await self._call("init", run)

    async def write_if_newer(self, session_id, question_id, entry):
        async def run(client):
            return await client.eval(
                _WRITE_IF_NEWER,
                1,
                KEY_PREFIX + session_id,
                ANSWER_PREFIX + question_id,
                serialize_value(entry),
                entry["timestamp"],
            )

        return _WRITE_RESULTS[int(await self._call("write", run))]

    async def read(self, session_id):
        fields = await self._call("read", lambda client: client.hgetall(KEY_PREFIX + session_id))
        return fields or None

    async def set_meta(self, session_id, field, value):
        key = KEY_PREFIX + session_id

        async def run(client):
            if not await client.exists(key):
                return False
            await client.hset(key, META_PREFIX + field, value)
            return True

        return await self._call("set_meta", run)

    async def delete(self, session_id):
        return bool(await self._call("delete", lambda client: client.delete(KEY_PREFIX + session_id)))

    async def expire(self, session_id, ttl_seconds):
        return bool(await self._call("expire", lambda client: client.expire(KEY_PREFIX + session_id, ttl_seconds)))

    async def ttl(self, session_id):
        remaining = await self._call("ttl", lambda client: client.ttl(KEY_PREFIX + session_id))
        return remaining if remaining is not None and remaining >= 0 else None

    async def session_ids(self):
        async def run(client):
            return [key[len(KEY_PREFIX):] async for key in client.scan_iter(match=KEY_PREFIX + "*", count=500)]

        return await self._call("scan", run)


class CachedAnswer:
    __slots__ = ("question_id", "response", "timestamp", "server_timestamp")

    def __init__(self, question_id: str, response: Any, timestamp: int, server_timestamp: int):
        self.question_id = question_id
        self.response = response
        self.timestamp = timestamp
        self.server_timestamp = server_timestamp

    def __repr__(self):
        return f"<CachedAnswer {self.question_id} ts={self.timestamp}>"


class AnswerCache:
    """Write-ahead buffer for answers of live sessions"""

    def __init__(
        self,
        store: AnswerStore,
        grace_seconds: int = 300,
        unlimited_minutes: int = 480,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.grace_seconds = grace_seconds
        self.unlimited_minutes = unlimited_minutes
        self._clock = clock

    def ttl_for(self, time_limit_minutes: Optional[float]) -> int:
        minutes = self.unlimited_minutes if time_limit_minutes is None else time_limit_minutes
        return int(minutes * 60) + self.grace_seconds

    async def init(
        self,
        session_id: str,
        exam_id: str,
        time_limit_minutes: Optional[float],
        user_id: Optional[str] = None,
        start_time: Optional[int] = None,
    ):
        meta = {
            "exam_id": exam_id,
            "time_limit": "" if time_limit_minutes is None else str(time_limit_minutes),
            "start_time": str(start_time if start_time is not None else int(self._clock() * 1000)),
            "status": "active",
        }
        if user_id:
            meta["user_id"] = user_id
        await self.store.init_session(session_id, meta, self.ttl_for(time_limit_minutes))

    async def set(self, session_id: str, question_id: str, response: Any, client_timestamp: Optional[int] = None) -> str:
        """Write one answer; returns ``stored``, ``stale`` or ``missing``"""
        server_timestamp = int(self._clock() * 1000)
        entry = {
            "response": response,
            "timestamp": int(client_timestamp) if client_timestamp is not None else server_timestamp,
            "server_timestamp": server_timestamp,
        }
        return await self.store.write_if_newer(session_id, str(question_id), entry)

    async def get_all(self, session_id: str) -> Optional[Dict[str, CachedAnswer]]:
        """Answers keyed by question id; None when the session is not cached"""
        fields = await self.store.read(session_id)
        if fields is None:
            return None
        answers = {}
        for field, raw in fields.items():
            if not field.startswith(ANSWER_PREFIX):
                continue
            entry = deserialize_value(raw)
            if not isinstance(entry, dict):
                logger.warning(f"Skipping unreadable cache entry {field} for session {session_id}")
                continue
            question_id = field[len(ANSWER_PREFIX):]
            answers[question_id] = CachedAnswer(
                question_id,
                entry.get("response"),
                int(entry.get("timestamp", 0)),
                int(entry.get("server_timestamp", 0)),
            )
        return answers

    async def metadata(self, session_id: str) -> Optional[Dict[str, str]]:
        fields = await self.store.read(session_id)
        if fields is None:
            return None
        return {
            field[len(META_PREFIX):]: value
            for field, value in fields.items()
            if field.startswith(META_PREFIX)
        }

    async def count(self, session_id: str) -> int:
        answers = await self.get_all(session_id)
        return len(answers) if answers else 0

    async def update_status(self, session_id: str, status: str) -> bool:
        return await self.store.set_meta(session_id, "status", status)

    async def clear(self, session_id: str) -> bool:
        return await self.store.delete(session_id)

    async def extend_ttl(self, session_id: str, minutes: float) -> bool:
        """Reset the TTL to ``minutes`` plus the grace buffer"""
        return await self.store.expire(session_id, self.ttl_for(minutes))

    async def ttl(self, session_id: str) -> Optional[int]:
        return await self.store.ttl(session_id)

    async def session_ids(self) -> List[str]:
        return await self.store.session_ids()
