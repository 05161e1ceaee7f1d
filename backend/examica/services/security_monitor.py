"""
Security monitoring for exam sessions.

Keeps an append-only, capped log of security events and per-session
counters, screens answer submissions for timing anomalies and validates
whole sessions against cheating heuristics. Detection is advisory: the
monitor flags and records, callers decide what to block.
"""
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence
import logging
import threading
import time
import uuid

import redis
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from ..core.cache import CacheManager
from ..core.errors import DependencyUnavailable, RateLimited
from .rate_limiter import RateLimitDecision, RateLimiter

logger = logging.getLogger(__name__)

EVENT_TYPES = (
    "session_start",
    "answer_submit",
    "suspicious_activity",
    "rate_limit",
    "session_conflict",
    "data_integrity",
)
SEVERITIES = ("low", "medium", "high", "critical")

SUSPICIOUS_PATTERNS = ("ABCABC", "ABABAB", "AAAAAA", "BBBBBB", "CCCCCC", "DDDDDD")

FAST_RESPONSE_MS = 500
MIN_DWELL_MS = 2000
LONG_ANSWER_CHARS = 100
LONG_ANSWER_FAST_MS = 5000
SUSPICIOUS_SCORE = 15
HIGH_SEVERITY_SCORE = 25
VALID_SESSION_SCORE = 50

# KEYS[1] event list; ARGV[1] cutoff timestamp
_PRUNE_TAIL = """
local removed = 0
while true do
  local oldest = redis.call('LINDEX', KEYS[1], -1)
  if not oldest then
    break
  end
  if tonumber(cjson.decode(oldest)['timestamp']) >= tonumber(ARGV[1]) then
    break
  end
  redis.call('RPOP', KEYS[1])
  removed = removed + 1
end
return removed
"""


class SecurityEvent(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    type: str
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    timestamp: float
    severity: str = "low"
    details: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class SessionMetrics(BaseModel):
    session_id: str
    suspicious_activities: int = 0
    rate_limit_violations: int = 0
    risk_level: str = "low"
    last_activity: Optional[float] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class AnomalyReport(BaseModel):
    suspicious: bool
    risk_score: int
    reasons: List[str] = Field(default_factory=list)


class SessionValidation(BaseModel):
    is_valid: bool
    risk_score: int
    reasons: List[str] = Field(default_factory=list)


def risk_level(suspicious: int, violations: int) -> str:
    if suspicious >= 3 or violations >= 2:
        return "high"
    if suspicious >= 1 or violations >= 1:
        return "medium"
    return "low"


def detect_suspicious_pattern(answers: Sequence[Any]) -> bool:
    """Flag long runs of one choice or ABCABC-style cycles"""
    if len(answers) < 5:
        return False
    normalized = [str(answer).strip().upper() for answer in answers]

    longest = current = 1
    for previous, answer in zip(normalized, normalized[1:]):
        current = current + 1 if answer == previous else 1
        longest = max(longest, current)
    if longest > len(normalized) * 0.6:
        return True

    joined = "".join(normalized[:10])
    return any(pattern in joined for pattern in SUSPICIOUS_PATTERNS)


class SecurityStore(ABC):

    @abstractmethod
    async def append(self, event: SecurityEvent): ...

    @abstractmethod
    async def events(self) -> List[SecurityEvent]:
        """All retained events, newest first"""

    @abstractmethod
    async def prune(self, older_than: float) -> int: ...

    @abstractmethod
    async def increment(self, session_id: str, counter: str, now: float): ...

    @abstractmethod
    async def counters(self, session_id: str) -> Dict[str, float]: ...

    @abstractmethod
    async def tracked_sessions(self) -> List[str]: ...


class InMemorySecurityStore(SecurityStore):

    def __init__(self, cap: int = 1000):
        self._lock = threading.Lock()
        self._events: Deque[SecurityEvent] = deque(maxlen=cap)
        self._counters: Dict[str, Dict[str, float]] = {}

    async def append(self, event):
        with self._lock:
            self._events.append(event)

    async def events(self):
        with self._lock:
            return list(reversed(self._events))

    async def prune(self, older_than):
        with self._lock:
            kept = [event for event in self._events if event.timestamp >= older_than]
            removed = len(self._events) - len(kept)
            self._events.clear()
            self._events.extend(kept)
            for session_id in [s for s, c in self._counters.items() if c.get("last_activity", 0) < older_than]:
                del self._counters[session_id]
            return removed

    async def increment(self, session_id, counter, now):
        with self._lock:
            counters = self._counters.setdefault(session_id, {})
            counters[counter] = counters.get(counter, 0) + 1
            counters["last_activity"] = now

    async def counters(self, session_id):
        with self._lock:
            return dict(self._counters.get(session_id, {}))

    async def tracked_sessions(self):
        with self._lock:
            return list(self._counters)


class RedisSecurityStore(SecurityStore):

    def __init__(self, cache_manager: CacheManager, cap: int = 1000, counter_ttl_seconds: int = 86400):
        self.cache_manager = cache_manager
        self.cap = cap
        self.counter_ttl_seconds = counter_ttl_seconds
        self.events_key = "security:events"
        self.counter_prefix = "security:session:"

    async def _client(self):
        return await self.cache_manager.get_async_client()

    async def _call(self, operation: str, coro_factory):
        try:
            client = await self._client()
            return await coro_factory(client)
        except redis.RedisError as e:
            logger.error(f"Security store {operation} failed: {e}")
            self.cache_manager.reset_async_client()
            raise DependencyUnavailable("Security event store unavailable") from e

    async def append(self, event):
        async def run(client):
            async with client.pipeline(transaction=True) as pipe:
                pipe.lpush(self.events_key, event.model_dump_json())
                pipe.ltrim(self.events_key, 0, self.cap - 1)
                await pipe.execute()

        await self._call(f"append of {event.type}", run)

    async def events(self):
        raw_events = await self._call("read", lambda client: client.lrange(self.events_key, 0, -1))
        return [SecurityEvent.model_validate_json(raw) for raw in raw_events]

    async def prune(self, older_than):
        # Newest first, so expired events sit at the tail
        removed = await self._call(
            "prune",
            lambda client: client.eval(_PRUNE_TAIL, 1, self.events_key, repr(older_than)),
        )
        return int(removed)

    async def increment(self, session_id, counter, now):
        key = self.counter_prefix + session_id

        async def run(client):
            async with client.pipeline(transaction=True) as pipe:
                pipe.hincrby(key, counter, 1)
                pipe.hset(key, "last_activity", repr(now))
                pipe.expire(key, self.counter_ttl_seconds)
                await pipe.execute()

        await self._call("increment", run)

    async def counters(self, session_id):
        raw = await self._call("read", lambda client: client.hgetall(self.counter_prefix + session_id))
        return {field: float(value) for field, value in raw.items()}

    async def tracked_sessions(self):
        async def run(client):
            return [
                key[len(self.counter_prefix):]
                async for key in client.scan_iter(match=self.counter_prefix + "*", count=500)
            ]

        return await self._call("scan", run)


class SecurityMonitor:

    def __init__(
        self,
        store: SecurityStore,
        rate_limiter: RateLimiter,
        clock: Callable[[], float] = time.time,
        max_session_duration_hours: int = 8,
    ):
        self.store = store
        self.rate_limiter = rate_limiter
        self._clock = clock
        self.max_session_duration_hours = max_session_duration_hours

    async def log_event(
        self,
        event_type: str,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None,
        severity: str = "low",
        details: Optional[Dict[str, Any]] = None,
    ) -> SecurityEvent:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown security event type '{event_type}'")
        if severity not in SEVERITIES:
            raise ValueError(f"Unknown severity '{severity}'")

        event = SecurityEvent(
            type=event_type,
            session_id=session_id,
            user_id=user_id,
            timestamp=self._clock(),
            severity=severity,
            details=details or {},
        )
        await self.store.append(event)

        if session_id and event_type == "suspicious_activity":
            await self.store.increment(session_id, "suspicious_activities", event.timestamp)
        elif session_id and event_type == "rate_limit":
            await self.store.increment(session_id, "rate_limit_violations", event.timestamp)

        if severity == "critical":
            logger.warning(
                f"SECURITY ALERT: {event_type} session={session_id} user={user_id} details={event.details}"
            )
        return event

    async def _log_if_available(self, event_type: str, **kwargs) -> Optional[SecurityEvent]:
        try:
            return await self.log_event(event_type, **kwargs)
        except DependencyUnavailable as e:
            logger.error(f"Security event {event_type} for session {kwargs.get('session_id')} not recorded: {e.message}")
            return None

    async def check_rate_limit(
        self,
        identifier: str,
        action: str,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> RateLimitDecision:
        decision = await self.rate_limiter.check(identifier, action)
        if decision.newly_blocked:
            await self._log_if_available(
                "rate_limit",
                session_id=session_id,
                user_id=user_id,
                severity="medium",
                details={"action": action, "identifier": identifier, "retry_after": decision.retry_after},
            )
        return decision

    async def enforce_rate_limit(self, identifier: str, action: str, session_id: Optional[str] = None, user_id: Optional[str] = None) -> RateLimitDecision:
        decision = await self.check_rate_limit(identifier, action, session_id=session_id, user_id=user_id)
        if not decision.allowed:
            raise RateLimited(action, decision.retry_after, decision.reset_at)
        return decision

    async def analyze_answer_submission(
        self,
        session_id: str,
        user_id: str,
        question_id: str,
        answer: Any,
        response_time_ms: Optional[float] = None,
        time_on_question_ms: Optional[float] = None,
    ) -> AnomalyReport:
        score = 0
        reasons = []

        if response_time_ms is not None and response_time_ms < FAST_RESPONSE_MS:
            score += 15
            reasons.append("Response submitted unusually fast")
        if time_on_question_ms is not None and time_on_question_ms < MIN_DWELL_MS:
            score += 10
            reasons.append("Very little time spent on question")
        if (
            isinstance(answer, str)
            and len(answer) > LONG_ANSWER_CHARS
            and response_time_ms is not None
            and response_time_ms < LONG_ANSWER_FAST_MS
        ):
            score += 20
            reasons.append("Long answer entered implausibly fast")

        suspicious = score >= SUSPICIOUS_SCORE
        if suspicious:
            await self._log_if_available(
                "suspicious_activity",
                session_id=session_id,
                user_id=user_id,
                severity="high" if score >= HIGH_SEVERITY_SCORE else "medium",
                details={
                    "question_id": question_id,
                    "risk_score": score,
                    "reasons": reasons,
                    "response_time_ms": response_time_ms,
                    "time_on_question_ms": time_on_question_ms,
                },
            )
        return AnomalyReport(suspicious=suspicious, risk_score=score, reasons=reasons)

    async def active_sessions_for_user(self, user_id: str, window_seconds: int = 3600) -> int:
        since = self._clock() - window_seconds
        events = await self.store.events()
        return len({
            event.session_id for event in events
            if event.user_id == user_id and event.session_id and event.timestamp >= since
        })

    async def validate_session(
        self,
        session_id: str,
        user_id: str,
        user_agent: Optional[str] = None,
        client_timestamp: Optional[float] = None,
        response_time_ms: Optional[float] = None,
        session_started_at: Optional[float] = None,
        answers: Optional[Sequence[Any]] = None,
        active_session_count: Optional[int] = None,
    ) -> SessionValidation:
        score = 0
        reasons = []

        if not user_agent:
            score += 10
            reasons.append("Missing user agent")
        if client_timestamp is None:
            score += 5
            reasons.append("Missing client timestamp")
        if response_time_ms is not None and response_time_ms < 1000:
            score += 15
            reasons.append("Unusually fast response time")

        if active_session_count is None:
            active_session_count = await self.active_sessions_for_user(user_id)
        if active_session_count > 1:
            score += 20
            reasons.append(f"{active_session_count} concurrent active sessions")

        if session_started_at is not None:
            duration_hours = (self._clock() - session_started_at) / 3600
            if duration_hours > self.max_session_duration_hours:
                score += 25
                reasons.append("Session duration exceeds limit")

        if answers and detect_suspicious_pattern(answers):
            score += 30
            reasons.append("Suspicious answer pattern")

        is_valid = score < VALID_SESSION_SCORE
        if not is_valid:
            await self.log_event(
                "suspicious_activity",
                session_id=session_id,
                user_id=user_id,
                severity="critical" if score >= 75 else "high",
                details={"risk_score": score, "reasons": reasons, "check": "session_validation"},
            )
        return SessionValidation(is_valid=is_valid, risk_score=score, reasons=reasons)

    async def get_session_metrics(self, session_id: str) -> SessionMetrics:
        counters = await self.store.counters(session_id)
        suspicious = int(counters.get("suspicious_activities", 0))
        violations = int(counters.get("rate_limit_violations", 0))
        return SessionMetrics(
            session_id=session_id,
            suspicious_activities=suspicious,
            rate_limit_violations=violations,
            risk_level=risk_level(suspicious, violations),
            last_activity=counters.get("last_activity"),
        )

    async def get_events(
        self,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None,
        event_type: Optional[str] = None,
        since: Optional[float] = None,
        limit: int = 100,
    ) -> List[SecurityEvent]:
        events = await self.store.events()
        filtered = [
            event for event in events
            if (session_id is None or event.session_id == session_id)
            and (user_id is None or event.user_id == user_id)
            and (event_type is None or event.type == event_type)
            and (since is None or event.timestamp >= since)
        ]
        return filtered[:limit]

    async def cleanup(self, max_age_hours: float = 24) -> int:
        removed = await self.store.prune(self._clock() - max_age_hours * 3600)
        if removed:
            logger.info(f"Pruned {removed} security events older than {max_age_hours}h")
        return removed

    async def security_stats(self) -> Dict[str, Any]:
        events = await self.store.events()
        by_type: Dict[str, int] = {}
        by_severity: Dict[str, int] = {}
        for event in events:
            by_type[event.type] = by_type.get(event.type, 0) + 1
            by_severity[event.severity] = by_severity.get(event.severity, 0) + 1

        high_risk = 0
        for session_id in await self.store.tracked_sessions():
            metrics = await self.get_session_metrics(session_id)
            if metrics.risk_level == "high":
                high_risk += 1

        return {
            "total_events": len(events),
            "events_by_type": by_type,
            "events_by_severity": by_severity,
            "high_risk_sessions": high_risk,
        }
