"""
Fixed-window rate limiter with a block cooldown.

Once an identifier exhausts its window for an action it is blocked for the
action's cooldown. While blocked every request is rejected; when the
cooldown elapses the window starts over. Each check is a single atomic
increment-and-test in the backing store.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple
import logging
import math
import threading
import time

import redis

from ..core.cache import CacheManager
from ..core.errors import DependencyUnavailable

logger = logging.getLogger(__name__)

RATE_LIMITS = {
    "answer_submission": {"max_requests": 30, "window_seconds": 60, "block_seconds": 300},
    "session_requests": {"max_requests": 20, "window_seconds": 60, "block_seconds": 600},
    "auto_save": {"max_requests": 5, "window_seconds": 30, "block_seconds": 120},
}

# Outcome codes shared by both stores
ALLOWED = 1
NEWLY_BLOCKED = 0
STILL_BLOCKED = -1


@dataclass
class RateLimitDecision:
    action: str
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    blocked: bool = False
    retry_after: int = 0
    newly_blocked: bool = False

    def headers(self) -> Dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


def apply_window(state: Optional[dict], now: float, policy: dict) -> Tuple[int, dict]:
    """Advance one window state by a single request; returns (outcome, new state)"""
    state = dict(state) if state else {"count": 0, "reset_at": 0.0, "blocked_until": 0.0}

    if state["blocked_until"] > now:
        return STILL_BLOCKED, state

    if now >= state["reset_at"]:
        state = {"count": 0, "reset_at": now + policy["window_seconds"], "blocked_until": 0.0}

    if state["count"] >= policy["max_requests"]:
        state["blocked_until"] = now + policy["block_seconds"]
        state["reset_at"] = state["blocked_until"]
        return NEWLY_BLOCKED, state

    state["count"] += 1
    return ALLOWED, state


class RateLimitStore(ABC):

    @abstractmethod
    async def hit(self, key: str, now: float, policy: dict) -> Tuple[int, dict]: ...

    @abstractmethod
    async def reset(self, key: str): ...


class InMemoryRateLimitStore(RateLimitStore):

    def __init__(self):
        self._lock = threading.Lock()
        self._windows: Dict[str, dict] = {}

    async def hit(self, key, now, policy):
        with self._lock:
            outcome, state = apply_window(self._windows.get(key), now, policy)
            self._windows[key] = state
            # Drop idle entries opportunistically
            if len(self._windows) > 10000:
                for stale_key in [k for k, s in self._windows.items() if s["reset_at"] < now and s["blocked_until"] < now]:
                    self._windows.pop(stale_key, None)
            return outcome, state

    async def reset(self, key):
        with self._lock:
            self._windows.pop(key, None)


# Mirrors apply_window. Floats are returned as strings because Redis
# truncates Lua numbers to integers.
_HIT_SCRIPT = """
local now = tonumber(ARGV[1])
local max_requests = tonumber(ARGV[2])
local window = tonumber(ARGV[3])
local block = tonumber(ARGV[4])
local state = redis.call('HMGET', KEYS[1], 'count', 'reset_at', 'blocked_until')
local count = tonumber(state[1]) or 0
local reset_at = tonumber(state[2]) or 0
local blocked_until = tonumber(state[3]) or 0
if blocked_until > now then
  return {-1, count, tostring(reset_at), tostring(blocked_until)}
end
if now >= reset_at then
  count = 0
  reset_at = now + window
  blocked_until = 0
end
local outcome = 1
if count >= max_requests then
  blocked_until = now + block
  reset_at = blocked_until
  outcome = 0
else
  count = count + 1
end
redis.call('HSET', KEYS[1], 'count', count, 'reset_at', tostring(reset_at), 'blocked_until', tostring(blocked_until))
redis.call('PEXPIRE', KEYS[1], math.ceil((reset_at - now) * 1000) + 1000)
return {outcome, count, tostring(reset_at), tostring(blocked_until)}
"""


class RedisRateLimitStore(RateLimitStore):

    def __init__(self, cache_manager: CacheManager, prefix: str = "ratelimit:"):
        self.cache_manager = cache_manager
        self.prefix = prefix

    async def hit(self, key, now, policy):
        try:
            client = await self.cache_manager.get_async_client()
            outcome, count, reset_at, blocked_until = await client.eval(
                _HIT_SCRIPT,
                1,
                self.prefix + key,
                repr(now),
                policy["max_requests"],
                policy["window_seconds"],
                policy["block_seconds"],
            )
        except redis.RedisError as e:
            logger.error(f"Rate limit check failed for {key}: {e}")
            self.cache_manager.reset_async_client()
            raise DependencyUnavailable("Rate limit store unavailable") from e
        return int(outcome), {
            "count": int(count),
            "reset_at": float(reset_at),
            "blocked_until": float(blocked_until),
        }

    async def reset(self, key):
        client = await self.cache_manager.get_async_client()
        await client.delete(self.prefix + key)


class RateLimiter:

    def __init__(
        self,
        store: RateLimitStore,
        policies: Optional[Dict[str, dict]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.policies = policies or RATE_LIMITS
        self._clock = clock

    def policy(self, action: str) -> dict:
        try:
            return self.policies[action]
        except KeyError:
            raise ValueError(f"Unknown rate limit action '{action}'")

    async def check(self, identifier: str, action: str) -> RateLimitDecision:
        policy = self.policy(action)
        now = self._clock()
        outcome, state = await self.store.hit(f"{action}:{identifier}", now, policy)

        if outcome == ALLOWED:
            return RateLimitDecision(
                action=action,
                allowed=True,
                limit=policy["max_requests"],
                remaining=max(0, policy["max_requests"] - state["count"]),
                reset_at=state["reset_at"],
            )

        return RateLimitDecision(
            action=action,
            allowed=False,
            limit=policy["max_requests"],
            remaining=0,
            reset_at=state["reset_at"],
            blocked=True,
            retry_after=max(1, math.ceil(state["blocked_until"] - now)),
            newly_blocked=outcome == NEWLY_BLOCKED,
        )

    async def reset(self, identifier: str, action: str):
        await self.store.reset(f"{action}:{identifier}")
