"""
Unit tests for the fixed-window rate limiter
"""
import pytest

from examica.services.rate_limiter import (
    ALLOWED,
    NEWLY_BLOCKED,
    RATE_LIMITS,
    STILL_BLOCKED,
    InMemoryRateLimitStore,
    RateLimiter,
    apply_window,
)


class TestRateLimits:
    """Tests for rate limit configuration"""

    def test_rate_limits_defined(self):
        assert RATE_LIMITS["answer_submission"] == {"max_requests": 30, "window_seconds": 60, "block_seconds": 300}
        assert RATE_LIMITS["session_requests"] == {"max_requests": 20, "window_seconds": 60, "block_seconds": 600}
        assert RATE_LIMITS["auto_save"] == {"max_requests": 5, "window_seconds": 30, "block_seconds": 120}


class TestApplyWindow:
    """Pure window arithmetic"""

    POLICY = {"max_requests": 2, "window_seconds": 10, "block_seconds": 60}

    def test_first_request_opens_window(self):
        outcome, state = apply_window(None, 100.0, self.POLICY)
        assert outcome == ALLOWED
        assert state == {"count": 1, "reset_at": 110.0, "blocked_until": 0.0}

    def test_exceeding_blocks(self):
        state = {"count": 2, "reset_at": 110.0, "blocked_until": 0.0}
        outcome, state = apply_window(state, 105.0, self.POLICY)
        assert outcome == NEWLY_BLOCKED
        assert state["blocked_until"] == 165.0

    def test_blocked_stays_blocked(self):
        state = {"count": 2, "reset_at": 165.0, "blocked_until": 165.0}
        outcome, _ = apply_window(state, 120.0, self.POLICY)
        assert outcome == STILL_BLOCKED


class TestRateLimiter:
    """Tests for RateLimiter class"""

    @pytest.fixture
    def limiter(self, clock):
        return RateLimiter(InMemoryRateLimitStore(), clock=clock)

    async def test_allows_up_to_limit(self, limiter):
        remaining = []
        for _ in range(5):
            decision = await limiter.check("user-1", "auto_save")
            assert decision.allowed
            remaining.append(decision.remaining)
        assert remaining == [4, 3, 2, 1, 0]

    async def test_blocks_after_limit_for_cooldown(self, limiter, clock):
        for _ in range(5):
            await limiter.check("user-1", "auto_save")

        blocked = await limiter.check("user-1", "auto_save")
        assert not blocked.allowed
        assert blocked.newly_blocked
        assert blocked.retry_after == 120

        clock.advance(60)
        still = await limiter.check("user-1", "auto_save")
        assert not still.allowed
        assert not still.newly_blocked
        assert still.retry_after == 60

        clock.advance(61)
        assert (await limiter.check("user-1", "auto_save")).allowed

    async def test_window_resets(self, limiter, clock):
        for _ in range(5):
            await limiter.check("user-1", "auto_save")
        clock.advance(31)
        decision = await limiter.check("user-1", "auto_save")
        assert decision.allowed
        assert decision.remaining == 4

    async def test_identifiers_and_actions_are_independent(self, limiter):
        for _ in range(5):
            await limiter.check("user-1", "auto_save")
        assert (await limiter.check("user-2", "auto_save")).allowed
        assert (await limiter.check("user-1", "answer_submission")).allowed

    async def test_unknown_action(self, limiter):
        with pytest.raises(ValueError):
            await limiter.check("user-1", "launch_rockets")

    async def test_reset_clears_block(self, limiter):
        for _ in range(6):
            await limiter.check("user-1", "auto_save")
        await limiter.reset("user-1", "auto_save")
        assert (await limiter.check("user-1", "auto_save")).allowed

    async def test_headers(self, limiter, clock):
        allowed = await limiter.check("user-1", "auto_save")
        assert allowed.headers() == {
            "X-RateLimit-Limit": "5",
            "X-RateLimit-Remaining": "4",
            "X-RateLimit-Reset": str(int(clock() + 30)),
        }

        for _ in range(5):
            blocked = await limiter.check("user-1", "auto_save")
        assert blocked.headers()["Retry-After"] == "120"
        assert blocked.headers()["X-RateLimit-Remaining"] == "0"
