"""
Tests for the security monitor
"""
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
import redis

from examica.core.errors import DependencyUnavailable, RateLimited
from examica.services.rate_limiter import InMemoryRateLimitStore, RateLimiter
from examica.services.security_monitor import (
    InMemorySecurityStore,
    RedisSecurityStore,
    SecurityMonitor,
    detect_suspicious_pattern,
    risk_level,
)


@pytest.fixture
def monitor(clock):
    return SecurityMonitor(
        InMemorySecurityStore(cap=50),
        RateLimiter(InMemoryRateLimitStore(), clock=clock),
        clock=clock,
        max_session_duration_hours=8,
    )


class TestHeuristics:
    """Pure risk helpers"""

    @pytest.mark.parametrize("suspicious,violations,level", [
        (0, 0, "low"), (1, 0, "medium"), (0, 1, "medium"), (3, 0, "high"), (0, 2, "high"), (2, 1, "medium"),
    ])
    def test_risk_level(self, suspicious, violations, level):
        assert risk_level(suspicious, violations) == level

    def test_repeated_choice_is_suspicious(self):
        assert detect_suspicious_pattern(["A"] * 6)

    def test_cycle_is_suspicious(self):
        assert detect_suspicious_pattern(["a", "b", "c", "a", "b", "c"])

    def test_varied_answers_are_fine(self):
        assert not detect_suspicious_pattern(["A", "C", "B", "D", "A"])

    def test_too_few_answers_are_ignored(self):
        assert not detect_suspicious_pattern(["A", "A", "A"])


class TestEventLog:
    """Recording and querying events"""

    async def test_unknown_event_type_rejected(self, monitor):
        with pytest.raises(ValueError):
            await monitor.log_event("coffee_break", session_id="s1")

    async def test_events_newest_first_with_filters(self, monitor, clock):
        await monitor.log_event("session_start", session_id="s1", user_id="u1")
        clock.advance(5)
        await monitor.log_event("answer_submit", session_id="s1", user_id="u1")
        clock.advance(5)
        await monitor.log_event("session_start", session_id="s2", user_id="u2")

        events = await monitor.get_events()
        assert [event.type for event in events] == ["session_start", "answer_submit", "session_start"]
        assert [event.session_id for event in await monitor.get_events(session_id="s1")] == ["s1", "s1"]
        assert len(await monitor.get_events(event_type="answer_submit")) == 1
        assert len(await monitor.get_events(since=clock() - 6)) == 2

    async def test_event_log_is_capped(self, monitor):
        for _ in range(60):
            await monitor.log_event("answer_submit", session_id="s1")
        assert len(await monitor.get_events(limit=1000)) == 50

    async def test_critical_event_logs_alert(self, monitor, caplog):
        with caplog.at_level(logging.WARNING, logger="examica.services.security_monitor"):
            await monitor.log_event("suspicious_activity", session_id="s1", severity="critical")
        assert "SECURITY ALERT" in caplog.text

    async def test_cleanup_prunes_old_events(self, monitor, clock):
        await monitor.log_event("session_start", session_id="s1")
        clock.advance(25 * 3600)
        await monitor.log_event("session_start", session_id="s2")

        assert await monitor.cleanup(24) == 1
        assert [event.session_id for event in await monitor.get_events()] == ["s2"]


class TestSubmissionAnalysis:
    """Per-answer timing heuristics"""

    async def test_fast_submission_is_flagged(self, monitor):
        report = await monitor.analyze_answer_submission(
            "s1", "u1", "q1", "B", response_time_ms=200, time_on_question_ms=1000,
        )
        assert report.suspicious
        assert report.risk_score == 25

        events = await monitor.get_events(event_type="suspicious_activity")
        assert events[0].severity == "high"

        metrics = await monitor.get_session_metrics("s1")
        assert metrics.suspicious_activities == 1
        assert metrics.risk_level == "medium"

    async def test_normal_submission_is_not_flagged(self, monitor):
        report = await monitor.analyze_answer_submission(
            "s1", "u1", "q1", "B", response_time_ms=4000, time_on_question_ms=12000,
        )
        assert not report.suspicious
        assert await monitor.get_events() == []

    async def test_long_answer_typed_too_fast(self, monitor):
        report = await monitor.analyze_answer_submission(
            "s1", "u1", "q1", "x" * 150, response_time_ms=3000, time_on_question_ms=30000,
        )
        assert report.suspicious
        assert report.risk_score == 20

    async def test_flag_survives_event_store_outage(self, monitor, caplog):
        monitor.store.append = AsyncMock(side_effect=DependencyUnavailable("Security event store unavailable"))

        with caplog.at_level(logging.ERROR, logger="examica.services.security_monitor"):
            report = await monitor.analyze_answer_submission(
                "s1", "u1", "q1", "B", response_time_ms=200, time_on_question_ms=1000,
            )

        assert report.suspicious
        assert report.risk_score == 25
        assert "not recorded" in caplog.text


class TestRateLimitIntegration:
    """Rate limit violations become security events"""

    async def test_block_records_one_event(self, monitor):
        for _ in range(7):
            await monitor.check_rate_limit("u1", "auto_save", session_id="s1", user_id="u1")

        events = await monitor.get_events(event_type="rate_limit")
        assert len(events) == 1
        assert events[0].severity == "medium"
        assert (await monitor.get_session_metrics("s1")).rate_limit_violations == 1

    async def test_enforce_raises(self, monitor):
        for _ in range(5):
            await monitor.enforce_rate_limit("u1", "auto_save")
        with pytest.raises(RateLimited) as exc_info:
            await monitor.enforce_rate_limit("u1", "auto_save")
        assert exc_info.value.retry_after == 120
        assert exc_info.value.status_code == 429


class TestSessionValidation:
    """Whole-session screening"""

    async def test_clean_session_is_valid(self, monitor, clock):
        verdict = await monitor.validate_session(
            "s1", "u1", user_agent="Mozilla/5.0", client_timestamp=clock(), active_session_count=1,
        )
        assert verdict.is_valid
        assert verdict.risk_score == 0

    async def test_risky_session_is_invalid(self, monitor, clock):
        verdict = await monitor.validate_session(
            "s1", "u1",
            user_agent=None,
            client_timestamp=clock(),
            answers=["A"] * 8,
            active_session_count=2,
        )
        assert not verdict.is_valid
        assert verdict.risk_score == 60
        events = await monitor.get_events(event_type="suspicious_activity")
        assert events[0].severity == "high"

    async def test_very_risky_session_is_critical(self, monitor, clock):
        verdict = await monitor.validate_session(
            "s1", "u1",
            user_agent=None,
            client_timestamp=clock(),
            session_started_at=clock() - 9 * 3600,
            answers=["A"] * 8,
            active_session_count=2,
        )
        assert verdict.risk_score == 85
        events = await monitor.get_events(event_type="suspicious_activity")
        assert events[0].severity == "critical"

    async def test_stats(self, monitor):
        for _ in range(3):
            await monitor.log_event("suspicious_activity", session_id="s1", severity="medium")
        await monitor.log_event("session_start", session_id="s2")

        stats = await monitor.security_stats()
        assert stats["total_events"] == 4
        assert stats["events_by_type"]["suspicious_activity"] == 3
        assert stats["events_by_severity"]["low"] == 1
        assert stats["high_risk_sessions"] == 1


def redis_store(**client_methods):
    client = MagicMock(**client_methods)
    manager = MagicMock()
    manager.get_async_client = AsyncMock(return_value=client)
    return RedisSecurityStore(manager), client, manager


class TestRedisSecurityStore:
    """Redis-backed event log"""

    @pytest.mark.parametrize("operation", [
        lambda store: store.events(),
        lambda store: store.counters("s1"),
        lambda store: store.prune(1000.0),
    ])
    async def test_redis_errors_become_unavailable(self, operation):
        failure = AsyncMock(side_effect=redis.ConnectionError("connection refused"))
        store, _, manager = redis_store(lrange=failure, hgetall=failure, eval=failure)

        with pytest.raises(DependencyUnavailable):
            await operation(store)
        manager.reset_async_client.assert_called_once()

    async def test_prune_pops_expired_tail_in_one_script(self):
        store, client, _ = redis_store(eval=AsyncMock(return_value=3))

        assert await store.prune(1000.5) == 3

        client.eval.assert_awaited_once()
        args = client.eval.call_args.args
        assert "RPOP" in args[0]
        assert args[1:] == (1, "security:events", "1000.5")
        client.delete.assert_not_called()
