"""
Tests for the periodic maintenance jobs
"""
from sqlalchemy import select

from examica.models import ExamResult, ExamSession, QuestionResponse
from examica.schemas.session import AnswerSubmission
from examica.tasks.maintenance import flush_expiring_caches, sweep_expired_sessions


async def start_timed(db, services, student):
    manager = services.lifecycle(db)
    session = await manager.start_or_resume(student, "exam-timed", user_agent="Mozilla/5.0")
    await manager.submit_answer(student, session.id, AnswerSubmission(question_id="q-mc", response="B", timestamp=1000))
    # the jobs open their own database sessions
    await db.commit()
    return session


class TestExpiredSessionSweep:

    async def test_completes_only_expired_sessions(self, db, services, verified_student, seed, clock, session_factory):
        timed = await start_timed(db, services, verified_student)
        await services.lifecycle(db).start_or_resume(seed["other_student"], "exam-open")
        await db.commit()

        assert await sweep_expired_sessions(services) == {"checked": 1, "completed": 0, "failed": 0}

        clock.advance(3601)
        assert await sweep_expired_sessions(services) == {"checked": 1, "completed": 1, "failed": 0}

        async with session_factory() as fresh:
            session = await fresh.get(ExamSession, timed.id)
            assert session.status == "completed"
            result = await fresh.execute(select(ExamResult).where(ExamResult.session_id == timed.id))
            assert result.scalar_one().total_score == 1.0

        assert await sweep_expired_sessions(services) == {"checked": 0, "completed": 0, "failed": 0}


class TestCacheFlush:

    async def test_flushes_caches_close_to_expiry(self, db, services, verified_student, clock, session_factory):
        session = await start_timed(db, services, verified_student)

        assert await flush_expiring_caches(services) == {"flushed": 0, "extended": 0, "failed": 0}

        # cache TTL is the time limit plus the grace period
        clock.advance(3600 + 300 - 100)
        assert await flush_expiring_caches(services) == {"flushed": 1, "extended": 0, "failed": 0}

        async with session_factory() as fresh:
            result = await fresh.execute(select(QuestionResponse).where(QuestionResponse.session_id == session.id))
            assert [row.question_id for row in result.scalars().all()] == ["q-mc"]

    async def test_paused_sessions_get_ttl_extended(self, db, services, verified_student, clock):
        session = await start_timed(db, services, verified_student)
        await services.lifecycle(db).pause(verified_student, session.id)
        await db.commit()

        clock.advance(3000)
        assert await flush_expiring_caches(services) == {"flushed": 0, "extended": 1, "failed": 0}
        assert await services.answer_cache.ttl(session.id) == 3600 + 300
