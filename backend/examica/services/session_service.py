"""
Exam session lifecycle.

State machine::

    pending -> active <-> paused -> completed
    pending | active | paused -> terminated   (examiner/admin)

Answers of a live session are buffered in the answer cache and reconciled
into ``question_responses`` on completion, on batch submit and by the
periodic flush. Completion is idempotent: the session row is claimed with a
conditional UPDATE so only one caller writes the result, every other caller
gets the stored result back.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, TYPE_CHECKING
import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import (
    AccessDenied,
    AlreadyCompleted,
    DependencyUnavailable,
    InvalidSessionState,
    NotFound,
    ReconciliationPartialFailure,
    VerificationExpired,
    VerificationRequired,
)
from ..models.exam import Exam, ExamQuestion, Question
from ..models.exam_session import (
    ExamSession,
    QuestionResponse,
    SESSION_PENDING,
    SESSION_ACTIVE,
    SESSION_PAUSED,
    SESSION_COMPLETED,
    SESSION_TERMINATED,
    LIVE_STATUSES,
    FINISHED_STATUSES,
)
from ..models.user import User, STAFF_ROLES
from ..schemas.question import QuestionDefinition, question_from_record
from ..schemas.result import ScoreResult
from ..schemas.session import (
    AnswerReceipt,
    AnswerSubmission,
    AutoSaveResult,
    BatchResult,
    IncomingAnswer,
    SessionProgress,
)
from ..schemas.verification import AccessDecision
from ..utils.timezone import epoch_ms
from .answer_cache import WRITE_MISSING, WRITE_STORED
from .reconciliation_service import BatchReconciler
from .result_service import ResultService, result_row, to_score_result
from .scoring_service import calculate_exam_score

if TYPE_CHECKING:
    from .container import ExamServices

logger = logging.getLogger(__name__)

PATTERN_CHECKED_TYPES = ("multiple_choice", "true_false")


def seconds_remaining(session: ExamSession, now: datetime) -> Optional[int]:
    """Server-side countdown: time limit minus elapsed unpaused time"""
    if session.time_limit_seconds is None:
        return None
    if session.status in FINISHED_STATUSES:
        return session.time_remaining
    if session.started_at is None:
        return session.time_limit_seconds

    paused = session.paused_seconds or 0
    if session.status == SESSION_PAUSED and session.paused_at is not None:
        paused += (now - session.paused_at).total_seconds()
    elapsed = (now - session.started_at).total_seconds() - paused
    return max(0, int(session.time_limit_seconds - elapsed))


def question_record(link: ExamQuestion, question: Question) -> Dict[str, Any]:
    record = {
        "id": question.id,
        "type": question.question_type,
        "correct_answer": question.correct_answer,
        "points": link.points if link.points is not None else question.points,
        "required": bool(link.required),
    }
    if question.options is not None:
        record["options"] = question.options
    return record


class SessionLifecycleManager:

    def __init__(self, db: AsyncSession, services: "ExamServices"):
        self.db = db
        self.services = services
        self.settings = services.settings
        self.cache = services.answer_cache
        self.monitor = services.security_monitor
        self.timer = services.timer
        self.verification = services.verification(db)
        self.reconciler = BatchReconciler(db)
        self.results = ResultService(db)

    def _now(self) -> datetime:
        return self.services.now()

    # Lookups

    async def get_session(self, session_id: str) -> ExamSession:
        session = await self.db.get(ExamSession, session_id, populate_existing=True)
        if session is None:
            raise NotFound("Session not found")
        return session

    async def _owned_session(self, user: User, session_id: str) -> ExamSession:
        session = await self.get_session(session_id)
        if session.user_id != user.id:
            raise AccessDenied("You do not own this session")
        return session

    async def _visible_session(self, user: User, session_id: str) -> ExamSession:
        session = await self.get_session(session_id)
        if session.user_id != user.id and user.role not in STAFF_ROLES:
            raise AccessDenied("You do not have access to this session")
        return session

    async def _find_session(self, user_id: str, exam_id: str, statuses: Sequence[str]) -> Optional[ExamSession]:
        result = await self.db.execute(
            select(ExamSession)
            .where(
                ExamSession.user_id == user_id,
                ExamSession.exam_id == exam_id,
                ExamSession.status.in_(statuses),
            )
            .order_by(ExamSession.created_at.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def _live_session_count(self, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count(ExamSession.id)).where(
                ExamSession.user_id == user_id,
                ExamSession.status.in_(LIVE_STATUSES),
            )
        )
        return result.scalar_one()

    async def load_questions(self, exam_id: str) -> List[QuestionDefinition]:
        """Exam questions as typed definitions, in exam order"""
        result = await self.db.execute(
            select(ExamQuestion, Question)
            .join(Question, ExamQuestion.question_id == Question.id)
            .where(ExamQuestion.exam_id == exam_id)
            .order_by(ExamQuestion.order_index, ExamQuestion.id)
        )
        return [question_from_record(question_record(link, question)) for link, question in result.all()]

    async def _question_map(self, exam_id: str) -> Dict[str, QuestionDefinition]:
        return {question.id: question for question in await self.load_questions(exam_id)}

    async def _durable_answers(self, session_id: str) -> Dict[str, Any]:
        result = await self.db.execute(
            select(QuestionResponse.question_id, QuestionResponse.response)
            .where(QuestionResponse.session_id == session_id)
        )
        return {question_id: response for question_id, response in result.all()}

    # Side effects that must not fail the calling operation

    async def _record_event(self, event_type: str, session: ExamSession, severity: str = "low", **details):
        try:
            await self.monitor.log_event(
                event_type,
                session_id=session.id,
                user_id=session.user_id,
                severity=severity,
                details=details,
            )
        except DependencyUnavailable as e:
            logger.error(f"Could not record {event_type} event for session {session.id}: {e.message}")

    async def _seed_cache(self, session: ExamSession):
        remaining = seconds_remaining(session, self._now())
        await self.cache.init(
            session.id,
            session.exam_id,
            None if remaining is None else remaining / 60,
            user_id=session.user_id,
            start_time=epoch_ms(session.started_at) if session.started_at else None,
        )

    async def _refresh_cache(self, session: ExamSession, status: str):
        remaining = seconds_remaining(session, self._now())
        try:
            extended = await self.cache.extend_ttl(session.id, None if remaining is None else remaining / 60)
            if not extended:
                await self._seed_cache(session)
            await self.cache.update_status(session.id, status)
        except DependencyUnavailable as e:
            logger.warning(f"Answer cache refresh failed for session {session.id}: {e.message}")

    async def _clear_cache(self, session_id: str):
        try:
            await self.cache.clear(session_id)
        except DependencyUnavailable as e:
            logger.warning(f"Answer cache for session {session_id} not cleared: {e.message}")

    async def _cache_write(self, session: ExamSession, question_id: str, response: Any, timestamp: int) -> Optional[str]:
        """Buffer one answer; None when the cache cannot take it"""
        try:
            outcome = await self.cache.set(session.id, question_id, response, timestamp)
            if outcome == WRITE_MISSING:
                logger.warning(f"Answer cache missing for live session {session.id}, re-seeding")
                await self._seed_cache(session)
                outcome = await self.cache.set(session.id, question_id, response, timestamp)
        except DependencyUnavailable as e:
            logger.warning(f"Answer cache write failed for session {session.id}: {e.message}")
            return None
        if outcome == WRITE_MISSING:
            return None
        return "cached" if outcome == WRITE_STORED else "stale"

    async def _enforce_rate_limit(self, user: User, action: str, session: Optional[ExamSession] = None):
        try:
            await self.monitor.enforce_rate_limit(
                user.id, action, session_id=session.id if session else None, user_id=user.id,
            )
        except DependencyUnavailable as e:
            logger.warning(f"Rate limit check for {action} skipped, store unavailable: {e.message}")

    def _arm_timer(self, session: ExamSession):
        remaining = seconds_remaining(session, self._now())
        if remaining is not None:
            self.timer.arm(session.id, remaining)

    # Transitions

    async def _transition(self, session: ExamSession, from_statuses: Sequence[str], **values) -> bool:
        """Conditionally move a session; False when another writer got there first"""
        values.setdefault("updated_at", self._now())
        result = await self.db.execute(
            update(ExamSession)
            .where(ExamSession.id == session.id, ExamSession.status.in_(from_statuses))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(session)
        return result.rowcount == 1

    async def _require_access(self, user: User, exam: Exam) -> Optional[AccessDecision]:
        if not exam.requires_verification:
            return None
        decision = await self.verification.check_access(user)
        if decision.can_access:
            return decision
        if decision.status == "expired":
            raise VerificationExpired(decision.reason, verification_time=decision.verification_time.isoformat())
        raise VerificationRequired(decision.reason)

    async def start_or_resume(
        self,
        user: User,
        exam_id: str,
        browser_info: Optional[Dict[str, Any]] = None,
        user_agent: Optional[str] = None,
    ) -> ExamSession:
        await self._enforce_rate_limit(user, "session_requests")

        exam = await self.db.get(Exam, exam_id)
        if exam is None:
            raise NotFound("Exam not found")
        if exam.status != "active":
            raise AccessDenied("Exam not available")

        finished = await self._find_session(user.id, exam_id, FINISHED_STATUSES)
        if finished is not None:
            raise AlreadyCompleted(session_id=finished.id)

        existing = await self._find_session(user.id, exam_id, (SESSION_PENDING,) + LIVE_STATUSES)
        if existing is not None and existing.status in LIVE_STATUSES:
            return await self._resume_existing(existing)

        decision = await self._require_access(user, exam)
        now = self._now()
        verified = decision is not None and decision.status == "verified"
        time_limit = exam.duration_minutes * 60 if exam.duration_minutes else None
        activation = {
            "status": SESSION_ACTIVE,
            "started_at": now,
            "time_limit_seconds": time_limit,
            "time_remaining": time_limit,
            "paused_seconds": 0,
            "verification_status": "verified" if verified else "unverified",
            "verification_time": decision.verification_time if verified else None,
            "browser_info": browser_info,
            "session_metadata": {
                "verification_completed": verified,
                "user_agent": user_agent,
            },
        }

        if existing is not None:
            session = existing
            for field, value in activation.items():
                setattr(session, field, value)
        else:
            session = ExamSession(user_id=user.id, exam_id=exam.id, **activation)
            self.db.add(session)

        try:
            await self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent start for the same (user, exam)
            await self.db.rollback()
            winner = await self._find_session(user.id, exam_id, LIVE_STATUSES)
            if winner is None:
                raise
            await self._record_event("session_conflict", winner, "medium", reason="concurrent_start")
            return await self._resume_existing(winner)

        await self.db.refresh(session)

        try:
            await self._seed_cache(session)
        except DependencyUnavailable as e:
            # Answers fall back to durable writes until the cache is back
            logger.warning(f"Answer cache init failed for session {session.id}: {e.message}")

        self._arm_timer(session)
        await self._record_event("session_start", session, exam_id=exam.id, verified=verified)
        await self._screen_session(session, user_agent=user_agent)
        logger.info(f"Started session {session.id} for user {user.id} on exam {exam.id}")
        return session

    async def _resume_existing(self, session: ExamSession) -> ExamSession:
        if session.status == SESSION_PAUSED:
            return await self._resume(session)

        if seconds_remaining(session, self._now()) == 0:
            await self._finalize(session, SESSION_COMPLETED, LIVE_STATUSES)
            raise AlreadyCompleted("Exam time has expired", session_id=session.id)

        await self._refresh_cache(session, SESSION_ACTIVE)
        self._arm_timer(session)
        return session

    async def _screen_session(self, session: ExamSession, user_agent: Optional[str] = None, answers: Optional[List[Any]] = None):
        try:
            verdict = await self.monitor.validate_session(
                session.id,
                session.user_id,
                user_agent=user_agent,
                client_timestamp=self.services.clock(),
                session_started_at=epoch_ms(session.started_at) / 1000 if session.started_at else None,
                answers=answers,
                active_session_count=await self._live_session_count(session.user_id),
            )
        except DependencyUnavailable as e:
            logger.error(f"Session validation skipped for {session.id}: {e.message}")
            return None
        if not verdict.is_valid:
            logger.warning(f"Session {session.id} failed validation: risk={verdict.risk_score} {verdict.reasons}")
        return verdict

    async def pause(self, user: User, session_id: str) -> ExamSession:
        session = await self._owned_session(user, session_id)
        if session.status != SESSION_ACTIVE:
            raise InvalidSessionState(f"Cannot pause a {session.status} session")

        now = self._now()
        remaining = seconds_remaining(session, now)
        if remaining == 0:
            await self._finalize(session, SESSION_COMPLETED, LIVE_STATUSES)
            return session

        if not await self._transition(session, (SESSION_ACTIVE,), status=SESSION_PAUSED, paused_at=now, time_remaining=remaining):
            raise InvalidSessionState(f"Cannot pause a {session.status} session")

        self.timer.cancel(session.id)
        await self._refresh_cache(session, SESSION_PAUSED)
        return session

    async def resume(self, user: User, session_id: str) -> ExamSession:
        session = await self._owned_session(user, session_id)
        if session.status != SESSION_PAUSED:
            raise InvalidSessionState(f"Cannot resume a {session.status} session")
        return await self._resume(session)

    async def _resume(self, session: ExamSession) -> ExamSession:
        now = self._now()
        paused_for = (now - session.paused_at).total_seconds() if session.paused_at else 0
        paused_seconds = int((session.paused_seconds or 0) + paused_for)
        remaining = seconds_remaining(session, now)

        resumed = await self._transition(
            session,
            (SESSION_PAUSED,),
            status=SESSION_ACTIVE,
            paused_at=None,
            paused_seconds=paused_seconds,
            time_remaining=remaining,
        )
        if not resumed:
            raise InvalidSessionState(f"Cannot resume a {session.status} session")

        await self._refresh_cache(session, SESSION_ACTIVE)
        self._arm_timer(session)
        return session

    async def complete(self, user: Optional[User], session_id: str) -> ScoreResult:
        """Finish the session and score it; repeated calls return the stored result"""
        session = await self.get_session(session_id)
        if user is not None and session.user_id != user.id:
            raise AccessDenied("You do not own this session")

        if session.status in FINISHED_STATUSES:
            return await self._existing_result(session)
        if session.status not in LIVE_STATUSES:
            raise InvalidSessionState(f"Cannot complete a {session.status} session")

        return await self._finalize(session, SESSION_COMPLETED, LIVE_STATUSES)

    async def terminate(self, actor: User, session_id: str, reason: Optional[str] = None) -> ScoreResult:
        if actor.role not in STAFF_ROLES:
            raise AccessDenied("Only examiners and admins can terminate sessions")

        session = await self.get_session(session_id)
        if session.status in FINISHED_STATUSES:
            raise InvalidSessionState(f"Session is already {session.status}")

        logger.info(f"Session {session.id} terminated by {actor.id}: {reason}")
        return await self._finalize(
            session,
            SESSION_TERMINATED,
            (SESSION_PENDING,) + LIVE_STATUSES,
            reason=reason or f"Terminated by {actor.role}",
        )

    async def complete_expired(self, session_id: str) -> Optional[ScoreResult]:
        """Timer and sweep entry point; a no-op unless the countdown reached zero"""
        session = await self.db.get(ExamSession, session_id, populate_existing=True)
        if session is None or session.status != SESSION_ACTIVE:
            return None
        remaining = seconds_remaining(session, self._now())
        if remaining is None:
            return None
        if remaining > 0:
            self.timer.arm(session.id, remaining)
            return None
        return await self._finalize(session, SESSION_COMPLETED, (SESSION_ACTIVE,))

    async def _existing_result(self, session: ExamSession) -> ScoreResult:
        row = await self.results.get_result(session.id)
        if row is not None:
            return to_score_result(row)
        logger.warning(f"Session {session.id} is {session.status} without a stored result, rescoring")
        questions = await self.load_questions(session.exam_id)
        score = calculate_exam_score(questions, await self._durable_answers(session.id))
        score.session_id = session.id
        return score

    async def _reconcile_with_retry(self, session: ExamSession, answers: List[IncomingAnswer], questions: Dict[str, QuestionDefinition]) -> BatchResult:
        result = None
        for attempt in range(1, self.settings.reconciliation_max_retries + 1):
            result = await self.reconciler.reconcile(session, answers, questions)
            if result.success:
                return result
            logger.warning(f"Reconciliation attempt {attempt} for session {session.id} left {result.failed} failures")
        raise ReconciliationPartialFailure(result)

    async def reconcile_cached(self, session: ExamSession, questions: Optional[Dict[str, QuestionDefinition]] = None) -> Optional[BatchResult]:
        """Move cached answers into durable storage; None when the cache has nothing for the session"""
        cached = await self.cache.get_all(session.id)
        if cached is None:
            return None
        if questions is None:
            questions = await self._question_map(session.exam_id)
        answers = [
            IncomingAnswer(question_id=answer.question_id, response=answer.response, timestamp=answer.timestamp)
            for answer in cached.values()
            if answer.question_id in questions
        ]
        if not answers:
            return BatchResult()
        return await self._reconcile_with_retry(session, answers, questions)

    async def _finalize(
        self,
        session: ExamSession,
        final_status: str,
        from_statuses: Sequence[str],
        reason: Optional[str] = None,
    ) -> ScoreResult:
        questions = await self.load_questions(session.exam_id)
        by_id = {question.id: question for question in questions}
        metadata = dict(session.session_metadata or {})
        keep_cache = False

        try:
            reconciled = await self.reconcile_cached(session, by_id)
            if reconciled is None:
                metadata["answer_cache_missing"] = True
                await self._record_event("data_integrity", session, "high", issue="answer_cache_missing")
        except ReconciliationPartialFailure as e:
            keep_cache = True
            metadata["reconciliation_errors"] = [error.model_dump() for error in e.result.errors]
            await self._record_event(
                "data_integrity",
                session,
                "high",
                issue="reconciliation_partial_failure",
                failed=e.result.failed,
                processed=e.result.processed,
            )
        except DependencyUnavailable as e:
            keep_cache = True
            metadata["answer_cache_missing"] = True
            await self._record_event("data_integrity", session, "high", issue="answer_cache_unavailable", error=e.message)

        answers = await self._durable_answers(session.id)
        score = calculate_exam_score(questions, answers)

        pattern_answers = [
            answers[question.id] for question in questions
            if question.id in answers and getattr(question, "type", None) in PATTERN_CHECKED_TYPES
        ]
        verdict = await self._screen_session(session, metadata.get("user_agent"), pattern_answers)
        if verdict is not None:
            metadata["security_validation"] = verdict.model_dump()

        now = self._now()
        values = {
            "status": final_status,
            "completed_at": now,
            "time_remaining": seconds_remaining(session, now),
            "paused_at": None,
            "session_metadata": metadata,
            "updated_at": now,
        }
        if reason:
            values["notes"] = reason

        claimed = await self.db.execute(
            update(ExamSession)
            .where(ExamSession.id == session.id, ExamSession.status.in_(from_statuses))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            # Another caller finished this session first
            await self.db.rollback()
            await self.db.refresh(session)
            return await self._existing_result(session)

        self.db.add(result_row(session, score))
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            await self.db.refresh(session)
            return await self._existing_result(session)

        await self.db.refresh(session)
        self.timer.cancel(session.id)
        if keep_cache:
            try:
                await self.cache.update_status(session.id, final_status)
            except DependencyUnavailable:
                pass
        else:
            await self._clear_cache(session.id)

        logger.info(
            f"Session {session.id} {final_status}: {score.total_score}/{score.max_possible_score} "
            f"({score.percentage}%)"
        )
        score.session_id = session.id
        return score

    # Answer intake

    async def _ensure_time_left(self, session: ExamSession):
        if seconds_remaining(session, self._now()) == 0:
            await self._finalize(session, SESSION_COMPLETED, LIVE_STATUSES)
            raise InvalidSessionState("Session time has expired", session_id=session.id)

    async def _active_session(self, user: User, session_id: str) -> ExamSession:
        session = await self._owned_session(user, session_id)
        if session.status != SESSION_ACTIVE:
            raise InvalidSessionState(f"Cannot submit answers to a {session.status} session")
        await self._ensure_time_left(session)
        return session

    async def submit_answer(self, user: User, session_id: str, submission: AnswerSubmission) -> AnswerReceipt:
        session = await self._active_session(user, session_id)
        await self._enforce_rate_limit(user, "answer_submission", session)

        questions = await self._question_map(session.exam_id)
        if submission.question_id not in questions:
            raise NotFound("Question not found in exam")

        report = await self.monitor.analyze_answer_submission(
            session.id,
            user.id,
            submission.question_id,
            submission.response,
            response_time_ms=submission.response_time_ms,
            time_on_question_ms=submission.time_on_question_ms,
        )

        timestamp = submission.timestamp if submission.timestamp is not None else epoch_ms()
        stored = await self._cache_write(session, submission.question_id, submission.response, timestamp)
        if stored is None:
            answer = IncomingAnswer(question_id=submission.question_id, response=submission.response, timestamp=timestamp)
            result = await self.reconciler.reconcile(session, [answer], questions)
            if not result.success:
                raise DependencyUnavailable("Answer could not be saved")
            stored = "durable" if result.processed else "stale"

        return AnswerReceipt(
            question_id=submission.question_id,
            stored=stored,
            suspicious=report.suspicious,
            risk_score=report.risk_score,
        )

    async def autosave(self, user: User, session_id: str, responses: List[IncomingAnswer]) -> AutoSaveResult:
        session = await self._active_session(user, session_id)
        await self._enforce_rate_limit(user, "auto_save", session)

        questions = await self._question_map(session.exam_id)
        saved = 0
        skipped = 0
        errors = []
        uncached = []

        for answer in responses:
            if answer.question_id not in questions:
                errors.append(f"{answer.question_id}: question not found in exam")
                continue
            stored = await self._cache_write(session, answer.question_id, answer.response, answer.timestamp)
            if stored is None:
                uncached.append(answer)
            elif stored == "cached":
                saved += 1
            else:
                skipped += 1

        if uncached:
            result = await self.reconciler.reconcile(session, uncached, questions)
            saved += result.processed
            skipped += result.duplicates
            errors.extend(f"{error.question_id}: {error.error}" for error in result.errors)

        total = len(responses)
        success_rate = (saved + skipped) / total if total else 1.0
        if success_rate == 1.0:
            delay = 30
        elif success_rate >= 0.8:
            delay = 45
        else:
            delay = 60

        return AutoSaveResult(
            saved=saved,
            skipped=skipped,
            errors=errors,
            next_auto_save=self._now() + timedelta(seconds=delay),
        )

    async def submit_batch(self, user: User, session_id: str, responses: List[IncomingAnswer]) -> BatchResult:
        session = await self._owned_session(user, session_id)
        if session.status not in LIVE_STATUSES:
            raise InvalidSessionState(f"Cannot submit answers to a {session.status} session")
        if session.status == SESSION_ACTIVE:
            await self._ensure_time_left(session)
        await self._enforce_rate_limit(user, "answer_submission", session)

        questions = await self._question_map(session.exam_id)
        result = await self.reconciler.reconcile(session, responses, questions)

        await self._record_event(
            "answer_submit",
            session,
            batch_size=len(responses),
            processed=result.processed,
            duplicates=result.duplicates,
            failed=result.failed,
        )
        if not result.success:
            await self._record_event(
                "data_integrity",
                session,
                "medium",
                issue="batch_partial_failure",
                errors=[error.model_dump() for error in result.errors],
            )
        return result

    async def session_progress(self, user: User, session_id: str) -> SessionProgress:
        session = await self._visible_session(user, session_id)
        question_ids = set((await self._question_map(session.exam_id)).keys())

        answered = set(await self._durable_answers(session.id))
        if session.status in LIVE_STATUSES:
            try:
                cached = await self.cache.get_all(session.id)
            except DependencyUnavailable:
                cached = None
            if cached:
                answered.update(cached)
        answered &= question_ids

        total = len(question_ids)
        return SessionProgress(
            session_id=session.id,
            status=session.status,
            is_paused=session.status == SESSION_PAUSED,
            total_questions=total,
            answered_questions=len(answered),
            completion_percentage=round(len(answered) / total * 100) if total else 0,
            time_remaining=seconds_remaining(session, self._now()),
        )
