"""
Batch reconciliation of answers into ``question_responses``.

Conflict rule: an incoming answer replaces the durable record only when its
client timestamp is strictly newer; everything else counts as a duplicate.
New rows are written as one bulk insert, superseded rows are updated one by
one, and a failing item never aborts the rest of the batch.
"""
from typing import Dict, Iterable, List, Mapping
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.exam_session import ExamSession, QuestionResponse
from ..schemas.question import QuestionDefinition
from ..schemas.session import BatchItemError, BatchResult, IncomingAnswer
from .scoring_service import evaluate

logger = logging.getLogger(__name__)


def newest_per_question(answers: Iterable[IncomingAnswer]):
    """Keep the newest answer per question; returns (answers, superseded count)"""
    newest: Dict[str, IncomingAnswer] = {}
    superseded = 0
    for answer in answers:
        current = newest.get(answer.question_id)
        if current is None:
            newest[answer.question_id] = answer
            continue
        superseded += 1
        if answer.timestamp > current.timestamp:
            newest[answer.question_id] = answer
    return list(newest.values()), superseded


class BatchReconciler:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _existing(self, session_id: str, question_ids: List[str]) -> Dict[str, QuestionResponse]:
        if not question_ids:
            return {}
        result = await self.db.execute(
            select(QuestionResponse).where(
                QuestionResponse.session_id == session_id,
                QuestionResponse.question_id.in_(question_ids),
            )
        )
        return {row.question_id: row for row in result.scalars().all()}

    def _new_row(self, session: ExamSession, answer: IncomingAnswer, question: QuestionDefinition) -> QuestionResponse:
        scored = evaluate(question, answer.response)
        return QuestionResponse(
            session_id=session.id,
            question_id=answer.question_id,
            user_id=session.user_id,
            response=answer.response,
            answered_at=answer.timestamp,
            is_correct=scored.is_correct,
            points_earned=scored.points_earned,
            feedback=scored.feedback,
        )

    @staticmethod
    def _apply(row: QuestionResponse, answer: IncomingAnswer, question: QuestionDefinition):
        scored = evaluate(question, answer.response)
        row.response = answer.response
        row.answered_at = answer.timestamp
        row.is_correct = scored.is_correct
        row.points_earned = scored.points_earned
        row.feedback = scored.feedback

    async def _update_one(self, row: QuestionResponse, answer: IncomingAnswer, question: QuestionDefinition, result: BatchResult):
        try:
            async with self.db.begin_nested():
                self._apply(row, answer, question)
            result.processed += 1
        except SQLAlchemyError as e:
            logger.error(f"Failed to update response {answer.question_id} for session {row.session_id}: {e}")
            result.failed += 1
            result.errors.append(BatchItemError(question_id=answer.question_id, error="Failed to update response"))

    async def _insert_one(self, session: ExamSession, answer: IncomingAnswer, question: QuestionDefinition, result: BatchResult):
        try:
            async with self.db.begin_nested():
                self.db.add(self._new_row(session, answer, question))
            result.processed += 1
            return
        except IntegrityError:
            # A concurrent writer inserted this question first
            pass
        except SQLAlchemyError as e:
            logger.error(f"Failed to insert response {answer.question_id} for session {session.id}: {e}")
            result.failed += 1
            result.errors.append(BatchItemError(question_id=answer.question_id, error="Failed to save response"))
            return

        existing = (await self._existing(session.id, [answer.question_id])).get(answer.question_id)
        if existing is None:
            result.failed += 1
            result.errors.append(BatchItemError(question_id=answer.question_id, error="Failed to save response"))
        elif answer.timestamp <= existing.answered_at:
            result.duplicates += 1
        else:
            await self._update_one(existing, answer, question, result)

    async def reconcile(
        self,
        session: ExamSession,
        answers: Iterable[IncomingAnswer],
        questions: Mapping[str, QuestionDefinition],
    ) -> BatchResult:
        result = BatchResult()
        candidates, superseded = newest_per_question(answers)
        result.duplicates += superseded

        existing = await self._existing(session.id, [answer.question_id for answer in candidates])

        inserts: List[IncomingAnswer] = []
        updates: List[IncomingAnswer] = []
        for answer in candidates:
            if answer.question_id not in questions:
                result.failed += 1
                result.errors.append(BatchItemError(question_id=answer.question_id, error="Question not found in exam"))
                continue
            current = existing.get(answer.question_id)
            if current is None:
                inserts.append(answer)
            elif answer.timestamp <= current.answered_at:
                result.duplicates += 1
            else:
                updates.append(answer)

        if inserts:
            try:
                async with self.db.begin_nested():
                    self.db.add_all([
                        self._new_row(session, answer, questions[answer.question_id]) for answer in inserts
                    ])
                result.processed += len(inserts)
            except SQLAlchemyError as e:
                logger.warning(f"Bulk insert failed for session {session.id}, retrying per item: {e}")
                for answer in inserts:
                    await self._insert_one(session, answer, questions[answer.question_id], result)

        for answer in updates:
            await self._update_one(existing[answer.question_id], answer, questions[answer.question_id], result)

        await self.db.commit()

        result.success = result.failed == 0
        if not result.success:
            logger.warning(
                f"Reconciliation for session {session.id}: processed={result.processed} "
                f"failed={result.failed} duplicates={result.duplicates}"
            )
        return result
