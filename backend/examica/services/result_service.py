from typing import Dict, Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import AccessDenied, NotFound, ValidationError
from ..models.exam_result import ExamResult
from ..models.exam_session import ExamSession, QuestionResponse
from ..models.user import User, STAFF_ROLES
from ..schemas.result import ScoreResult, ScoringResult
from ..utils.timezone import utc_now
from .scoring_service import letter_grade

logger = logging.getLogger(__name__)


def to_score_result(row: ExamResult) -> ScoreResult:
    return ScoreResult(
        session_id=row.session_id,
        total_score=row.total_score,
        max_possible_score=row.max_possible_score,
        percentage=row.percentage,
        correct_answers=row.correct_answers,
        total_questions=row.total_questions,
        question_results=[ScoringResult.model_validate(item) for item in (row.question_results or [])],
        requires_manual_grading=row.requires_manual_grading,
        manual_grading_count=row.manual_grading_count,
        grade=row.grade or letter_grade(row.percentage or 0.0),
        graded_at=row.graded_at,
        graded_by=row.graded_by,
        grader_notes=row.grader_notes,
    )


def result_row(session: ExamSession, score: ScoreResult) -> ExamResult:
    return ExamResult(
        session_id=session.id,
        user_id=session.user_id,
        exam_id=session.exam_id,
        total_score=score.total_score,
        max_possible_score=score.max_possible_score,
        percentage=score.percentage,
        correct_answers=score.correct_answers,
        total_questions=score.total_questions,
        requires_manual_grading=score.requires_manual_grading,
        manual_grading_count=score.manual_grading_count,
        grade=score.grade,
        question_results=[item.model_dump() for item in score.question_results],
    )


class ResultService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_result(self, session_id: str) -> Optional[ExamResult]:
        result = await self.db.execute(select(ExamResult).where(ExamResult.session_id == session_id))
        return result.scalars().first()

    async def get_result_for(self, user: User, session_id: str) -> ScoreResult:
        row = await self.get_result(session_id)
        if row is None:
            raise NotFound("Result not found")
        if row.user_id != user.id and user.role not in STAFF_ROLES:
            raise AccessDenied("You can only view your own results")
        return to_score_result(row)

    async def apply_manual_grades(
        self,
        grader: User,
        session_id: str,
        grades: Dict[str, float],
        notes: Optional[str] = None,
    ) -> ScoreResult:
        """Replace points for the given questions and recompute the totals"""
        row = await self.get_result(session_id)
        if row is None:
            raise NotFound("Result not found")
        if not grades:
            raise ValidationError("No grades supplied")

        question_results = [dict(item) for item in (row.question_results or [])]
        by_question = {item["question_id"]: item for item in question_results}

        unknown = [question_id for question_id in grades if question_id not in by_question]
        if unknown:
            raise ValidationError("Questions not part of this result", question_ids=unknown)

        responses = await self.db.execute(
            select(QuestionResponse).where(
                QuestionResponse.session_id == session_id,
                QuestionResponse.question_id.in_(list(grades)),
            )
        )
        responses_by_question = {response.question_id: response for response in responses.scalars().all()}

        for question_id, points in grades.items():
            item = by_question[question_id]
            max_points = item.get("max_points", 0.0)
            if points < 0 or points > max_points:
                raise ValidationError(
                    f"Points for question {question_id} must be between 0 and {max_points}",
                    question_id=question_id,
                )
            response = responses_by_question.get(question_id)
            if response is None:
                raise ValidationError(f"No response recorded for question {question_id}", question_id=question_id)

            is_correct = points == max_points
            item.update(points_earned=points, is_correct=is_correct, feedback="Manually graded")
            response.points_earned = points
            response.is_correct = is_correct
            response.feedback = "Manually graded"

        total = sum(item.get("points_earned", 0.0) for item in question_results)
        manual = sum(1 for item in question_results if item.get("is_correct") is None)
        percentage = round(total / row.max_possible_score * 100, 2) if row.max_possible_score else 0.0

        row.question_results = question_results
        row.total_score = round(total, 2)
        row.percentage = percentage
        row.correct_answers = sum(1 for item in question_results if item.get("is_correct") is True)
        row.manual_grading_count = manual
        row.requires_manual_grading = manual > 0
        row.grade = letter_grade(percentage)
        row.graded_at = utc_now()
        row.graded_by = grader.id
        row.grader_notes = notes

        await self.db.commit()
        await self.db.refresh(row)
        logger.info(f"Manual grades applied to session {session_id} by {grader.id}")
        return to_score_result(row)
