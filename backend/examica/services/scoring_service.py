"""
Answer evaluation.

``evaluate`` is a pure function of (question, response). Dispatch happens on
the question class, so every supported kind has exactly one evaluator and an
unsupported or malformed question is scored as incorrect instead of failing
the whole exam.
"""
from functools import singledispatch
from typing import Any, Iterable, Mapping, Optional, Sequence, Union
import logging

from ..core.errors import EvaluationError
from ..schemas.question import (
    QuestionDefinition,
    MultipleChoiceQuestion,
    TrueFalseQuestion,
    FillBlankQuestion,
    EssayQuestion,
    MatchingQuestion,
    UnsupportedQuestion,
    as_string_list,
    parse_boolean,
)
from ..schemas.result import ScoringResult, ScoreResult

logger = logging.getLogger(__name__)

GRADE_THRESHOLDS = ((90, "A"), (80, "B"), (70, "C"), (60, "D"))


def letter_grade(percentage: float) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if percentage >= threshold:
            return grade
    return "F"


def _result(question: QuestionDefinition, is_correct: Optional[bool], points: float, feedback: str) -> ScoringResult:
    return ScoringResult(
        question_id=question.id,
        is_correct=is_correct,
        points_earned=points,
        max_points=question.points,
        feedback=feedback,
    )


def _normalize_text(value: Any) -> str:
    return " ".join(str(value).split()).lower()


@singledispatch
def _evaluate(question: QuestionDefinition, response: Any) -> ScoringResult:
    raise EvaluationError(f"No evaluator for question type '{getattr(question, 'type', None)}'")


@_evaluate.register
def _(question: UnsupportedQuestion, response: Any) -> ScoringResult:
    raise EvaluationError(question.reason)


@_evaluate.register
def _(question: MultipleChoiceQuestion, response: Any) -> ScoringResult:
    correct = set(question.correct_answer)
    if not correct:
        raise EvaluationError("Multiple choice question has no correct answer")
    submitted = set(as_string_list(response))

    if submitted == correct:
        return _result(question, True, question.points, "Correct")

    # Partial credit only when the key has several answers and the submission
    # is a strict subset with more than one choice
    if len(correct) > 1 and len(submitted) > 1 and submitted < correct:
        earned = len(submitted) / len(correct) * question.points
        return _result(question, False, earned, f"Partially correct ({len(submitted)}/{len(correct)})")

    return _result(question, False, 0.0, "Incorrect")


@_evaluate.register
def _(question: TrueFalseQuestion, response: Any) -> ScoringResult:
    submitted = parse_boolean(response)
    if submitted is None:
        return _result(question, False, 0.0, "Unrecognized true/false answer")
    if submitted == question.correct_answer:
        return _result(question, True, question.points, "Correct")
    return _result(question, False, 0.0, "Incorrect")


@_evaluate.register
def _(question: FillBlankQuestion, response: Any) -> ScoringResult:
    if response is None or not str(response).strip():
        return _result(question, False, 0.0, "Incorrect")
    accepted = {_normalize_text(answer) for answer in question.correct_answer}
    if _normalize_text(response) in accepted:
        return _result(question, True, question.points, "Correct")
    return _result(question, False, 0.0, "Incorrect")


@_evaluate.register
def _(question: EssayQuestion, response: Any) -> ScoringResult:
    words = len(str(response).split()) if response is not None else 0
    return _result(question, None, 0.0, f"Requires manual grading ({words} words)")


@_evaluate.register
def _(question: MatchingQuestion, response: Any) -> ScoringResult:
    key = question.correct_answer
    if not key:
        return _result(question, None, 0.0, "Answer key unavailable, requires manual grading")

    if isinstance(response, Mapping):
        pairs = {str(left).strip(): response[left] for left in response}
    elif isinstance(response, (list, tuple)):
        pairs = {}
        for item in response:
            if isinstance(item, Mapping) and "left" in item:
                pairs[str(item["left"]).strip()] = item.get("right")
            elif isinstance(item, (list, tuple)) and len(item) == 2:
                pairs[str(item[0]).strip()] = item[1]
    else:
        return _result(question, False, 0.0, "Unrecognized matching answer")

    matched = sum(
        1 for left, right in key.items()
        if left in pairs and pairs[left] is not None and _normalize_text(pairs[left]) == _normalize_text(right)
    )
    earned = matched / len(key) * question.points
    if matched == len(key):
        return _result(question, True, earned, "Correct")
    return _result(question, False, earned, f"{matched}/{len(key)} pairs correct")


def evaluate(question: QuestionDefinition, response: Any) -> ScoringResult:
    """Score a single response; evaluation errors are logged and scored as incorrect"""
    try:
        return _evaluate(question, response)
    except EvaluationError as e:
        logger.error(f"Evaluation error for question {question.id}: {e.message}")
        return _result(question, False, 0.0, e.message)


AnswerInput = Union[Mapping[str, Any], Iterable[Mapping[str, Any]]]


def _answer_lookup(answers: AnswerInput) -> dict:
    if isinstance(answers, Mapping):
        return dict(answers)
    return {str(answer["question_id"]): answer.get("response") for answer in answers}


def calculate_exam_score(questions: Sequence[QuestionDefinition], answers: AnswerInput) -> ScoreResult:
    """Aggregate score over questions in their defined order.

    ``answers`` is either a mapping of question id to response or an iterable
    of ``{"question_id", "response"}`` records.
    """
    lookup = _answer_lookup(answers)

    results = []
    total_score = 0.0
    max_score = 0.0
    correct = 0
    manual = 0

    for question in questions:
        max_score += question.points
        if question.id not in lookup:
            result = _result(question, False, 0.0, "No answer provided")
        else:
            result = evaluate(question, lookup[question.id])

        total_score += result.points_earned
        if result.is_correct is True:
            correct += 1
        elif result.is_correct is None:
            manual += 1
        results.append(result)

    percentage = round(total_score / max_score * 100, 2) if max_score > 0 else 0.0

    return ScoreResult(
        total_score=round(total_score, 2),
        max_possible_score=round(max_score, 2),
        percentage=percentage,
        correct_answers=correct,
        total_questions=len(questions),
        question_results=results,
        requires_manual_grading=manual > 0,
        manual_grading_count=manual,
        grade=letter_grade(percentage),
    )
