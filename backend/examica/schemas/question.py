"""
Typed question definitions.

Each question kind carries its own correct-answer shape. Records coming from
the exam-authoring tables are loosely typed JSON; ``question_from_record``
turns them into one of the kinds below, falling back to
``UnsupportedQuestion`` so a single malformed question never breaks scoring
of the rest of the exam.
"""
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator


def as_string_list(value: Any) -> List[str]:
    """Normalize a scalar or collection of answers to a list of strings"""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return [str(item).strip() for item in value if item is not None]
    return [str(value).strip()]


def parse_boolean(value: Any) -> Optional[bool]:
    """Normalize true/false answers; None when the value is not recognizable"""
    # bool is checked first because it is a subclass of int
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if value == 1:
            return True
        if value == 0:
            return False
        return None
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in ("true", "t", "1", "yes", "y"):
            return True
        if normalized in ("false", "f", "0", "no", "n"):
            return False
    return None


def _as_matching_key(value: Any) -> Optional[Dict[str, str]]:
    if isinstance(value, Mapping):
        return {str(left).strip(): str(right).strip() for left, right in value.items()}
    if isinstance(value, (list, tuple)):
        pairs = {}
        for item in value:
            if isinstance(item, Mapping) and "left" in item and "right" in item:
                pairs[str(item["left"]).strip()] = str(item["right"]).strip()
            elif isinstance(item, (list, tuple)) and len(item) == 2:
                pairs[str(item[0]).strip()] = str(item[1]).strip()
            else:
                return None
        return pairs
    return None


class QuestionDefinition(BaseModel):
    id: str
    points: float = Field(default=1.0, gt=0)
    required: bool = False


class MultipleChoiceQuestion(QuestionDefinition):
    type: Literal["multiple_choice"] = "multiple_choice"
    options: List[Any] = Field(default_factory=list)
    correct_answer: List[str]

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _normalize_correct(cls, value):
        return as_string_list(value)


class TrueFalseQuestion(QuestionDefinition):
    type: Literal["true_false"] = "true_false"
    correct_answer: bool

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _normalize_correct(cls, value):
        parsed = parse_boolean(value)
        if parsed is None:
            raise ValueError(f"unrecognized true/false answer key: {value!r}")
        return parsed


class FillBlankQuestion(QuestionDefinition):
    type: Literal["fill_blank"] = "fill_blank"
    correct_answer: List[str]

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _normalize_correct(cls, value):
        return as_string_list(value)


class EssayQuestion(QuestionDefinition):
    type: Literal["essay"] = "essay"
    correct_answer: Any = None


class MatchingQuestion(QuestionDefinition):
    type: Literal["matching"] = "matching"
    options: Any = None
    # None when the stored key is malformed; such questions go to manual grading
    correct_answer: Optional[Dict[str, str]] = None

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _normalize_correct(cls, value):
        return _as_matching_key(value)


class UnsupportedQuestion(QuestionDefinition):
    type: str
    points: float = 1.0
    reason: str


Question = Annotated[
    Union[MultipleChoiceQuestion, TrueFalseQuestion, FillBlankQuestion, EssayQuestion, MatchingQuestion],
    Field(discriminator="type"),
]

_question_adapter = TypeAdapter(Question)

SUPPORTED_TYPES = ("multiple_choice", "true_false", "fill_blank", "essay", "matching")


def _fallback_points(raw: Any) -> float:
    try:
        points = float(raw)
    except (TypeError, ValueError):
        return 1.0
    return points if points > 0 else 1.0


def question_from_record(record: Mapping[str, Any]) -> QuestionDefinition:
    """Build a typed question from a loosely-typed record"""
    data = dict(record)
    if data.get("points") is None:
        data.pop("points", None)
    question_type = data.get("type")
    if question_type not in SUPPORTED_TYPES:
        return UnsupportedQuestion(
            id=str(data.get("id")),
            type=str(question_type),
            points=_fallback_points(data.get("points", 1.0)),
            required=bool(data.get("required", False)),
            reason=f"Unsupported question type '{question_type}'",
        )
    try:
        return _question_adapter.validate_python(data)
    except ValidationError as e:
        return UnsupportedQuestion(
            id=str(data.get("id")),
            type=str(question_type),
            points=_fallback_points(data.get("points", 1.0)),
            required=bool(data.get("required", False)),
            reason=f"Malformed {question_type} question: {e.error_count()} validation error(s)",
        )
