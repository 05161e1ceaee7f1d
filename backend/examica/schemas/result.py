from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class ScoringResult(BaseModel):
    question_id: str
    is_correct: Optional[bool]
    points_earned: float = 0.0
    max_points: float = 0.0
    feedback: str = ""

    @property
    def requires_manual_grading(self) -> bool:
        return self.is_correct is None

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class ScoreResult(BaseModel):
    total_score: float = 0.0
    max_possible_score: float = 0.0
    percentage: float = 0.0
    correct_answers: int = 0
    total_questions: int = 0
    question_results: List[ScoringResult] = Field(default_factory=list)
    requires_manual_grading: bool = False
    manual_grading_count: int = 0
    grade: str = "F"
    session_id: Optional[str] = None
    graded_at: Optional[datetime] = None
    graded_by: Optional[str] = None
    grader_notes: Optional[str] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class ManualGradeRequest(BaseModel):
    # question_id -> points awarded
    grades: Dict[str, float]
    notes: Optional[str] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
