from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from .result import ScoreResult


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class StartSessionRequest(CamelModel):
    exam_id: str
    browser_info: Optional[Dict[str, Any]] = None


class SessionOut(CamelModel):
    id: str
    user_id: str
    exam_id: str
    status: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    time_remaining: Optional[int] = None
    verification_status: str
    verification_time: Optional[datetime] = None
    browser_info: Optional[Dict[str, Any]] = None
    session_metadata: Optional[Dict[str, Any]] = Field(
        default_factory=dict,
        validation_alias="session_metadata",
        serialization_alias="metadata",
    )
    notes: Optional[str] = None


class UpdateSessionRequest(CamelModel):
    action: Literal["pause", "resume", "complete", "terminate"]
    reason: Optional[str] = None


class SessionActionResponse(CamelModel):
    session: SessionOut
    result: Optional[ScoreResult] = None


class AnswerSubmission(CamelModel):
    question_id: str
    response: Any = None
    # Client clock, epoch milliseconds
    timestamp: Optional[int] = None
    response_time_ms: Optional[float] = None
    time_on_question_ms: Optional[float] = None


class AnswerReceipt(CamelModel):
    question_id: str
    # cached | stale | durable
    stored: str
    suspicious: bool = False
    risk_score: int = 0


class IncomingAnswer(CamelModel):
    question_id: str
    response: Any = None
    timestamp: int


class AutoSaveRequest(CamelModel):
    responses: List[IncomingAnswer]


class AutoSaveResult(CamelModel):
    saved: int = 0
    skipped: int = 0
    errors: List[str] = Field(default_factory=list)
    next_auto_save: datetime


class BatchSubmission(CamelModel):
    responses: List[IncomingAnswer]


class BatchItemError(CamelModel):
    question_id: str
    error: str


class BatchResult(CamelModel):
    success: bool = True
    processed: int = 0
    failed: int = 0
    duplicates: int = 0
    errors: List[BatchItemError] = Field(default_factory=list)


class SessionProgress(CamelModel):
    session_id: str
    status: str
    is_paused: bool
    total_questions: int
    answered_questions: int
    completion_percentage: int
    time_remaining: Optional[int] = None
