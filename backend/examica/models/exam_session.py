import uuid

from sqlalchemy import Column, String, Integer, Float, Text, Boolean, BigInteger, DateTime, ForeignKey, JSON, Index, UniqueConstraint, text
from .base import BaseModel

SESSION_PENDING = "pending"
SESSION_ACTIVE = "active"
SESSION_PAUSED = "paused"
SESSION_COMPLETED = "completed"
SESSION_TERMINATED = "terminated"

LIVE_STATUSES = (SESSION_ACTIVE, SESSION_PAUSED)
FINISHED_STATUSES = (SESSION_COMPLETED, SESSION_TERMINATED)

_LIVE_PREDICATE = text("status IN ('active', 'paused')")


class ExamSession(BaseModel):
    __tablename__ = "exam_sessions"
    __table_args__ = (
        # At most one live session per (user, exam)
        Index(
            "uq_exam_sessions_live_attempt",
            "user_id",
            "exam_id",
            unique=True,
            postgresql_where=_LIVE_PREDICATE,
            sqlite_where=_LIVE_PREDICATE,
        ),
    )

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    exam_id = Column(String, ForeignKey("exams.id"), nullable=False, index=True)
    status = Column(String, default=SESSION_PENDING, nullable=False, index=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    time_limit_seconds = Column(Integer, nullable=True)
    time_remaining = Column(Integer, nullable=True)                             # seconds, snapshot at last transition
    paused_at = Column(DateTime, nullable=True)
    paused_seconds = Column(Integer, default=0)
    verification_status = Column(String, default="unverified")
    verification_time = Column(DateTime, nullable=True)
    browser_info = Column(JSON, nullable=True)
    session_metadata = Column("metadata", JSON, default=dict)
    notes = Column(Text, nullable=True)

    def __repr__(self):
        return f"<ExamSession {self.id} user={self.user_id} exam={self.exam_id} status={self.status}>"


class QuestionResponse(BaseModel):
    __tablename__ = "question_responses"
    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_response_session_question"),
    )

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String, ForeignKey("exam_sessions.id"), nullable=False, index=True)
    question_id = Column(String, ForeignKey("questions.id"), nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    response = Column(JSON, nullable=True)
    answered_at = Column(BigInteger, nullable=False)                            # client timestamp, epoch ms
    is_correct = Column(Boolean, nullable=True)                                 # None = manual grading
    points_earned = Column(Float, default=0.0)
    feedback = Column(Text, nullable=True)
