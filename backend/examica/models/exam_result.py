from sqlalchemy import Column, String, Integer, Float, Text, Boolean, DateTime, ForeignKey, JSON
from .base import BaseModel


class ExamResult(BaseModel):
    __tablename__ = "exam_results"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String, ForeignKey("exam_sessions.id"), unique=True, nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    exam_id = Column(String, ForeignKey("exams.id"), nullable=False, index=True)
    total_score = Column(Float, default=0.0)
    max_possible_score = Column(Float, default=0.0)
    percentage = Column(Float, default=0.0)
    correct_answers = Column(Integer, default=0)
    total_questions = Column(Integer, default=0)
    requires_manual_grading = Column(Boolean, default=False)
    manual_grading_count = Column(Integer, default=0)
    grade = Column(String(2), nullable=True)
    question_results = Column(JSON, default=list)
    graded_at = Column(DateTime, nullable=True)
    graded_by = Column(String, ForeignKey("users.id"), nullable=True)
    grader_notes = Column(Text, nullable=True)
