from sqlalchemy import Column, String, Integer, Float, Text, Boolean, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from .base import BaseModel


class Exam(BaseModel):
    __tablename__ = "exams"

    id = Column(String, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, default="draft", nullable=False)                 # draft | active | archived
    duration_minutes = Column(Integer, nullable=True)                         # None = unlimited
    requires_verification = Column(Boolean, default=True)
    created_by = Column(String, ForeignKey("users.id"), nullable=True)

    exam_questions = relationship(
        "ExamQuestion",
        back_populates="exam",
        order_by="ExamQuestion.order_index",
    )


class Question(BaseModel):
    __tablename__ = "questions"

    id = Column(String, primary_key=True, index=True)
    question_type = Column(String, nullable=False)
    content = Column(Text)
    options = Column(JSON, nullable=True)
    correct_answer = Column(JSON, nullable=True)
    points = Column(Float, default=1.0)
    explanation = Column(Text, nullable=True)


class ExamQuestion(BaseModel):
    __tablename__ = "exam_questions"
    __table_args__ = (
        UniqueConstraint("exam_id", "question_id", name="uq_exam_question"),
    )

    id = Column(Integer, primary_key=True, index=True)
    exam_id = Column(String, ForeignKey("exams.id"), nullable=False, index=True)
    question_id = Column(String, ForeignKey("questions.id"), nullable=False)
    order_index = Column(Integer, default=0)
    points = Column(Float, nullable=True)                                     # overrides Question.points
    required = Column(Boolean, default=False)

    exam = relationship("Exam", back_populates="exam_questions")
    question = relationship("Question")
