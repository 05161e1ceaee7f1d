from .base import BaseModel
from .user import User
from .exam import Exam, Question, ExamQuestion
from .exam_session import ExamSession, QuestionResponse
from .exam_result import ExamResult
from .verification import VerificationAttempt

__all__ = [
    "BaseModel",
    "User",
    "Exam",
    "Question",
    "ExamQuestion",
    "ExamSession",
    "QuestionResponse",
    "ExamResult",
    "VerificationAttempt",
]
