from sqlalchemy import Column, String, Integer, Float, Text, Boolean, DateTime, ForeignKey, Index
from ..core.database import Base
from ..utils.timezone import utc_now


class VerificationAttempt(Base):
    __tablename__ = "verification_attempts"
    __table_args__ = (
        Index("ix_verification_attempts_user_created", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    session_id = Column(String, nullable=True)
    success = Column(Boolean, default=False, nullable=False)
    similarity = Column(Float, default=0.0)
    confidence = Column(Float, default=0.0)
    error = Column(Text, nullable=True)
    flagged = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    def __repr__(self):
        return f"<VerificationAttempt user={self.user_id} success={self.success} similarity={self.similarity}>"
