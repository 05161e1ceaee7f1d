from datetime import datetime
from typing import Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class FaceComparison(BaseModel):
    similarity: float = 0.0
    confidence: float = 0.0
    success: bool = False
    error: Optional[str] = None


class AccessDecision(BaseModel):
    can_access: bool
    # verified | missing | expired | bypassed | disabled
    status: str
    reason: str
    requires_verification: bool
    verification_time: Optional[datetime] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class VerificationOutcome(BaseModel):
    success: bool
    similarity: float = 0.0
    confidence: float = 0.0
    message: str
    flagged: bool = False

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class VerifyIdentityRequest(BaseModel):
    # Base64-encoded live capture
    image: str
    session_id: Optional[str] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class VerificationAttemptOut(BaseModel):
    id: int
    user_id: str
    session_id: Optional[str] = None
    success: bool
    similarity: float
    confidence: float
    error: Optional[str] = None
    flagged: bool
    created_at: datetime

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True
