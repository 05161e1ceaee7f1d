from typing import List
import base64
import binascii

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ....core.database import get_async_db
from ....core.errors import ValidationError
from ....models.user import User
from ....api.deps import get_current_active_user, get_current_staff_user, get_services
from ....schemas.verification import AccessDecision, VerificationAttemptOut, VerificationOutcome, VerifyIdentityRequest
from ....services.container import ExamServices

router = APIRouter()


@router.get("/access", response_model=AccessDecision)
async def check_exam_access(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
    services: ExamServices = Depends(get_services),
):
    """Whether the current user may enter an exam right now"""
    return await services.verification(db).check_access(current_user)


@router.post("/verify", response_model=VerificationOutcome)
async def verify_identity(
    payload: VerifyIdentityRequest,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
    services: ExamServices = Depends(get_services),
):
    image = payload.image
    if image.startswith("data:") and "," in image:
        image = image.split(",", 1)[1]
    try:
        live_image = base64.b64decode(image, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Image must be base64 encoded")
    if not live_image:
        raise ValidationError("Image is empty")

    return await services.verification(db).verify_identity(current_user, live_image, session_id=payload.session_id)


@router.get("/flagged", response_model=List[VerificationAttemptOut])
async def flagged_verifications(
    limit: int = Query(50, ge=1, le=500),
    current_user: User = Depends(get_current_staff_user),
    db: AsyncSession = Depends(get_async_db),
    services: ExamServices = Depends(get_services),
):
    attempts = await services.verification(db).get_flagged_verifications(limit)
    return [VerificationAttemptOut.model_validate(attempt) for attempt in attempts]
