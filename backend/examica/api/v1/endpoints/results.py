from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ....core.database import get_async_db
from ....models.user import User
from ....api.deps import get_current_active_user, get_current_staff_user
from ....schemas.result import ManualGradeRequest, ScoreResult
from ....services.result_service import ResultService

router = APIRouter()


@router.get("/{session_id}", response_model=ScoreResult)
async def get_session_result(
    session_id: str,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await ResultService(db).get_result_for(current_user, session_id)


@router.post("/{session_id}/manual-grades", response_model=ScoreResult)
async def apply_manual_grades(
    session_id: str,
    payload: ManualGradeRequest,
    current_user: User = Depends(get_current_staff_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Award points for questions that need manual grading"""
    return await ResultService(db).apply_manual_grades(current_user, session_id, payload.grades, payload.notes)
