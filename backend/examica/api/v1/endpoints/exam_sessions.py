from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ....core.database import get_async_db
from ....models.user import User
from ....api.deps import get_current_active_user, get_services
from ....schemas.session import (
    AnswerReceipt,
    AnswerSubmission,
    AutoSaveRequest,
    AutoSaveResult,
    BatchResult,
    BatchSubmission,
    SessionActionResponse,
    SessionOut,
    SessionProgress,
    StartSessionRequest,
    UpdateSessionRequest,
)
from ....services.container import ExamServices

router = APIRouter()


@router.post("/", response_model=SessionOut)
async def start_session(
    payload: StartSessionRequest,
    request: Request,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
    services: ExamServices = Depends(get_services),
):
    """Start a new exam session or resume the live one"""
    manager = services.lifecycle(db)
    session = await manager.start_or_resume(
        current_user,
        payload.exam_id,
        browser_info=payload.browser_info,
        user_agent=request.headers.get("user-agent"),
    )
    return SessionOut.model_validate(session)


@router.patch("/{session_id}", response_model=SessionActionResponse)
async def update_session(
    session_id: str,
    payload: UpdateSessionRequest,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
    services: ExamServices = Depends(get_services),
):
    manager = services.lifecycle(db)
    result = None

    if payload.action == "pause":
        session = await manager.pause(current_user, session_id)
    elif payload.action == "resume":
        session = await manager.resume(current_user, session_id)
    elif payload.action == "complete":
        result = await manager.complete(current_user, session_id)
        session = await manager.get_session(session_id)
    else:
        result = await manager.terminate(current_user, session_id, payload.reason)
        session = await manager.get_session(session_id)

    return SessionActionResponse(session=SessionOut.model_validate(session), result=result)


@router.post("/{session_id}/answers", response_model=AnswerReceipt)
async def submit_answer(
    session_id: str,
    payload: AnswerSubmission,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
    services: ExamServices = Depends(get_services),
):
    return await services.lifecycle(db).submit_answer(current_user, session_id, payload)


@router.post("/{session_id}/autosave", response_model=AutoSaveResult)
async def autosave(
    session_id: str,
    payload: AutoSaveRequest,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
    services: ExamServices = Depends(get_services),
):
    return await services.lifecycle(db).autosave(current_user, session_id, payload.responses)


@router.post("/{session_id}/batch", response_model=BatchResult)
async def submit_batch(
    session_id: str,
    payload: BatchSubmission,
    response: Response,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
    services: ExamServices = Depends(get_services),
):
    """Bulk-submit answers; responds 207 when some items failed"""
    result = await services.lifecycle(db).submit_batch(current_user, session_id, payload.responses)
    if not result.success:
        response.status_code = status.HTTP_207_MULTI_STATUS
    return result


@router.get("/{session_id}/progress", response_model=SessionProgress)
async def session_progress(
    session_id: str,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
    services: ExamServices = Depends(get_services),
):
    return await services.lifecycle(db).session_progress(current_user, session_id)
