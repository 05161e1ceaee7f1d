from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from ....models.user import User
from ....api.deps import get_current_staff_user, get_services
from ....services.container import ExamServices
from ....services.security_monitor import SecurityEvent, SessionMetrics

router = APIRouter()


@router.get("/events", response_model=List[SecurityEvent])
async def list_security_events(
    session_id: Optional[str] = None,
    user_id: Optional[str] = None,
    event_type: Optional[str] = Query(None, alias="type"),
    since: Optional[float] = None,
    limit: int = Query(100, ge=1, le=1000),
    current_user: User = Depends(get_current_staff_user),
    services: ExamServices = Depends(get_services),
):
    return await services.security_monitor.get_events(
        session_id=session_id,
        user_id=user_id,
        event_type=event_type,
        since=since,
        limit=limit,
    )


@router.get("/sessions/{session_id}/metrics", response_model=SessionMetrics)
async def session_security_metrics(
    session_id: str,
    current_user: User = Depends(get_current_staff_user),
    services: ExamServices = Depends(get_services),
):
    return await services.security_monitor.get_session_metrics(session_id)


@router.get("/stats")
async def security_stats(
    current_user: User = Depends(get_current_staff_user),
    services: ExamServices = Depends(get_services),
) -> Dict[str, Any]:
    return await services.security_monitor.security_stats()
