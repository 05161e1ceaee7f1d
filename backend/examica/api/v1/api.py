from fastapi import APIRouter

from .endpoints import exam_sessions, verification, results, security, health

api_router = APIRouter()

api_router.include_router(exam_sessions.router, prefix="/exam-sessions", tags=["exam-sessions"])
api_router.include_router(verification.router, prefix="/verification", tags=["verification"])
api_router.include_router(results.router, prefix="/results", tags=["results"])
api_router.include_router(security.router, prefix="/security", tags=["security"])
api_router.include_router(health.router, prefix="/health", tags=["health"])
