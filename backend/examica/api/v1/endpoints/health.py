import time

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
import psutil

from ....core.database import get_async_db
from ....api.deps import get_services
from ....services.container import ExamServices
from ....utils.timezone import format_local_time, utc_now

router = APIRouter()


@router.get("")
async def get_health(
    db: AsyncSession = Depends(get_async_db),
    services: ExamServices = Depends(get_services),
):
    """Service health - no authentication required"""
    health_status = {
        "status": "healthy",
        "timestamp": time.time(),
        "local_time": format_local_time(utc_now()),
        "service": "examica-api",
        "services": {},
    }

    try:
        await db.execute(text("SELECT 1"))
        health_status["services"]["database"] = "healthy"
    except SQLAlchemyError as e:
        health_status["services"]["database"] = f"error: {e}"
        health_status["status"] = "unhealthy"

    cache_health = await services.cache_healthy()
    if cache_health is None:
        health_status["services"]["cache"] = "in-process"
    elif cache_health:
        health_status["services"]["cache"] = "healthy"
    else:
        health_status["services"]["cache"] = "unhealthy"
        health_status["status"] = "degraded"

    health_status["services"]["active_timers"] = services.timer.armed_count
    health_status["system"] = {
        "cpu_percent": psutil.cpu_percent(),
        "memory_percent": psutil.virtual_memory().percent,
        "disk_percent": psutil.disk_usage('/').percent,
    }
    return health_status
