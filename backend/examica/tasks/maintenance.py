"""
Periodic maintenance for the exam engine.

The in-process session timer only covers sessions started on the same API
process, so the expired-session sweep is the backstop when several
processes serve the API or one of them restarted. The cache flush moves
buffered answers into the database before their TTL runs out.
"""
from typing import Dict, Optional
import logging

from sqlalchemy import select

from examica.core.async_task import AsyncTask
from examica.core.celery_app import celery_app
from examica.core.config import settings
from examica.core.errors import DependencyUnavailable, ReconciliationPartialFailure
from examica.models.exam_session import ExamSession, FINISHED_STATUSES, SESSION_ACTIVE, SESSION_PAUSED
from examica.services.container import ExamServices, build_services
from examica.services.session_service import seconds_remaining

logger = logging.getLogger(__name__)

_services: Optional[ExamServices] = None


def get_worker_services() -> ExamServices:
    global _services
    if _services is None:
        _services = build_services(settings)
    return _services


async def sweep_expired_sessions(services: ExamServices) -> Dict[str, int]:
    """Complete every active session whose countdown reached zero"""
    async with services.session_factory() as db:
        result = await db.execute(
            select(ExamSession).where(
                ExamSession.status == SESSION_ACTIVE,
                ExamSession.time_limit_seconds.isnot(None),
            )
        )
        candidates = result.scalars().all()
        now = services.now()
        expired_ids = [session.id for session in candidates if seconds_remaining(session, now) == 0]

    completed = 0
    failed = 0
    for session_id in expired_ids:
        try:
            async with services.session_factory() as db:
                if await services.lifecycle(db).complete_expired(session_id) is not None:
                    completed += 1
        except Exception as e:
            failed += 1
            logger.error(f"Auto-submit failed for session {session_id}: {e}", exc_info=True)

    if completed or failed:
        logger.info(f"Expired session sweep: {completed} completed, {failed} failed")
    return {"checked": len(candidates), "completed": completed, "failed": failed}


async def flush_expiring_caches(services: ExamServices) -> Dict[str, int]:
    """Reconcile answer caches close to expiry and extend paused ones"""
    lead = services.settings.cache_flush_lead_seconds
    stats = {"flushed": 0, "extended": 0, "failed": 0}

    for session_id in await services.answer_cache.session_ids():
        async with services.session_factory() as db:
            session = await db.get(ExamSession, session_id)
            if session is None or session.status in FINISHED_STATUSES:
                continue

            remaining = seconds_remaining(session, services.now())
            if session.status == SESSION_PAUSED:
                minutes = None if remaining is None else remaining / 60
                if await services.answer_cache.extend_ttl(session_id, minutes):
                    stats["extended"] += 1
                continue

            ttl = await services.answer_cache.ttl(session_id)
            if ttl is None or ttl > lead:
                continue

            try:
                reconciled = await services.lifecycle(db).reconcile_cached(session)
            except (ReconciliationPartialFailure, DependencyUnavailable) as e:
                stats["failed"] += 1
                logger.error(f"Cache flush failed for session {session_id}: {e.message}")
                continue

            if reconciled is not None:
                stats["flushed"] += 1
                logger.info(f"Flushed {reconciled.processed} cached answers for session {session_id} (ttl {ttl}s)")

    return stats


@celery_app.task(base=AsyncTask)
async def auto_submit_expired_sessions():
    return await sweep_expired_sessions(get_worker_services())


@celery_app.task(base=AsyncTask)
async def flush_expiring_answer_caches():
    return await flush_expiring_caches(get_worker_services())


@celery_app.task(base=AsyncTask)
async def prune_security_events():
    services = get_worker_services()
    removed = await services.security_monitor.cleanup(services.settings.security_event_max_age_hours)
    return {"removed": removed}
