from datetime import datetime
from typing import Callable, Optional
import logging
import time

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.cache import CacheManager, cache
from ..core.config import Settings
from ..core.database import AsyncSessionLocal
from ..utils.timezone import from_epoch_ms
from .answer_cache import AnswerCache, InMemoryAnswerStore, RedisAnswerStore
from .face_comparison import FaceComparator, RekognitionFaceComparator
from .rate_limiter import InMemoryRateLimitStore, RateLimiter, RedisRateLimitStore
from .security_monitor import InMemorySecurityStore, RedisSecurityStore, SecurityMonitor
from .session_service import SessionLifecycleManager
from .session_timer import SessionTimer
from .verification_service import VerificationService

logger = logging.getLogger(__name__)


class ExamServices:
    """Explicitly constructed engine components shared by request handlers and workers"""

    def __init__(
        self,
        settings: Settings,
        session_factory,
        answer_cache: AnswerCache,
        rate_limiter: RateLimiter,
        security_monitor: SecurityMonitor,
        face_comparator: FaceComparator,
        timer: Optional[SessionTimer] = None,
        cache_manager: Optional[CacheManager] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.session_factory = session_factory
        self.answer_cache = answer_cache
        self.rate_limiter = rate_limiter
        self.security_monitor = security_monitor
        self.face_comparator = face_comparator
        self.timer = timer or SessionTimer()
        self.timer.bind(self.expire_session)
        self.cache_manager = cache_manager
        self.clock = clock

    def now(self) -> datetime:
        return from_epoch_ms(int(self.clock() * 1000))

    def lifecycle(self, db: AsyncSession) -> SessionLifecycleManager:
        return SessionLifecycleManager(db, self)

    def verification(self, db: AsyncSession) -> VerificationService:
        return VerificationService(
            db,
            self.face_comparator,
            enabled=self.settings.facial_recognition_enabled,
            window_minutes=self.settings.verification_window_minutes,
            timeout_seconds=self.settings.biometric_timeout_seconds,
            clock=self.now,
        )

    async def expire_session(self, session_id: str):
        async with self.session_factory() as db:
            await self.lifecycle(db).complete_expired(session_id)

    async def cache_healthy(self) -> Optional[bool]:
        """Redis ping; None when running on in-process stores"""
        if self.cache_manager is None:
            return None
        return await self.cache_manager.ahealth_check()

    async def aclose(self):
        await self.timer.shutdown()
        if self.cache_manager is not None:
            await self.cache_manager.aclose()


def build_services(
    settings: Settings,
    session_factory=None,
    face_comparator: Optional[FaceComparator] = None,
    clock: Callable[[], float] = time.time,
) -> ExamServices:
    if settings.store_backend == "redis":
        cache_manager = cache
        answer_store = RedisAnswerStore(cache_manager)
        rate_store = RedisRateLimitStore(cache_manager)
        security_store = RedisSecurityStore(cache_manager, cap=settings.security_event_cap)
    elif settings.store_backend == "memory":
        cache_manager = None
        answer_store = InMemoryAnswerStore(clock=clock)
        rate_store = InMemoryRateLimitStore()
        security_store = InMemorySecurityStore(cap=settings.security_event_cap)
    else:
        raise ValueError(f"Unknown store backend '{settings.store_backend}'")

    rate_limiter = RateLimiter(rate_store, clock=clock)
    logger.info(f"Exam services using {settings.store_backend} stores")

    return ExamServices(
        settings=settings,
        session_factory=session_factory or AsyncSessionLocal,
        answer_cache=AnswerCache(
            answer_store,
            grace_seconds=settings.answer_cache_grace_seconds,
            unlimited_minutes=settings.unlimited_exam_cache_minutes,
            clock=clock,
        ),
        rate_limiter=rate_limiter,
        security_monitor=SecurityMonitor(
            security_store,
            rate_limiter,
            clock=clock,
            max_session_duration_hours=settings.max_session_duration_hours,
        ),
        face_comparator=face_comparator or RekognitionFaceComparator(
            bucket=settings.face_reference_bucket,
            region_name=settings.aws_region,
            similarity_threshold=settings.similarity_threshold,
        ),
        cache_manager=cache_manager,
        clock=clock,
    )
