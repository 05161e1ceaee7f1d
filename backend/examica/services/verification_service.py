from datetime import datetime, timedelta
from typing import Callable, List, Optional
import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.user import User, STAFF_ROLES
from ..models.verification import VerificationAttempt
from ..schemas.verification import AccessDecision, FaceComparison, VerificationOutcome
from ..utils.timezone import utc_now
from .face_comparison import FaceComparator

logger = logging.getLogger(__name__)

REVIEW_SIMILARITY = 60.0


class VerificationService:
    """Identity verification gate.

    Records every verification attempt and grants exam access only while the
    most recent successful attempt is inside the validity window. The actual
    face comparison is delegated to a ``FaceComparator``; failed comparisons
    are never retried here.
    """

    def __init__(
        self,
        db: AsyncSession,
        comparator: FaceComparator,
        enabled: bool = True,
        window_minutes: int = 60,
        timeout_seconds: float = 15.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.comparator = comparator
        self.enabled = enabled
        self.window_minutes = window_minutes
        self.timeout_seconds = timeout_seconds
        self._clock = clock

    async def latest_successful_attempt(self, user_id: str) -> Optional[VerificationAttempt]:
        result = await self.db.execute(
            select(VerificationAttempt)
            .where(VerificationAttempt.user_id == user_id, VerificationAttempt.success.is_(True))
            .order_by(VerificationAttempt.created_at.desc(), VerificationAttempt.id.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def check_access(self, user: User) -> AccessDecision:
        if user.role in STAFF_ROLES:
            return AccessDecision(
                can_access=True,
                status="bypassed",
                reason="Verification not required for role",
                requires_verification=False,
            )
        if not self.enabled:
            return AccessDecision(
                can_access=True,
                status="disabled",
                reason="Facial recognition disabled",
                requires_verification=False,
            )

        attempt = await self.latest_successful_attempt(user.id)
        if attempt is None:
            return AccessDecision(
                can_access=False,
                status="missing",
                reason="No valid facial verification found",
                requires_verification=True,
            )

        if self._clock() - attempt.created_at > timedelta(minutes=self.window_minutes):
            return AccessDecision(
                can_access=False,
                status="expired",
                reason="Facial verification has expired",
                requires_verification=True,
                verification_time=attempt.created_at,
            )

        return AccessDecision(
            can_access=True,
            status="verified",
            reason="Verified",
            requires_verification=False,
            verification_time=attempt.created_at,
        )

    async def _record(self, user: User, comparison: FaceComparison, session_id: Optional[str]) -> VerificationAttempt:
        attempt = VerificationAttempt(
            user_id=user.id,
            session_id=session_id,
            success=comparison.success,
            similarity=comparison.similarity,
            confidence=comparison.confidence,
            error=comparison.error,
            flagged=not comparison.success and comparison.similarity > 0,
            created_at=self._clock(),
        )
        self.db.add(attempt)
        await self.db.commit()
        await self.db.refresh(attempt)
        return attempt

    async def verify_identity(self, user: User, live_image: bytes, session_id: Optional[str] = None) -> VerificationOutcome:
        if not user.face_image_key:
            comparison = FaceComparison(success=False, error="No reference image on file")
        else:
            try:
                comparison = await asyncio.wait_for(
                    self.comparator.compare(user.face_image_key, live_image),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.warning(f"Face comparison timed out for user {user.id}")
                comparison = FaceComparison(success=False, error="Verification timed out")
            except Exception as e:
                logger.error(f"Face comparison failed for user {user.id}: {e}")
                await self._record(user, FaceComparison(success=False, error=str(e)), session_id)
                raise

        attempt = await self._record(user, comparison, session_id)

        if comparison.success:
            message = "Identity verified"
        elif comparison.similarity > REVIEW_SIMILARITY:
            message = f"Face similarity below threshold ({comparison.similarity:.1f}%)"
        else:
            message = comparison.error or "Face verification failed"

        logger.info(
            f"Verification attempt for user {user.id}: success={comparison.success} "
            f"similarity={comparison.similarity:.1f}"
        )
        return VerificationOutcome(
            success=comparison.success,
            similarity=comparison.similarity,
            confidence=comparison.confidence,
            message=message,
            flagged=attempt.flagged,
        )

    async def get_flagged_verifications(self, limit: int = 50) -> List[VerificationAttempt]:
        """Failed attempts that still produced a similarity score, for manual review"""
        result = await self.db.execute(
            select(VerificationAttempt)
            .where(VerificationAttempt.success.is_(False), VerificationAttempt.similarity > 0)
            .order_by(VerificationAttempt.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
