from typing import Callable, Tuple
import logging

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ..core.errors import DependencyUnavailable

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP throttling of exam session starts.

    Uses the same fixed-window limiter the session engine uses for
    per-user limits, keyed by client address instead of user id.
    """

    def __init__(
        self,
        app,
        paths: Tuple[str, ...] = ("/api/v1/exam-sessions", "/api/v1/exam-sessions/"),
        methods: Tuple[str, ...] = ("POST",),
        action: str = "session_requests",
    ):
        super().__init__(app)
        self.paths = paths
        self.methods = methods
        self.action = action

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method not in self.methods or request.url.path not in self.paths:
            return await call_next(request)

        services = getattr(request.app.state, "services", None)
        if services is None:
            return await call_next(request)

        client_ip = self._get_client_ip(request)
        try:
            decision = await services.rate_limiter.check(f"ip:{client_ip}", self.action)
        except DependencyUnavailable as e:
            # Throttling is skipped rather than failing every request
            logger.warning(f"Rate limit check skipped for {client_ip}: {e.message}")
            return await call_next(request)

        if not decision.allowed:
            if decision.newly_blocked:
                logger.warning(f"Client {client_ip} blocked on {self.action} for {decision.retry_after}s")
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limited",
                    "message": f"Too many requests. Try again in {decision.retry_after} seconds.",
                    "retry_after": decision.retry_after,
                },
                headers=decision.headers(),
            )

        response = await call_next(request)
        for name, value in decision.headers().items():
            response.headers[name] = value
        return response

    def _get_client_ip(self, request: Request) -> str:
        forwarded_for = request.headers.get('X-Forwarded-For')
        if forwarded_for:
            return forwarded_for.split(',')[0].strip()

        real_ip = request.headers.get('X-Real-IP')
        if real_ip:
            return real_ip

        return request.client.host if request.client else 'unknown'
