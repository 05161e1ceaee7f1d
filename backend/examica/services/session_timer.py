from typing import Awaitable, Callable, Dict, Optional
import asyncio
import logging

logger = logging.getLogger(__name__)

ExpiryCallback = Callable[[str], Awaitable[None]]


class SessionTimer:
    """In-process countdown per session.

    Each arming fires the expiry callback at most once, and never while a
    previous callback for the same session is still running. Pausing
    cancels the pending handle and resuming re-arms it with the remaining
    time. Errors raised by the callback are logged, never propagated: the
    client that owned the session may already be gone.
    """

    def __init__(self, on_expire: Optional[ExpiryCallback] = None):
        self.on_expire = on_expire
        self._handles: Dict[str, asyncio.TimerHandle] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    def bind(self, on_expire: ExpiryCallback):
        self.on_expire = on_expire

    def arm(self, session_id: str, delay_seconds: Optional[float]) -> bool:
        """Schedule expiry in ``delay_seconds``; None means no time limit"""
        self.cancel(session_id)
        if delay_seconds is None:
            return False
        loop = asyncio.get_running_loop()
        self._handles[session_id] = loop.call_later(max(0.0, delay_seconds), self._spawn, session_id)
        return True

    def cancel(self, session_id: str):
        handle = self._handles.pop(session_id, None)
        if handle is not None:
            handle.cancel()

    def is_armed(self, session_id: str) -> bool:
        return session_id in self._handles

    @property
    def armed_count(self) -> int:
        return len(self._handles)

    def _spawn(self, session_id: str):
        self._handles.pop(session_id, None)
        if session_id in self._tasks:
            return
        task = asyncio.ensure_future(self._fire(session_id))
        self._tasks[session_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(session_id, None))

    async def _fire(self, session_id: str):
        if self.on_expire is None:
            logger.warning(f"Session {session_id} expired but no expiry handler is bound")
            return
        try:
            await self.on_expire(session_id)
            logger.info(f"Session {session_id} auto-completed on timer expiry")
        except Exception as e:
            logger.error(f"Auto-completion failed for session {session_id}: {e}", exc_info=True)

    async def shutdown(self):
        for session_id in list(self._handles):
            self.cancel(session_id)
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
