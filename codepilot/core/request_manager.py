"""
Session-scoped request manager.

Tracks at most one in-flight cancellable operation per session id. A new
request for a session preempts the previous one: the old handle is cancelled,
not merely forgotten, so its backend connection is released promptly.
"""

import asyncio
import threading
from typing import Dict, Optional, Protocol

from ..util.logging import StructuredLogger, logger as default_logger


class Cancellable(Protocol):
    """Anything the registry can cancel."""

    def cancel(self) -> None:
        ...


class CancellationToken:
    """
    Push-based cancellation signal for one generation.

    The streaming relay waits on the token alongside the backend read, so
    cancelling it interrupts a pending read rather than waiting for the next
    chunk to arrive.
    """

    def __init__(self, reason: Optional[str] = None):
        self._event = asyncio.Event()
        self.reason = reason

    def cancel(self, reason: Optional[str] = None) -> None:
        if reason and not self.reason:
            self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class SessionRegistry:
    """
    Registry of live generations keyed by session id.

    Mutations are serialized by a single lock. Handles are cancelled while the
    lock is held, so a handle's cancel() must not call back into the registry.
    """

    def __init__(self, logger: StructuredLogger = None):
        self._active: Dict[str, Cancellable] = {}
        self._lock = threading.Lock()
        self.logger = logger or default_logger

    def register(self, session_id: str, handle: Cancellable) -> None:
        """
        Store handle for session_id, cancelling any handle already registered.

        Args:
            session_id: Client-supplied session identifier
            handle: Object exposing cancel()
        """
        with self._lock:
            previous = self._active.get(session_id)
            if previous is not None and previous is not handle:
                previous.cancel()
                self.logger.log_session_operation("preempt", session_id, status="aborted")
            self._active[session_id] = handle

    def unregister(self, session_id: str, handle: Optional[Cancellable] = None) -> bool:
        """
        Remove the entry for session_id. Idempotent.

        When handle is given the entry is only removed if it is still that
        handle; a preempted request finishing late cannot evict its successor.

        Returns:
            True if an entry was removed
        """
        with self._lock:
            current = self._active.get(session_id)
            if current is None:
                return False
            if handle is not None and current is not handle:
                return False
            del self._active[session_id]
            return True

    def is_active(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._active

    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def shutdown(self) -> int:
        """Cancel and clear every entry. Used at process teardown."""
        with self._lock:
            handles = list(self._active.items())
            self._active.clear()
        for session_id, handle in handles:
            handle.cancel()
            self.logger.log_session_operation("shutdown", session_id, status="aborted")
        return len(handles)
