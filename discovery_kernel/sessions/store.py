"""
Session Store — host-layer keeper of ConversationContext values between turns.

The kernel treats context as a value passed in and returned. This store
holds those values for the API, serializes turns of the same session with a
per-session lock, and expires idle sessions after a TTL.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Dict, Iterator, List, Optional

from discovery_kernel.conversation.tracker import ConversationContextTracker
from discovery_kernel.models.conversation import ConversationContext

logger = logging.getLogger(__name__)


class SessionStore:
    """
    In-memory session store for the prototype.
    Production would use a shared cache with the same locking contract.
    """

    def __init__(
        self,
        ttl_seconds: int = 1800,
        tracker: Optional[ConversationContextTracker] = None,
    ):
        self.ttl = timedelta(seconds=ttl_seconds)
        self.tracker = tracker or ConversationContextTracker()
        self._contexts: Dict[str, ConversationContext] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, session_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[session_id] = lock
            return lock

    @contextmanager
    def session_turn(self, session_id: str) -> Iterator[None]:
        """Hold the session's lock for the duration of one turn."""
        lock = self._lock_for(session_id)
        with lock:
            yield

    def get(
        self, session_id: str, current_time: Optional[datetime] = None
    ) -> Optional[ConversationContext]:
        """Get a live context. Expired contexts are dropped and None is returned."""
        now = current_time or datetime.utcnow()
        context = self._contexts.get(session_id)
        if context is None:
            return None
        if self.ttl.total_seconds() > 0 and now - context.updated_at > self.ttl:
            logger.info("Session %s expired", session_id)
            self.end(session_id)
            return None
        return context

    def get_or_create(
        self,
        session_id: str,
        language: str = "en",
        current_time: Optional[datetime] = None,
    ) -> ConversationContext:
        context = self.get(session_id, current_time)
        if context is None:
            context = self.tracker.start(session_id, language, current_time)
        return context

    def save(self, context: ConversationContext) -> None:
        """Store the context returned by the orchestrator."""
        self._contexts[context.session_id] = context

    def end(self, session_id: str) -> bool:
        """Destroy a session's context. Its lock is kept for turns still in flight."""
        return self._contexts.pop(session_id, None) is not None

    def purge_expired(self, current_time: Optional[datetime] = None) -> List[str]:
        """Drop every expired session. Returns the ids removed."""
        now = current_time or datetime.utcnow()
        expired = [
            sid for sid, ctx in self._contexts.items()
            if self.ttl.total_seconds() > 0 and now - ctx.updated_at > self.ttl
        ]
        for sid in expired:
            self.end(sid)
        return expired

    def session_ids(self) -> List[str]:
        return sorted(self._contexts)
