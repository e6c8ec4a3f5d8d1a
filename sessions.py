"""In-memory session store keyed by an opaque session id."""
import logging
import os
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from cart import Cart

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session_id"
DEFAULT_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", 30 * 60))


@dataclass
class Session:
    id: str
    cart: Cart = field(default_factory=Cart)
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    expires_at: float = 0.0

    @property
    def logged_in(self) -> bool:
        return self.user_id is not None


class SessionStore:
    """
    Sessions live in process memory and expire after `ttl_seconds` without a
    `put`. Concurrent requests on the same session are not serialized; the
    last write wins.
    """

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def create(self) -> Session:
        self._purge_expired()
        session = Session(id=secrets.token_urlsafe(24))
        self.put(session)
        return session

    def _purge_expired(self) -> None:
        with self._lock:
            now = self._clock()
            for session_id in [s.id for s in self._sessions.values() if s.expires_at <= now]:
                del self._sessions[session_id]

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if session.expires_at <= self._clock():
                del self._sessions[session_id]
                logger.debug("Session %s expired", session_id[:8])
                return None
            return session

    def put(self, session: Session) -> None:
        with self._lock:
            session.expires_at = self._clock() + self.ttl_seconds
            self._sessions[session.id] = session

    def expire(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)
