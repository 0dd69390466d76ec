"""
Store for pending authorization flows (state -> code_verifier).
Used between GET /oauth/url and POST /oauth/token. Entries are single-use and expire
after a TTL so abandoned logins don't grow memory without bound.
"""
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable

# Google authorization codes are short-lived; 10 min covers the user at the consent screen
DEFAULT_SESSION_TTL = 600


@dataclass
class AuthSession:
    session_id: str
    code_verifier: str
    created_at: float
    user_agent: str | None = None


class AuthSessionStore:
    def __init__(self, ttl: float = DEFAULT_SESSION_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._sessions: dict[str, AuthSession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def _expired(self, session: AuthSession, now: float) -> bool:
        return (now - session.created_at) > self.ttl

    def create(self, code_verifier: str, *, user_agent: str | None = None) -> str:
        """Store a verifier under a new unguessable session id and return the id."""
        self.purge_expired()
        session_id = str(uuid.uuid4())
        with self._lock:
            self._sessions[session_id] = AuthSession(
                session_id=session_id,
                code_verifier=code_verifier,
                created_at=self._clock(),
                user_agent=user_agent,
            )
        return session_id

    def consume(self, session_id: str) -> str | None:
        """
        Look up and remove in one step. Returns the verifier, or None when the id is
        unknown, already consumed, or expired. Only one caller ever wins for a given id.
        """
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None or self._expired(session, self._clock()):
            return None
        return session.code_verifier

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [s for s, sess in self._sessions.items() if self._expired(sess, now)]
            for s in expired:
                del self._sessions[s]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
