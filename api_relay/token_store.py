"""
In-memory store for tokens issued after a successful code exchange.
Keyed by a server-generated user id. Not durable; a restart logs everyone out.
"""
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable

# Google access tokens live at most an hour; unknown bearers are remembered that long after logout
REVOKED_TOKEN_TTL = 3600


@dataclass
class UserTokenRecord:
    user_id: str | None
    access_token: str
    expires_at: float
    refresh_token: str | None = None
    scope: str = ""

    def is_expired(self, now: float | None = None) -> bool:
        return (time.time() if now is None else now) >= self.expires_at

    def expires_in_seconds(self, now: float | None = None) -> int:
        remaining = self.expires_at - (time.time() if now is None else now)
        return max(0, int(remaining))

    def to_dict(self, now: float | None = None) -> dict:
        """Token response for the front end (snake_case, as Google returns it)."""
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in_seconds(now),
            "scope": self.scope,
            "user_id": self.user_id,
        }


class TokenStore:
    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._records: dict[str, UserTokenRecord] = {}
        # Access tokens invalidated by logout; rejected locally without a round trip
        self._revoked: dict[str, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def now(self) -> float:
        return self._clock()

    @staticmethod
    def new_user_id() -> str:
        """Unguessable id; only the server mints these."""
        return secrets.token_urlsafe(32)

    def put(self, record: UserTokenRecord) -> None:
        with self._lock:
            self._records[record.user_id] = record
            self._revoked.pop(record.access_token, None)

    def get(self, user_id: str) -> UserTokenRecord | None:
        return self._records.get(user_id)

    def get_valid(self, user_id: str) -> UserTokenRecord | None:
        """Record for user_id, or None if unknown or its access token has expired."""
        record = self._records.get(user_id)
        if record is None or record.is_expired(self._clock()):
            return None
        return record

    def update_access_token(
        self,
        user_id: str,
        access_token: str,
        expires_in: int,
        refresh_token: str | None = None,
    ) -> UserTokenRecord | None:
        """
        Apply a refresh result. Keeps user_id and the existing refresh token unless the
        provider rotated it. Returns None when user_id is unknown.
        """
        with self._lock:
            record = self._records.get(user_id)
            if record is None:
                return None
            record.access_token = access_token
            record.expires_at = self._clock() + expires_in
            if refresh_token:
                record.refresh_token = refresh_token
            return record

    def remove(self, user_id: str) -> UserTokenRecord | None:
        with self._lock:
            record = self._records.pop(user_id, None)
            if record is not None:
                self._revoke(record.access_token, record.expires_at)
            return record

    def _revoke(self, access_token: str, expires_at: float | None = None) -> None:
        # Caller holds the lock. A revoked token only needs remembering until it would have expired.
        now = self._clock()
        self._purge_revoked(now)
        self._revoked[access_token] = expires_at if expires_at else now + REVOKED_TOKEN_TTL

    def _purge_revoked(self, now: float) -> int:
        stale = [t for t, until in self._revoked.items() if until <= now]
        for t in stale:
            del self._revoked[t]
        return len(stale)

    def purge_revoked(self) -> int:
        with self._lock:
            return self._purge_revoked(self._clock())

    def revoke_access_token(self, access_token: str) -> None:
        with self._lock:
            stale = [uid for uid, r in self._records.items() if r.access_token == access_token]
            expires_at = max((self._records[uid].expires_at for uid in stale), default=None)
            for uid in stale:
                del self._records[uid]
            self._revoke(access_token, expires_at)

    def is_revoked(self, access_token: str) -> bool:
        until = self._revoked.get(access_token)
        return until is not None and until > self._clock()

    def revoked_count(self) -> int:
        return len(self._revoked)
