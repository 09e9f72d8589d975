"""
auth/sessions.py -- Process-local session registry with a per-user cap.

Admission policy (max_concurrent_sessions, block_new_on_exceed):
  count < max               -> admit
  count >= max, block=True  -> reject the NEW login; existing sessions stay
  count >= max, block=False -> evict the oldest session(s), then admit

Both policies are valid configurations; blocking is the default.

Concurrency:
  One registry lock guards every read-modify-write. admit() counts and
  inserts under the same lock, so two concurrent logins for one username
  cannot both see a free slot. Password hashing happens before admit() is
  called, so the lock is never held across bcrypt.

Expiry:
  A session idle for longer than timeout_seconds is treated as gone. Expired
  sessions are dropped lazily (get(), admit()) and in bulk by purge_expired().
  admit() also runs a full sweep once per timeout window, so sessions of users
  who never come back are reclaimed without a background task.
  timeout_seconds=0 disables expiry.

Sessions live in memory only and do not survive a restart.

Layer rule: no imports from core/ or main.py.
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from collections.abc import Callable

from auth.errors import ConfigurationError
from auth.models import Admission, Session

logger = logging.getLogger("gatekeeper.sessions")

DEFAULT_TIMEOUT_SECONDS = 30 * 60


class SessionRegistry:
    """Tracks active sessions per username.

    Usage:
        registry = SessionRegistry(max_concurrent_sessions=1, block_new_on_exceed=True)
        admission = registry.admit("user1", "ADMIN")
        registry.get(admission.session_id)
        registry.invalidate(admission.session_id)
    """

    def __init__(
        self,
        max_concurrent_sessions: int = 1,
        block_new_on_exceed: bool = True,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_concurrent_sessions < 1:
            raise ConfigurationError("max_concurrent_sessions must be at least 1")
        if timeout_seconds < 0:
            raise ConfigurationError("session timeout cannot be negative")
        self.max_concurrent_sessions = max_concurrent_sessions
        self.block_new_on_exceed = block_new_on_exceed
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}
        # username -> session ids, oldest first (dicts keep insertion order)
        self._by_user: dict[str, dict[str, None]] = {}
        self._last_sweep = clock()

    # ------------------------------------------------------------------
    # Internal helpers -- caller holds self._lock
    # ------------------------------------------------------------------

    def _expired(self, session: Session, now: float) -> bool:
        return self.timeout_seconds > 0 and now - session.last_accessed > self.timeout_seconds

    def _remove(self, session_id: str) -> Session | None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return None
        ids = self._by_user.get(session.username)
        if ids is not None:
            ids.pop(session_id, None)
            if not ids:
                del self._by_user[session.username]
        return session

    def _drop_expired_for(self, username: str, now: float) -> None:
        for sid in list(self._by_user.get(username, ())):
            if self._expired(self._sessions[sid], now):
                self._remove(sid)

    def _sweep(self, now: float) -> int:
        self._last_sweep = now
        stale = [sid for sid, s in self._sessions.items() if self._expired(s, now)]
        for sid in stale:
            self._remove(sid)
        return len(stale)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def admit(self, username: str, role: str = "") -> Admission:
        """Create a session for username if the admission policy allows it."""
        with self._lock:
            now = self._clock()
            # Full sweep at most once per timeout window.
            if self.timeout_seconds > 0 and now - self._last_sweep >= self.timeout_seconds:
                self._sweep(now)
            else:
                self._drop_expired_for(username, now)
            active = list(self._by_user.get(username, ()))

            evicted: list[str] = []
            if len(active) >= self.max_concurrent_sessions:
                if self.block_new_on_exceed:
                    logger.info("Session limit reached for %r; new login blocked", username)
                    return Admission(admitted=False)
                # Oldest first; free exactly enough slots for one more session.
                for sid in active[: len(active) - self.max_concurrent_sessions + 1]:
                    self._remove(sid)
                    evicted.append(sid)
                logger.info("Session limit reached for %r; evicted %d oldest session(s)", username, len(evicted))

            session_id = secrets.token_urlsafe(32)
            self._sessions[session_id] = Session(
                session_id=session_id,
                username=username,
                role=role,
                created_at=now,
                last_accessed=now,
            )
            self._by_user.setdefault(username, {})[session_id] = None
        return Admission(admitted=True, session_id=session_id, evicted=tuple(evicted))

    def get(self, session_id: str | None) -> Session | None:
        """Return the live session for session_id and mark it accessed.

        Returns None for unknown, invalidated, or idle-expired ids.
        """
        if not session_id:
            return None
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            now = self._clock()
            if self._expired(session, now):
                self._remove(session_id)
                return None
            session.last_accessed = now
            return session

    def invalidate(self, session_id: str | None) -> None:
        """Remove a session. Unknown or already-removed ids are ignored."""
        if not session_id:
            return
        with self._lock:
            self._remove(session_id)

    def invalidate_user(self, username: str) -> int:
        """Remove every session belonging to username. Returns how many were removed."""
        with self._lock:
            ids = list(self._by_user.get(username, ()))
            for sid in ids:
                self._remove(sid)
        return len(ids)

    def sessions_for(self, username: str) -> list[Session]:
        """Live sessions for username, oldest first."""
        with self._lock:
            self._drop_expired_for(username, self._clock())
            return [self._sessions[sid] for sid in self._by_user.get(username, ())]

    def active_count(self, username: str) -> int:
        return len(self.sessions_for(username))

    def purge_expired(self) -> int:
        """Drop every idle-expired session. Returns the number removed."""
        with self._lock:
            removed = self._sweep(self._clock())
        if removed:
            logger.info("Purged %d expired session(s)", removed)
        return removed

    def __len__(self) -> int:
        return len(self._sessions)
