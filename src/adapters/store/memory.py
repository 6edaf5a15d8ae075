"""
In-memory pending registration store - Implements PendingRegistrationStore protocol.

Single-process adapter: a dict guarded by one lock. Every read-modify-write
(attempt increments, reissues, sweeps) runs entirely under the lock, so
concurrent requests against the same handle never lose an update. No I/O
happens while the lock is held.

Contents are lost on restart. A multi-instance deployment needs a shared
keyed store behind the same protocol.
"""

import logging
import secrets
import threading
from dataclasses import replace
from datetime import datetime, timedelta

from src.domain.exceptions import SessionNotFound
from src.domain.ports import Clock, PendingRegistration, RegistrationState, StagedUser, utc_now

logger = logging.getLogger(__name__)

# 32 random bytes -> 43 url-safe characters
_HANDLE_BYTES = 32


class InMemoryPendingRegistrationStore:
    """
    Implements PendingRegistrationStore protocol with a locked dict.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._entries: dict[str, PendingRegistration] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stage(self, user: StagedUser, code: str, ttl_seconds: int) -> str:
        now = self._clock()
        with self._lock:
            session_handle = secrets.token_urlsafe(_HANDLE_BYTES)
            while session_handle in self._entries:
                session_handle = secrets.token_urlsafe(_HANDLE_BYTES)
            self._entries[session_handle] = PendingRegistration(
                session_handle=session_handle,
                user=user,
                code=code,
                expires_at=now + timedelta(seconds=ttl_seconds),
                attempt_count=0,
                state=RegistrationState.STAGED,
                created_at=now,
            )
        return session_handle

    def get(self, session_handle: str) -> PendingRegistration | None:
        with self._lock:
            entry = self._entries.get(session_handle)
            # Snapshot so callers cannot mutate store state without the lock
            return replace(entry) if entry is not None else None

    def record_failed_attempt(self, session_handle: str) -> int:
        with self._lock:
            entry = self._require(session_handle)
            entry.attempt_count += 1
            return entry.attempt_count

    def mark_verified(self, session_handle: str) -> None:
        with self._lock:
            self._require(session_handle).state = RegistrationState.VERIFIED

    def reissue(self, session_handle: str, code: str, ttl_seconds: int) -> PendingRegistration:
        now = self._clock()
        with self._lock:
            entry = self._require(session_handle)
            entry.code = code
            entry.attempt_count = 0
            entry.expires_at = now + timedelta(seconds=ttl_seconds)
            entry.state = RegistrationState.STAGED
            return replace(entry)

    def remove(self, session_handle: str) -> bool:
        with self._lock:
            return self._entries.pop(session_handle, None) is not None

    def sweep_expired(self, now: datetime | None = None) -> int:
        now = now or self._clock()
        with self._lock:
            stale = [handle for handle, entry in self._entries.items() if entry.expires_at < now]
            for handle in stale:
                del self._entries[handle]
        return len(stale)

    def _require(self, session_handle: str) -> PendingRegistration:
        """Look up an entry; caller must hold the lock."""
        entry = self._entries.get(session_handle)
        if entry is None:
            raise SessionNotFound()
        return entry
