"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the value types exchanged with infrastructure and
the interfaces (ports) the domain requires from it. Adapters implement
these protocols.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class RegistrationState(str, Enum):
    """
    Lifecycle states of a registration attempt.

    Transitions:
    - SUBMITTED -> STAGED (validated, pre-checked, code delivered)
    - STAGED -> STAGED (resend: new code, attempts reset, expiry refreshed)
    - STAGED -> VERIFIED (correct code within TTL)
    - STAGED -> EXPIRED (TTL exceeded; entry removed)
    - STAGED -> EXHAUSTED (attempt ceiling reached; entry removed)
    - STAGED -> ABANDONED (cancelled by the client or swept by the reaper)
    - VERIFIED -> COMMITTED (user row inserted; entry removed)

    Only STAGED and VERIFIED are ever stored; the others are terminal and
    exist only in logs and return values.
    """

    SUBMITTED = "SUBMITTED"
    STAGED = "STAGED"
    VERIFIED = "VERIFIED"
    COMMITTED = "COMMITTED"
    EXPIRED = "EXPIRED"
    EXHAUSTED = "EXHAUSTED"
    ABANDONED = "ABANDONED"


@dataclass(frozen=True)
class StagedUser:
    """Candidate user data in plaintext, held only until commit."""

    first_name: str
    paternal_surname: str
    maternal_surname: str
    username: str
    email: str
    phone: str
    password: str = field(repr=False)
    security_question: str
    security_answer: str = field(repr=False)


@dataclass
class PendingRegistration:
    """Ephemeral registration attempt, owned by the pending store."""

    session_handle: str
    user: StagedUser
    code: str = field(repr=False)
    expires_at: datetime
    attempt_count: int = 0
    state: RegistrationState = RegistrationState.STAGED
    created_at: datetime = field(default_factory=utc_now)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class NewUser:
    """Durable user record ready for insertion (secrets already hashed)."""

    first_name: str
    paternal_surname: str
    maternal_surname: str
    username: str
    email: str
    phone: str
    password_hash: str = field(repr=False)
    security_question: str
    security_answer_hash: str = field(repr=False)
    verified: bool = True


@dataclass(frozen=True)
class CreatedUser:
    """Public projection of a committed user. Never carries hashes."""

    id: int
    first_name: str
    email: str
    verified: bool


@dataclass(frozen=True)
class RegistrationChallenge:
    """What the client receives after staging or resending."""

    session_handle: str
    masked_destination: str
    expires_in_seconds: int
    channel: str = "email"


class PendingRegistrationStore(Protocol):
    """
    Port interface for ephemeral pending-registration state.

    Every operation is a point lookup or mutation by session handle and
    must be atomic per handle. A single-process deployment uses the
    in-memory adapter; a multi-instance one needs a shared keyed store
    implementing the same interface.
    """

    def stage(self, user: StagedUser, code: str, ttl_seconds: int) -> str:
        """Insert a new entry under a freshly generated handle and return the handle."""
        ...

    def get(self, session_handle: str) -> PendingRegistration | None:
        """Return a snapshot of the entry, or None if absent."""
        ...

    def record_failed_attempt(self, session_handle: str) -> int:
        """
        Increment the attempt counter and return the new count.

        Raises:
            SessionNotFound: If the handle is absent
        """
        ...

    def mark_verified(self, session_handle: str) -> None:
        """
        Flag the entry as VERIFIED (code accepted, commit pending).

        Raises:
            SessionNotFound: If the handle is absent
        """
        ...

    def reissue(self, session_handle: str, code: str, ttl_seconds: int) -> PendingRegistration:
        """
        Replace the code, reset attempts to 0 and refresh expiry.

        Raises:
            SessionNotFound: If the handle is absent
        """
        ...

    def remove(self, session_handle: str) -> bool:
        """Delete the entry. Idempotent; returns True if something was removed."""
        ...

    def sweep_expired(self, now: datetime | None = None) -> int:
        """Remove every entry whose expiry is before `now` and return how many."""
        ...


class UserRepository(Protocol):
    """Port interface for the durable user store."""

    def find_conflict(self, username: str, email: str, phone: str) -> str | None:
        """
        Return the first identity field already taken, checked in the order
        username, email, phone; None if all three are free.
        """
        ...

    def create_user(self, user: NewUser) -> CreatedUser:
        """
        Insert a verified user.

        Raises:
            IdentityConflict: If a uniqueness constraint is violated at insert time
            InternalFault: For any other storage failure
        """
        ...


class EmailSender(Protocol):
    """Port interface for email delivery."""

    def send_verification_code(self, email: str, code: str) -> None:
        """
        Send verification code to email address.

        Raises:
            DeliveryFailure: If the transport rejects or times out
        """
        ...
