"""
Registration domain service - Two-phase email OTP registration.

This module contains the core business logic for user registration:
candidate data is staged in an ephemeral store, a one-time code is
emailed, and the user is only written to the durable store after the
code is verified.

Registration State Machine
==========================

    SUBMITTED --validate, pre-check, stage, send--> STAGED
    STAGED    --resend--> STAGED        (new code, attempts = 0, fresh TTL)
    STAGED    --correct code--> VERIFIED --insert user--> COMMITTED
    STAGED    --TTL exceeded--> EXPIRED
    STAGED    --max_attempts wrong codes--> EXHAUSTED
    STAGED    --cancel / reaper--> ABANDONED

EXPIRED, EXHAUSTED, ABANDONED and COMMITTED remove the pending entry;
the client has to start over at SUBMITTED. A failed commit leaves the
entry in VERIFIED so the same code can be submitted again.

Residual exposure: the plaintext password and security answer live in
process memory until commit or expiry. They are never logged and never
persisted outside the pending store.
"""

import logging
import re
import secrets
from dataclasses import dataclass, field, fields, replace

import bcrypt

from .codes import generate_code, mask_email
from .exceptions import (
    AttemptsExhausted,
    DeliveryFailure,
    IdentityConflict,
    IncorrectCode,
    InternalFault,
    InvalidRegistration,
    SessionExpired,
    SessionNotFound,
)
from .ports import (
    Clock,
    CreatedUser,
    EmailSender,
    NewUser,
    PendingRegistrationStore,
    RegistrationChallenge,
    RegistrationState,
    StagedUser,
    UserRepository,
    utc_now,
)

logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_BCRYPT_MAX_BYTES = 72

# Column widths of the users table
_MAX_LENGTHS = {
    "first_name": ("nombre", 120),
    "paternal_surname": ("apellido paterno", 120),
    "maternal_surname": ("apellido materno", 120),
    "username": ("nombre de usuario", 80),
    "email": ("correo electrónico", 255),
    "phone": ("teléfono", 40),
}


def _short(session_handle: str) -> str:
    """Log-safe prefix of a session handle."""
    return session_handle[:8]


@dataclass
class RegistrationService:
    """
    Domain service for two-phase user registration.

    Orchestrates validation, duplicate pre-checks, code issuance and
    delivery, verification with an attempt ceiling, and the final commit.
    """

    user_repository: UserRepository
    pending_store: PendingRegistrationStore
    email_sender: EmailSender
    code_length: int = 6
    ttl_seconds: int = 300
    max_attempts: int = 5
    bcrypt_cost: int = 10
    clock: Clock = field(default=utc_now)

    def register(self, user: StagedUser) -> RegistrationChallenge:
        """
        Stage a registration attempt and email its verification code.

        Args:
            user: Candidate user data in plaintext

        Returns:
            Challenge with the session handle and masked destination

        Raises:
            InvalidRegistration: If a field is missing or malformed
            IdentityConflict: If username, email or phone is already taken
            DeliveryFailure: If the code could not be sent (nothing stays staged)
        """
        user = self._normalize(user)
        self._validate(user)

        conflict = self.user_repository.find_conflict(user.username, user.email, user.phone)
        if conflict is not None:
            logger.info("Registration rejected: %s already in use", conflict)
            raise IdentityConflict(conflict)

        code = generate_code(self.code_length)
        session_handle = self.pending_store.stage(user, code, self.ttl_seconds)
        try:
            self.email_sender.send_verification_code(user.email, code)
        except Exception as exc:
            self.pending_store.remove(session_handle)
            logger.warning(
                "Rolled back session %s: code delivery failed (%s)",
                _short(session_handle),
                exc.__class__.__name__,
            )
            if isinstance(exc, DeliveryFailure):
                raise
            raise DeliveryFailure() from exc

        logger.info(
            "Session %s: %s -> %s",
            _short(session_handle),
            RegistrationState.SUBMITTED.value,
            RegistrationState.STAGED.value,
        )
        return RegistrationChallenge(
            session_handle=session_handle,
            masked_destination=mask_email(user.email),
            expires_in_seconds=self.ttl_seconds,
        )

    def verify(self, session_handle: str, code: str) -> CreatedUser:
        """
        Check a submitted code and, on success, commit the user.

        Args:
            session_handle: Handle returned by register()
            code: Code as typed by the user (compared as a string)

        Returns:
            Public fields of the created user

        Raises:
            SessionNotFound: Unknown or already consumed handle
            SessionExpired: Code TTL exceeded (entry removed)
            IncorrectCode: Mismatch, with remaining attempts
            AttemptsExhausted: Ceiling reached (entry removed)
            IdentityConflict: Another request committed the same identity first
            InternalFault: Durable store or hashing failure (entry kept)
        """
        pending = self.pending_store.get(session_handle)
        if pending is None:
            raise SessionNotFound()

        if pending.is_expired(self.clock()):
            self.pending_store.remove(session_handle)
            logger.info(
                "Session %s: %s", _short(session_handle), RegistrationState.EXPIRED.value
            )
            raise SessionExpired()

        if pending.attempt_count >= self.max_attempts:
            self.pending_store.remove(session_handle)
            raise AttemptsExhausted()

        submitted = "" if code is None else str(code).strip()
        if not secrets.compare_digest(submitted.encode(), pending.code.encode()):
            attempts = self.pending_store.record_failed_attempt(session_handle)
            if attempts >= self.max_attempts:
                self.pending_store.remove(session_handle)
                logger.info(
                    "Session %s: %s after %d attempts",
                    _short(session_handle),
                    RegistrationState.EXHAUSTED.value,
                    attempts,
                )
                raise AttemptsExhausted()
            raise IncorrectCode(remaining_attempts=self.max_attempts - attempts)

        self.pending_store.mark_verified(session_handle)
        logger.info(
            "Session %s: %s -> %s",
            _short(session_handle),
            pending.state.value,
            RegistrationState.VERIFIED.value,
        )
        return self._commit(session_handle, pending.user)

    def resend(self, session_handle: str) -> RegistrationChallenge:
        """
        Issue and email a fresh code for an existing session.

        Attempts are reset and the expiry refreshed. The old code is not
        required. If delivery fails the session stays valid so the client
        can ask again.

        Raises:
            SessionNotFound: Unknown or already removed handle
            DeliveryFailure: If the new code could not be sent
        """
        code = generate_code(self.code_length)
        pending = self.pending_store.reissue(session_handle, code, self.ttl_seconds)
        try:
            self.email_sender.send_verification_code(pending.user.email, code)
        except DeliveryFailure:
            raise
        except Exception as exc:
            logger.warning(
                "Session %s: resend failed (%s)", _short(session_handle), exc.__class__.__name__
            )
            raise DeliveryFailure() from exc

        logger.info("Session %s: code reissued", _short(session_handle))
        return RegistrationChallenge(
            session_handle=session_handle,
            masked_destination=mask_email(pending.user.email),
            expires_in_seconds=self.ttl_seconds,
        )

    def abandon(self, session_handle: str) -> None:
        """
        Cancel a pending registration at the client's request.

        Raises:
            SessionNotFound: Unknown or already removed handle
        """
        if not self.pending_store.remove(session_handle):
            raise SessionNotFound()
        logger.info("Session %s: %s", _short(session_handle), RegistrationState.ABANDONED.value)

    def _commit(self, session_handle: str, user: StagedUser) -> CreatedUser:
        """Hash secrets, insert the verified user, then drop the pending entry."""
        try:
            record = NewUser(
                first_name=user.first_name,
                paternal_surname=user.paternal_surname,
                maternal_surname=user.maternal_surname,
                username=user.username,
                email=user.email,
                phone=user.phone,
                password_hash=self._hash_secret(user.password),
                security_question=user.security_question,
                security_answer_hash=self._hash_secret(user.security_answer),
                verified=True,
            )
        except ValueError as exc:
            logger.exception("Session %s: hashing failed", _short(session_handle))
            raise InternalFault() from exc

        created = self.user_repository.create_user(record)
        self.pending_store.remove(session_handle)
        logger.info(
            "Session %s: %s -> %s (user id %s)",
            _short(session_handle),
            RegistrationState.VERIFIED.value,
            RegistrationState.COMMITTED.value,
            created.id,
        )
        return created

    def _hash_secret(self, secret: str) -> str:
        """Hash with bcrypt at the configured cost factor (never below 10)."""
        rounds = max(self.bcrypt_cost, 10)
        return bcrypt.hashpw(secret.encode(), bcrypt.gensalt(rounds=rounds)).decode()

    def _normalize(self, user: StagedUser) -> StagedUser:
        """
        Strip surrounding whitespace from identity fields and lowercase email.

        Password and security answer are kept exactly as typed.
        """
        cleaned = {
            f.name: (getattr(user, f.name) or "").strip()
            for f in fields(user)
            if f.name not in ("password", "security_answer")
        }
        cleaned["email"] = cleaned["email"].lower()
        return replace(user, **cleaned)

    def _validate(self, user: StagedUser) -> None:
        """Reject missing, over-long or malformed fields and weak passwords."""
        missing = [f.name for f in fields(user) if not (getattr(user, f.name) or "").strip()]
        if missing:
            raise InvalidRegistration(f"Faltan campos obligatorios: {', '.join(missing)}")

        for name, (label, limit) in _MAX_LENGTHS.items():
            if len(getattr(user, name)) > limit:
                raise InvalidRegistration(f"El campo {label} no puede superar {limit} caracteres")

        if not _EMAIL_PATTERN.match(user.email):
            raise InvalidRegistration("El correo electrónico no es válido")

        password = user.password
        if (
            len(password) < 8
            or not any(c.isupper() for c in password)
            or not any(c.islower() for c in password)
            or not any(c.isdigit() for c in password)
        ):
            raise InvalidRegistration(
                "La contraseña debe tener al menos 8 caracteres, "
                "una mayúscula, una minúscula y un número"
            )

        if len(password.encode()) > _BCRYPT_MAX_BYTES:
            raise InvalidRegistration("La contraseña es demasiado larga")
        if len(user.security_answer.encode()) > _BCRYPT_MAX_BYTES:
            raise InvalidRegistration("La respuesta secreta es demasiado larga")
