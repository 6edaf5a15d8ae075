"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- A controllable clock
- In-process fakes for the durable user store and email transport
- A registration service wired to the in-memory pending store
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from src.adapters.store.memory import InMemoryPendingRegistrationStore
from src.domain.exceptions import DeliveryFailure, IdentityConflict
from src.domain.ports import CreatedUser, NewUser, StagedUser
from src.domain.registration import RegistrationService


class FakeClock:
    """Clock frozen at a fixed instant until advanced."""

    def __init__(self) -> None:
        self.now = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeUserRepository:
    """UserRepository double keeping users in a list."""

    def __init__(self) -> None:
        self.users: list[NewUser] = []
        self.fail_with: Exception | None = None
        self._lock = threading.Lock()

    def find_conflict(self, username: str, email: str, phone: str) -> str | None:
        for attr, value in (("username", username), ("email", email), ("phone", phone)):
            if any(getattr(u, attr) == value for u in self.users):
                return attr
        return None

    def create_user(self, user: NewUser) -> CreatedUser:
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            conflict = self.find_conflict(user.username, user.email, user.phone)
            if conflict is not None:
                raise IdentityConflict(conflict)
            self.users.append(user)
            user_id = len(self.users)
        return CreatedUser(id=user_id, first_name=user.first_name, email=user.email, verified=user.verified)


class RecordingEmailSender:
    """EmailSender double that remembers every code it was asked to send."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = False
        self.fail_with: Exception | None = None

    def send_verification_code(self, email: str, code: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        if self.fail:
            raise DeliveryFailure()
        self.sent.append((email, code))

    @property
    def last_code(self) -> str:
        return self.sent[-1][1]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryPendingRegistrationStore:
    return InMemoryPendingRegistrationStore(clock=clock)


@pytest.fixture
def user_repository() -> FakeUserRepository:
    return FakeUserRepository()


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def service(
    user_repository: FakeUserRepository,
    store: InMemoryPendingRegistrationStore,
    email_sender: RecordingEmailSender,
    clock: FakeClock,
) -> RegistrationService:
    return RegistrationService(
        user_repository=user_repository,
        pending_store=store,
        email_sender=email_sender,
        code_length=6,
        ttl_seconds=300,
        max_attempts=5,
        bcrypt_cost=10,
        clock=clock,
    )


@pytest.fixture
def staged_user() -> StagedUser:
    return StagedUser(
        first_name="Ana",
        paternal_surname="López",
        maternal_surname="Ruiz",
        username="analopez",
        email="a@b.com",
        phone="555",
        password="Abcd1234",
        security_question="¿Nombre de tu primera mascota?",
        security_answer="Firulais",
    )


@pytest.fixture
def register_payload() -> dict[str, str]:
    """JSON body accepted by POST /api/usuarios/register."""
    return {
        "nombre": "Ana",
        "ap": "López",
        "am": "Ruiz",
        "username": "analopez",
        "email": "a@b.com",
        "password": "Abcd1234",
        "telefono": "555",
        "preguntaSecreta": "¿Nombre de tu primera mascota?",
        "respuestaSecreta": "Firulais",
    }
