"""
Unit tests for RegistrationService domain logic.

Tests domain logic with in-process fakes and mocked ports to verify:
- Normalization and validation
- Duplicate pre-checks
- Staging and delivery rollback
- Verification, attempt ceiling and expiry
- Resend and abandon
- Commit path (hashing, conflicts, retryable failures)
"""

import re
from dataclasses import replace
from unittest.mock import Mock

import bcrypt
import pytest

from src.domain.exceptions import (
    AttemptsExhausted,
    DeliveryFailure,
    IdentityConflict,
    IncorrectCode,
    InternalFault,
    InvalidRegistration,
    SessionExpired,
    SessionNotFound,
)
from src.domain.ports import CreatedUser, RegistrationState
from src.domain.registration import RegistrationService


def wrong_code(code: str) -> str:
    """A code guaranteed to differ from `code`."""
    return "000000" if code != "000000" else "111111"


class TestNormalization:
    """Tests for input normalization before staging."""

    def test_email_is_stripped_and_lowercased(self, service, store, staged_user, email_sender) -> None:
        challenge = service.register(replace(staged_user, email="  A@B.COM "))

        assert store.get(challenge.session_handle).user.email == "a@b.com"
        assert email_sender.sent[0][0] == "a@b.com"

    def test_password_is_kept_verbatim(self, service, store, staged_user) -> None:
        challenge = service.register(replace(staged_user, password=" Abcd1234 "))
        assert store.get(challenge.session_handle).user.password == " Abcd1234 "


class TestValidation:
    """Tests for Submitted -> Staged validation."""

    @pytest.mark.parametrize(
        "field_name",
        ["first_name", "paternal_surname", "maternal_surname", "username", "email",
         "phone", "password", "security_question", "security_answer"],
    )
    def test_missing_field_rejected(self, service, staged_user, field_name) -> None:
        with pytest.raises(InvalidRegistration) as exc_info:
            service.register(replace(staged_user, **{field_name: "   "}))
        assert field_name in exc_info.value.message

    @pytest.mark.parametrize("email", ["plainaddress", "a@b", "a b@c.com", "a@@b.com"])
    def test_malformed_email_rejected(self, service, staged_user, email) -> None:
        with pytest.raises(InvalidRegistration):
            service.register(replace(staged_user, email=email))

    @pytest.mark.parametrize(
        "password",
        ["Abc123", "abcd1234", "ABCD1234", "Abcdefgh"],
        ids=["too-short", "no-upper", "no-lower", "no-digit"],
    )
    def test_weak_password_rejected(self, service, staged_user, password) -> None:
        with pytest.raises(InvalidRegistration):
            service.register(replace(staged_user, password=password))

    def test_password_longer_than_bcrypt_limit_rejected(self, service, staged_user) -> None:
        with pytest.raises(InvalidRegistration):
            service.register(replace(staged_user, password="Aa1" + "x" * 80))

    @pytest.mark.parametrize(
        "field_name,limit",
        [("first_name", 120), ("paternal_surname", 120), ("maternal_surname", 120),
         ("username", 80), ("phone", 40)],
    )
    def test_over_long_field_rejected_before_staging(
        self, service, store, staged_user, email_sender, field_name, limit
    ) -> None:
        with pytest.raises(InvalidRegistration) as exc_info:
            service.register(replace(staged_user, **{field_name: "x" * (limit + 1)}))

        assert str(limit) in exc_info.value.message
        assert len(store) == 0
        assert email_sender.sent == []

    def test_over_long_email_rejected(self, service, staged_user) -> None:
        with pytest.raises(InvalidRegistration):
            service.register(replace(staged_user, email="a" * 250 + "@b.com"))

    def test_field_at_column_width_accepted(self, service, staged_user) -> None:
        challenge = service.register(replace(staged_user, username="u" * 80))
        assert challenge.session_handle

    def test_validation_happens_before_any_mutation(
        self, service, store, staged_user, email_sender
    ) -> None:
        with pytest.raises(InvalidRegistration):
            service.register(replace(staged_user, password="weak"))

        assert len(store) == 0
        assert email_sender.sent == []


class TestDuplicatePreCheck:
    """Tests for identity conflicts detected before staging."""

    @pytest.mark.parametrize(
        ("field_name", "message"),
        [
            ("username", "El nombre de usuario ya está en uso"),
            ("email", "El correo electrónico ya está registrado"),
            ("phone", "El número de teléfono ya está registrado"),
        ],
    )
    def test_conflict_reports_field(self, store, staged_user, field_name, message) -> None:
        repo = Mock()
        repo.find_conflict.return_value = field_name
        sender = Mock()
        service = RegistrationService(user_repository=repo, pending_store=store, email_sender=sender)

        with pytest.raises(IdentityConflict) as exc_info:
            service.register(staged_user)

        assert exc_info.value.field == field_name
        assert exc_info.value.message == message
        assert len(store) == 0
        sender.send_verification_code.assert_not_called()

    def test_pre_check_uses_normalized_values(self, store, staged_user) -> None:
        repo = Mock()
        repo.find_conflict.return_value = None
        service = RegistrationService(user_repository=repo, pending_store=store, email_sender=Mock())

        service.register(replace(staged_user, username=" analopez ", email="A@B.com"))

        repo.find_conflict.assert_called_once_with("analopez", "a@b.com", "555")


class TestRegister:
    """Tests for staging and code delivery."""

    def test_register_returns_handle_and_masked_destination(self, service, staged_user) -> None:
        challenge = service.register(staged_user)

        assert challenge.session_handle
        assert challenge.masked_destination == "a***@b.com"
        assert challenge.channel == "email"
        assert challenge.expires_in_seconds == 300

    def test_register_sends_staged_code(self, service, store, staged_user, email_sender) -> None:
        challenge = service.register(staged_user)

        assert len(email_sender.sent) == 1
        assert email_sender.last_code == store.get(challenge.session_handle).code
        assert re.fullmatch(r"\d{6}", email_sender.last_code)

    def test_register_does_not_create_user(self, service, staged_user, user_repository) -> None:
        service.register(staged_user)
        assert user_repository.users == []

    def test_secrets_not_hashed_before_commit(self, service, store, staged_user) -> None:
        challenge = service.register(staged_user)
        pending_user = store.get(challenge.session_handle).user

        assert pending_user.password == "Abcd1234"
        assert pending_user.security_answer == "Firulais"

    def test_delivery_failure_rolls_back_staged_entry(
        self, service, store, staged_user, email_sender
    ) -> None:
        email_sender.fail = True

        with pytest.raises(DeliveryFailure):
            service.register(staged_user)

        assert len(store) == 0

    def test_unexpected_sender_error_rolls_back_as_delivery_failure(
        self, service, store, staged_user, email_sender
    ) -> None:
        error = UnicodeEncodeError("ascii", "contraseña", 8, 9, "ordinal not in range(128)")
        email_sender.fail_with = error

        with pytest.raises(DeliveryFailure) as exc_info:
            service.register(staged_user)

        assert exc_info.value.__cause__ is error
        assert len(store) == 0

    def test_code_length_is_configurable(self, store, staged_user, user_repository, email_sender) -> None:
        service = RegistrationService(
            user_repository=user_repository,
            pending_store=store,
            email_sender=email_sender,
            code_length=8,
        )
        service.register(staged_user)
        assert re.fullmatch(r"\d{8}", email_sender.last_code)


class TestVerify:
    """Tests for Staged -> Verified -> Committed."""

    def test_correct_code_commits_user(self, service, staged_user, email_sender, user_repository) -> None:
        challenge = service.register(staged_user)

        created = service.verify(challenge.session_handle, email_sender.last_code)

        assert created == CreatedUser(id=1, first_name="Ana", email="a@b.com", verified=True)
        assert len(user_repository.users) == 1

    def test_verify_succeeds_exactly_once(self, service, staged_user, email_sender) -> None:
        challenge = service.register(staged_user)
        code = email_sender.last_code
        service.verify(challenge.session_handle, code)

        with pytest.raises(SessionNotFound):
            service.verify(challenge.session_handle, code)

    def test_unknown_handle(self, service) -> None:
        with pytest.raises(SessionNotFound) as exc_info:
            service.verify("no-such-handle", "123456")
        assert exc_info.value.message == "Sesión 2FA inválida"

    def test_incorrect_code_increments_attempts_by_one(self, service, store, staged_user, email_sender) -> None:
        challenge = service.register(staged_user)

        with pytest.raises(IncorrectCode) as exc_info:
            service.verify(challenge.session_handle, wrong_code(email_sender.last_code))

        assert exc_info.value.remaining_attempts == 4
        assert exc_info.value.message == "Código incorrecto. 4 intentos restantes"
        assert store.get(challenge.session_handle).attempt_count == 1

    def test_code_compared_as_string(self, service, store, staged_user, email_sender) -> None:
        """A numerically equal code without its leading zeros does not match."""
        challenge = service.register(staged_user)
        store.reissue(challenge.session_handle, "012345", 300)

        with pytest.raises(IncorrectCode):
            service.verify(challenge.session_handle, "12345")

        assert service.verify(challenge.session_handle, "012345").verified is True

    def test_fifth_wrong_code_exhausts_session(self, service, store, staged_user, email_sender) -> None:
        challenge = service.register(staged_user)
        code = email_sender.last_code

        for remaining in (4, 3, 2, 1):
            with pytest.raises(IncorrectCode) as exc_info:
                service.verify(challenge.session_handle, wrong_code(code))
            assert exc_info.value.remaining_attempts == remaining

        with pytest.raises(AttemptsExhausted):
            service.verify(challenge.session_handle, wrong_code(code))

        assert store.get(challenge.session_handle) is None

    def test_correct_code_after_exhaustion_fails(self, service, staged_user, email_sender, user_repository) -> None:
        challenge = service.register(staged_user)
        code = email_sender.last_code
        for _ in range(4):
            with pytest.raises(IncorrectCode):
                service.verify(challenge.session_handle, wrong_code(code))
        with pytest.raises(AttemptsExhausted):
            service.verify(challenge.session_handle, wrong_code(code))

        with pytest.raises(SessionNotFound):
            service.verify(challenge.session_handle, code)
        assert user_repository.users == []

    def test_expired_session_with_correct_code(self, service, store, staged_user, email_sender, clock) -> None:
        challenge = service.register(staged_user)
        clock.advance(301)

        with pytest.raises(SessionExpired) as exc_info:
            service.verify(challenge.session_handle, email_sender.last_code)

        assert isinstance(exc_info.value, SessionNotFound)
        assert exc_info.value.message == "Código expirado"
        assert store.get(challenge.session_handle) is None

    def test_expired_session_with_wrong_code_is_expired_not_incorrect(
        self, service, staged_user, email_sender, clock
    ) -> None:
        challenge = service.register(staged_user)
        clock.advance(301)

        with pytest.raises(SessionExpired):
            service.verify(challenge.session_handle, wrong_code(email_sender.last_code))

    def test_code_valid_until_ttl_boundary(self, service, staged_user, email_sender, clock) -> None:
        challenge = service.register(staged_user)
        clock.advance(300)
        assert service.verify(challenge.session_handle, email_sender.last_code).verified


class TestCommit:
    """Tests for the commit path."""

    def test_password_and_answer_hashed_with_bcrypt(self, service, staged_user, email_sender, user_repository) -> None:
        challenge = service.register(staged_user)
        service.verify(challenge.session_handle, email_sender.last_code)

        record = user_repository.users[0]
        assert record.password_hash != "Abcd1234"
        assert bcrypt.checkpw(b"Abcd1234", record.password_hash.encode())
        assert bcrypt.checkpw("Firulais".encode(), record.security_answer_hash.encode())
        assert record.verified is True

    def test_hash_cost_factor_at_least_10(self, store, staged_user, email_sender, user_repository) -> None:
        service = RegistrationService(
            user_repository=user_repository,
            pending_store=store,
            email_sender=email_sender,
            bcrypt_cost=4,
        )
        challenge = service.register(staged_user)
        service.verify(challenge.session_handle, email_sender.last_code)

        cost = int(user_repository.users[0].password_hash.split("$")[2])
        assert cost >= 10

    def test_created_user_has_no_secret_fields(self, service, staged_user, email_sender) -> None:
        challenge = service.register(staged_user)
        created = service.verify(challenge.session_handle, email_sender.last_code)

        assert not hasattr(created, "password")
        assert not hasattr(created, "password_hash")
        assert not hasattr(created, "security_answer_hash")

    def test_commit_failure_keeps_entry_for_retry(
        self, service, store, staged_user, email_sender, user_repository
    ) -> None:
        challenge = service.register(staged_user)
        code = email_sender.last_code
        user_repository.fail_with = InternalFault()

        with pytest.raises(InternalFault):
            service.verify(challenge.session_handle, code)

        entry = store.get(challenge.session_handle)
        assert entry is not None
        assert entry.state == RegistrationState.VERIFIED
        assert entry.attempt_count == 0

        user_repository.fail_with = None
        assert service.verify(challenge.session_handle, code).verified is True
        assert store.get(challenge.session_handle) is None

    def test_commit_race_reports_conflict(self, service, staged_user, email_sender, user_repository) -> None:
        """Two attempts for the same identity: the second commit loses."""
        first = service.register(staged_user)
        first_code = email_sender.last_code
        second = service.register(staged_user)
        second_code = email_sender.last_code

        service.verify(first.session_handle, first_code)

        with pytest.raises(IdentityConflict) as exc_info:
            service.verify(second.session_handle, second_code)
        assert exc_info.value.field == "username"

    def test_hashing_failure_is_internal_fault(self, service, store, staged_user, email_sender, monkeypatch) -> None:
        challenge = service.register(staged_user)

        def broken_hash(*args, **kwargs):
            raise ValueError("bad salt")

        monkeypatch.setattr("src.domain.registration.bcrypt.hashpw", broken_hash)

        with pytest.raises(InternalFault):
            service.verify(challenge.session_handle, email_sender.last_code)
        assert store.get(challenge.session_handle) is not None


class TestResend:
    """Tests for Staged -> Staged resend."""

    def test_resend_issues_new_code_and_resets_attempts(
        self, service, store, staged_user, email_sender
    ) -> None:
        challenge = service.register(staged_user)
        first_code = email_sender.last_code
        for _ in range(3):
            with pytest.raises(IncorrectCode):
                service.verify(challenge.session_handle, wrong_code(first_code))

        resent = service.resend(challenge.session_handle)

        entry = store.get(challenge.session_handle)
        assert entry.attempt_count == 0
        assert entry.code == email_sender.last_code
        assert len(email_sender.sent) == 2
        assert resent.masked_destination == "a***@b.com"
        assert resent.session_handle == challenge.session_handle

    def test_resend_extends_expiry(self, service, staged_user, email_sender, clock) -> None:
        challenge = service.register(staged_user)
        clock.advance(250)
        service.resend(challenge.session_handle)
        clock.advance(250)

        assert service.verify(challenge.session_handle, email_sender.last_code).verified

    def test_resend_unknown_handle(self, service) -> None:
        with pytest.raises(SessionNotFound):
            service.resend("no-such-handle")

    def test_exhausted_session_cannot_be_resurrected(self, service, staged_user, email_sender) -> None:
        challenge = service.register(staged_user)
        code = email_sender.last_code
        for _ in range(4):
            with pytest.raises(IncorrectCode):
                service.verify(challenge.session_handle, wrong_code(code))
        with pytest.raises(AttemptsExhausted):
            service.verify(challenge.session_handle, wrong_code(code))

        with pytest.raises(SessionNotFound):
            service.resend(challenge.session_handle)

    def test_resend_delivery_failure_propagates_and_keeps_session(
        self, service, store, staged_user, email_sender
    ) -> None:
        challenge = service.register(staged_user)
        email_sender.fail = True

        with pytest.raises(DeliveryFailure):
            service.resend(challenge.session_handle)

        assert store.get(challenge.session_handle) is not None

    def test_resend_unexpected_sender_error_is_delivery_failure(
        self, service, store, staged_user, email_sender
    ) -> None:
        challenge = service.register(staged_user)
        email_sender.fail_with = RuntimeError("relay misconfigured")

        with pytest.raises(DeliveryFailure):
            service.resend(challenge.session_handle)

        assert store.get(challenge.session_handle) is not None


class TestAbandon:
    """Tests for client-initiated cancellation."""

    def test_abandon_removes_entry(self, service, store, staged_user, email_sender) -> None:
        challenge = service.register(staged_user)

        service.abandon(challenge.session_handle)

        assert store.get(challenge.session_handle) is None
        with pytest.raises(SessionNotFound):
            service.verify(challenge.session_handle, email_sender.last_code)

    def test_abandon_unknown_handle(self, service) -> None:
        with pytest.raises(SessionNotFound):
            service.abandon("no-such-handle")
