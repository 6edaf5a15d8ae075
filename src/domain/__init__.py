"""
Domain layer - Pure business logic with zero framework imports.

This package contains the two-phase registration state machine, the
one-time code helpers. It defines its own port
interfaces for infrastructure abstraction.
"""

from .codes import generate_code, mask_email
from .exceptions import (
    AttemptsExhausted,
    DeliveryFailure,
    IdentityConflict,
    IncorrectCode,
    InternalFault,
    InvalidRegistration,
    RegistrationError,
    SessionExpired,
    SessionNotFound,
)
from .ports import (
    CreatedUser,
    EmailSender,
    NewUser,
    PendingRegistration,
    PendingRegistrationStore,
    RegistrationChallenge,
    RegistrationState,
    StagedUser,
    UserRepository,
)
from .registration import RegistrationService

__all__ = [
    "AttemptsExhausted",
    "CreatedUser",
    "DeliveryFailure",
    "EmailSender",
    "IdentityConflict",
    "IncorrectCode",
    "InternalFault",
    "InvalidRegistration",
    "NewUser",
    "PendingRegistration",
    "PendingRegistrationStore",
    "RegistrationChallenge",
    "RegistrationError",
    "RegistrationService",
    "RegistrationState",
    "SessionExpired",
    "SessionNotFound",
    "StagedUser",
    "UserRepository",
    "generate_code",
    "mask_email",
]
