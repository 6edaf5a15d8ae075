"""
Domain exceptions - Semantic error types for registration.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.
Each exception carries a client-safe message (Spanish, as served to
the existing front end); the API layer only decides the status code.
"""


class RegistrationError(Exception):
    """Base class for registration domain errors."""

    default_message = "Error en el registro"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidRegistration(RegistrationError):
    """Submitted candidate data is missing or malformed (user-correctable)."""

    default_message = "Datos de registro inválidos"


class IdentityConflict(RegistrationError):
    """Username, email or phone already belongs to an existing user."""

    _messages = {
        "username": "El nombre de usuario ya está en uso",
        "email": "El correo electrónico ya está registrado",
        "phone": "El número de teléfono ya está registrado",
    }

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(self._messages.get(field, "El usuario ya está registrado"))


class SessionNotFound(RegistrationError):
    """Session handle is unknown, already consumed, or was invalidated."""

    default_message = "Sesión 2FA inválida"


class SessionExpired(SessionNotFound):
    """Session handle existed but its code expired before verification."""

    default_message = "Código expirado"


class IncorrectCode(RegistrationError):
    """Submitted code does not match the active one."""

    def __init__(self, remaining_attempts: int) -> None:
        self.remaining_attempts = remaining_attempts
        super().__init__(f"Código incorrecto. {remaining_attempts} intentos restantes")


class AttemptsExhausted(RegistrationError):
    """Attempt ceiling reached; the session is gone for good."""

    default_message = "Demasiados intentos"


class DeliveryFailure(RegistrationError):
    """The verification code could not be handed to the email transport."""

    default_message = "No se pudo enviar el código de verificación"


class InternalFault(RegistrationError):
    """Durable store or hashing failure. The cause is logged, never returned."""

    default_message = "Error interno del servidor"
