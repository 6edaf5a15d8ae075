"""
API routes - Registration and two-factor endpoints.

This module defines the HTTP endpoints (mounted under /api/usuarios):
- POST /register - Stage a registration and email the code
- POST /register/2fa/verificar - Verify the code and create the user
- POST /register/2fa/reenviar - Email a fresh code
- POST /register/2fa/cancelar - Abandon a pending registration

Endpoints are plain `def`: the service blocks on SMTP, bcrypt and the
database, so FastAPI runs them in its threadpool. Domain exceptions are
turned into {"error": ...} responses by the handlers in src.api.errors.
"""

from fastapi import APIRouter, Depends

from src.api.dependencies import get_registration_service
from src.api.models import (
    CancelResponse,
    ErrorResponse,
    RegisterRequest,
    RegisterResponse,
    ResendResponse,
    SessionRequest,
    UserOut,
    VerifyRequest,
    VerifyResponse,
)
from src.domain.registration import RegistrationService

router = APIRouter(tags=["registro"])

_SESSION_ERRORS = {400: {"model": ErrorResponse, "description": "Invalid or expired session"}}


@router.post(
    "/register",
    response_model=RegisterResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Validation error or identity already taken"},
        500: {"model": ErrorResponse, "description": "Code could not be delivered"},
    },
    summary="Register a new user",
    description="Validate and stage the candidate user, then email a one-time code. "
    "The user is only created after the code is verified.",
)
def register(
    request_data: RegisterRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> RegisterResponse:
    challenge = service.register(request_data.to_staged_user())
    return RegisterResponse(
        message="Código de verificación enviado",
        channel=challenge.channel,
        destination=challenge.masked_destination,
        temp_token=challenge.session_handle,
        expires_in_seconds=challenge.expires_in_seconds,
    )


@router.post(
    "/register/2fa/verificar",
    response_model=VerifyResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid session, expired or incorrect code"},
        429: {"model": ErrorResponse, "description": "Too many failed attempts"},
        500: {"model": ErrorResponse, "description": "User could not be stored"},
    },
    summary="Verify registration code",
    description="Submit the emailed code for a pending registration. "
    "On success the verified user is created.",
)
def verify_registration(
    request_data: VerifyRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> VerifyResponse:
    user = service.verify(request_data.temp_token, request_data.code)
    return VerifyResponse(
        message="Usuario registrado y verificado con éxito",
        user=UserOut.from_domain(user),
    )


@router.post(
    "/register/2fa/reenviar",
    response_model=ResendResponse,
    responses={
        **_SESSION_ERRORS,
        500: {"model": ErrorResponse, "description": "Code could not be delivered"},
    },
    summary="Resend registration code",
    description="Issue a new code for a pending registration. Failed attempts are reset "
    "and the expiry window starts again.",
)
def resend_registration_code(
    request_data: SessionRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> ResendResponse:
    challenge = service.resend(request_data.temp_token)
    return ResendResponse(
        message="Código reenviado",
        channel=challenge.channel,
        destination=challenge.masked_destination,
    )


@router.post(
    "/register/2fa/cancelar",
    response_model=CancelResponse,
    responses=_SESSION_ERRORS,
    summary="Cancel pending registration",
)
def cancel_registration(
    request_data: SessionRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> CancelResponse:
    service.abandon(request_data.temp_token)
    return CancelResponse(message="Registro cancelado")
