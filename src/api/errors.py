"""
API error mapping - Domain exceptions to HTTP responses.

Every error body has the shape {"error": "<message>"}; IncorrectCode
adds "intentosRestantes". Request validation errors are reported as 400
in the same shape instead of FastAPI's default 422, and unexpected exceptions
as 500 so clients never see a plain-text error page.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.api.models import ErrorResponse
from src.domain.exceptions import (
    AttemptsExhausted,
    DeliveryFailure,
    IncorrectCode,
    InternalFault,
    RegistrationError,
)

logger = logging.getLogger(__name__)

# Checked in order; the first matching base class wins. Anything else is 400.
_STATUS_BY_ERROR: list[tuple[type[RegistrationError], int]] = [
    (AttemptsExhausted, status.HTTP_429_TOO_MANY_REQUESTS),
    (DeliveryFailure, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (InternalFault, status.HTTP_500_INTERNAL_SERVER_ERROR),
]

# Field location -> label shown to the client
_FIELD_LABELS = {
    "nombre": "nombre",
    "ap": "apellido paterno",
    "am": "apellido materno",
    "username": "nombre de usuario",
    "email": "correo electrónico",
    "password": "contraseña",
    "telefono": "teléfono",
    "preguntaSecreta": "pregunta secreta",
    "respuestaSecreta": "respuesta secreta",
    "tempToken": "tempToken",
    "codigo": "código",
}


def status_for(exc: RegistrationError) -> int:
    """HTTP status code for a domain exception."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


def error_response(status_code: int, message: str, remaining_attempts: int | None = None) -> JSONResponse:
    body = ErrorResponse(error=message, remaining_attempts=remaining_attempts)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
    )


async def registration_error_handler(request: Request, exc: RegistrationError) -> JSONResponse:
    remaining = exc.remaining_attempts if isinstance(exc, IncorrectCode) else None
    return error_response(status_for(exc), exc.message, remaining)


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    if not errors:
        return error_response(status.HTTP_400_BAD_REQUEST, "Datos de registro inválidos")

    first = errors[0]
    location = first.get("loc", ())
    field_name = str(location[-1]) if location else ""
    label = _FIELD_LABELS.get(field_name)
    if first.get("type") == "missing" and label:
        message = f"Falta el campo obligatorio: {label}"
    elif label:
        message = f"Valor inválido para {label}"
    else:
        message = "Datos de registro inválidos"
    return error_response(status.HTTP_400_BAD_REQUEST, message)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, InternalFault.default_message)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the JSON error handlers on an application."""
    app.add_exception_handler(RegistrationError, registration_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
