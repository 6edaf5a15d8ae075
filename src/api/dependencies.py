"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes. Long-lived
adapters (connection pool, pending store, email sender) are created in
the application lifespan and kept in app.state.
"""

from fastapi import Depends, Request
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import PostgresUserRepository
from src.adapters.smtp.console import ConsoleEmailSender
from src.adapters.smtp.mailer import SmtpEmailSender
from src.config.settings import Settings, get_settings
from src.domain.ports import EmailSender, PendingRegistrationStore, UserRepository
from src.domain.registration import RegistrationService


def build_email_sender(settings: Settings) -> EmailSender:
    """Pick the email adapter named by EMAIL_BACKEND."""
    if settings.email_backend == "console":
        return ConsoleEmailSender()
    return SmtpEmailSender(
        host=settings.email_host,
        port=settings.email_port,
        secure=settings.email_secure,
        username=settings.email_user,
        password=settings.email_pass,
        from_name=settings.email_from_name,
        timeout=settings.email_timeout_seconds,
        ttl_seconds=settings.otp_ttl_seconds,
    )


def get_pool(request: Request) -> ConnectionPool:
    """
    Get connection pool from app state.

    The pool is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.pool


def get_user_repository(request: Request) -> PostgresUserRepository:
    """Create repository with connection pool from app state."""
    return PostgresUserRepository(get_pool(request))


def get_pending_store(request: Request) -> PendingRegistrationStore:
    """Get the process-wide pending registration store."""
    return request.app.state.pending_store


def get_email_sender(request: Request) -> EmailSender:
    """Get the email sender created at startup."""
    return request.app.state.email_sender


def get_registration_service(
    settings: Settings = Depends(get_settings),
    user_repository: UserRepository = Depends(get_user_repository),
    pending_store: PendingRegistrationStore = Depends(get_pending_store),
    email_sender: EmailSender = Depends(get_email_sender),
) -> RegistrationService:
    """
    Create registration service with injected dependencies.

    Wires together the user repository, pending store and email sender.
    """
    return RegistrationService(
        user_repository=user_repository,
        pending_store=pending_store,
        email_sender=email_sender,
        code_length=settings.otp_code_length,
        ttl_seconds=settings.otp_ttl_seconds,
        max_attempts=settings.max_attempts,
        bcrypt_cost=settings.bcrypt_cost,
    )
