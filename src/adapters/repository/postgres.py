"""
PostgreSQL repository adapter - Implements UserRepository protocol.

This module provides the PostgreSQL implementation of the domain's
durable user store using psycopg3 with raw SQL.

Uniqueness Design:
-----------------
Username, email and phone are checked before staging (find_conflict)
and enforced again by UNIQUE constraints at insert time. The insert is
the only durability boundary: a request that loses the race between
pre-check and commit gets a UniqueViolation, which is reported as
IdentityConflict for the violated field rather than as a generic fault.
"""

import logging
from pathlib import Path

from psycopg import errors
from psycopg_pool import ConnectionPool

from src.domain.exceptions import IdentityConflict, InternalFault
from src.domain.ports import CreatedUser, NewUser

logger = logging.getLogger(__name__)

# Constraint name -> domain identity field
_UNIQUE_CONSTRAINTS = {
    "users_username_key": "username",
    "users_email_key": "email",
    "users_telefono_key": "phone",
}


class PostgresUserRepository:
    """
    Implements UserRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    def find_conflict(self, username: str, email: str, phone: str) -> str | None:
        """
        Report which identity field, if any, is already taken.

        A single query returns one flag per field; the first taken field
        in the order username, email, phone is reported.

        Args:
            username: Candidate username
            email: Normalized email address
            phone: Candidate phone number

        Returns:
            "username", "email", "phone", or None if all are free
        """
        sql = """
            SELECT
                EXISTS (SELECT 1 FROM users WHERE username = %s),
                EXISTS (SELECT 1 FROM users WHERE email = %s),
                EXISTS (SELECT 1 FROM users WHERE telefono = %s)
        """

        try:
            with self._pool.connection() as conn, conn.cursor() as cursor:
                cursor.execute(sql, (username, email, phone))
                taken = cursor.fetchone()
        except errors.Error as exc:
            logger.error("Duplicate pre-check failed: %s", exc.__class__.__name__)
            raise InternalFault() from exc

        for field_name, is_taken in zip(("username", "email", "phone"), taken, strict=True):
            if is_taken:
                return field_name
        return None

    def create_user(self, user: NewUser) -> CreatedUser:
        """
        Insert a verified user and return its public fields.

        Args:
            user: Record with password and security answer already hashed

        Returns:
            CreatedUser with the generated id

        Raises:
            IdentityConflict: If a UNIQUE constraint is violated (race with
                another commit of the same username/email/phone)
            InternalFault: For any other database error
        """
        sql = """
            INSERT INTO users (
                nombre, ap, am, username, email, telefono,
                password_hash, pregunta_secreta, respuesta_secreta_hash, verificado
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id, nombre, email, verificado
        """
        params = (
            user.first_name,
            user.paternal_surname,
            user.maternal_surname,
            user.username,
            user.email,
            user.phone,
            user.password_hash,
            user.security_question,
            user.security_answer_hash,
            user.verified,
        )

        try:
            with self._pool.connection() as conn, conn.cursor() as cursor:
                cursor.execute(sql, params)
                row = cursor.fetchone()
                conn.commit()
        except errors.UniqueViolation as exc:
            constraint = exc.diag.constraint_name or ""
            field_name = _UNIQUE_CONSTRAINTS.get(constraint, "email")
            logger.info("Commit lost uniqueness race on %s", field_name)
            raise IdentityConflict(field_name) from exc
        except errors.Error as exc:
            logger.error("User insert failed: %s", exc.__class__.__name__)
            raise InternalFault() from exc

        return CreatedUser(id=row[0], first_name=row[1], email=row[2], verified=row[3])


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: src/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning("Migrations directory not found: %s", migrations_dir)
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info("Running %d migration(s)", len(sql_files))

    for sql_file in sql_files:
        logger.info("Executing migration: %s", sql_file.name)
        try:
            sql_content = sql_file.read_text()

            with pool.connection() as conn:
                conn.execute(sql_content)

            logger.info("Migration complete: %s", sql_file.name)
        except Exception as e:
            logger.error("Migration failed: %s - %s", sql_file.name, e)
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
