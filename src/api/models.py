"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
JSON field names follow the existing front end's contract (Spanish,
camelCase); Python attributes are English and mapped through aliases.
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from src.domain.ports import CreatedUser, StagedUser


class AliasedModel(BaseModel):
    """Accepts both alias and attribute names; serializes by alias."""

    model_config = ConfigDict(populate_by_name=True)


class RegisterRequest(AliasedModel):
    """Request model for user registration."""

    first_name: str = Field(..., alias="nombre", min_length=1, max_length=120)
    paternal_surname: str = Field(..., alias="ap", min_length=1, max_length=120)
    maternal_surname: str = Field(..., alias="am", min_length=1, max_length=120)
    username: str = Field(..., min_length=1, max_length=80)
    email: EmailStr
    # Complexity is checked by the domain so the client gets the specific rule
    password: str = Field(
        ...,
        description="At least 8 characters with upper case, lower case and a digit",
    )
    phone: str = Field(..., alias="telefono", min_length=1, max_length=40)
    security_question: str = Field(..., alias="preguntaSecreta", min_length=1)
    security_answer: str = Field(..., alias="respuestaSecreta", min_length=1)

    def to_staged_user(self) -> StagedUser:
        return StagedUser(
            first_name=self.first_name,
            paternal_surname=self.paternal_surname,
            maternal_surname=self.maternal_surname,
            username=self.username,
            email=str(self.email),
            phone=self.phone,
            password=self.password,
            security_question=self.security_question,
            security_answer=self.security_answer,
        )


class RegisterResponse(AliasedModel):
    """Response model for a staged registration awaiting its code."""

    success: bool = True
    message: str = Field(..., alias="mensaje")
    requires_2fa: bool = Field(True, alias="requires2fa")
    channel: str = Field("email", alias="canal")
    destination: str = Field(..., alias="destino")
    temp_token: str = Field(..., alias="tempToken")
    expires_in_seconds: int = Field(..., alias="expiraEn")


class VerifyRequest(AliasedModel):
    """Request model for code verification."""

    # Some clients post the code as a JSON number
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    temp_token: str = Field(..., alias="tempToken", min_length=1)
    code: str = Field(..., alias="codigo", min_length=1, max_length=12)


class UserOut(AliasedModel):
    """Public fields of a created user."""

    id: int
    first_name: str = Field(..., alias="nombre")
    email: str
    verified: bool = Field(..., alias="verificado")

    @classmethod
    def from_domain(cls, user: CreatedUser) -> "UserOut":
        return cls(id=user.id, first_name=user.first_name, email=user.email, verified=user.verified)


class VerifyResponse(AliasedModel):
    """Response model for a verified and committed registration."""

    success: bool = True
    message: str = Field(..., alias="mensaje")
    user: UserOut = Field(..., alias="usuario")


class SessionRequest(AliasedModel):
    """Request model carrying only the session handle (resend, cancel)."""

    temp_token: str = Field(..., alias="tempToken", min_length=1)


class ResendResponse(AliasedModel):
    """Response model for a reissued code."""

    success: bool = True
    message: str = Field(..., alias="mensaje")
    channel: str = Field("email", alias="canal")
    destination: str = Field(..., alias="destino")


class CancelResponse(AliasedModel):
    """Response model for an abandoned registration."""

    success: bool = True
    message: str = Field(..., alias="mensaje")


class ErrorResponse(AliasedModel):
    """Standard error response model."""

    error: str
    remaining_attempts: int | None = Field(None, alias="intentosRestantes")
