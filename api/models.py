"""
API request and response models for the credential service REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Email format is checked here with a deliberately loose pattern; the core only
requires a non-blank address containing "@" and normalizes it.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.accounts import MIN_PASSWORD_LENGTH

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    # No stripping surprises for passwords: a leading space is part of the secret.
    password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=255)


class LoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class ResendRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class RegisterResponse(BaseModel):
    created: bool = True
    account_id: str  # public uuid


class EmailAvailabilityResponse(BaseModel):
    available: bool


class UserInfo(BaseModel):
    uuid: str
    email: str


class LoginResponse(BaseModel):
    token: str
    token_type: str = "Bearer"
    expires_at: str  # ISO 8601, UTC
    user: UserInfo


class VerifyEmailResponse(BaseModel):
    verified: bool = True
    message: str = "Email verified successfully. You can now log in."


class ResendResponse(BaseModel):
    """Identical for every outcome -- account existence must not leak."""

    sent: bool = True
    message: str = "If the email exists and is unverified, a verification link has been sent."


class MeResponse(BaseModel):
    uuid: str
    email: str
    expires_at: str


class ErrorDetail(BaseModel):
    """Single error payload. Codes are stable, machine-readable strings."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Envelope for every non-2xx response: {"error": {...}}."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Liveness payload for GET /api/v1/health."""

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
