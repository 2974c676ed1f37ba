"""
API request and response models for the OASIS bridge REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
registry/models.py, which own the internal domain representation. Route
handlers map between the two.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    identifier is an email address or a username and is trimmed. password
    is passed on exactly as typed; the registry decides what it matches.
    Both lengths are capped to bound the registry request path (passwords
    are pre-hashed before bcrypt, so its 72-byte limit does not apply).
    Emptiness is NOT rejected here: an empty credential must reach the
    decider so the response is the same generic credential error as any
    other failed login.
    """

    identifier: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=128)

    @field_validator("identifier")
    @classmethod
    def strip_identifier(cls, v: str) -> str:
        return v.strip()


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MessageItem(BaseModel):
    """A user-facing message (status / warning / error)."""

    model_config = ConfigDict(frozen=True)

    level: str
    text: str


class LoginResponse(BaseModel):
    """Response for a successful POST /api/v1/auth/login."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    account_id: int
    username: str
    member: bool
    messages: list[MessageItem] = Field(default_factory=list)


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me."""

    model_config = ConfigDict(frozen=True)

    account_id: int
    username: str
    email: Optional[str] = None
    roles: list[str]
    member: bool
    member_id: Optional[str] = None


class MessagesResponse(BaseModel):
    """Response for GET /api/v1/auth/messages."""

    model_config = ConfigDict(frozen=True)

    messages: list[MessageItem] = Field(default_factory=list)


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail
    messages: list[MessageItem] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    registry_configured: bool
