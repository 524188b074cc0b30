"""
API response models for Gatehouse REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request input is form-encoded and validated by auth/forms.py inside
AuthService, so there are no request models here.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Account, IssuedSession

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


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


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    """Public view of an account. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    created_at: str

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(id=account.id, username=account.username, created_at=account.created_at or "")


class SessionResponse(BaseModel):
    """Response for POST /auth/sign-in and POST /auth/sign-up.

    The token is also set as the httpOnly session cookie. It is returned in
    the body for non-browser clients that send it as a Bearer header.
    """

    model_config = ConfigDict(frozen=True)

    account: AccountResponse
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    expires_in: int

    @classmethod
    def build(cls, account: Account, session: IssuedSession) -> "SessionResponse":
        return cls(
            account=AccountResponse.from_account(account),
            access_token=session.token,
            expires_at=session.expires_at,
            expires_in=session.max_age,
        )


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
