"""
auth/forms.py -- Input validation for sign-in and sign-up submissions.

Runs as the guarded entry step of every AuthService operation, before any
rate-limit quota is consumed, so malformed traffic cannot burn through a
caller's attempts.

Rules:
  username  1-100 characters, no whitespace or control characters.
            Case-sensitive; stored exactly as submitted.
  password  non-empty, at most 72 UTF-8 bytes (bcrypt reads no further).
            Sign-up additionally enforces MIN_PASSWORD_LENGTH characters.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.errors import InvalidInputError

USERNAME_PATTERN = r"^[^\s\x00-\x1f\x7f]+$"
MAX_PASSWORD_BYTES = 72


class Credentials(BaseModel):
    """A syntactically valid username/password pair."""

    model_config = ConfigDict(frozen=True)

    username: str = Field(min_length=1, max_length=100, pattern=USERNAME_PATTERN)
    password: str = Field(min_length=1, repr=False)

    @field_validator("password")
    @classmethod
    def fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


def parse_credentials(username: str, password: str) -> Credentials:
    """Validate a sign-in submission or raise InvalidInputError."""
    try:
        return Credentials(username=username, password=password)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "input"
        raise InvalidInputError(f"Invalid {field}: {first['msg']}.") from None


def parse_new_account(username: str, password: str, min_password_length: int) -> Credentials:
    """Validate a sign-up submission or raise InvalidInputError."""
    credentials = parse_credentials(username, password)
    if len(credentials.password) < min_password_length:
        raise InvalidInputError(f"Invalid password: must be at least {min_password_length} characters.")
    return credentials
