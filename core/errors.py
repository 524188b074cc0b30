"""
core/errors.py -- Error taxonomy for the authentication gateway.

Every failure the gateway reports to a caller is one of these classes. Each
carries a machine-readable code, the HTTP status the API layer answers with,
and a fixed public message. The public message is the only text that ever
reaches a client; internal causes are logged, never returned.

Deliberately coarse:
  InvalidCredentialsError covers both "no such user" and "wrong password".
  TokenInvalidError covers bad signature, malformed token, expiry and a
  dangling account reference.

Layer rule: core/ is the kernel; auth/ and throttle/ raise these, api/ maps
AuthError to its ErrorResponse envelope in a single exception handler.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all user-facing gateway failures."""

    code: str = "auth_error"
    status_code: int = 400
    message: str = "Request could not be completed."

    def __init__(self, message: str | None = None, *, cause: str | None = None) -> None:
        if message is not None:
            self.message = message
        # Internal-only detail for logs. Never serialized to the client.
        self.cause = cause
        super().__init__(self.message)


class InvalidInputError(AuthError):
    """Malformed sign-in/sign-up input. Raised before any quota is consumed."""

    code = "invalid_input"
    status_code = 422
    message = "Request validation failed."


class ThrottledError(AuthError):
    """Quota exceeded for the (purpose, identity key) pair."""

    code = "rate_limited"
    status_code = 429
    message = "Too many attempts. Try again later."

    def __init__(self, retry_after: int | None = None, *, cause: str | None = None) -> None:
        super().__init__(cause=cause)
        # Coarse hint in seconds (whole minutes), or None when unknown.
        self.retry_after = retry_after


class InvalidCredentialsError(AuthError):
    code = "bad_credentials"
    status_code = 401
    message = "Invalid username or password."


class DuplicateAccountError(AuthError):
    # Usernames are not secrets, so naming the conflict is acceptable.
    code = "username_taken"
    status_code = 409
    message = "That username is already taken."


class TokenInvalidError(AuthError):
    code = "unauthorized"
    status_code = 401
    message = "Not authenticated."


class DependencyUnavailableError(AuthError):
    """Account store or counter store unreachable or timed out."""

    code = "service_unavailable"
    status_code = 503
    message = "Service temporarily unavailable."
