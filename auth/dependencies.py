"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Session tokens are read from two places and tried in this order; one that
fails verification falls through to the next:
  1. The "session" cookie -- set by sign-in / sign-up.
  2. Authorization: Bearer <token> header -- for non-browser clients.

try_get_current_account() is the soft variant (returns None on failure).
get_current_account() wraps it and raises TokenInvalidError, which the API
exception handler renders as a generic 401.

identity_key() is the rate-limit bucket for the caller: the peer address as
seen by the ASGI server, or the shared "unknown" bucket when there is none.

Layer rule: may import fastapi (this module is part of the DI system); no
imports from api/.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import Account
from auth.service import AuthService
from auth.sessions import SESSION_COOKIE
from core.errors import TokenInvalidError
from throttle.limiter import UNKNOWN_IDENTITY


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def identity_key(request: Request) -> str:
    """Return the caller's network address, or the shared fallback bucket."""
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_IDENTITY


def _session_tokens(request: Request) -> list[str]:
    """Candidate tokens in priority order: cookie first, then Bearer header."""
    tokens = []
    cookie = request.cookies.get(SESSION_COOKIE)
    if cookie:
        tokens.append(cookie)
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer ") and auth_header[7:]:
        tokens.append(auth_header[7:])
    return tokens


def try_get_current_account(request: Request) -> Account | None:
    """Return the authenticated Account, or None for any token failure.

    A stale cookie does not mask a valid Bearer token: each candidate is
    tried in order and the first that verifies wins.

    DependencyUnavailableError is not swallowed: a store outage must not be
    reported as "not signed in".
    """
    service = get_auth_service(request)
    for token in _session_tokens(request):
        try:
            return service.current_session(token).account
        except TokenInvalidError:
            continue
    return None


def get_current_account(request: Request) -> Account:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(account: Account = Depends(get_current_account)): ...
    """
    account = try_get_current_account(request)
    if account is None:
        raise TokenInvalidError(cause="no valid session on request")
    return account
