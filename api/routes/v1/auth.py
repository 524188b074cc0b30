"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/sign-in   -- form login; sets session cookie
  POST /api/v1/auth/sign-up   -- form registration; sets session cookie
  POST /api/v1/auth/sign-out  -- clears session cookie; 200
  GET  /api/v1/auth/me        -- current account (requires auth)

Handlers stay thin: read the form and the caller's identity key, hand both to
AuthService, and attach the issued session. Validation, rate limiting,
credential checks and error taxonomy all live in auth/. Failures propagate as
core.errors.AuthError and are rendered by the handler in api/main.py.

Security:
  Sign-in and sign-up are rate-limited per caller address inside AuthService.
  Sign-in never distinguishes unknown usernames from wrong passwords.
  Cache-Control: no-store on every response that carries a token.
  Sign-out only deletes the cookie; the token stays valid until it expires.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import JSONResponse

from api.models import AccountResponse, MessageResponse, SessionResponse
from auth.dependencies import get_auth_service, get_current_account, identity_key
from auth.models import Account, IssuedSession
from auth.service import AuthService
from auth.sessions import set_session_cookie

# Auth policy:
# - POST /api/v1/auth/sign-in:   public, rate-limited (sign_in quota)
# - POST /api/v1/auth/sign-up:   public, rate-limited (sign_up quota)
# - POST /api/v1/auth/sign-out:  public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/me:        requires auth (get_current_account)
router = APIRouter()


def _session_response(
    service: AuthService, account: Account, session: IssuedSession, status_code: int
) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=SessionResponse.build(account, session).model_dump(mode="json"),
    )
    set_session_cookie(resp, session, secure=service.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/sign-in", response_model=SessionResponse)
def sign_in(
    request: Request,
    username: str = Form(...),
    password: str = Form(...),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Authenticate with username and password; set the session cookie."""
    account, session = service.sign_in(identity_key(request), username, password)
    return _session_response(service, account, session, status_code=200)


@router.post("/auth/sign-up", response_model=SessionResponse, status_code=201)
def sign_up(
    request: Request,
    username: str = Form(...),
    password: str = Form(...),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Create an account and sign it in."""
    account, session = service.sign_up(identity_key(request), username, password)
    return _session_response(service, account, session, status_code=201)


@router.post("/auth/sign-out", response_model=MessageResponse)
def sign_out(service: AuthService = Depends(get_auth_service)) -> JSONResponse:
    """Clear the session cookie and end the session client-side."""
    resp = JSONResponse(content=MessageResponse(message="Signed out.").model_dump())
    service.sign_out(resp)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/me", response_model=AccountResponse)
def me(account: Account = Depends(get_current_account)) -> AccountResponse:
    """Return the account behind the current session."""
    return AccountResponse.from_account(account)
