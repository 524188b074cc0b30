"""
auth/sessions.py -- Stateless session tokens: issue, verify, cookie helpers.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry only the account id (sub), issue
       time (iat) and absolute expiry (exp). No server-side session table;
       validity is re-derived from the signature on every request plus one
       account lookup to confirm the account still exists.

  Key handle: the signing secret is wrapped in a frozen SigningKey loaded
       once at startup and passed to SessionManager explicitly. Nothing reads
       it from module globals, so tests inject their own keys.

  Rotation: changing SECRET_KEY invalidates every outstanding token. This is
       the accepted cost of stateless sessions.

  Revocation: there is none. Sign-out deletes the client cookie; a copied
       token stays valid until exp. Keep the lifetime short enough for that.

  Canonical encoding: base64url decoders ignore the unused low bits of the
       final character of a segment, so two different strings can decode to
       the same signature. Every segment must re-encode to itself, otherwise
       the token is rejected. This makes any single-bit change to a minted
       token fail verification.

  Expiry is checked here against an injectable clock with no leeway: a token
       is valid while now < exp.

All failures raise TokenInvalidError with the same public message. The
internal cause is logged at debug level only.

Layer rule: no imports from api/ or throttle/.
"""

from __future__ import annotations

import binascii
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import NoReturn

from jose import jwt
from jose.exceptions import JOSEError
from jose.utils import base64url_decode, base64url_encode

from auth.models import IssuedSession, VerifiedSession
from auth.store import AccountStore
from core.errors import TokenInvalidError

logger = logging.getLogger("gatehouse.sessions")

_ALGORITHM = "HS256"
_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_-]+$")

SESSION_COOKIE = "session"


@dataclass(frozen=True)
class SigningKey:
    """Read-only handle to the process-wide session signing secret."""

    secret: str = field(repr=False)


def _is_canonical_segment(segment: str) -> bool:
    if not _SEGMENT_RE.match(segment):
        return False
    try:
        decoded = base64url_decode(segment.encode("ascii"))
    except (binascii.Error, ValueError):
        return False
    return base64url_encode(decoded).decode("ascii") == segment


class SessionManager:
    """Mint and validate signed, time-bounded session tokens.

    Verification is a pure function of the token plus one account lookup and
    holds no mutable state, so one instance is shared by all request threads.
    """

    def __init__(
        self,
        key: SigningKey,
        store: AccountStore,
        lifetime_seconds: int = 24 * 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._key = key
        self._store = store
        self.lifetime_seconds = lifetime_seconds
        self._clock = clock

    def issue(self, account_id: int) -> IssuedSession:
        """Encode a signed token for account_id expiring lifetime_seconds from now."""
        now = int(self._clock())
        expires = now + self.lifetime_seconds
        payload = {
            "sub": str(account_id),
            "iat": now,
            "exp": expires,
        }
        token = jwt.encode(payload, self._key.secret, algorithm=_ALGORITHM)
        return IssuedSession(
            token=token,
            expires_at=datetime.fromtimestamp(expires, tz=timezone.utc),
            max_age=self.lifetime_seconds,
        )

    def verify(self, token: str) -> VerifiedSession:
        """Return the live session for token or raise TokenInvalidError.

        Store outages propagate as DependencyUnavailableError: an unreachable
        store is not the same thing as an invalid token.
        """
        account_id, expires = self._decode(token)
        if not self._clock() < expires:
            self._reject("expired")

        account = self._store.find_by_id(account_id)
        if account is None:
            self._reject("account no longer exists")
        return VerifiedSession(
            account=account,
            expires_at=datetime.fromtimestamp(expires, tz=timezone.utc),
        )

    def _decode(self, token: str) -> tuple[int, int]:
        segments = token.split(".") if token else []
        if len(segments) != 3 or not all(_is_canonical_segment(s) for s in segments):
            self._reject("malformed token")
        try:
            payload = jwt.decode(
                token,
                self._key.secret,
                algorithms=[_ALGORITHM],
                # exp is checked in verify() against the injected clock, never wall time.
                options={"verify_exp": False, "require_sub": True},
            )
        except JOSEError as exc:
            self._reject(f"signature or payload rejected: {exc}")

        sub = payload.get("sub")
        exp = payload.get("exp")
        if not isinstance(sub, str) or not sub.isdigit():
            self._reject("subject is not an account id")
        if not isinstance(exp, int) or isinstance(exp, bool):
            self._reject("expiry is not an integer timestamp")
        return int(sub), exp

    @staticmethod
    def _reject(cause: str) -> NoReturn:
        logger.debug("Session token rejected: %s", cause)
        raise TokenInvalidError(cause=cause)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, session: IssuedSession, secure: bool) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation.
    secure: only sent over HTTPS; on everywhere except local development.
    max_age: matches the token lifetime so both expire together.
    """
    response.set_cookie(
        SESSION_COOKIE,
        value=session.token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=session.max_age,
    )


def clear_session_cookie(response, secure: bool) -> None:
    """Tell the client to drop the session cookie. No server-side state changes."""
    response.delete_cookie(SESSION_COOKIE, httponly=True, samesite="lax", secure=secure)
