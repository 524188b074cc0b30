"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores, the session
manager and routes do the work; these only own the shape.

Layer rule: no imports from api/ or throttle/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Account:
    """A persisted identity.

    id is assigned by the store and never changes. username is unique and
    case-sensitive. password_hash is a bcrypt digest; the plaintext is never
    stored or logged.
    """

    username: str
    password_hash: str
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class IssuedSession:
    """A freshly minted session token and its absolute expiry (UTC)."""

    token: str
    expires_at: datetime
    max_age: int  # seconds; mirrors the token lifetime for the cookie


@dataclass(frozen=True)
class VerifiedSession:
    """Result of a successful token verification."""

    account: Account
    expires_at: datetime

    @property
    def account_id(self) -> int:
        return self.account.id
