"""
auth/passwords.py -- Password hashing and credential verification.

Security design decisions:
  bcrypt used directly (no passlib wrapper). Its cost factor makes brute-force
  expensive for low-entropy secrets, and checkpw() compares digests in
  constant time. The cost factor is configuration (BCRYPT_ROUNDS), passed in
  explicitly, never hardcoded at call sites.

  bcrypt only reads the first 72 bytes of a password and current releases
  raise ValueError beyond that. auth/forms.py rejects longer passwords during
  input validation so nothing is silently truncated.

  Timing equalization: CredentialVerifier runs a full bcrypt comparison
  against a dummy hash when the username does not exist, so response time
  does not reveal whether an account exists. The dummy hash is computed once
  at construction with the configured cost, so the first sign-in attempt is
  not measurably slower than later ones and both paths pay the same work
  factor.

Layer rule: no imports from api/ or throttle/.
"""

from __future__ import annotations

import logging

import bcrypt

from auth.models import Account
from auth.store import AccountStore
from core.errors import InvalidCredentialsError

logger = logging.getLogger("gatehouse.auth")

_DUMMY_PASSWORD = "gatehouse_timing_dummy"


class PasswordHasher:
    """Salted, adaptive one-way hashing with a fixed configured cost."""

    def __init__(self, rounds: int = 10) -> None:
        self.rounds = rounds

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of the given plaintext password."""
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if the plaintext password matches the bcrypt hash.

        A corrupt stored hash is treated as a mismatch, not a server error.
        """
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            logger.warning("Stored password hash could not be parsed")
            return False


class CredentialVerifier:
    """Prove that a username/password pair belongs to a stored Account."""

    def __init__(self, store: AccountStore, hasher: PasswordHasher) -> None:
        self._store = store
        self._hasher = hasher
        self._dummy_hash = hasher.hash(_DUMMY_PASSWORD)

    def verify(self, username: str, password: str) -> Account:
        """Return the matching Account or raise InvalidCredentialsError.

        Always runs bcrypt whether or not the user exists:
        - Unknown username: bcrypt runs against the dummy hash
        - Wrong password: bcrypt runs against the real hash
        Both raise the same error with the same message.
        """
        account = self._store.find_by_username(username)
        if account is None:
            # Equalize timing -- do NOT return before running bcrypt.
            self._hasher.verify(password, self._dummy_hash)
            raise InvalidCredentialsError(cause="unknown username")
        if not self._hasher.verify(password, account.password_hash):
            raise InvalidCredentialsError(cause="password mismatch")
        return account
