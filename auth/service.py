"""
auth/service.py -- Sign-in, sign-up and sign-out orchestration.

Per-request state machine, nothing persisted between requests:

  SIGN-IN:  validate -> rate check -> credential check -> issue session
  SIGN-UP:  validate -> rate check -> uniqueness check -> hash password
            -> create account -> issue session
  SIGN-OUT: clear the client cookie (no server-side state is touched)

Every step is terminal on first failure and nothing is retried. Validation
comes first so malformed requests never consume quota. Once the rate check
admits an attempt the hit stays counted whatever happens next.

Failures are raised as the core.errors taxonomy; api/main.py turns them into
responses. Nothing here is allowed to leak whether a username exists on the
sign-in path.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from auth.forms import parse_credentials, parse_new_account
from auth.models import Account, IssuedSession, VerifiedSession
from auth.passwords import CredentialVerifier, PasswordHasher
from auth.sessions import SessionManager, SigningKey, clear_session_cookie
from auth.store import AccountStore
from core.config import Settings
from core.errors import DependencyUnavailableError, DuplicateAccountError, ThrottledError
from throttle.limiter import Purpose, RateLimiter
from throttle.store import CounterStore

logger = logging.getLogger("gatehouse.auth")


class AuthService:
    """The gateway's single entry point for authentication flows.

    Usage:
        service = AuthService(store, limiter, verifier, hasher, sessions)
        account, session = service.sign_up("203.0.113.7", "alice", "hunter22")
        account, session = service.sign_in("203.0.113.7", "alice", "hunter22")
    """

    def __init__(
        self,
        store: AccountStore,
        limiter: RateLimiter,
        verifier: CredentialVerifier,
        hasher: PasswordHasher,
        sessions: SessionManager,
        min_password_length: int = 8,
        secure_cookies: bool = True,
    ) -> None:
        self.store = store
        self.limiter = limiter
        self.verifier = verifier
        self.hasher = hasher
        self.sessions = sessions
        self.min_password_length = min_password_length
        self.secure_cookies = secure_cookies

    def sign_in(self, identity_key: str | None, username: str, password: str) -> tuple[Account, IssuedSession]:
        credentials = parse_credentials(username, password)
        self._admit(Purpose.sign_in, identity_key)
        account = self.verifier.verify(credentials.username, credentials.password)
        session = self.sessions.issue(account.id)
        logger.info("Sign-in succeeded for account %d", account.id)
        return account, session

    def sign_up(self, identity_key: str | None, username: str, password: str) -> tuple[Account, IssuedSession]:
        """Create an account and return it with a fresh session.

        The find_by_username() check gives the common case a clean error
        without paying for a bcrypt hash. The store's UNIQUE constraint
        catches the concurrent case and raises the same DuplicateAccountError.
        """
        credentials = parse_new_account(username, password, self.min_password_length)
        self._admit(Purpose.sign_up, identity_key)
        if self.store.find_by_username(credentials.username) is not None:
            raise DuplicateAccountError(cause="username exists")
        password_hash = self.hasher.hash(credentials.password)
        account = self.store.insert(credentials.username, password_hash)
        session = self.sessions.issue(account.id)
        logger.info("Account %d created for %r", account.id, account.username)
        return account, session

    def sign_out(self, response) -> None:
        """Drop the client's credential. The token itself stays valid until exp."""
        clear_session_cookie(response, secure=self.secure_cookies)

    def current_session(self, token: str) -> VerifiedSession:
        return self.sessions.verify(token)

    def _admit(self, purpose: Purpose, identity_key: str | None) -> None:
        decision = self.limiter.check_and_consume(purpose, identity_key)
        if decision.allowed:
            return
        if decision.degraded:
            raise DependencyUnavailableError(cause=f"counter store down during {purpose.value}")
        raise ThrottledError(retry_after=decision.retry_after, cause=f"{purpose.value} quota exhausted")


def build_auth_service(settings: Settings) -> AuthService:
    """Wire every collaborator from Settings. Called once from the API lifespan."""
    store = AccountStore(settings.database_url, timeout=settings.backend_timeout_seconds)
    counters = CounterStore(settings.rate_limit_storage_uri, timeout=settings.backend_timeout_seconds)
    limiter = RateLimiter(
        counters,
        {
            Purpose.sign_in: settings.sign_in_rate_limit,
            Purpose.sign_up: settings.sign_up_rate_limit,
        },
    )
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    sessions = SessionManager(
        SigningKey(settings.secret_key),
        store,
        lifetime_seconds=settings.session_expire_seconds,
    )
    return AuthService(
        store,
        limiter,
        CredentialVerifier(store, hasher),
        hasher,
        sessions,
        min_password_length=settings.min_password_length,
        secure_cookies=bool(settings.secure_cookies),
    )
