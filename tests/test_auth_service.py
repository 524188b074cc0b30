"""Unit tests for auth/service.py -- the sign-in / sign-up orchestrator.

Covers the end-to-end scenarios:
- alice signs up, gets a token that verifies to her new account id
- a second alice sign-up is rejected with no new row and no token
- six sign-ins in one window: the sixth is throttled even with the right password
- malformed input is rejected before any quota is consumed
- failed credential checks still count against the quota
- a counter-store outage fails closed
- an account-store outage fails hard on sign-in, sign-up and session lookup
- a store-level uniqueness race surfaces as DuplicateAccountError
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from auth.service import AuthService
from core.errors import (
    DependencyUnavailableError,
    DuplicateAccountError,
    InvalidCredentialsError,
    InvalidInputError,
    ThrottledError,
)
from throttle.limiter import Purpose, RateDecision

IP = "203.0.113.7"


class TestSignUp:
    def test_sign_up_creates_account_and_session(self, auth_service: AuthService) -> None:
        account, session = auth_service.sign_up(IP, "alice", "hunter22")
        assert account.id is not None
        assert account.username == "alice"
        assert account.password_hash != "hunter22"
        assert auth_service.sessions.verify(session.token).account_id == account.id

    def test_second_sign_up_is_duplicate(self, account_store, service_factory) -> None:
        service = service_factory(account_store, sign_up_limit="5/15 minutes")
        service.sign_up(IP, "alice", "hunter22")
        with pytest.raises(DuplicateAccountError):
            service.sign_up("198.51.100.2", "alice", "another-pass")
        assert account_store.count() == 1

    def test_usernames_are_case_sensitive(self, account_store, service_factory) -> None:
        service = service_factory(account_store, sign_up_limit="5/15 minutes")
        service.sign_up(IP, "alice", "hunter22")
        account, _ = service.sign_up(IP, "Alice", "hunter22")
        assert account.username == "Alice"
        assert account_store.count() == 2

    def test_second_sign_up_from_same_address_is_throttled(self, auth_service: AuthService) -> None:
        auth_service.sign_up(IP, "alice", "hunter22")
        with pytest.raises(ThrottledError):
            auth_service.sign_up(IP, "bob", "hunter22")
        assert auth_service.store.find_by_username("bob") is None

    def test_unique_constraint_race_maps_to_duplicate(self, auth_service: AuthService, monkeypatch) -> None:
        # Simulate a concurrent winner: the pre-check sees nothing, the insert collides.
        auth_service.store.insert("alice", "x")
        monkeypatch.setattr(auth_service.store, "find_by_username", lambda username: None)
        with pytest.raises(DuplicateAccountError):
            auth_service.sign_up(IP, "alice", "hunter22")

    def test_short_password_rejected(self, auth_service: AuthService) -> None:
        with pytest.raises(InvalidInputError):
            auth_service.sign_up(IP, "alice", "short")


class TestSignIn:
    @pytest.fixture
    def service(self, account_store, service_factory) -> AuthService:
        service = service_factory(account_store)
        service.sign_up("192.0.2.1", "alice", "hunter22")
        return service

    def test_correct_password_issues_session(self, service: AuthService) -> None:
        account, session = service.sign_in(IP, "alice", "hunter22")
        assert service.sessions.verify(session.token).account_id == account.id

    def test_wrong_password_and_unknown_user_look_the_same(self, service: AuthService) -> None:
        with pytest.raises(InvalidCredentialsError) as wrong:
            service.sign_in(IP, "alice", "nope-nope")
        with pytest.raises(InvalidCredentialsError) as unknown:
            service.sign_in(IP, "mallory", "nope-nope")
        assert wrong.value.message == unknown.value.message

    def test_sixth_attempt_throttled_even_with_correct_password(self, service: AuthService) -> None:
        outcomes = []
        for password in ("hunter22", "wrong-1", "hunter22", "wrong-2", "hunter22"):
            try:
                service.sign_in(IP, "alice", password)
                outcomes.append("ok")
            except InvalidCredentialsError:
                outcomes.append("rejected")
        assert outcomes == ["ok", "rejected", "ok", "rejected", "ok"]

        with pytest.raises(ThrottledError) as exc:
            service.sign_in(IP, "alice", "hunter22")
        assert exc.value.retry_after is not None

    def test_failed_attempts_consume_quota(self, service: AuthService) -> None:
        for _ in range(5):
            with pytest.raises(InvalidCredentialsError):
                service.sign_in(IP, "alice", "wrong-password")
        assert service.limiter.attempts(Purpose.sign_in, IP) == 5
        with pytest.raises(ThrottledError):
            service.sign_in(IP, "alice", "hunter22")

    def test_throttled_attempt_does_not_touch_accounts(self, service: AuthService, monkeypatch) -> None:
        for _ in range(5):
            service.sign_in(IP, "alice", "hunter22")

        def fail(*args, **kwargs):
            raise AssertionError("account store consulted after denial")

        monkeypatch.setattr(service.verifier, "verify", fail)
        with pytest.raises(ThrottledError):
            service.sign_in(IP, "alice", "hunter22")

    def test_sign_in_does_not_touch_sign_up_quota(self, service: AuthService) -> None:
        for _ in range(5):
            service.sign_in(IP, "alice", "hunter22")
        account, _ = service.sign_up(IP, "bob", "hunter22")
        assert account.username == "bob"


class TestValidationBeforeQuota:
    @pytest.mark.parametrize(
        "username, password",
        [
            ("", "hunter22"),
            ("a" * 101, "hunter22"),
            ("has space", "hunter22"),
            ("tab\tname", "hunter22"),
            ("alice", ""),
            ("alice", "x" * 73),
        ],
    )
    def test_malformed_sign_in_spends_no_quota(self, auth_service: AuthService, username, password) -> None:
        for _ in range(10):
            with pytest.raises(InvalidInputError):
                auth_service.sign_in(IP, username, password)
        assert auth_service.limiter.attempts(Purpose.sign_in, IP) == 0

    def test_malformed_sign_up_spends_no_quota(self, auth_service: AuthService) -> None:
        with pytest.raises(InvalidInputError):
            auth_service.sign_up(IP, "alice", "short")
        account, _ = auth_service.sign_up(IP, "alice", "hunter22")
        assert account.username == "alice"

    def test_username_of_100_characters_is_accepted(self, auth_service: AuthService) -> None:
        account, _ = auth_service.sign_up(IP, "a" * 100, "hunter22")
        assert len(account.username) == 100


class TestFailClosed:
    def test_counter_outage_denies_sign_in(self, auth_service: AuthService, monkeypatch) -> None:
        monkeypatch.setattr(
            auth_service.limiter,
            "check_and_consume",
            lambda purpose, key: RateDecision(allowed=False, degraded=True),
        )
        with pytest.raises(DependencyUnavailableError):
            auth_service.sign_in(IP, "alice", "hunter22")

    def test_missing_identity_key_is_still_throttled(self, account_store, service_factory) -> None:
        service = service_factory(account_store)
        service.sign_up(None, "alice", "hunter22")
        with pytest.raises(ThrottledError):
            service.sign_up(None, "bob", "hunter22")


class TestAccountStoreOutage:
    @staticmethod
    def _refuse(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("unable to open database file"))

    def test_sign_in_fails_hard(self, auth_service: AuthService, monkeypatch) -> None:
        monkeypatch.setattr(auth_service.store.engine, "connect", self._refuse)
        with pytest.raises(DependencyUnavailableError):
            auth_service.sign_in(IP, "alice", "hunter22")

    def test_sign_up_fails_hard(self, auth_service: AuthService, monkeypatch) -> None:
        monkeypatch.setattr(auth_service.store.engine, "connect", self._refuse)
        with pytest.raises(DependencyUnavailableError):
            auth_service.sign_up(IP, "alice", "hunter22")

    def test_insert_failure_creates_nothing(self, auth_service: AuthService, monkeypatch) -> None:
        monkeypatch.setattr(auth_service.store.engine, "begin", self._refuse)
        with pytest.raises(DependencyUnavailableError):
            auth_service.sign_up(IP, "alice", "hunter22")
        monkeypatch.undo()
        assert auth_service.store.find_by_username("alice") is None

    def test_session_lookup_fails_hard(self, auth_service: AuthService, monkeypatch) -> None:
        _, session = auth_service.sign_up(IP, "alice", "hunter22")
        monkeypatch.setattr(auth_service.store.engine, "connect", self._refuse)
        with pytest.raises(DependencyUnavailableError):
            auth_service.current_session(session.token)
