from __future__ import annotations

import pytest

from auth import (AuthBackendError, Authenticator, InvalidCredentials,
                  hash_password, verify_password)
from database import StoreUnavailable


def test_hash_is_salted_and_verifies() -> None:
    first = hash_password("p@ss")
    second = hash_password("p@ss")

    assert first != "p@ss"
    assert first != second
    assert verify_password(first, "p@ss")
    assert not verify_password(first, "wrong")


def test_authenticate_returns_user(users, make_user) -> None:
    created = make_user("alice", "p@ss", "user")

    user = Authenticator(users).authenticate("alice", "p@ss")

    assert user.id == created.id
    assert user.role == "user"


def test_unknown_username_is_invalid(users) -> None:
    with pytest.raises(InvalidCredentials):
        Authenticator(users).authenticate("ghost", "whatever")


def test_wrong_password_is_invalid(users, make_user) -> None:
    make_user("alice", "p@ss")

    with pytest.raises(InvalidCredentials):
        Authenticator(users).authenticate("alice", "nope")


def test_username_match_is_exact(users, make_user) -> None:
    make_user("alice", "p@ss")

    with pytest.raises(InvalidCredentials):
        Authenticator(users).authenticate("Alice", "p@ss")


def test_missing_credentials_skip_the_lookup() -> None:
    class ExplodingStore:
        def find_by_username(self, username):
            raise AssertionError("store should not be queried")

    authenticator = Authenticator(ExplodingStore())
    with pytest.raises(InvalidCredentials):
        authenticator.authenticate("", "p@ss")
    with pytest.raises(InvalidCredentials):
        authenticator.authenticate("alice", "")


def test_store_failure_is_not_invalid_credentials() -> None:
    class DownStore:
        def find_by_username(self, username):
            raise StoreUnavailable("connection refused")

    with pytest.raises(AuthBackendError) as excinfo:
        Authenticator(DownStore()).authenticate("alice", "p@ss")

    assert not isinstance(excinfo.value, InvalidCredentials)
    assert isinstance(excinfo.value.__cause__, StoreUnavailable)
