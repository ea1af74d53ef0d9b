from __future__ import annotations

from datetime import timedelta

import pytest

from auth import verify_password
from database import ConstraintViolation, StoreUnavailable
from sessions import SessionStore, utcnow


def test_create_and_get_user(users) -> None:
    created = users.create("alice", "hash", "user")

    fetched = users.get(created.id)

    assert fetched.username == "alice"
    assert fetched.password_hash == "hash"
    assert fetched.role == "user"
    assert not fetched.is_admin
    assert fetched.get_id() == str(created.id)


def test_get_missing_user_returns_none(users) -> None:
    assert users.get(12345) is None
    assert users.find_by_username("nobody") is None


def test_duplicate_username_is_rejected(users) -> None:
    users.create("alice", "hash", "user")

    with pytest.raises(ConstraintViolation):
        users.create("alice", "other", "admin")
    assert users.count() == 1


def test_missing_password_is_rejected(users) -> None:
    with pytest.raises(ConstraintViolation):
        users.create("alice", None, "user")
    assert users.count() == 0


def test_query_failure_raises_store_unavailable(app, users) -> None:
    with app.extensions["db_engine"].begin() as conn:
        conn.exec_driver_sql("DROP TABLE appusers")

    with pytest.raises(StoreUnavailable):
        users.find_by_username("alice")


def test_session_roundtrip_and_destroy(session_store: SessionStore) -> None:
    session_store.save("sid-1", '{"_user_id": "1"}', 1, utcnow() + timedelta(hours=1))

    assert session_store.load("sid-1") == '{"_user_id": "1"}'

    session_store.save("sid-1", '{"_user_id": "2"}', 2, utcnow() + timedelta(hours=1))
    assert session_store.load("sid-1") == '{"_user_id": "2"}'
    assert session_store.count() == 1

    session_store.destroy("sid-1")
    assert session_store.load("sid-1") is None
    assert session_store.count() == 0


def test_expired_session_does_not_load(session_store: SessionStore) -> None:
    session_store.save("old", "{}", None, utcnow() - timedelta(seconds=1))

    assert session_store.load("old") is None


def test_prune_removes_only_expired(session_store: SessionStore) -> None:
    session_store.save("old", "{}", None, utcnow() - timedelta(minutes=5))
    session_store.save("live", "{}", None, utcnow() + timedelta(minutes=5))

    assert session_store.prune() == 1
    assert session_store.load("live") == "{}"
    assert session_store.count() == 1


def test_stored_hash_verifies(users, make_user) -> None:
    make_user("alice", "p@ss")

    stored = users.find_by_username("alice")
    assert stored.password_hash != "p@ss"
    assert verify_password(stored.password_hash, "p@ss")
