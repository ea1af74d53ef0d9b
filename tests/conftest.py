from __future__ import annotations

import pytest
from flask import Flask

from app import create_app
from auth import hash_password
from config import Config
from user import User


@pytest.fixture()
def config(tmp_path) -> Config:
    return Config(
        secret_key="test-secret",
        database_url=f"sqlite:///{tmp_path / 'authdesk.db'}",
        pool_size=5,
        max_overflow=5,
        pool_timeout=5,
    )


@pytest.fixture()
def app(config: Config) -> Flask:
    app = create_app(config)
    app.config.update(TESTING=True)
    yield app
    app.extensions["db_engine"].dispose()


@pytest.fixture()
def client(app: Flask):
    return app.test_client()


@pytest.fixture()
def users(app: Flask):
    return app.extensions["user_store"]


@pytest.fixture()
def session_store(app: Flask):
    return app.extensions["session_store"]


@pytest.fixture()
def make_user(users):
    def _make(username: str, password: str, role: str = "user") -> User:
        return users.create(username, hash_password(password), role)

    return _make


@pytest.fixture()
def admin(make_user) -> User:
    return make_user("root", "rootpass", "admin")


@pytest.fixture()
def login():
    def _login(client, username: str, password: str):
        return client.post("/login", data={"username": username, "password": password})

    return _login
