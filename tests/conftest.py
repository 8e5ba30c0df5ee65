# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from typing import Callable

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from taskboard.core.config import Settings
from taskboard.main import create_app

from .fakes import FakeClock, FakeRedis, FakeStorage, remote_images_transport


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """
    Settings pointing at a throwaway SQLite file.

    Storage URL/key are set so the app treats object storage as configured;
    the actual storage object is replaced with FakeStorage.
    """
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'taskboard.sqlite3'}",
        jwt_secret="test-secret",
        bcrypt_rounds=4,
        seed_default_user=False,
        storage_url="https://storage.test",
        storage_key="test-key",
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def redis(clock: FakeClock) -> FakeRedis:
    return FakeRedis(clock)


@pytest.fixture()
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture()
def app(settings: Settings, redis: FakeRedis, storage: FakeStorage, clock: FakeClock) -> FastAPI:
    return create_app(
        settings,
        redis=redis,
        storage=storage,
        http_client=httpx.AsyncClient(transport=remote_images_transport()),
        cache_timer=clock,
    )


@pytest.fixture()
def client(app: FastAPI):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def register_and_login(client: TestClient) -> Callable[..., tuple[str, dict[str, str]]]:
    """Register an account, log in, and return (user id, auth headers)."""

    def _register_and_login(
        email: str = "ana@example.com", password: str = "s3cret", name: str = "Ana"
    ) -> tuple[str, dict[str, str]]:
        res = client.post(
            "/auth/register", json={"name": name, "email": email, "password": password}
        )
        assert res.status_code == 201, res.text
        user_id = res.json()["id"]

        res = client.post("/auth/login", json={"email": email, "password": password})
        assert res.status_code == 200, res.text
        return user_id, {"Authorization": f"Bearer {res.json()['token']}"}

    return _register_and_login
