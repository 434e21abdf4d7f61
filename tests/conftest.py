# tests/conftest.py

from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from .fakes import FakeStore


@pytest.fixture()
def store(monkeypatch: pytest.MonkeyPatch) -> FakeStore:
    """
    In-memory store patched over both repository modules and `db`.

    Tests using it need no running PostgreSQL; see test_postgres.py for the real store.
    """
    monkeypatch.delenv("RECONCILE_ON_STARTUP", raising=False)
    monkeypatch.delenv("DEFAULT_TASK_LIMIT", raising=False)
    fake = FakeStore()
    fake.install(monkeypatch)
    return fake


@pytest.fixture()
def client(store: FakeStore) -> Iterator[TestClient]:
    from taskapi.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def make_user(client: TestClient):
    def _make(name: str = "Alice", email: str | None = None) -> dict:
        email = email or f"{name.lower().replace(' ', '.')}@example.com"
        resp = client.post("/users", json={"name": name, "email": email})
        assert resp.status_code == 201, resp.text
        return resp.json()["data"]

    return _make


@pytest.fixture()
def make_task(client: TestClient):
    def _make(name: str = "T", deadline: str = "2025-01-01", **extra) -> dict:
        resp = client.post("/tasks", json={"name": name, "deadline": deadline, **extra})
        assert resp.status_code == 201, resp.text
        return resp.json()["data"]

    return _make
