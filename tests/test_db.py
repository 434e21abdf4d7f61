# tests/test_db.py

from __future__ import annotations

import pytest

from taskapi.core import db


@pytest.mark.parametrize(
    ("status", "expected"),
    [("UPDATE 3", 3), ("DELETE 0", 0), ("INSERT 0 1", 1), ("CREATE TABLE", 0), ("", 0)],
)
def test_affected_rows_parses_status_tag(status: str, expected: int) -> None:
    assert db.affected_rows(status) == expected


def test_database_url_drops_sslmode(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@host:5432/tasks?sslmode=require&application_name=api")

    assert db.database_url() == "postgresql://u:p@host:5432/tasks?application_name=api"


def test_database_url_is_required(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)

    with pytest.raises(RuntimeError):
        db.database_url()


def test_pool_must_be_initialised_first() -> None:
    with pytest.raises(RuntimeError):
        db.pool()
