"""Tests for the database drivers."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import pytest

from pgprobe.connections import (
    AsyncpgDriver,
    ConnectionBackendError,
    ConnectionStatus,
    DatabaseDriver,
    check_connectivity,
    parse_connection_string,
)

CONN_STRING = "host=db.internal port=5432 user=app password=hunter2 dbname=orders"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class _Version:
    major = 16
    minor = 2


class _FakeConnection:
    def __init__(self, *, closed: bool = False) -> None:
        self._closed = closed
        self.close_calls = 0

    def is_closed(self) -> bool:
        return self._closed

    def get_server_version(self) -> _Version:
        return _Version()

    async def close(self) -> None:
        self.close_calls += 1
        self._closed = True


def test_parse_connection_string_splits_tokens() -> None:
    assert parse_connection_string(CONN_STRING) == {
        "host": "db.internal",
        "port": "5432",
        "user": "app",
        "password": "hunter2",
        "dbname": "orders",
    }


def test_parse_connection_string_keeps_equals_in_values() -> None:
    assert parse_connection_string("password=a=b")["password"] == "a=b"


@pytest.mark.parametrize("text", ["host", "=value", "host=db junk"])
def test_parse_connection_string_rejects_malformed_tokens(text: str) -> None:
    with pytest.raises(ConnectionBackendError):
        parse_connection_string(text)


def test_asyncpg_driver_maps_keywords(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict[str, Any] = {}
    fake_conn = _FakeConnection()

    async def _fake_connect(**kwargs: Any) -> _FakeConnection:
        seen.update(kwargs)
        return fake_conn

    monkeypatch.setattr("pgprobe.connections.asyncpg.connect", _fake_connect)
    driver = AsyncpgDriver(connect_timeout=2.5)

    status = driver.connect(CONN_STRING)

    assert seen == {
        "host": "db.internal",
        "port": 5432,
        "user": "app",
        "password": "hunter2",
        "database": "orders",
        "timeout": 2.5,
    }
    assert status.is_open is True
    assert status.server_version == "16.2"
    assert fake_conn.close_calls == 1
    assert isinstance(driver, DatabaseDriver)


def test_asyncpg_driver_accepts_hostaddr(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict[str, Any] = {}

    async def _fake_connect(**kwargs: Any) -> _FakeConnection:
        seen.update(kwargs)
        return _FakeConnection()

    monkeypatch.setattr("pgprobe.connections.asyncpg.connect", _fake_connect)

    AsyncpgDriver().connect("hostaddr=10.0.0.5 port=5432 user=u password=p dbname=d")

    assert seen["host"] == "10.0.0.5"
    assert "timeout" not in seen


def test_asyncpg_driver_rejects_non_numeric_port() -> None:
    with pytest.raises(ConnectionBackendError, match="Invalid port"):
        AsyncpgDriver().connect("host=db port=abc user=u password=p dbname=d")


def test_asyncpg_driver_surfaces_connection_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _broken_connect(**kwargs: Any) -> None:
        raise OSError("connection refused")

    monkeypatch.setattr("pgprobe.connections.asyncpg.connect", _broken_connect)

    with pytest.raises(ConnectionBackendError, match="connection refused"):
        AsyncpgDriver().connect(CONN_STRING)


@pytest.mark.anyio
async def test_probe_reports_closed_handle(monkeypatch: pytest.MonkeyPatch) -> None:
    fake_conn = _FakeConnection(closed=True)

    async def _fake_connect(**kwargs: Any) -> _FakeConnection:
        return fake_conn

    monkeypatch.setattr("pgprobe.connections.asyncpg.connect", _fake_connect)

    status = await AsyncpgDriver()._probe({"host": "db"})

    assert status.is_open is False
    assert status.server_version is None
    assert status.latency_ms >= 0
    assert fake_conn.close_calls == 1


class _StubDriver:
    def __init__(self, is_open: bool) -> None:
        self.is_open = is_open
        self.seen: list[str] = []

    def connect(self, conn_string: str) -> ConnectionStatus:
        self.seen.append(conn_string)
        return ConnectionStatus(is_open=self.is_open, latency_ms=1, checked_at=datetime.now(tz=timezone.utc))


@pytest.mark.parametrize("is_open", [True, False])
def test_check_connectivity_returns_driver_state(is_open: bool) -> None:
    driver = _StubDriver(is_open)

    assert check_connectivity(driver, CONN_STRING) is is_open
    assert driver.seen == [CONN_STRING]


def test_asyncpg_driver_logs_server_version(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    async def _fake_connect(**kwargs: Any) -> _FakeConnection:
        return _FakeConnection()

    monkeypatch.setattr("pgprobe.connections.asyncpg.connect", _fake_connect)

    with caplog.at_level(logging.DEBUG, logger="pgprobe.connections"):
        AsyncpgDriver().connect(CONN_STRING)

    finished = [record for record in caplog.records if record.getMessage() == "Connection attempt finished"]
    assert finished[0].server_version == "16.2"
