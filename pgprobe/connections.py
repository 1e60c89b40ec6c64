"""Database driver backends used for the connectivity check."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

import asyncpg

LOG = logging.getLogger(__name__)


class ConnectionBackendError(RuntimeError):
    """Raised when a driver cannot open a connection."""


@dataclass(frozen=True, slots=True)
class ConnectionStatus:
    """Outcome of a single connection attempt."""

    is_open: bool
    latency_ms: int
    checked_at: datetime
    server_version: str | None = None


@runtime_checkable
class DatabaseDriver(Protocol):
    """Protocol implemented by database drivers."""

    def connect(self, conn_string: str) -> ConnectionStatus:
        """Open a connection described by ``conn_string`` and report its state."""


def parse_connection_string(conn_string: str) -> dict[str, str]:
    """Split a space separated ``key=value`` string into a mapping."""

    params: dict[str, str] = {}
    for token in conn_string.split():
        key, sep, value = token.partition("=")
        if not sep or not key:
            raise ConnectionBackendError(f"Malformed connection string token: '{key or token}'")
        params[key] = value
    return params


class AsyncpgDriver:
    """Driver that opens a PostgreSQL connection via asyncpg."""

    _KEYWORDS = {
        "host": "host",
        "hostaddr": "host",
        "port": "port",
        "user": "user",
        "password": "password",
        "dbname": "database",
    }

    def __init__(self, *, connect_timeout: float | None = None) -> None:
        self._connect_timeout = connect_timeout

    def connect(self, conn_string: str) -> ConnectionStatus:
        kwargs = self._connect_kwargs(conn_string)
        return asyncio.run(self._probe(kwargs))

    def _connect_kwargs(self, conn_string: str) -> dict[str, object]:
        kwargs: dict[str, object] = {}
        for key, value in parse_connection_string(conn_string).items():
            target = self._KEYWORDS.get(key)
            if target is None:
                LOG.debug("Ignoring unsupported connection keyword", extra={"keyword": key})
                continue
            if target == "port":
                try:
                    kwargs[target] = int(value)
                except ValueError as exc:
                    raise ConnectionBackendError(f"Invalid port '{value}'") from exc
            else:
                kwargs[target] = value
        if self._connect_timeout is not None:
            kwargs["timeout"] = self._connect_timeout
        return kwargs

    async def _probe(self, kwargs: dict[str, object]) -> ConnectionStatus:
        started = time.perf_counter()
        try:
            conn = await asyncpg.connect(**kwargs)
        except Exception as exc:
            raise ConnectionBackendError(f"Failed to connect to '{kwargs.get('host')}': {exc}") from exc
        try:
            is_open = not conn.is_closed()
            version = conn.get_server_version() if is_open else None
        finally:
            await conn.close()
        latency_ms = int((time.perf_counter() - started) * 1000)
        server_version = _format_version(version)
        LOG.debug(
            "Connection attempt finished",
            extra={"open": is_open, "latency_ms": latency_ms, "server_version": server_version},
        )
        return ConnectionStatus(
            is_open=is_open,
            latency_ms=latency_ms,
            checked_at=datetime.now(tz=timezone.utc),
            server_version=server_version,
        )


def check_connectivity(driver: DatabaseDriver, conn_string: str) -> bool:
    """Return whether ``driver`` reports an open connection."""

    return driver.connect(conn_string).is_open


def _format_version(version: object) -> str | None:
    if version is None:
        return None
    major = getattr(version, "major", None)
    minor = getattr(version, "minor", None)
    if major is None:
        return str(version)
    return f"{major}.{minor}" if minor is not None else str(major)


__all__ = [
    "AsyncpgDriver",
    "ConnectionBackendError",
    "ConnectionStatus",
    "DatabaseDriver",
    "check_connectivity",
    "parse_connection_string",
]
