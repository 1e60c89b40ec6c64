"""Database configuration loading and connection string helpers."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, ValidationError

if TYPE_CHECKING:
    from .secrets import SecretStore

LOG = logging.getLogger(__name__)

CONFIG_FILE = Path("config.json")
VAULT_HOST = "dynamic-secrets-vault"
VAULT_PORT = 8200
SECRET_PATH = "database"
SECRET_MOUNT = "secret"

HostKey = Literal["host", "hostaddr"]


class ConfigLoadError(ValueError):
    """Raised when config.json is missing, unreadable or malformed."""


class DatabaseConfig(BaseModel):
    """Connection settings stored under the "database" key of config.json."""

    model_config = ConfigDict(strict=True, extra="ignore")

    port: int
    host: str
    database: str
    username: str
    password: str

    def with_secrets(self, store: SecretStore, path: str = SECRET_PATH) -> DatabaseConfig:
        """Return a copy with credentials overlaid from the secret store."""

        from .secrets import enrich_with_secrets

        return enrich_with_secrets(self, store, path)

    def connection_string(self, host_key: HostKey = "host") -> str:
        """Render the libpq-style key=value connection string."""

        return connection_string(self, host_key)


class RunSettings(BaseModel):
    """Knobs for a single probe run; CLI flags map onto these fields."""

    config_path: Path = CONFIG_FILE
    secrets_enabled: bool = True
    vault_host: str = VAULT_HOST
    vault_port: int = VAULT_PORT
    vault_tls: bool = False
    secret_path: str = SECRET_PATH
    secret_mount: str = SECRET_MOUNT
    host_key: HostKey = "host"
    connect_timeout: float | None = None

    @property
    def vault_url(self) -> str:
        scheme = "https" if self.vault_tls else "http"
        return f"{scheme}://{self.vault_host}:{self.vault_port}"


def load_database_config(path: Path | str = CONFIG_FILE) -> DatabaseConfig:
    """Read ``path`` and validate the object stored under its "database" key.

    No defaults are substituted: every field must be present and well typed.
    """

    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"Unable to read {path}: {exc}") from exc
    try:
        document = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigLoadError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(document, dict):
        raise ConfigLoadError(f"Expected a JSON object at the top of {path}")
    section = document.get("database")
    if not isinstance(section, dict):
        raise ConfigLoadError(f"Missing 'database' object in {path}")
    try:
        config = DatabaseConfig.model_validate(section)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(part) for part in error["loc"]) for error in exc.errors())
        raise ConfigLoadError(f"Invalid database config in {path}: {fields}") from exc
    LOG.debug("Loaded database config", extra={"path": str(path), "host": config.host})
    return config


def connection_string(config: DatabaseConfig, host_key: HostKey = "host") -> str:
    # Values are operator controlled; nothing is quoted or escaped.
    return " ".join(
        (
            f"{host_key}={config.host}",
            f"port={config.port}",
            f"user={config.username}",
            f"password={config.password}",
            f"dbname={config.database}",
        )
    )


__all__ = [
    "CONFIG_FILE",
    "ConfigLoadError",
    "DatabaseConfig",
    "HostKey",
    "RunSettings",
    "connection_string",
    "load_database_config",
]
