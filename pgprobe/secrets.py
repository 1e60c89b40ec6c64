"""Vault AppRole authentication and credential enrichment."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, runtime_checkable

import hvac
import hvac.exceptions
import requests

from .config import SECRET_PATH, DatabaseConfig, RunSettings

LOG = logging.getLogger(__name__)

ROLE_ID_ENV = "APPROLE_ROLE_ID"
SECRET_ID_ENV = "APPROLE_SECRET_ID"

SecretPayload = bytes | str | Mapping[str, Any]


class MissingEnvironmentError(RuntimeError):
    """Raised when neither AppRole environment variable is set."""


class AuthenticationError(RuntimeError):
    """Raised when the secret store rejects the AppRole login."""


@dataclass(frozen=True, slots=True)
class AppRoleCredentials:
    """Role/secret id pair used once to log in to Vault."""

    role_id: str | None
    secret_id: str | None = field(default=None, repr=False)


@runtime_checkable
class SecretStore(Protocol):
    """Path-addressed read access to a secret store."""

    def read(self, path: str) -> SecretPayload | None:
        """Return the raw secret response, or ``None`` when unavailable."""


def credentials_from_env(environ: Mapping[str, str]) -> AppRoleCredentials:
    """Collect AppRole credentials before any file or network I/O.

    Only aborts when *both* variables are absent; a single missing value is
    passed through and left for Vault to reject.
    """

    role_id = environ.get(ROLE_ID_ENV) or None
    secret_id = environ.get(SECRET_ID_ENV) or None
    if role_id is None and secret_id is None:
        raise MissingEnvironmentError(
            f"{ROLE_ID_ENV} and {SECRET_ID_ENV} environment variables must be set"
        )
    return AppRoleCredentials(role_id=role_id, secret_id=secret_id)


class VaultSecretStore:
    """Secret store backed by HashiCorp Vault's KV v2 engine."""

    def __init__(
        self,
        settings: RunSettings,
        credentials: AppRoleCredentials,
        *,
        client: hvac.Client | None = None,
    ) -> None:
        self._credentials = credentials
        self._mount_point = settings.secret_mount
        self._client = client or hvac.Client(url=settings.vault_url, verify=settings.vault_tls)

    def login(self) -> None:
        """Exchange the AppRole pair for a client token."""

        try:
            self._client.auth.approle.login(
                role_id=self._credentials.role_id,
                secret_id=self._credentials.secret_id,
            )
            authenticated = self._client.is_authenticated()
        except (hvac.exceptions.VaultError, requests.exceptions.RequestException) as exc:
            raise AuthenticationError(f"AppRole login to {self._client.url} failed: {exc}") from exc
        if not authenticated:
            raise AuthenticationError(f"Vault at {self._client.url} did not accept the AppRole token")

    def authenticate(self) -> bool:
        """Log in with the AppRole pair; ``False`` when Vault says no."""

        try:
            self.login()
        except AuthenticationError as exc:
            LOG.info("AppRole login failed")
            LOG.debug(str(exc))
            return False
        return True

    def read(self, path: str) -> SecretPayload | None:
        try:
            return self._client.secrets.kv.v2.read_secret_version(
                path=path,
                mount_point=self._mount_point,
                raise_on_deleted_version=True,
            )
        except (hvac.exceptions.VaultError, requests.exceptions.RequestException) as exc:
            LOG.info("Secret lookup failed", extra={"path": path, "error": type(exc).__name__})
            LOG.debug(str(exc))
            return None


def enrich_with_secrets(
    config: DatabaseConfig,
    store: SecretStore,
    path: str = SECRET_PATH,
) -> DatabaseConfig:
    """Overlay username/password with values found in the secret at ``path``.

    The lookup keys are the *current* username and password values, not the
    literal field names. Misses keep the original value and never raise.
    """

    payload = store.read(path)
    if not payload:
        LOG.debug("No secret returned", extra={"path": path})
        return config
    secrets = _secret_data(payload)
    updates: dict[str, str] = {}
    username = secrets.get(config.username)
    if isinstance(username, str):
        updates["username"] = username
    password = secrets.get(config.password)
    if isinstance(password, str):
        updates["password"] = password
    if not updates:
        return config
    LOG.debug("Applied secret overlay", extra={"path": path, "fields": sorted(updates)})
    return config.model_copy(update=updates)


def _secret_data(payload: SecretPayload) -> Mapping[str, Any]:
    if isinstance(payload, (bytes, str)):
        try:
            document = json.loads(payload)
        except ValueError:
            LOG.info("Secret payload is not valid JSON")
            return {}
    else:
        document = payload
    data = document.get("data") if isinstance(document, Mapping) else None
    inner = data.get("data") if isinstance(data, Mapping) else None
    if not isinstance(inner, Mapping):
        LOG.info("Secret payload has no data.data mapping")
        return {}
    return inner


__all__ = [
    "AppRoleCredentials",
    "AuthenticationError",
    "MissingEnvironmentError",
    "SecretStore",
    "VaultSecretStore",
    "credentials_from_env",
    "enrich_with_secrets",
]
