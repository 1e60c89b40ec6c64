"""Command line entry point for pgprobe."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Callable, Mapping, Sequence, TextIO

from .config import CONFIG_FILE, SECRET_MOUNT, SECRET_PATH, VAULT_HOST, VAULT_PORT, RunSettings, load_database_config
from .connections import AsyncpgDriver, DatabaseDriver, check_connectivity
from .secrets import (
    AppRoleCredentials,
    MissingEnvironmentError,
    SecretStore,
    VaultSecretStore,
    credentials_from_env,
)

LOG = logging.getLogger(__name__)

CONNECTED = "Connected"
NOT_CONNECTED = "Could not connect"
AUTH_FAILED = "Unable to authenticate to Vault"
MISSING_ENV_STATUS = -1

StoreFactory = Callable[[RunSettings, AppRoleCredentials], VaultSecretStore]


def run(
    settings: RunSettings,
    *,
    driver: DatabaseDriver | None = None,
    store_factory: StoreFactory = VaultSecretStore,
    environ: Mapping[str, str] | None = None,
    out: TextIO | None = None,
) -> int:
    """Load, optionally enrich, connect and report; returns the exit status."""

    if out is None:
        out = sys.stdout
    driver = driver or AsyncpgDriver(connect_timeout=settings.connect_timeout)

    if not settings.secrets_enabled:
        _probe(settings, driver, out)
        return 0

    try:
        credentials = credentials_from_env(os.environ if environ is None else environ)
    except MissingEnvironmentError as exc:
        print(exc, file=out)
        return MISSING_ENV_STATUS

    store = store_factory(settings, credentials)
    if not store.authenticate():
        print(AUTH_FAILED, file=out)
        return 0

    try:
        _probe(settings, driver, out, store=store)
    except Exception as exc:
        LOG.debug("Probe failed", exc_info=True)
        print(exc, file=out)
    return 0


def _probe(
    settings: RunSettings,
    driver: DatabaseDriver,
    out: TextIO,
    *,
    store: SecretStore | None = None,
) -> None:
    config = load_database_config(settings.config_path)
    if store is not None:
        config = config.with_secrets(store, settings.secret_path)
    conn_string = config.connection_string(settings.host_key)
    if check_connectivity(driver, conn_string):
        print(CONNECTED, file=out)
    else:
        print(NOT_CONNECTED, file=out)


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="pgprobe",
        description="Check that the database described in config.json accepts connections.",
    )
    parser.add_argument("--config", type=Path, default=CONFIG_FILE, help="Path to the JSON config file")
    parser.add_argument(
        "--no-secrets",
        dest="secrets_enabled",
        action="store_false",
        help="Skip Vault and use the credentials from the config file as-is",
    )
    parser.add_argument("--vault-host", default=VAULT_HOST, help="Vault host name")
    parser.add_argument("--vault-port", type=int, default=VAULT_PORT, help="Vault port")
    parser.add_argument("--vault-tls", action="store_true", help="Talk to Vault over HTTPS")
    parser.add_argument("--secret-path", default=SECRET_PATH, help="KV secret holding the credentials")
    parser.add_argument("--secret-mount", default=SECRET_MOUNT, help="KV v2 mount point")
    parser.add_argument(
        "--hostaddr",
        dest="host_key",
        action="store_const",
        const="hostaddr",
        default="host",
        help="Emit hostaddr= instead of host= in the connection string",
    )
    parser.add_argument("--connect-timeout", type=float, default=None, help="Connection timeout in seconds")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging on stderr")
    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace) -> RunSettings:
    return RunSettings(
        config_path=args.config,
        secrets_enabled=args.secrets_enabled,
        vault_host=args.vault_host,
        vault_port=args.vault_port,
        vault_tls=args.vault_tls,
        secret_path=args.secret_path,
        secret_mount=args.secret_mount,
        host_key=args.host_key,
        connect_timeout=args.connect_timeout,
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Run a single connectivity probe."""

    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    return run(settings_from_args(args))


if __name__ == "__main__":
    raise SystemExit(main())
