"""Launch a sample PostgreSQL Docker container and point config.json at it."""

from __future__ import annotations

import argparse
import json
import subprocess
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pgprobe.config import CONFIG_FILE, DatabaseConfig

DEFAULT_CONTAINER = "pgprobe-sample-db"
DEFAULT_PORT = 5543
DEFAULT_PASSWORD = "pgprobe"
DEFAULT_DB = "pgprobe_demo"
DEFAULT_USER = "pgprobe"
DOCKER_IMAGE = "postgres:16-alpine"


def run(cmd: list[str], *, check: bool = True, **kwargs) -> subprocess.CompletedProcess[str]:
    print("$", " ".join(cmd))
    return subprocess.run(cmd, check=check, text=True, **kwargs)


def container_exists(name: str) -> bool:
    result = subprocess.run(
        ["docker", "ps", "-a", "--filter", f"name={name}", "--format", "{{.ID}}"],
        text=True,
        capture_output=True,
    )
    return bool(result.stdout.strip())


def start_container(name: str, port: int, password: str, database: str, user: str) -> None:
    if container_exists(name):
        print(f"Container '{name}' already exists. Reusing it.")
        run(["docker", "start", name], check=False)
    else:
        run(
            [
                "docker",
                "run",
                "-d",
                "--name",
                name,
                "-e",
                f"POSTGRES_PASSWORD={password}",
                "-e",
                f"POSTGRES_DB={database}",
                "-e",
                f"POSTGRES_USER={user}",
                "-p",
                f"{port}:5432",
                DOCKER_IMAGE,
            ]
        )
    wait_for_start(name, user)


def wait_for_start(name: str, user: str, retries: int = 15, delay: float = 1.0) -> None:
    for _ in range(retries):
        result = subprocess.run(["docker", "exec", name, "pg_isready", "-U", user], text=True)
        if result.returncode == 0:
            return
        time.sleep(delay)
    print("Warning: database did not report ready state; continuing anyway.")


def write_config(path: Path, port: int, user: str, database: str, password: str, *, force: bool) -> None:
    if path.exists() and not force:
        print(f"{path} already exists; leaving as-is (use --force to overwrite).")
        return
    config = DatabaseConfig(port=port, host="localhost", database=database, username=user, password=password)
    path.write_text(json.dumps({"database": config.model_dump()}, indent=2) + "\n", encoding="utf-8")
    print(f"Wrote database settings to {path}.")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--container", default=DEFAULT_CONTAINER, help="Docker container name")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Host port to expose Postgres on")
    parser.add_argument("--password", default=DEFAULT_PASSWORD, help="Postgres password")
    parser.add_argument("--database", default=DEFAULT_DB, help="Database name to create")
    parser.add_argument("--user", default=DEFAULT_USER, help="Database user")
    parser.add_argument("--config", type=Path, default=CONFIG_FILE, help="config.json to write")
    parser.add_argument("--force", action="store_true", help="Overwrite an existing config file")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    try:
        start_container(args.container, args.port, args.password, args.database, args.user)
    except FileNotFoundError:
        print("Docker is not installed or not on PATH.")
        return 1
    write_config(args.config, args.port, args.user, args.database, args.password, force=args.force)
    print("Sample database is ready. Run `python -m pgprobe --no-secrets` to check it.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
