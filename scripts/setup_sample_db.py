"""Start a throwaway PostgreSQL container and seed it through psqlkit."""

from __future__ import annotations

import argparse
import subprocess
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from psqlkit import DatabaseConnectionError, PsqlkitError, Session
from psqlkit.config import CONFIG_FILE, ConnectorConfig, ServerProfileConfig, load_config, save_config

IMAGE = "postgres:16-alpine"

SCHEMA = (
    """CREATE TABLE IF NOT EXISTS accounts (
        id SERIAL PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        status TEXT NOT NULL DEFAULT 'active'
    )""",
    """CREATE TABLE IF NOT EXISTS orders (
        id SERIAL PRIMARY KEY,
        account_id INTEGER NOT NULL REFERENCES accounts(id),
        total NUMERIC(10, 2) NOT NULL
    )""",
)
ACCOUNTS = [["anna@example.com", "active"], ["ben@example.com", "active"], ["cara@example.com", "dormant"]]


def docker(*args: str) -> subprocess.CompletedProcess[str]:
    print("$ docker", " ".join(args))
    return subprocess.run(["docker", *args], text=True, capture_output=True)


def ensure_container(args: argparse.Namespace) -> None:
    """Start the named container, creating it on first use."""

    if docker("start", args.container).returncode == 0:
        return
    created = docker(
        "run", "-d", "--name", args.container,
        "-e", f"POSTGRES_USER={args.user}",
        "-e", f"POSTGRES_PASSWORD={args.password}",
        "-e", f"POSTGRES_DB={args.database}",
        "-p", f"{args.port}:5432",
        IMAGE,
    )
    if created.returncode != 0:
        raise RuntimeError(created.stderr.strip() or "docker run failed")


def wait_until_ready(session: Session, attempts: int = 30, delay: float = 1.0) -> None:
    for _ in range(attempts):
        try:
            session.fetch_one("SELECT 1", context="setup")
            return
        except DatabaseConnectionError:
            time.sleep(delay)
    raise RuntimeError("PostgreSQL did not accept connections in time")


def seed(session: Session) -> int:
    """Create the sample tables; rows are inserted only into an empty schema."""

    with session.atomic():
        for ddl in SCHEMA:
            session.query(ddl, context="setup")
        if session.fetch_one("SELECT count(*) FROM accounts", context="setup"):
            return 0
        ids = session.insert("accounts", ["email", "status"], ACCOUNTS, context="setup")
        totals = [[account_id, 10 * (index + 1)] for index, account_id in enumerate(ids)]
        session.insert("orders", ["account_id", "total"], totals, returning=False, context="setup")
    return len(ids)


def register(config: ConnectorConfig, name: str, profile: ServerProfileConfig) -> None:
    if name in config.servers:
        print(f"Server '{name}' already configured in {CONFIG_FILE}.")
        return
    save_config(config.with_server(name, profile))
    print(f"Registered server '{name}' in {CONFIG_FILE}.")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--container", default="psqlkit-sample-db", help="Docker container name")
    parser.add_argument("--port", type=int, default=5543, help="Host port mapped to PostgreSQL")
    parser.add_argument("--user", default="psqlkit")
    parser.add_argument("--password", default="psqlkit")
    parser.add_argument("--database", default="psqlkit_demo")
    parser.add_argument("--server", default="sample", help="Server profile name to register")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    profile = ServerProfileConfig(
        port=args.port, database=args.database, username=args.user, password=args.password
    )
    try:
        ensure_container(args)
    except (FileNotFoundError, RuntimeError) as exc:
        print(f"Could not start the container: {exc}")
        return 1
    config = ConnectorConfig(servers={args.server: profile}, active_server=args.server)
    with Session(config) as session:
        try:
            wait_until_ready(session)
            inserted = seed(session)
        except (PsqlkitError, RuntimeError) as exc:
            print(f"Seeding failed: {exc}")
            return 1
    print(f"Seeded {inserted} account(s).")
    register(load_config(), args.server, profile)
    print(f"Try: python -m psqlkit --server {args.server} 'SELECT * FROM accounts WHERE status = ?' active")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
