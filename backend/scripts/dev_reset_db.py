"""
Drop, migrate and optionally seed the statements development database.

Run from the repository root:
    python -m backend.scripts.dev_reset_db --yes --seed
"""

from __future__ import annotations

import argparse
import os
import sys
from decimal import Decimal
from pathlib import Path
from typing import Dict, Optional

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

from check_tables import missing_statement_tables

ALEMBIC_INI = Path(__file__).resolve().parents[2] / "alembic.ini"

# seed key -> party type it is opened as
SEEDED_PARTIES = {
    "customer_id": "customer",
    "supplier_id": "supplier",
    "safe_id": "safe",
}


def _load_database_url(cli_url: Optional[str]) -> str:
    if cli_url:
        return cli_url
    env_url = os.getenv("DATABASE_URL") or os.getenv("SQLALCHEMY_DATABASE_URL")
    if env_url:
        return env_url
    ini_url = Config(str(ALEMBIC_INI)).get_main_option("sqlalchemy.url")
    if not ini_url:
        raise RuntimeError("No DATABASE_URL or sqlalchemy.url configured.")
    return ini_url


def _drop_postgres_db(database_url: str, db_name_override: Optional[str]) -> str:
    url = make_url(database_url)
    target_db = db_name_override or url.database
    if not target_db:
        raise RuntimeError("Postgres URL is missing a database name.")

    engine = create_engine(url.set(database="postgres"), future=True, isolation_level="AUTOCOMMIT")
    try:
        with engine.connect() as conn:
            conn.execute(
                text(
                    "SELECT pg_terminate_backend(pid) FROM pg_stat_activity "
                    "WHERE datname = :db_name AND pid <> pg_backend_pid()"
                ),
                {"db_name": target_db},
            )
            conn.execute(text(f'DROP DATABASE IF EXISTS "{target_db}"'))
            conn.execute(text(f'CREATE DATABASE "{target_db}"'))
    finally:
        engine.dispose()

    return url.set(database=target_db).render_as_string(hide_password=False)


def _drop_sqlite_db(database_url: str) -> str:
    url = make_url(database_url)
    if url.database and url.database != ":memory:":
        Path(url.database).unlink(missing_ok=True)
    return database_url


def verify_statement_schema(database_url: str) -> None:
    """Fail loudly when a migration left out a table the statement sources read."""
    engine = create_engine(database_url, future=True)
    try:
        missing = missing_statement_tables(engine)
    finally:
        engine.dispose()
    if missing:
        raise RuntimeError(f"statement tables missing after migration: {', '.join(missing)}")


def seed_and_summarize(database_url: str) -> Dict[str, Decimal]:
    """Seed the demo parties and return each one's current statement balance."""
    os.environ.setdefault("DATABASE_URL", database_url)
    from backend.app.seed.run import seed_demo_parties
    from backend.app.statements.anchor import AnchorResolver

    engine = create_engine(database_url, future=True)
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    try:
        with Session() as db:
            ids = seed_demo_parties(db)
        resolver = AnchorResolver(Session)
        return {
            SEEDED_PARTIES[key]: resolver.resolve(resolver.load_party(SEEDED_PARTIES[key], party_id))
            for key, party_id in ids.items()
        }
    finally:
        engine.dispose()


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Reset the statements development database.")
    parser.add_argument("--url", help="Override the database URL.")
    parser.add_argument("--db-name", help="Override the database name (Postgres only).")
    parser.add_argument("--yes", action="store_true", help="Confirm destructive reset.")
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Seed a linked customer/supplier pair, a safe and a short history.",
    )
    args = parser.parse_args(argv)

    if not args.yes:
        print("Refusing to reset database without --yes.")
        return 1

    database_url = _load_database_url(args.url)
    backend = make_url(database_url).get_backend_name()
    if backend.startswith("postgres"):
        database_url = _drop_postgres_db(database_url, args.db_name)
    elif backend.startswith("sqlite"):
        database_url = _drop_sqlite_db(database_url)
    else:
        print(f"Unsupported database backend: {backend}")
        return 1

    # alembic/env.py prefers the environment over sqlalchemy.url
    os.environ["DATABASE_URL"] = database_url
    config = Config(str(ALEMBIC_INI))
    config.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(config, "head")
    verify_statement_schema(database_url)

    if args.seed:
        for party_type, balance in seed_and_summarize(database_url).items():
            print(f"{party_type} balance: {balance}")

    print(f"Statements database ready: {make_url(database_url).render_as_string(hide_password=True)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
