"""
Initialize the supplier-ops PostgreSQL schema.

Creates: users, suppliers_json and their indexes (IF NOT EXISTS), and adds the optional
users columns (username, is_active, allowed_countries, updated_at) that older databases lack.
Additive only, so it runs without --yes; --dry-run previews inside a rolled-back transaction.

Uses env: DATABASE_URL, or DB_HOST, DB_USERNAME, DB_PASSWORD, DB_NAME (default supplier_ops), DB_PORT.
  python db/init_db.py
  python db/init_db.py --create-database      # CREATE DATABASE first (DB_* env only)
"""
import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import psycopg2
from psycopg2 import sql
from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT

from db.connection import Database
from db.mutator import Statement, TransactionalMutator
from db.schema import INDEX_DDL, SUPPLIERS_JSON_DDL, USERS_DDL, USERS_OPTIONAL_COLUMNS
from errors import ConfigurationMissing, ConnectionFailed
from scripts.cli_support import add_db_args, run_cli

logger = logging.getLogger(__name__)


def ensure_database_exists(settings) -> bool:
    """Create settings.db_name if missing (connects to the 'postgres' database). True when created."""
    if settings.database_url:
        raise ConfigurationMissing("--create-database needs DB_HOST / DB_USERNAME / DB_NAME, not DATABASE_URL.")
    kwargs = settings.connect_kwargs()
    kwargs["dbname"] = "postgres"
    kwargs.pop("options", None)
    try:
        conn = psycopg2.connect(**kwargs)
    except psycopg2.Error as e:
        raise ConnectionFailed(f"Connection failed: {e}") from e
    try:
        conn.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)
        with conn.cursor() as cur:
            cur.execute("SELECT 1 FROM pg_database WHERE datname = %s", (settings.db_name,))
            if cur.fetchone() is not None:
                return False
            cur.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(settings.db_name)))
            logger.info("Created database: %s", settings.db_name)
            return True
    finally:
        conn.close()


def bootstrap_statements() -> list[Statement]:
    statements = [
        Statement(name="create users", sql=USERS_DDL),
        Statement(name="create suppliers_json", sql=SUPPLIERS_JSON_DDL),
    ]
    for column, ddl in USERS_OPTIONAL_COLUMNS.items():
        statements.append(Statement(
            name=f"add users.{column}",
            sql=sql.SQL("ALTER TABLE users ADD COLUMN IF NOT EXISTS {} {}").format(
                sql.Identifier(column), sql.SQL(ddl)
            ),
        ))
    for name, ddl in INDEX_DDL.items():
        statements.append(Statement(name=f"create {name}", sql=ddl))
    return statements


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Create / upgrade the supplier-ops schema")
    ap.add_argument("--create-database", action="store_true", help="CREATE DATABASE if it does not exist")
    ap.add_argument("--dry-run", action="store_true", help="Run inside a transaction that is rolled back")
    add_db_args(ap)
    return ap


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    def body(settings) -> int:
        if args.create_database:
            ensure_database_exists(settings)
        with Database(settings) as db:
            mutator = TransactionalMutator(db, confirmed=True, dry_run=args.dry_run)
            n = mutator.run(bootstrap_statements())
        target = "DATABASE_URL" if settings.database_url else f"{settings.db_host}:{settings.db_port}/{settings.db_name}"
        print(f"PostgreSQL {'checked (dry run)' if args.dry_run else 'initialized'}: {target}")
        print("  tables: users, suppliers_json")
        return n

    return run_cli("init_db", args, body)


if __name__ == "__main__":
    sys.exit(main())
