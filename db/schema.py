"""
Schema for the supplier-ops database and introspection helpers.

Tables:
  users           access-control principals (email unique, role, allowed_countries TEXT[])
  suppliers_json  one JSONB document per supplier, keyed by canonical field names
"""
from typing import Iterable

USERS_DDL = """
    CREATE TABLE IF NOT EXISTS users (
        id SERIAL PRIMARY KEY,
        email VARCHAR(255) NOT NULL,
        username VARCHAR(255),
        name VARCHAR(255) NOT NULL DEFAULT '',
        role VARCHAR(50) NOT NULL DEFAULT 'user',
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        allowed_countries TEXT[] NOT NULL DEFAULT '{}',
        password_hash VARCHAR(255),
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        CONSTRAINT users_email_unique UNIQUE (email)
    )
"""

SUPPLIERS_JSON_DDL = """
    CREATE TABLE IF NOT EXISTS suppliers_json (
        id SERIAL PRIMARY KEY,
        country VARCHAR(10),
        data JSONB NOT NULL,
        created_by_user_id INTEGER,
        created_by_user_name VARCHAR(255),
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
"""

INDEX_DDL = {
    "idx_users_email_lower": "CREATE INDEX IF NOT EXISTS idx_users_email_lower ON users (LOWER(email))",
    "idx_suppliers_json_country": "CREATE INDEX IF NOT EXISTS idx_suppliers_json_country ON suppliers_json (country)",
    "idx_suppliers_json_created_at": (
        "CREATE INDEX IF NOT EXISTS idx_suppliers_json_created_at ON suppliers_json (created_at)"
    ),
}

# Columns added after the first users table shipped; legacy databases may lack them.
USERS_OPTIONAL_COLUMNS = {
    "username": "VARCHAR(255)",
    "is_active": "BOOLEAN NOT NULL DEFAULT TRUE",
    "allowed_countries": "TEXT[] NOT NULL DEFAULT '{}'",
    "updated_at": "TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
}

USER_COLUMNS = (
    "id", "email", "username", "name", "role", "is_active",
    "allowed_countries", "created_at", "updated_at",
)


def table_exists(cur, table: str) -> bool:
    """to_regclass: NULL when the relation does not exist (accepts schema.table)."""
    cur.execute("SELECT to_regclass(%s) IS NOT NULL", (table,))
    row = cur.fetchone()
    return bool(row and row[0])


def existing_columns(cur, table: str, schema: str = "public") -> list[str]:
    cur.execute(
        """
        SELECT column_name FROM information_schema.columns
        WHERE table_schema = %s AND table_name = %s
        ORDER BY ordinal_position
        """,
        (schema, table),
    )
    return [r[0] for r in cur.fetchall()]


def column_exists(cur, table: str, column: str, schema: str = "public") -> bool:
    return column in existing_columns(cur, table, schema)


def select_list(wanted: Iterable[str], available: Iterable[str]) -> list[str]:
    """Columns of `wanted` the table actually has, in `wanted` order."""
    available = set(available)
    return [c for c in wanted if c in available]
