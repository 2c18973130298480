"""
Truncate supplier tables (TRUNCATE ... RESTART IDENTITY CASCADE) in one transaction.
Tables that do not exist are skipped with a notice; the rest are still truncated.

Usage (needs DATABASE_URL or DB_* env):
  python db/clean_tables.py --yes                                  # suppliers_json
  python db/clean_tables.py --tables suppliers_json,suppliers --yes
  python db/clean_tables.py --include-suppliers --dry-run
  CONFIRM=1 python db/clean_tables.py
"""
import argparse
import re
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from psycopg2 import sql

from audit.manifest import ChangeManifest
from db.connection import Database
from db.mutator import Statement
from db.schema import table_exists
from errors import ValidationFailed
from scripts.cli_support import add_mutation_args, apply_with_manifest, make_mutator, manifest_writer, print_json, run_cli

DEFAULT_TABLES = ["suppliers_json"]
_TABLE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def parse_tables(value: str, include_suppliers: bool = False) -> list[str]:
    tables = [t.strip() for t in (value or "").split(",") if t.strip()] or list(DEFAULT_TABLES)
    if include_suppliers:
        tables.append("suppliers")
    bad = [t for t in tables if not _TABLE_RE.match(t)]
    if bad:
        raise ValidationFailed(f"Invalid table name(s): {', '.join(bad)}")
    return list(dict.fromkeys(tables))


def truncate_statement(table: str) -> Statement:
    return Statement(
        name=f"truncate {table}",
        sql=sql.SQL("TRUNCATE TABLE {} RESTART IDENTITY CASCADE").format(sql.Identifier(table)),
        exists=lambda cur: table_exists(cur, f"public.{table}"),
    )


def row_counts(cur, tables: list[str]) -> dict:
    """Row count per existing table (None for missing ones)."""
    counts = {}
    for t in tables:
        if not table_exists(cur, f"public.{t}"):
            counts[t] = None
            continue
        cur.execute(sql.SQL("SELECT COUNT(*) FROM {}").format(sql.Identifier(t)))
        counts[t] = cur.fetchone()[0]
    return counts


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Truncate supplier tables")
    ap.add_argument("--tables", default="", help="Comma-separated table list (default: suppliers_json)")
    ap.add_argument("--include-suppliers", action="store_true", help="Also truncate the legacy suppliers table")
    add_mutation_args(ap)
    return ap


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    def body(settings) -> int:
        tables = parse_tables(args.tables, args.include_suppliers)
        db = Database(settings)
        mutator = make_mutator(db, args, settings)
        mutator.check_gate()
        print("Target tables:", ", ".join(tables))
        with db:
            with db.connection() as conn:
                with conn.cursor() as cur:
                    before = row_counts(cur, tables)
            manifest = ChangeManifest(
                operation="truncate",
                subject_id="-".join(tables),
                subject_identity=",".join(tables),
                before={"row_counts": before},
                after={"row_counts": {t: (0 if n is not None else None) for t, n in before.items()}},
            )
            apply_with_manifest(mutator, manifest_writer(settings), manifest,
                                [truncate_statement(t) for t in tables])
        truncated = [t for t in tables if f"truncate {t}" not in mutator.skipped]
        print_json({
            "truncated": truncated,
            "skipped": [s.replace("truncate ", "", 1) for s in mutator.skipped],
            "dry_run": mutator.dry_run,
        })
        return sum(before[t] or 0 for t in truncated)

    return run_cli("clean_tables", args, body)


if __name__ == "__main__":
    sys.exit(main())
