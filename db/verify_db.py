"""
Verify the supplier-ops database. Read-only; prints a JSON report:
users table existence + columns, user counts (total / active / inactive / per role),
a few recent users, and suppliers_json counts per country.

  python db/verify_db.py
  python db/verify_db.py --sample 10
"""
import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from psycopg2 import sql

from db.connection import Database
from db.schema import existing_columns, select_list, table_exists
from db.suppliers import count_by_country
from db.users import normalize_role
from scripts.cli_support import add_db_args, print_json, run_cli

SAMPLE_COLUMNS = ("id", "email", "name", "role", "is_active", "allowed_countries", "created_at")


def users_report(cur, sample: int = 5) -> dict:
    report = {"exists": table_exists(cur, "public.users")}
    if not report["exists"]:
        return report
    columns = existing_columns(cur, "users")
    report["columns"] = columns

    cur.execute("SELECT COUNT(*) FROM users")
    report["count"] = cur.fetchone()[0]
    if "is_active" in columns:
        cur.execute("SELECT COUNT(*) FILTER (WHERE is_active), COUNT(*) FILTER (WHERE NOT is_active) FROM users")
        active, inactive = cur.fetchone()
        report["active"] = active
        report["inactive"] = inactive

    cur.execute("SELECT role, COUNT(*) FROM users GROUP BY role")
    roles = {}
    for role, n in cur.fetchall():
        key = normalize_role(role)
        roles[key] = roles.get(key, 0) + n
    report["roles"] = roles

    cols = select_list(SAMPLE_COLUMNS, columns)
    order = "created_at DESC NULLS LAST" if "created_at" in columns else "id DESC"
    cur.execute(
        sql.SQL("SELECT {} FROM users ORDER BY " + order + " LIMIT %s").format(
            sql.SQL(", ").join(map(sql.Identifier, cols))
        ),
        (sample,),
    )
    report["recent"] = [dict(zip(cols, row)) for row in cur.fetchall()]
    return report


def suppliers_report(cur) -> dict:
    if not table_exists(cur, "public.suppliers_json"):
        return {"exists": False}
    by_country = count_by_country(cur)
    return {"exists": True, "count": sum(by_country.values()), "by_country": by_country}


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Verify supplier-ops database (read-only)")
    ap.add_argument("--sample", type=int, default=5, help="Recent users to list (default 5)")
    add_db_args(ap)
    return ap


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    def body(settings) -> int:
        with Database(settings) as db:
            with db.connection() as conn:
                with conn.cursor() as cur:
                    report = {
                        "users": users_report(cur, args.sample),
                        "suppliers_json": suppliers_report(cur),
                    }
        print_json(report)
        return report["users"].get("count", 0)

    return run_cli("verify_db", args, body)


if __name__ == "__main__":
    sys.exit(main())
