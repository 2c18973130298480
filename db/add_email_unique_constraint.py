"""
Add UNIQUE(email) to users if it is not there yet.
Aborts with exit 2 and the list of duplicates when emails repeat; no-op when a unique
constraint on email already exists.

  python db/add_email_unique_constraint.py --yes
"""
import argparse
import re
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from audit.manifest import ChangeManifest
from db.connection import Database
from db.mutator import Statement
from db.schema import table_exists
from errors import NotFound, OpsError
from scripts.cli_support import add_mutation_args, apply_with_manifest, make_mutator, manifest_writer, print_json, run_cli

CONSTRAINT_NAME = "users_email_unique"


class DuplicateEmails(OpsError):
    exit_code = 2

    def __init__(self, duplicates: list):
        self.duplicates = duplicates
        super().__init__(
            f"Cannot add UNIQUE(email): {len(duplicates)} duplicated email(s). Resolve them and re-run."
        )


def find_duplicate_emails(cur) -> list[dict]:
    cur.execute("""
        SELECT email, COUNT(*) AS count
        FROM users
        WHERE email IS NOT NULL
        GROUP BY email
        HAVING COUNT(*) > 1
        ORDER BY count DESC, email ASC
    """)
    return [{"email": e, "count": n} for e, n in cur.fetchall()]


def has_email_unique(cur) -> bool:
    cur.execute("""
        SELECT pg_get_constraintdef(c.oid)
        FROM pg_constraint c
        JOIN pg_class t ON c.conrelid = t.oid
        JOIN pg_namespace n ON t.relnamespace = n.oid
        WHERE n.nspname = 'public' AND t.relname = 'users' AND c.contype = 'u'
    """)
    return any(re.search(r"UNIQUE \(email\)", d or "", re.IGNORECASE) for (d,) in cur.fetchall())


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Add UNIQUE(email) constraint to users")
    add_mutation_args(ap)
    return ap


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    def body(settings) -> int:
        db = Database(settings)
        mutator = make_mutator(db, args, settings)
        mutator.check_gate()
        with db:
            with db.connection() as conn:
                with conn.cursor() as cur:
                    if not table_exists(cur, "public.users"):
                        raise NotFound("Table users does not exist. Run db/init_db.py first.")
                    duplicates = find_duplicate_emails(cur)
                    already = not duplicates and has_email_unique(cur)
            if duplicates:
                print_json(duplicates)
                raise DuplicateEmails(duplicates)
            if already:
                print("UNIQUE(email) already present. Nothing to do.")
                return 0
            manifest = ChangeManifest(
                operation="add-constraint",
                subject_id=CONSTRAINT_NAME,
                subject_identity="users.email",
                before={"unique_email": False},
                after={"unique_email": True},
            )
            rows = apply_with_manifest(mutator, manifest_writer(settings), manifest, [
                Statement(
                    name=f"add {CONSTRAINT_NAME}",
                    sql=f"ALTER TABLE users ADD CONSTRAINT {CONSTRAINT_NAME} UNIQUE (email)",
                ),
            ])
        print("Dry run: constraint not added." if mutator.dry_run else "UNIQUE(email) added.")
        return rows

    return run_cli("add_email_unique_constraint", args, body)


if __name__ == "__main__":
    sys.exit(main())
