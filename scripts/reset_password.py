"""
Reset a user's password (bcrypt, cost 10).

  python scripts/reset_password.py admin@example.com 'n3w-secret' --yes

The manifest records that the password changed; the hash itself is never written to it.
"""
import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from audit.manifest import ChangeManifest
from db.connection import Database
from db.users import fetch_user_by_email, hash_password, update_password_statement
from errors import NotFound, ValidationFailed
from scripts.cli_support import add_mutation_args, apply_with_manifest, make_mutator, manifest_writer, print_json, run_cli


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Reset a user's password")
    ap.add_argument("email", help="User email (case-insensitive)")
    ap.add_argument("new_password", help="New password")
    add_mutation_args(ap)
    return ap


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    def body(settings) -> int:
        email = args.email.strip()
        if not email or not args.new_password:
            raise ValidationFailed("Usage: reset_password.py <email> <new_password>")

        db = Database(settings)
        mutator = make_mutator(db, args, settings)
        mutator.check_gate()
        with db:
            with db.connection() as conn:
                with conn.cursor() as cur:
                    user = fetch_user_by_email(cur, email)
            if user is None:
                raise NotFound(f"User not found: {email}")

            manifest = ChangeManifest(
                operation="password-reset",
                subject_id=user.id,
                subject_identity=user.email,
                before={"password": "unchanged"},
                after={"password": "changed"},
            )
            rows = apply_with_manifest(
                mutator, manifest_writer(settings), manifest,
                [update_password_statement(user.id, hash_password(args.new_password))],
            )
        print_json({
            "success": True,
            "dry_run": mutator.dry_run,
            "updated_rows": 0 if mutator.dry_run else rows,
            "user": {"id": user.id, "email": user.email, "is_active": user.is_active},
        })
        return rows

    return run_cli("reset_password", args, body)


if __name__ == "__main__":
    sys.exit(main())
