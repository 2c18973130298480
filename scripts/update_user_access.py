"""
Update a user's role and/or allowed countries.

  python scripts/update_user_access.py --email ana@example.com --add CA --add MX --dry-run
  python scripts/update_user_access.py --email ana@example.com --remove CN --role gerente --yes

A manifest with the before/after role and countries is written to backup/ first.
Exit 2 when the user does not exist.
"""
import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from audit.manifest import ChangeManifest
from db.connection import Database
from db.users import apply_country_changes, fetch_user_by_email, normalize_countries, normalize_role, update_access_statement
from errors import NotFound, ValidationFailed
from scripts.cli_support import add_mutation_args, apply_with_manifest, make_mutator, manifest_writer, print_json, run_cli


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Update role / allowed countries of a user")
    ap.add_argument("--email", required=True, help="User email (case-insensitive)")
    ap.add_argument("--add", action="append", default=[], metavar="CC", help="Country to allow (repeatable)")
    ap.add_argument("--remove", action="append", default=[], metavar="CC", help="Country to revoke (repeatable)")
    ap.add_argument("--role", default=None, help="New role: admin, manager, operator, user (aliases accepted)")
    add_mutation_args(ap)
    return ap


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    def body(settings) -> int:
        email = args.email.strip()
        if not email:
            raise ValidationFailed("--email must not be empty.")
        role = normalize_role(args.role, strict=True) if args.role else None
        # validates the codes before anything is opened
        normalize_countries(args.add, strict=True)
        normalize_countries(args.remove, strict=True)

        db = Database(settings)
        mutator = make_mutator(db, args, settings)
        mutator.check_gate()
        with db:
            with db.connection() as conn:
                with conn.cursor() as cur:
                    user = fetch_user_by_email(cur, email)
            if user is None:
                raise NotFound(f"User not found: {email}")

            after_role = role or user.role
            after_countries = apply_country_changes(user.allowed_countries, args.add, args.remove)
            manifest = ChangeManifest(
                operation="user-update",
                subject_id=user.id,
                subject_identity=user.email,
                before=user.snapshot(),
                after=user.snapshot(role=after_role, allowed_countries=after_countries),
            )
            print_json({"preview": manifest.to_dict()})
            rows = apply_with_manifest(
                mutator, manifest_writer(settings), manifest,
                [update_access_statement(user.id, after_role, after_countries)],
            )
        if mutator.dry_run:
            print("Dry run complete. No changes applied.")
        else:
            print(f"Update applied ({rows} row).")
        return rows

    return run_cli("update_user_access", args, body)


if __name__ == "__main__":
    sys.exit(main())
