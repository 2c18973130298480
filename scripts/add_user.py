"""
Create a user, or update the existing one with the same email.

  python scripts/add_user.py --email marcelo@example.com --password 'manager123' \
      --name Marcelo --role gerente --country US --country CA --yes
"""
import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from audit.manifest import ChangeManifest
from db.connection import Database
from db.users import (
    fetch_user_by_email,
    hash_password,
    normalize_countries,
    normalize_role,
    update_user_statement,
    upsert_user_statement,
    username_from_email,
)
from errors import ValidationFailed
from scripts.cli_support import add_mutation_args, apply_with_manifest, make_mutator, manifest_writer, print_json, run_cli


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Add or update a user")
    ap.add_argument("--email", required=True)
    ap.add_argument("--password", required=True)
    ap.add_argument("--name", default=None, help="Display name (default: email local part)")
    ap.add_argument("--role", default="user", help="admin, manager, operator, user (aliases accepted)")
    ap.add_argument("--country", action="append", default=[], metavar="CC",
                    help="Allowed country (repeatable, default US)")
    add_mutation_args(ap)
    return ap


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    def body(settings) -> int:
        email = args.email.strip().lower()
        if "@" not in email:
            raise ValidationFailed(f"Invalid email: {args.email!r}")
        if not args.password:
            raise ValidationFailed("--password must not be empty.")
        role = normalize_role(args.role, strict=True)
        countries = normalize_countries(args.country or ["US"], strict=True)
        name = args.name or email.split("@", 1)[0]

        db = Database(settings)
        mutator = make_mutator(db, args, settings)
        mutator.check_gate()
        with db:
            with db.connection() as conn:
                with conn.cursor() as cur:
                    existing = fetch_user_by_email(cur, email)

            manifest = ChangeManifest(
                operation="user-upsert",
                subject_id=existing.id if existing else "new",
                subject_identity=email,
                before=existing.snapshot() if existing else {},
                after=(existing.snapshot(username=username_from_email(email), name=name, role=role,
                                         allowed_countries=countries, is_active=True)
                       if existing else {"email": email, "username": username_from_email(email), "name": name,
                                         "role": role, "allowed_countries": sorted(countries)}),
            )
            password_hash = hash_password(args.password)
            if existing:
                statement = update_user_statement(existing.id, email, password_hash, name, role, countries)
            else:
                statement = upsert_user_statement(email, password_hash, name, role, countries)
            rows = apply_with_manifest(mutator, manifest_writer(settings), manifest, [statement])
        print_json({
            "email": email,
            "action": "updated" if existing else "created",
            "role": role,
            "allowed_countries": sorted(countries),
            "dry_run": mutator.dry_run,
        })
        return rows

    return run_cli("add_user", args, body)


if __name__ == "__main__":
    sys.exit(main())
