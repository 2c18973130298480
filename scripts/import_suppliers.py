"""
Import a supplier CSV / TSV / XLSX into suppliers_json.

  python scripts/import_suppliers.py --file data/suppliers.csv --default-country CA \
      --user-email marcelo@example.com --user-name "Marcelo" --dry-run
  python scripts/import_suppliers.py --file data/export.xlsx --sheet "Wholesale MEXICO" --yes

Only upload-eligible rows (name and category present) are written; the rest are counted.
Existing suppliers are matched by website, then email, then name + country, and updated.
"""
import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from audit.manifest import ChangeManifest
from db.connection import Database
from db.schema import table_exists
from db.suppliers import find_provenance_user
from errors import ValidationFailed
from etl.parse import parse_file
from etl.sheets import canonicalize_country, country_for_sheet
from etl.supplier_import import import_statements, prepare_import
from scripts.cli_support import add_mutation_args, apply_with_manifest, make_mutator, manifest_writer, print_json, run_cli

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Import suppliers into suppliers_json")
    ap.add_argument("--file", required=True, type=Path, help="CSV / TSV / XLSX to import")
    ap.add_argument("--sheet", default=None, help="Worksheet for .xlsx input (default: first)")
    ap.add_argument("--default-country", default=None,
                    help="Country for rows without one (e.g. CA; default: inferred from --sheet)")
    ap.add_argument("--user-email", default=None, help="Creator's email, looked up in users")
    ap.add_argument("--user-name", default=None, help="Creator's name when the email is not found")
    ap.add_argument("--no-dedupe", action="store_true", help="Skip deduplication after import")
    add_mutation_args(ap)
    return ap


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    def body(settings) -> int:
        if args.default_country and not canonicalize_country(args.default_country):
            raise ValidationFailed(f"Invalid --default-country: {args.default_country!r}")
        default_country = args.default_country or (country_for_sheet(args.sheet) if args.sheet else None)
        rows, _columns = parse_file(args.file, args.sheet)
        batch = prepare_import(rows, default_country)
        print_json({"file": str(args.file), "summary": batch.summary.as_dict()})
        if batch.summary.required_missing:
            logger.warning("%s row(s) missing name or category will not be imported (rows %s)",
                           batch.summary.required_missing, batch.summary.missing_rows[:20])

        db = Database(settings)
        mutator = make_mutator(db, args, settings)
        mutator.check_gate()
        with db:
            user_id, user_name = None, args.user_name
            with db.connection() as conn:
                with conn.cursor() as cur:
                    if args.user_email and table_exists(cur, "public.users"):
                        found = find_provenance_user(cur, args.user_email)
                        if found:
                            user_id, user_name = found[0], found[1] or args.user_name
                        else:
                            logger.warning("User %s not found; using --user-name", args.user_email)
            manifest = ChangeManifest(
                operation="supplier-import",
                subject_id=args.file.stem,
                subject_identity=str(args.file),
                before={},
                after={
                    "eligible": len(batch.eligible),
                    "ineligible": batch.summary.required_missing,
                    "created_by_user_id": user_id,
                    "created_by_user_name": user_name,
                    "dedupe": not args.no_dedupe,
                },
            )
            apply_with_manifest(
                mutator, manifest_writer(settings), manifest,
                import_statements(batch, user_id, user_name, dedupe=not args.no_dedupe),
            )
        print_json({"dry_run": mutator.dry_run, **batch.counts})
        return batch.counts["inserted"] + batch.counts["updated"]

    return run_cli("import_suppliers", args, body)


if __name__ == "__main__":
    sys.exit(main())
