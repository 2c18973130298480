"""
Rewrite a supplier workbook with the headers bulk-upload expects (Name, CATEGORÍA, ...).
Header variants (Company Name / Empresa / Nome, CATEGORIA / Category, ...) are mapped to the
canonical columns; other columns are kept after them unless --drop-extra.

  python scripts/fix_headers_for_bulk_upload.py data/export-US.xlsx
  python scripts/fix_headers_for_bulk_upload.py in.xlsx out.xlsx --sheet "Wholesale CANADA"
"""
import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from etl.normalize import CANONICAL_FIELDS, normalize
from etl.parse import parse_file
from etl.project import build_headers, project_records, write_workbook
from etl.validate import summarize
from scripts.cli_support import print_json, run_cli

OUTPUT_SHEET = "Suppliers"


def default_output(input_path: Path) -> Path:
    return input_path.with_name(f"{input_path.stem}.fixed.xlsx")


def fix_headers(input_path: Path, output_path: Path, sheet_name=None, keep_extra: bool = True) -> dict:
    rows, _columns = parse_file(input_path, sheet_name)
    normalized = normalize(rows, keep_extra=keep_extra)
    headers = build_headers(CANONICAL_FIELDS, normalized)
    records = list(project_records(normalized, headers))
    summary = summarize(records)
    write_workbook(records, headers, output_path, OUTPUT_SHEET, display=True)
    return {
        "input": str(input_path),
        "output": str(output_path),
        "rows": summary.total,
        "required_ok": summary.required_ok,
        "required_missing": summary.required_missing,
        "status_unrecognized": summary.status_unrecognized,
    }


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Fix supplier sheet headers for bulk upload")
    ap.add_argument("input", type=Path, help="Input workbook / CSV")
    ap.add_argument("output", type=Path, nargs="?", default=None, help="Output .xlsx (default: <input>.fixed.xlsx)")
    ap.add_argument("--sheet", default=None, help="Worksheet to read (default: first)")
    ap.add_argument("--drop-extra", action="store_true", help="Only write the canonical columns")
    ap.add_argument("-v", "--verbose", action="store_true")
    return ap


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    def body(settings) -> int:
        output = args.output or default_output(args.input)
        result = fix_headers(args.input, output, args.sheet, keep_extra=not args.drop_extra)
        print_json(result)
        return result["rows"]

    return run_cli("fix_headers_for_bulk_upload", args, body)


if __name__ == "__main__":
    sys.exit(main())
