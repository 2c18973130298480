"""
Export one country's tab of the wholesale workbook to its own file.

  python scripts/export_excel.py CA
  python scripts/export_excel.py US --source "data/Wholesale Suppliers and Product Opportunities.xlsx"

Source lookup: --source, EXCEL_PATH, then data/cached_spreadsheet.xlsx and
data/Wholesale Suppliers and Product Opportunities.xlsx under the working directory.
Output: <out-dir>/supplier-export-<CC>-<YYYYMMDD>.xlsx, sheet Export_<CC>.
"""
import argparse
import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from errors import ValidationFailed
from etl.normalize import CANONICAL_FIELDS, normalize
from etl.parse import find_source, list_sheets, parse_excel
from etl.project import build_headers, project_records, write_workbook
from etl.sheets import resolve_sheet
from etl.validate import summarize
from scripts.cli_support import print_json, run_cli

WORKBOOK_NAMES = ("cached_spreadsheet.xlsx", "Wholesale Suppliers and Product Opportunities.xlsx")


def source_candidates(explicit=None, excel_path=None, base: Path = None) -> list:
    base = base or Path.cwd()
    return [explicit, excel_path] + [base / "data" / name for name in WORKBOOK_NAMES]


def export_country(source: Path, country: str, out_dir: Path, today: date = None) -> dict:
    sheet = resolve_sheet(country, list_sheets(source))
    rows, _columns = parse_excel(source, sheet)
    normalized = normalize(rows, keep_extra=True)
    headers = build_headers(CANONICAL_FIELDS, normalized)
    records = list(project_records(normalized, headers))
    summary = summarize(records)
    stamp = (today or date.today()).strftime("%Y%m%d")
    out = write_workbook(
        records, headers, Path(out_dir) / f"supplier-export-{country}-{stamp}.xlsx", f"Export_{country}"
    )
    return {
        "source": str(source),
        "sheet": sheet,
        "output": str(out),
        "rows": summary.total,
        "required_ok": summary.required_ok,
        "required_missing": summary.required_missing,
    }


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Export a country's supplier sheet to .xlsx")
    ap.add_argument("country", nargs="?", default="US", help="Country code: US (default), CA, MX, CN")
    ap.add_argument("--source", default=None, help="Source workbook (default: EXCEL_PATH, then data/)")
    ap.add_argument("--out-dir", type=Path, default=Path("data"), help="Output directory (default: data)")
    ap.add_argument("-v", "--verbose", action="store_true")
    return ap


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    def body(settings) -> int:
        country = str(args.country or "").strip().upper()
        if len(country) != 2 or not country.isalpha():
            raise ValidationFailed(f"Invalid country code: {args.country!r}")
        source = find_source(source_candidates(args.source, settings.excel_path))
        result = export_country(source, country, args.out_dir)
        print_json(result)
        return result["rows"]

    return run_cli("export_excel", args, body)


if __name__ == "__main__":
    sys.exit(main())
