"""
Parse supplier spreadsheets: CSV / TSV (delimiter sniffed) and Excel workbooks.
Input: file path (+ sheet name for workbooks).
Output: list of dicts (rows) + column names, all cell values as strings.
"""
import csv
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Optional
from zipfile import BadZipFile

import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

from errors import SheetNotFound, SourceNotFound, ValidationFailed

EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls"}
DELIMITERS = ",;\t|"
SNIFF_BYTES = 64 * 1024


def _strip_cell(v) -> str:
    """Trim and remove surrounding backticks (`value`) some exports wrap cells in."""
    s = "" if v is None else str(v).strip()
    if len(s) >= 2 and s.startswith("`") and s.endswith("`"):
        s = s[1:-1].strip()
    return s


def _frame_to_rows(df: pd.DataFrame) -> tuple[list[dict], list[str]]:
    df = df.loc[:, [c for c in df.columns if not str(c).startswith("Unnamed:")]].copy()
    df.columns = [str(c).strip() for c in df.columns]
    df = df.fillna("")
    columns = list(df.columns)
    rows = []
    for rec in df.to_dict(orient="records"):
        row = {k: _strip_cell(v) for k, v in rec.items()}
        if any(row.values()):
            rows.append(row)
    return rows, columns


@contextmanager
def _readable(path):
    """Turn parser / workbook errors on a damaged file into ValidationFailed."""
    try:
        yield
    except (ValueError, BadZipFile, InvalidFileException) as e:
        raise ValidationFailed(f"Could not read {Path(path).name}: {e}") from e


def sniff_delimiter(file_path, encoding: str = "utf-8") -> str:
    """Delimiter among , ; TAB |. Files without any (one column) fall back on the suffix."""
    with open(file_path, newline="", encoding=encoding) as f:
        sample = f.read(SNIFF_BYTES)
    try:
        return csv.Sniffer().sniff(sample, delimiters=DELIMITERS).delimiter
    except csv.Error:
        return "\t" if Path(file_path).suffix.lower() == ".tsv" else ","


def parse_csv(file_path) -> tuple[list[dict], list[str]]:
    """Parse CSV or TSV (separator sniffed); return (rows as dicts, column names)."""
    kwargs = dict(dtype=str, keep_default_na=False)
    with _readable(file_path):
        try:
            df = pd.read_csv(file_path, sep=sniff_delimiter(file_path), encoding="utf-8", **kwargs)
        except UnicodeDecodeError:
            df = pd.read_csv(file_path, sep=sniff_delimiter(file_path, "latin-1"), encoding="latin-1", **kwargs)
    return _frame_to_rows(df)


def list_sheets(file_path) -> list[str]:
    with _readable(file_path):
        with pd.ExcelFile(file_path, engine="openpyxl") as xls:
            return list(xls.sheet_names)


def parse_excel(file_path, sheet_name: Optional[str] = None) -> tuple[list[dict], list[str]]:
    """Parse one worksheet (first sheet when sheet_name is None). Unknown names raise SheetNotFound."""
    if sheet_name is not None:
        available = list_sheets(file_path)
        if sheet_name not in available:
            raise SheetNotFound(sheet_name, available)
    with _readable(file_path):
        df = pd.read_excel(
            file_path,
            sheet_name=sheet_name if sheet_name is not None else 0,
            dtype=str,
            keep_default_na=False,
            engine="openpyxl",
        )
    return _frame_to_rows(df)


def parse_file(file_path, sheet_name: Optional[str] = None) -> tuple[list[dict], list[str]]:
    """Dispatch on extension. Returns (rows, columns)."""
    path = Path(file_path)
    if not path.is_file():
        raise SourceNotFound(f"File not found: {path}")
    if path.suffix.lower() in EXCEL_SUFFIXES:
        return parse_excel(path, sheet_name)
    return parse_csv(path)


def find_source(candidates: Iterable) -> Path:
    """First existing path among candidates (None / "" skipped); SourceNotFound lists what was tried."""
    tried = []
    for c in candidates:
        if not c:
            continue
        p = Path(c).expanduser()
        tried.append(str(p))
        if p.is_file():
            return p
    raise SourceNotFound("Source workbook not found.", tried)
