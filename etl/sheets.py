"""
Country <-> worksheet mapping for the wholesale workbook.
One tab per market: "Wholesale LOKOK" is the US/default tab, the others are per country.
"""
from typing import Any, Iterable, Optional

from errors import SheetNotFound

DEFAULT_SHEET = "Wholesale LOKOK"
SHEET_BY_COUNTRY = {
    "CA": "Wholesale CANADA",
    "MX": "Wholesale MEXICO",
    "CN": "Wholesale CHINA",
}


def resolve_sheet_name(country: Optional[str]) -> str:
    """Sheet name for a country code (case-insensitive); unknown codes get DEFAULT_SHEET."""
    code = str(country or "").strip().upper()
    return SHEET_BY_COUNTRY.get(code, DEFAULT_SHEET)


def resolve_sheet(country: Optional[str], sheet_names: Iterable[str]) -> str:
    """Like resolve_sheet_name, but the sheet must exist in the workbook."""
    available = list(sheet_names)
    name = resolve_sheet_name(country)
    if name not in available:
        raise SheetNotFound(name, available)
    return name


def canonicalize_country(value: Any) -> Optional[str]:
    """Free-form country ('usa', 'Canada', 'mx') -> 2-letter code, or None."""
    if value is None:
        return None
    v = str(value).strip().lower()
    if not v:
        return None
    if v in ("us", "u.s.", "usa") or "united states" in v:
        return "US"
    if v == "ca" or "canada" in v:
        return "CA"
    if v == "mx" or "mexico" in v or "méxico" in v:
        return "MX"
    if v == "cn" or "china" in v:
        return "CN"
    if len(v) == 2 and v.isalpha():
        return v.upper()
    return None


def country_for_sheet(sheet_name: str) -> Optional[str]:
    """Infer the market of a workbook tab from its name ('Wholesale CANADA' -> 'CA')."""
    n = str(sheet_name or "").strip().lower()
    if "lokok" in n or "usa" in n or "united states" in n:
        return "US"
    if "canada" in n:
        return "CA"
    if "mexico" in n:
        return "MX"
    if "china" in n:
        return "CN"
    return None
