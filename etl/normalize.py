"""
Normalize supplier sheet columns: map the many header spellings found in the wholesale
workbooks (English / Spanish / Portuguese, old export names) to canonical field names.

Input: rows (list of dicts keyed by whatever the sheet header says).
Output: dicts keyed exactly by CANONICAL_FIELDS; every field present, "" when missing.
"""
import math
import re
from typing import Any, Iterable, Optional

STATUS_HEADER = "STATUS (PENDING APPROVAL, BUYING, CHECKING, NOT COMPETITIVE, NOT INTERESTING, RED FLAG)"
PRIORITY_HEADER = "PRIO (1 - TOP, 5 - bajo)"

# Canonical field -> ordered synonyms. The first synonym is the header written back to
# spreadsheets (bulk-upload layout); lookup order is canonical name, then this list.
HEADER_SYNONYMS = {
    "name": ("Name", "Company Name", "COMPANY", "Empresa", "Nome", "Distributor"),
    "website": ("Website", "WEBSITE", "Site", "URL"),
    "category": ("CATEGORÍA", "CATEGORIA", "Categoria", "Category"),
    "account_status": ("Account Request Status", "Account Status"),
    "date": ("DATE", "Date"),
    "manager": ("Responsable", "Manager", "Responsável"),
    "status_detail": (STATUS_HEADER, "Status"),
    "description": ("Description/Notes", "Description", "Notes"),
    "contact_name": ("Contact Name",),
    "contact_phone": ("Contact Phone", "Phone"),
    "contact_email": ("E-Mail", "Contact Email", "Email", "EMAIL"),
    "address": ("Address",),
    "username": ("User",),
    "password": ("PASSWORD", "Password"),
    "call_flag": ("LLAMAR",),
    "priority": (PRIORITY_HEADER, "PRIO (1 - TOP, 5 - baixo)", "Priority"),
    "comments": ("Comments",),
    "country": ("Country", "COUNTRY"),
    "created_by_user_id": ("Created_By_User_ID",),
    "created_by_user_name": ("Created_By_User_Name",),
    "created_at": ("Created_At", "Created At"),
}

CANONICAL_FIELDS = list(HEADER_SYNONYMS)
DISPLAY_HEADERS = {f: names[0] for f, names in HEADER_SYNONYMS.items()}

REQUIRED_FIELDS = ("name", "category")

STATUS_VOCABULARY = (
    "PENDING APPROVAL",
    "BUYING",
    "CHECKING",
    "NOT COMPETITIVE",
    "NOT INTERESTING",
    "RED FLAG",
)


def _header_key(header: Any) -> str:
    return " ".join(str(header).split()).casefold()


_KNOWN_HEADERS = {
    _header_key(h)
    for f, names in HEADER_SYNONYMS.items()
    for h in (f,) + names
}


def clean_value(v: Any) -> str:
    """Cell value as a stripped string; None / NaN / blanks become ""."""
    if v is None:
        return ""
    if isinstance(v, float):
        if math.isnan(v):
            return ""
        if v.is_integer():
            return str(int(v))
    s = str(v).strip()
    if s.lower() == "nan":
        return ""
    return s


def is_known_header(header: Any) -> bool:
    """True when the header is a canonical name or one of its synonyms."""
    return _header_key(header) in _KNOWN_HEADERS


def normalize_row(raw: dict, fields: Iterable[str] = None, keep_extra: bool = False) -> dict:
    """
    Map one raw row to canonical fields. First non-empty candidate wins; header
    comparison ignores case and surrounding whitespace. With keep_extra, columns that are
    not a canonical name or synonym are passed through after the canonical ones.
    """
    fields = list(fields) if fields is not None else CANONICAL_FIELDS
    by_key = {}
    for k, v in raw.items():
        key = _header_key(k)
        value = clean_value(v)
        if key not in by_key or (not by_key[key] and value):
            by_key[key] = value

    out = {}
    for f in fields:
        out[f] = ""
        for candidate in (f,) + HEADER_SYNONYMS.get(f, ()):
            value = by_key.get(_header_key(candidate), "")
            if value:
                out[f] = value
                break

    if keep_extra:
        for k, v in raw.items():
            if k in out or is_known_header(k):
                continue
            out[k] = clean_value(v)
    return out


def normalize(rows: list[dict], fields: Iterable[str] = None, keep_extra: bool = False) -> list[dict]:
    """Normalize all rows."""
    fields = list(fields) if fields is not None else None
    return [normalize_row(r, fields, keep_extra=keep_extra) for r in rows]


def parse_priority(value: Any) -> Optional[int]:
    """'1', 1.0, '2 - high' -> int in 1..5; anything else -> None."""
    m = re.match(r"^\s*([1-5])(?:\.0+)?(?![\d.])", clean_value(value))
    return int(m.group(1)) if m else None


def canonical_status(value: Any) -> Optional[str]:
    """Upper-cased status when it belongs to STATUS_VOCABULARY, else None."""
    s = " ".join(clean_value(value).upper().split())
    return s if s in STATUS_VOCABULARY else None
