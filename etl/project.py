"""
Project normalized rows into SupplierRecord and back into spreadsheet rows.

Header set = canonical fields first, then every extra column seen in any row (first-seen
order), so no source column is lost when a sheet is exported or re-written.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Optional

import pandas as pd

from etl.normalize import CANONICAL_FIELDS, DISPLAY_HEADERS, REQUIRED_FIELDS, clean_value, parse_priority
from etl.sheets import canonicalize_country


@dataclass(frozen=True)
class Contact:
    name: str = ""
    phone: str = ""
    email: str = ""


@dataclass(frozen=True)
class Credentials:
    username: str = ""
    password: str = field(default="", repr=False)


@dataclass(frozen=True)
class Provenance:
    created_by_user_id: str = ""
    created_by_user_name: str = ""
    created_at: str = ""


@dataclass
class SupplierRecord:
    name: str = ""
    website: str = ""
    category: str = ""
    account_status: str = ""
    date: str = ""
    manager: str = ""
    status_detail: str = ""
    description: str = ""
    contact: Contact = field(default_factory=Contact)
    address: str = ""
    credentials: Credentials = field(default_factory=Credentials)
    call_flag: str = ""
    priority: Optional[int] = None
    comments: str = ""
    country: str = ""
    provenance: Provenance = field(default_factory=Provenance)
    extras: dict = field(default_factory=dict)
    # Source text of the priority cell, written back when it does not parse as 1..5.
    priority_text: str = field(default="", repr=False)

    @classmethod
    def from_row(cls, row: dict) -> "SupplierRecord":
        """Build from a normalized row (canonical keys, plus any extra columns)."""
        v = {f: clean_value(row.get(f, "")) for f in CANONICAL_FIELDS}
        extras = {k: clean_value(val) for k, val in row.items() if k not in v}
        country = canonicalize_country(v["country"]) or v["country"]
        return cls(
            name=v["name"],
            website=v["website"],
            category=v["category"],
            account_status=v["account_status"],
            date=v["date"],
            manager=v["manager"],
            status_detail=v["status_detail"],
            description=v["description"],
            contact=Contact(v["contact_name"], v["contact_phone"], v["contact_email"]),
            address=v["address"],
            credentials=Credentials(v["username"], v["password"]),
            call_flag=v["call_flag"],
            priority=parse_priority(v["priority"]),
            comments=v["comments"],
            country=country,
            provenance=Provenance(
                v["created_by_user_id"], v["created_by_user_name"], v["created_at"]
            ),
            extras=extras,
            priority_text=v["priority"],
        )

    def field_value(self, name: str) -> str:
        """Canonical field as a flat string."""
        if name == "contact_name":
            return self.contact.name
        if name == "contact_phone":
            return self.contact.phone
        if name == "contact_email":
            return self.contact.email
        if name == "username":
            return self.credentials.username
        if name == "password":
            return self.credentials.password
        if name in ("created_by_user_id", "created_by_user_name", "created_at"):
            return getattr(self.provenance, name)
        if name == "priority":
            return str(self.priority) if self.priority is not None else self.priority_text
        return getattr(self, name)

    def to_dict(self) -> dict:
        """Canonical fields (in order) followed by extras; used as the stored JSON document."""
        out = {f: self.field_value(f) for f in CANONICAL_FIELDS}
        out.update(self.extras)
        return out

    def to_row(self, headers: Iterable[str], display: bool = False) -> dict:
        """Row for the given header list; with display=True canonical fields use their sheet header."""
        row = {}
        for h in headers:
            if h in DISPLAY_HEADERS:
                row[DISPLAY_HEADERS[h] if display else h] = self.field_value(h)
            else:
                row[h] = self.extras.get(h, "")
        return row

    @property
    def is_upload_eligible(self) -> bool:
        return all(self.field_value(f) for f in REQUIRED_FIELDS)


def build_headers(base_headers: Iterable[str], rows: Iterable[dict]) -> list[str]:
    """base_headers, then every key observed across rows in first-seen order; no duplicates."""
    headers = list(dict.fromkeys(base_headers))
    seen = set(headers)
    for row in rows:
        for k in row:
            if k not in seen:
                seen.add(k)
                headers.append(k)
    return headers


def project_records(rows: Iterable[dict], headers: Iterable[str]) -> Iterator[SupplierRecord]:
    """One SupplierRecord per row, every header populated ("" when missing). Single pass."""
    headers = list(headers)
    for row in rows:
        yield SupplierRecord.from_row({h: row.get(h, "") for h in headers})


def write_workbook(records: Iterable[SupplierRecord], headers: Iterable[str], path, sheet_name: str,
                   display: bool = True) -> Path:
    """Write one sheet with one row per record. Returns the written path."""
    headers = list(headers)
    columns = [DISPLAY_HEADERS[h] if display and h in DISPLAY_HEADERS else h for h in headers]
    data = [r.to_row(headers, display=display) for r in records]
    df = pd.DataFrame(data, columns=columns)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_excel(path, sheet_name=sheet_name, index=False, engine="openpyxl")
    return path
