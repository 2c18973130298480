"""
Validate normalized supplier rows: a row is upload-eligible when name and category are
both non-empty. Ineligible rows are counted, never dropped silently.
Input: normalized rows (dicts keyed by canonical fields) or SupplierRecord.
Output: BatchSummary with counts, or (eligible_rows, errors) via validate().
"""
from dataclasses import dataclass, field
from typing import Iterable, Union

from etl.normalize import REQUIRED_FIELDS, canonical_status, clean_value
from etl.project import SupplierRecord


@dataclass
class BatchSummary:
    total: int = 0
    required_ok: int = 0
    required_missing: int = 0
    status_unrecognized: int = 0
    # 1-based row numbers of ineligible rows
    missing_rows: list = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "required_ok": self.required_ok,
            "required_missing": self.required_missing,
            "status_unrecognized": self.status_unrecognized,
        }


def _get(row: Union[dict, SupplierRecord], name: str) -> str:
    if isinstance(row, SupplierRecord):
        return row.field_value(name)
    return clean_value(row.get(name))


def missing_fields(row: Union[dict, SupplierRecord]) -> list[str]:
    return [f for f in REQUIRED_FIELDS if not _get(row, f)]


def is_upload_eligible(row: Union[dict, SupplierRecord]) -> bool:
    return not missing_fields(row)


def summarize(rows: Iterable[Union[dict, SupplierRecord]]) -> BatchSummary:
    """Count eligible / ineligible rows and statuses outside the known vocabulary."""
    summary = BatchSummary()
    for i, row in enumerate(rows):
        summary.total += 1
        if is_upload_eligible(row):
            summary.required_ok += 1
        else:
            summary.required_missing += 1
            summary.missing_rows.append(i + 1)
        status = _get(row, "status_detail")
        if status and canonical_status(status) is None:
            summary.status_unrecognized += 1
    return summary


def validate(rows: list) -> tuple[list, list[str]]:
    """Split rows into eligible ones and one error message per ineligible row."""
    valid = []
    errors = []
    for i, row in enumerate(rows):
        missing = missing_fields(row)
        if missing:
            errors.append(f"Row {i+1}: missing required fields: {', '.join(missing)}")
            continue
        valid.append(row)
    return valid, errors
