"""
Supplier import: spreadsheet rows → suppliers_json.

Flow:
  1. Parse CSV / TSV / XLSX (etl.parse) → raw rows.
  2. Normalize headers (keep extra columns), project to SupplierRecord.
  3. Summarize eligibility; only upload-eligible records are written, the rest are counted.
  4. Stamp provenance (created_by user, created_at) and default country.
  5. One transaction: ensure table, upsert each record (website → email → name+country),
     then deduplicate (newest created_at kept) unless disabled.
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Iterable, Optional

from db.mutator import Statement
from db.schema import SUPPLIERS_JSON_DDL
from db.suppliers import deduplicate, upsert_supplier
from etl.normalize import CANONICAL_FIELDS, normalize
from etl.project import Provenance, SupplierRecord, build_headers, project_records
from etl.sheets import canonicalize_country
from etl.validate import BatchSummary, summarize

logger = logging.getLogger(__name__)


@dataclass
class ImportBatch:
    records: list = field(default_factory=list)
    headers: list = field(default_factory=list)
    summary: BatchSummary = field(default_factory=BatchSummary)
    counts: dict = field(default_factory=lambda: {
        "inserted": 0, "updated": 0, "ineligible": 0, "deduplicated": 0,
    })

    @property
    def eligible(self) -> list:
        return [r for r in self.records if r.is_upload_eligible]


def prepare_import(rows: Iterable[dict], default_country: Optional[str] = None) -> ImportBatch:
    """Normalize + project + summarize. No database access."""
    normalized = normalize(list(rows), keep_extra=True)
    headers = build_headers(CANONICAL_FIELDS, normalized)
    batch = ImportBatch(headers=headers)
    fallback_country = canonicalize_country(default_country) if default_country else None
    for rec in project_records(normalized, headers):
        if not rec.country and fallback_country:
            rec.country = fallback_country
        batch.records.append(rec)
    batch.summary = summarize(batch.records)
    batch.counts["ineligible"] = batch.summary.required_missing
    return batch


def stamp_provenance(record: SupplierRecord, user_id=None, user_name: Optional[str] = None,
                     created_at: Optional[str] = None) -> SupplierRecord:
    """Fill provenance fields the source row left empty."""
    p = record.provenance
    record.provenance = Provenance(
        created_by_user_id=p.created_by_user_id or ("" if user_id is None else str(user_id)),
        created_by_user_name=p.created_by_user_name or (user_name or ""),
        created_at=p.created_at or created_at or datetime.now(timezone.utc).isoformat(),
    )
    return record


def import_statements(batch: ImportBatch, user_id=None, user_name: Optional[str] = None,
                      dedupe: bool = True) -> list[Statement]:
    """Statements for the mutator; running them fills batch.counts."""
    created_at = datetime.now(timezone.utc).isoformat()
    statements = [Statement(name="ensure suppliers_json", sql=SUPPLIERS_JSON_DDL)]

    def upsert(record: SupplierRecord):
        def run(cur) -> int:
            result = upsert_supplier(
                cur, record.to_dict(), record.country or None,
                created_by_id=user_id, created_by_name=user_name,
            )
            batch.counts[result] += 1
            return 1
        return run

    for i, rec in enumerate(batch.eligible):
        rec = stamp_provenance(replace(rec), user_id, user_name, created_at)
        statements.append(Statement(name=f"upsert supplier #{i+1} ({rec.name})", run=upsert(rec)))

    if dedupe:
        def run_dedupe(cur) -> int:
            result = deduplicate(cur)
            batch.counts["deduplicated"] = result["deleted"]
            return result["deleted"]
        statements.append(Statement(name="deduplicate suppliers_json", run=run_dedupe))
    return statements
