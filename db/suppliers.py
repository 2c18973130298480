"""
suppliers_json: upsert one supplier document and deduplicate the table.

Match priority (same for upsert and dedupe): normalized website, then email, then
name + country. Documents written by this toolkit use canonical keys; older rows may still
carry sheet headers (Website, E-Mail, Name...), so lookups COALESCE over both.
"""
import logging
from typing import Optional

from psycopg2.extras import Json

from etl.supplier_keys import match_key, normalize_email, normalize_text, normalize_website

logger = logging.getLogger(__name__)

WEBSITE_EXPR = r"""
    REGEXP_REPLACE(REGEXP_REPLACE(REGEXP_REPLACE(
        LOWER(TRIM(COALESCE(data->>'website', data->>'Website', data->>'WEBSITE', data->>'URL', data->>'Site'))),
        '^https?://', ''), '^www\.', ''), '/$', '')
"""
EMAIL_EXPR = "LOWER(TRIM(COALESCE(data->>'contact_email', data->>'E-Mail', data->>'Email', data->>'EMAIL')))"
NAME_EXPR = (
    "LOWER(TRIM(COALESCE(data->>'name', data->>'Name', data->>'Company Name', "
    "data->>'COMPANY', data->>'Empresa', data->>'Distributor')))"
)
COUNTRY_EXPR = "LOWER(TRIM(COALESCE(country, data->>'country', data->>'Country', data->>'COUNTRY')))"

# Legacy documents keyed by sheet headers -> canonical keys, for dedupe over old rows.
_LEGACY_KEYS = {
    "website": ("Website", "WEBSITE", "URL", "Site"),
    "contact_email": ("E-Mail", "Email", "EMAIL"),
    "name": ("Name", "Company Name", "COMPANY", "Empresa", "Distributor"),
    "country": ("Country", "COUNTRY"),
}


def find_provenance_user(cur, email: Optional[str]) -> Optional[tuple]:
    """(id, name) of the user with this email, or None."""
    if not email:
        return None
    cur.execute("SELECT id, name FROM users WHERE LOWER(email) = LOWER(%s) LIMIT 1", (email,))
    row = cur.fetchone()
    return (row[0], row[1]) if row else None


def find_existing_id(cur, data: dict, country: Optional[str]) -> Optional[int]:
    website = normalize_website(data.get("website"))
    if website:
        cur.execute(f"SELECT id FROM suppliers_json WHERE {WEBSITE_EXPR} = %s ORDER BY id LIMIT 1", (website,))
        row = cur.fetchone()
        if row:
            return row[0]
    email = normalize_email(data.get("contact_email"))
    if email:
        cur.execute(f"SELECT id FROM suppliers_json WHERE {EMAIL_EXPR} = %s ORDER BY id LIMIT 1", (email,))
        row = cur.fetchone()
        if row:
            return row[0]
    name = normalize_text(data.get("name"))
    country_key = normalize_text(country)
    if name and country_key:
        cur.execute(
            f"SELECT id FROM suppliers_json WHERE {NAME_EXPR} = %s AND {COUNTRY_EXPR} = %s ORDER BY id LIMIT 1",
            (name, country_key),
        )
        row = cur.fetchone()
        if row:
            return row[0]
    return None


def upsert_supplier(cur, data: dict, country: Optional[str], created_by_id=None,
                    created_by_name: Optional[str] = None) -> str:
    """Update the matching row's document, or insert. Returns 'updated' or 'inserted'."""
    existing_id = find_existing_id(cur, data, country)
    if existing_id is not None:
        cur.execute(
            "UPDATE suppliers_json SET data = %s, updated_at = NOW() WHERE id = %s",
            (Json(data), existing_id),
        )
        return "updated"
    cur.execute(
        """
        INSERT INTO suppliers_json (country, data, created_by_user_id, created_by_user_name)
        VALUES (%s, %s, %s, %s)
        """,
        (country, Json(data), created_by_id, created_by_name),
    )
    return "inserted"


def _canonical_view(data: dict) -> dict:
    view = dict(data or {})
    for canonical, legacy in _LEGACY_KEYS.items():
        if not view.get(canonical):
            view[canonical] = next((view[k] for k in legacy if view.get(k)), "")
    return view


def deduplicate(cur) -> dict:
    """Keep the newest row per match key (ties keep the lowest id); delete the rest."""
    cur.execute("SELECT id, country, data, created_at FROM suppliers_json ORDER BY id")
    keep = {}
    delete_ids = []
    scanned = 0
    for row_id, country, data, created_at in cur.fetchall():
        scanned += 1
        key = match_key(_canonical_view(data), country=country, row_id=row_id)
        prev = keep.get(key)
        if prev is None:
            keep[key] = (row_id, created_at)
        elif created_at is not None and (prev[1] is None or created_at > prev[1]):
            delete_ids.append(prev[0])
            keep[key] = (row_id, created_at)
        else:
            delete_ids.append(row_id)
    if delete_ids:
        cur.execute("DELETE FROM suppliers_json WHERE id = ANY(%s)", (sorted(delete_ids),))
    logger.info("Dedupe: scanned %s, kept %s, deleted %s", scanned, len(keep), len(delete_ids))
    return {"scanned": scanned, "kept": len(keep), "deleted": len(delete_ids)}


def count_by_country(cur) -> dict:
    cur.execute(f"SELECT UPPER({COUNTRY_EXPR}), COUNT(*) FROM suppliers_json GROUP BY 1 ORDER BY 1")
    return {(c or "UNKNOWN"): n for c, n in cur.fetchall()}
