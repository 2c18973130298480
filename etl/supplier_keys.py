"""
Supplier match keys used by import (upsert) and deduplication.
Priority: website (protocol, www. and trailing slash stripped), then email, then name + country.
"""
import re
from typing import Any, Optional

from etl.normalize import clean_value


def normalize_website(value: Any) -> Optional[str]:
    s = clean_value(value).lower()
    s = re.sub(r"^https?://", "", s)
    s = re.sub(r"^www\.", "", s)
    s = re.sub(r"/$", "", s)
    return s or None


def normalize_email(value: Any) -> Optional[str]:
    return clean_value(value).lower() or None


def normalize_text(value: Any) -> Optional[str]:
    """Lowercase, strip, collapse spaces."""
    return " ".join(clean_value(value).lower().split()) or None


def match_key(data: dict, country: Any = None, row_id: Any = None) -> Optional[str]:
    """
    Dedup key for a stored or incoming supplier document (canonical keys).
    Returns None when nothing identifies the row and no row_id is given.
    """
    w = normalize_website(data.get("website"))
    if w:
        return f"w:{w}"
    e = normalize_email(data.get("contact_email"))
    if e:
        return f"e:{e}"
    n = normalize_text(data.get("name"))
    if n:
        c = normalize_text(country if country else data.get("country")) or ""
        return f"n:{n}|{c}"
    if row_id is not None:
        return f"id:{row_id}"
    return None
