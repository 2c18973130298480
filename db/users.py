"""
users table: lookup, role / country normalization and the statements used by the
access, password and add-user scripts.

Roles are a closed set; legacy localized values (gerente, administrador, ...) are mapped on
the way in. allowed_countries is always a de-duplicated set of upper-cased 2-letter codes.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

import bcrypt
from psycopg2 import sql

from db.mutator import Statement
from db.schema import USER_COLUMNS, existing_columns, select_list
from errors import ValidationFailed

ROLES = ("admin", "manager", "operator", "user")
ROLE_ALIASES = {
    "gerente": "manager",
    "administrador": "admin",
    "administrator": "admin",
    "operador": "operator",
    "usuario": "user",
    "usuário": "user",
}
BCRYPT_ROUNDS = 10

_COUNTRY_RE = re.compile(r"^[A-Z]{2}$")


def normalize_role(value: Any, strict: bool = False) -> str:
    """Map to the closed role set. strict: unknown values raise ValidationFailed; else 'user'."""
    r = str(value or "").strip().lower()
    r = ROLE_ALIASES.get(r, r)
    if r in ROLES:
        return r
    if strict:
        raise ValidationFailed(f"Unknown role: {value!r}. Expected one of {', '.join(ROLES)}.")
    return "user"


def normalize_countries(values: Optional[Iterable[Any]], strict: bool = False) -> frozenset:
    """Upper-case, strip, drop blanks and duplicates. strict: malformed codes raise ValidationFailed."""
    out = set()
    for v in values or ():
        c = str(v or "").strip().upper()
        if not c:
            continue
        if not _COUNTRY_RE.match(c):
            if strict:
                raise ValidationFailed(f"Invalid country code: {v!r} (expected 2 letters, e.g. CA).")
            continue
        out.add(c)
    return frozenset(out)


def apply_country_changes(current: Iterable[Any], add: Iterable[Any] = (), remove: Iterable[Any] = ()) -> frozenset:
    """(current | add) - remove, all normalized."""
    return (normalize_countries(current) | normalize_countries(add, strict=True)) - normalize_countries(remove, strict=True)


def username_from_email(email: str) -> str:
    return str(email or "").split("@", 1)[0].strip().lower()


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


@dataclass
class UserAccount:
    id: int
    email: str
    username: Optional[str] = None
    name: str = ""
    role: str = "user"
    is_active: bool = True
    allowed_countries: frozenset = field(default_factory=frozenset)
    created_at: Any = None
    updated_at: Any = None
    # Role exactly as stored (may be a legacy alias); manifests record it as the before-state.
    stored_role: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_row(cls, columns: Iterable[str], row: Iterable[Any]) -> "UserAccount":
        d = dict(zip(columns, row))
        return cls(
            id=d["id"],
            email=d.get("email") or "",
            username=d.get("username"),
            name=d.get("name") or "",
            role=normalize_role(d.get("role")),
            is_active=d.get("is_active") if d.get("is_active") is not None else True,
            allowed_countries=normalize_countries(d.get("allowed_countries")),
            created_at=d.get("created_at"),
            updated_at=d.get("updated_at"),
            stored_role=d.get("role"),
        )

    def snapshot(self, **changes) -> dict:
        """Full account state for manifests (never the password hash); changes override fields."""
        state = {
            "id": self.id,
            "email": self.email,
            "username": self.username,
            "name": self.name,
            "role": self.stored_role if self.stored_role is not None else self.role,
            "is_active": self.is_active,
            "allowed_countries": sorted(self.allowed_countries),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if "allowed_countries" in changes:
            changes["allowed_countries"] = sorted(changes["allowed_countries"])
        state.update(changes)
        return state


def fetch_user_by_email(cur, email: str) -> Optional[UserAccount]:
    """Case-insensitive lookup; only selects columns the table actually has."""
    cols = select_list(USER_COLUMNS, existing_columns(cur, "users"))
    if "id" not in cols or "email" not in cols:
        return None
    cur.execute(
        sql.SQL("SELECT {} FROM users WHERE LOWER(email) = LOWER(%s) LIMIT 1").format(
            sql.SQL(", ").join(map(sql.Identifier, cols))
        ),
        (email,),
    )
    row = cur.fetchone()
    return UserAccount.from_row(cols, row) if row else None


def update_access_statement(user_id: int, role: str, countries: Iterable[str]) -> Statement:
    params = (role, sorted(countries), user_id)
    return Statement(
        name=f"update access for user {user_id}",
        sql="UPDATE users SET role = %s, allowed_countries = %s, updated_at = NOW() WHERE id = %s",
        params=params,
        fallback=Statement(
            name=f"update access for user {user_id} (without updated_at)",
            sql="UPDATE users SET role = %s, allowed_countries = %s WHERE id = %s",
            params=params,
            require_match=True,
        ),
        require_match=True,
    )


def update_password_statement(user_id: int, password_hash: str) -> Statement:
    params = (password_hash, user_id)
    return Statement(
        name=f"reset password for user {user_id}",
        sql="UPDATE users SET password_hash = %s, updated_at = NOW() WHERE id = %s",
        params=params,
        fallback=Statement(
            name=f"reset password for user {user_id} (without updated_at)",
            sql="UPDATE users SET password_hash = %s WHERE id = %s",
            params=params,
            require_match=True,
        ),
        require_match=True,
    )


def update_user_statement(user_id: int, email: str, password_hash: str, name: str, role: str,
                          countries: Iterable[str]) -> Statement:
    """Rewrite an existing account by id; the stored email keeps its case."""
    params = (username_from_email(email), name, role, password_hash, sorted(countries), user_id)
    assignments = "username = %s, name = %s, role = %s, password_hash = %s, allowed_countries = %s, is_active = TRUE"
    return Statement(
        name=f"update user {user_id}",
        sql=f"UPDATE users SET {assignments}, updated_at = NOW() WHERE id = %s",
        params=params,
        fallback=Statement(
            name=f"update user {user_id} (without updated_at)",
            sql=f"UPDATE users SET {assignments} WHERE id = %s",
            params=params,
            require_match=True,
        ),
        require_match=True,
    )


def upsert_user_statement(email: str, password_hash: str, name: str, role: str,
                          countries: Iterable[str]) -> Statement:
    """Insert a new account. ON CONFLICT only covers a concurrent insert of the same lowercased email."""
    params = (email.strip().lower(), username_from_email(email), name, role, password_hash, sorted(countries))
    return Statement(
        name=f"upsert user {email}",
        sql="""
            INSERT INTO users (email, username, name, role, password_hash, allowed_countries, is_active)
            VALUES (%s, %s, %s, %s, %s, %s, TRUE)
            ON CONFLICT (email) DO UPDATE SET
                username = EXCLUDED.username,
                name = EXCLUDED.name,
                role = EXCLUDED.role,
                password_hash = EXCLUDED.password_hash,
                allowed_countries = EXCLUDED.allowed_countries,
                is_active = TRUE,
                updated_at = NOW()
        """,
        params=params,
        require_match=True,
    )
