"""Tests for db.users: role / country normalization, lookup and statements."""
import bcrypt
import pytest

from db.mutator import TransactionalMutator
from db.schema import USER_COLUMNS
from db.users import (
    UserAccount,
    apply_country_changes,
    fetch_user_by_email,
    hash_password,
    normalize_countries,
    normalize_role,
    update_access_statement,
    update_password_statement,
    update_user_statement,
    upsert_user_statement,
    username_from_email,
)
from errors import ValidationFailed


class TestRoles:
    @pytest.mark.parametrize("value,role", [
        ("gerente", "manager"),
        ("Administrador", "admin"),
        ("operador", "operator"),
        ("usuario", "user"),
        (" MANAGER ", "manager"),
        ("admin", "admin"),
    ])
    def test_aliases(self, value, role):
        assert normalize_role(value) == role

    def test_unknown_falls_back_to_user(self):
        assert normalize_role("superhero") == "user"
        assert normalize_role(None) == "user"

    def test_strict_rejects_unknown(self):
        with pytest.raises(ValidationFailed, match="superhero"):
            normalize_role("superhero", strict=True)


class TestCountries:
    def test_add_duplicates_collapse(self):
        assert apply_country_changes(["US"], add=["ca", "ca"]) == {"US", "CA"}

    def test_remove(self):
        assert apply_country_changes(["US", "CA", "MX"], remove=["ca"]) == {"US", "MX"}

    def test_add_and_remove_same_code(self):
        assert apply_country_changes(["US"], add=["CA"], remove=["CA"]) == {"US"}

    def test_normalize_drops_blanks(self):
        assert normalize_countries([" us", "", None, "US"]) == frozenset({"US"})

    def test_strict_rejects_malformed(self):
        with pytest.raises(ValidationFailed):
            apply_country_changes(["US"], add=["Canada"])

    def test_lenient_ignores_malformed_stored_values(self):
        assert normalize_countries(["US", "Canada"]) == frozenset({"US"})


class TestUserAccount:
    def test_from_row(self, user_row):
        user = UserAccount.from_row(USER_COLUMNS, user_row)
        assert user.id == 7
        assert user.role == "manager"
        assert user.allowed_countries == frozenset({"US"})
        snap = user.snapshot()
        assert snap["role"] == "gerente"
        assert snap["allowed_countries"] == ["US"]
        assert set(snap) == set(USER_COLUMNS)

    def test_snapshot_changes_override_fields(self, user_row):
        user = UserAccount.from_row(USER_COLUMNS, user_row)
        after = user.snapshot(role="admin", allowed_countries=frozenset({"US", "CA"}))
        assert (after["role"], after["allowed_countries"]) == ("admin", ["CA", "US"])
        assert (after["email"], after["name"], after["is_active"]) == ("Ana@Example.com", "Ana", True)
        assert "password_hash" not in after

    def test_legacy_table_without_optional_columns(self):
        user = UserAccount.from_row(("id", "email", "name", "role"), (1, "a@b.c", "A", "admin"))
        assert user.is_active is True
        assert user.allowed_countries == frozenset()
        assert user.username is None

    def test_fetch_by_email_case_insensitive(self, fake_db, users_store):
        with fake_db.connection() as conn:
            with conn.cursor() as cur:
                user = fetch_user_by_email(cur, "ANA@example.com")
        assert user.email == "Ana@Example.com"
        text, params = users_store.executed[-1]
        assert 'SELECT "id", "email"' in text
        assert "LOWER(email) = LOWER(%s)" in text
        assert params == ("ANA@example.com",)

    def test_fetch_selects_only_existing_columns(self, fake_db, store):
        store.columns["users"] = ["id", "email", "name", "role", "password_hash"]
        store.on("FROM users WHERE", rows=[(1, "a@b.c", "A", "gerente")])
        with fake_db.connection() as conn:
            user = fetch_user_by_email(conn.cursor(), "a@b.c")
        assert 'SELECT "id", "email", "name", "role" FROM' in store.executed[-1][0]
        assert user.role == "manager"

    def test_fetch_missing_user(self, fake_db, users_store):
        with fake_db.connection() as conn:
            assert fetch_user_by_email(conn.cursor(), "nobody@example.com") is None

    def test_fetch_without_users_table(self, fake_db, store):
        with fake_db.connection() as conn:
            assert fetch_user_by_email(conn.cursor(), "a@b.c") is None


class TestStatements:
    def test_update_access_params(self):
        st = update_access_statement(7, "manager", frozenset({"US", "CA"}))
        assert st.params == ("manager", ["CA", "US"], 7)
        assert st.require_match
        assert "updated_at" not in st.fallback.sql

    def test_update_access_fallback_commits(self, fake_db, users_store):
        import psycopg2

        users_store.on("updated_at = NOW()", error=psycopg2.ProgrammingError("no updated_at"), first=True)
        n = TransactionalMutator(fake_db, confirmed=True).run([update_access_statement(7, "manager", {"US"})])
        assert n == 1
        assert users_store.committed_sql() == ["UPDATE users SET role = %s, allowed_countries = %s WHERE id = %s"]

    def test_password_statement_never_contains_plaintext(self):
        st = update_password_statement(7, hash_password("s3cret", rounds=4))
        assert "s3cret" not in repr(st.params)

    def test_upsert_user(self):
        st = upsert_user_statement(" Marcelo@Example.com ", "hash", "Marcelo", "manager", {"US"})
        assert st.params == ("marcelo@example.com", "marcelo", "Marcelo", "manager", "hash", ["US"])
        assert "ON CONFLICT (email)" in st.sql

    def test_update_user_targets_id_and_keeps_stored_email(self):
        st = update_user_statement(7, "ana@example.com", "hash", "Ana", "manager", {"US"})
        assert st.params == ("ana", "Ana", "manager", "hash", ["US"], 7)
        assert st.sql.startswith("UPDATE users SET username = %s")
        assert st.sql.endswith("updated_at = NOW() WHERE id = %s")
        assert "email = " not in st.sql
        assert "updated_at" not in st.fallback.sql
        assert st.require_match and st.fallback.require_match

    def test_username_from_email(self):
        assert username_from_email("Jeison.A@Example.com") == "jeison.a"


def test_hash_password_is_bcrypt_cost_10():
    hashed = hash_password("s3cret")
    assert hashed.startswith("$2b$10$")
    assert bcrypt.checkpw(b"s3cret", hashed.encode("utf-8"))
