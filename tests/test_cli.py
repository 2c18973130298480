"""
End-to-end tests of the mutating commands against the in-memory database.
Database is patched in each script module so no server is needed.
"""
import json
from unittest.mock import patch

import psycopg2
import pytest

from scripts import reset_password, update_user_access
from db import clean_tables


def manifests(tmp_path):
    d = tmp_path / "backup"
    return sorted(d.glob("*.json")) if d.is_dir() else []


def run_log(tmp_path):
    lines = (tmp_path / "logs" / "ops_runs.jsonl").read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


@pytest.fixture
def patched_db(fake_db):
    with patch("scripts.update_user_access.Database", return_value=fake_db), \
            patch("scripts.reset_password.Database", return_value=fake_db), \
            patch("db.clean_tables.Database", return_value=fake_db):
        yield fake_db


class TestUpdateUserAccess:
    def test_dry_run_writes_manifest_commits_nothing(self, cli_env, patched_db, users_store, capsys):
        code = update_user_access.main(["--email", "ANA@example.com", "--add", "ca", "--dry-run"])
        assert code == 0
        assert users_store.committed == []
        files = manifests(cli_env)
        assert len(files) == 1
        data = json.loads(files[0].read_text(encoding="utf-8"))
        assert data["dry_run"] is True
        assert data["outcome"] == "rolled-back"
        assert data["before"] == {
            "id": 7, "email": "Ana@Example.com", "username": "ana", "name": "Ana", "role": "gerente",
            "is_active": True, "allowed_countries": ["US"], "created_at": None, "updated_at": None,
        }
        assert data["after"] == dict(data["before"], role="manager", allowed_countries=["CA", "US"])
        assert "Dry run complete" in capsys.readouterr().out

    def test_without_confirmation_nothing_is_opened(self, cli_env, patched_db, users_store, capsys):
        code = update_user_access.main(["--email", "ana@example.com", "--add", "CA"])
        assert code == 1
        assert patched_db.opened == 0
        assert users_store.executed == []
        assert manifests(cli_env) == []
        assert "Confirmation required" in capsys.readouterr().err

    def test_confirmed_update_applied(self, cli_env, patched_db, users_store):
        code = update_user_access.main(["--email", "ana@example.com", "--remove", "us", "--role", "admin", "--yes"])
        assert code == 0
        [(text, params)] = users_store.committed
        assert text.startswith("UPDATE users SET role = %s, allowed_countries = %s, updated_at = NOW()")
        assert params == ("admin", [], 7)
        data = json.loads(manifests(cli_env)[0].read_text(encoding="utf-8"))
        assert data["outcome"] == "applied"
        entry = run_log(cli_env)[-1]
        assert (entry["operation"], entry["status"], entry["row_count"]) == ("update_user_access", "success", 1)

    def test_confirm_env_override(self, cli_env, monkeypatch, patched_db, users_store):
        monkeypatch.setenv("CONFIRM", "1")
        assert update_user_access.main(["--email", "ana@example.com", "--add", "MX"]) == 0
        assert len(users_store.committed) == 1

    def test_unknown_user_exit_2(self, cli_env, patched_db, users_store, capsys):
        code = update_user_access.main(["--email", "ghost@example.com", "--add", "CA", "--yes"])
        assert code == 2
        assert manifests(cli_env) == []
        assert "User not found" in capsys.readouterr().err
        assert run_log(cli_env)[-1]["status"] == "failed"

    @pytest.mark.parametrize("argv", [
        ["--email", "ana@example.com", "--role", "superhero", "--yes"],
        ["--email", "ana@example.com", "--add", "Canada", "--yes"],
        ["--email", "  ", "--yes"],
    ])
    def test_invalid_input_exit_1_before_connecting(self, cli_env, patched_db, users_store, argv):
        assert update_user_access.main(argv) == 1
        assert patched_db.opened == 0

    def test_failure_rolls_back_and_records_outcome(self, cli_env, patched_db, users_store):
        users_store.on("UPDATE users", error=psycopg2.OperationalError("server closed the connection"), first=True)
        code = update_user_access.main(["--email", "ana@example.com", "--add", "CA", "--yes"])
        assert code == 3
        assert users_store.committed == []
        data = json.loads(manifests(cli_env)[0].read_text(encoding="utf-8"))
        assert data["outcome"] == "rolled-back"
        assert "server closed" in data["error"]

    def test_lookup_failure_is_reported_not_raised(self, cli_env, patched_db, users_store, capsys):
        users_store.on("FROM users WHERE LOWER(email)", error=psycopg2.OperationalError("canceling statement due to statement timeout"), first=True)
        code = update_user_access.main(["--email", "ana@example.com", "--add", "CA", "--yes"])
        assert code == 1
        assert "Database error: canceling statement" in capsys.readouterr().err
        assert manifests(cli_env) == []
        entry = run_log(cli_env)[-1]
        assert (entry["status"], entry["operation"]) == ("failed", "update_user_access")

    def test_required_audit_aborts_when_manifest_unwritable(self, cli_env, monkeypatch, patched_db, users_store):
        blocker = cli_env / "blocker"
        blocker.write_text("not a directory")
        monkeypatch.setenv("MANIFEST_DIR", str(blocker / "backup"))
        monkeypatch.setenv("REQUIRE_AUDIT", "1")
        assert update_user_access.main(["--email", "ana@example.com", "--add", "CA", "--yes"]) == 1
        assert users_store.committed == []


class TestResetPassword:
    def test_json_output_and_manifest_without_hash(self, cli_env, patched_db, users_store, capsys):
        code = reset_password.main(["ana@example.com", "n3w-secret", "--yes"])
        assert code == 0
        out = json.loads(capsys.readouterr().out)
        assert out == {
            "success": True,
            "dry_run": False,
            "updated_rows": 1,
            "user": {"id": 7, "email": "Ana@Example.com", "is_active": True},
        }
        [(text, params)] = users_store.committed
        assert text.startswith("UPDATE users SET password_hash = %s")
        assert params[0].startswith("$2b$10$")
        manifest_text = manifests(cli_env)[0].read_text(encoding="utf-8")
        assert "$2b$" not in manifest_text
        assert "n3w-secret" not in manifest_text

    def test_unknown_user(self, cli_env, patched_db, users_store):
        assert reset_password.main(["ghost@example.com", "x", "--yes"]) == 2


class TestCleanTables:
    def test_missing_table_skipped(self, cli_env, patched_db, store, capsys):
        store.tables.add("suppliers_json")
        store.on('SELECT COUNT(*) FROM "suppliers_json"', rows=[(4,)])
        code = clean_tables.main(["--tables", "suppliers_json,legacy_suppliers", "--yes"])
        assert code == 0
        assert store.committed_sql() == ['TRUNCATE TABLE "suppliers_json" RESTART IDENTITY CASCADE']
        out = capsys.readouterr().out
        report = json.loads(out[out.index("{"):])
        assert report == {"truncated": ["suppliers_json"], "skipped": ["legacy_suppliers"], "dry_run": False}
        data = json.loads(manifests(cli_env)[0].read_text(encoding="utf-8"))
        assert data["before"]["row_counts"] == {"suppliers_json": 4, "legacy_suppliers": None}
        assert run_log(cli_env)[-1]["row_count"] == 4

    def test_bad_table_name(self, cli_env, patched_db):
        assert clean_tables.main(["--tables", "users; DROP TABLE x", "--yes"]) == 1
        assert patched_db.opened == 0

    def test_parse_tables(self):
        assert clean_tables.parse_tables("", include_suppliers=True) == ["suppliers_json", "suppliers"]
        assert clean_tables.parse_tables("a, b,a") == ["a", "b"]
