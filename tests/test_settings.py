"""Tests for settings and the connection pool wrapper."""
from pathlib import Path
from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from db.connection import Database
from errors import ConfigurationMissing, ConnectionFailed
from settings import Settings, env_flag


class TestSettings:
    def test_defaults(self):
        s = Settings.from_env({})
        assert s.database_url is None
        assert s.confirm_override is False
        assert s.require_audit is False
        assert s.manifest_dir == Path.cwd() / "backup"

    def test_env_values(self):
        s = Settings.from_env({
            "DATABASE_URL": "postgresql://u@h/db",
            "CONFIRM": "1",
            "REQUIRE_AUDIT": "true",
            "MANIFEST_DIR": "/tmp/m",
            "SOURCE_EXCEL_PATH": "/data/x.xlsx",
            "DB_STATEMENT_TIMEOUT_MS": "5000",
        })
        assert s.confirm_override and s.require_audit
        assert s.manifest_dir == Path("/tmp/m")
        assert s.excel_path == "/data/x.xlsx"
        assert s.connect_kwargs() == {
            "dsn": "postgresql://u@h/db",
            "connect_timeout": 10,
            "options": "-c statement_timeout=5000",
        }

    @pytest.mark.parametrize("value,expected", [("1", True), ("YES", True), ("0", False), (None, False), ("", False)])
    def test_env_flag(self, value, expected):
        assert env_flag(value) is expected

    def test_cli_url_wins(self):
        s = Settings.from_env({"DATABASE_URL": "postgresql://env"}).with_database_url("postgresql://cli")
        assert s.connect_kwargs()["dsn"] == "postgresql://cli"

    def test_discrete_db_vars(self):
        s = Settings.from_env({"DB_USERNAME": "ops", "DB_PASSWORD": "pw", "DB_HOST": "rds", "DB_SSLMODE": "require"})
        kw = s.connect_kwargs()
        assert (kw["host"], kw["user"], kw["dbname"], kw["sslmode"]) == ("rds", "ops", "supplier_ops", "require")

    def test_missing_connection_string(self):
        with pytest.raises(ConfigurationMissing) as exc:
            Settings.from_env({}).connect_kwargs()
        assert exc.value.exit_code == 1


class TestDatabase:
    @patch("psycopg2.pool.ThreadedConnectionPool")
    def test_pool_opened_lazily_with_settings(self, mock_pool_cls):
        db = Database(Settings.from_env({"DATABASE_URL": "postgresql://u@h/db", "DB_POOL_MAX": "3"}))
        assert not db.is_open
        with db:
            mock_pool_cls.assert_called_once_with(
                minconn=1, maxconn=3, dsn="postgresql://u@h/db", connect_timeout=10
            )
            assert db.is_open
        mock_pool_cls.return_value.closeall.assert_called_once()
        assert not db.is_open

    @patch("psycopg2.pool.ThreadedConnectionPool")
    def test_connection_always_returned(self, mock_pool_cls):
        pool = mock_pool_cls.return_value
        conn = MagicMock(closed=0)
        pool.getconn.return_value = conn
        db = Database(Settings.from_env({"DATABASE_URL": "postgresql://u@h/db"}))

        with pytest.raises(ValueError):
            with db.connection() as c:
                assert c.autocommit is False
                raise ValueError("boom")

        conn.rollback.assert_called_once()
        pool.putconn.assert_called_once_with(conn)

    @patch("psycopg2.pool.ThreadedConnectionPool", side_effect=psycopg2.OperationalError("refused"))
    def test_connect_error_wrapped(self, _):
        with pytest.raises(ConnectionFailed, match="refused"):
            Database(Settings.from_env({"DATABASE_URL": "postgresql://u@h/db"})).open()

    def test_missing_configuration_before_connecting(self):
        with patch("psycopg2.pool.ThreadedConnectionPool") as mock_pool_cls:
            with pytest.raises(ConfigurationMissing):
                Database(Settings.from_env({})).open()
            mock_pool_cls.assert_not_called()
