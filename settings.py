"""
Runtime configuration, read from the environment.

Connection: DATABASE_URL, or DB_HOST / DB_USERNAME / DB_PASSWORD / DB_NAME / DB_PORT.
Optional: DB_SSLMODE, DB_CONNECT_TIMEOUT (seconds), DB_STATEMENT_TIMEOUT_MS, DB_POOL_MAX.
Safety: CONFIRM=1 stands in for --yes; REQUIRE_AUDIT=1 aborts a real mutation when its
manifest cannot be written.
Paths: MANIFEST_DIR (default backup/), LOGS_DIR (default logs/), EXCEL_PATH.
"""
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

from errors import ConfigurationMissing

ROOT = Path(__file__).resolve().parent

TRUE_VALUES = {"1", "true", "yes", "y", "on"}


def env_flag(value: Optional[str]) -> bool:
    return str(value or "").strip().lower() in TRUE_VALUES


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_username: str = ""
    db_password: str = ""
    db_name: str = "supplier_ops"
    db_port: str = "5432"
    db_sslmode: Optional[str] = None
    connect_timeout: int = 10
    statement_timeout_ms: Optional[int] = None
    pool_max: int = 5
    confirm_override: bool = False
    require_audit: bool = False
    manifest_dir: Path = field(default_factory=lambda: Path.cwd() / "backup")
    logs_dir: Path = field(default_factory=lambda: Path.cwd() / "logs")
    excel_path: Optional[str] = None
    smoke_base_url: Optional[str] = None

    @classmethod
    def from_env(cls, env=None) -> "Settings":
        env = os.environ if env is None else env
        statement_timeout = env.get("DB_STATEMENT_TIMEOUT_MS")
        return cls(
            database_url=env.get("DATABASE_URL") or None,
            db_host=env.get("DB_HOST", "localhost"),
            db_username=env.get("DB_USERNAME", ""),
            db_password=env.get("DB_PASSWORD", ""),
            db_name=env.get("DB_NAME", "supplier_ops"),
            db_port=env.get("DB_PORT", "5432"),
            db_sslmode=env.get("DB_SSLMODE") or None,
            connect_timeout=int(env.get("DB_CONNECT_TIMEOUT", "10")),
            statement_timeout_ms=int(statement_timeout) if statement_timeout else None,
            pool_max=int(env.get("DB_POOL_MAX", "5")),
            confirm_override=env_flag(env.get("CONFIRM")),
            require_audit=env_flag(env.get("REQUIRE_AUDIT")),
            manifest_dir=Path(env.get("MANIFEST_DIR") or Path.cwd() / "backup"),
            logs_dir=Path(env.get("LOGS_DIR") or Path.cwd() / "logs"),
            excel_path=env.get("EXCEL_PATH") or env.get("SOURCE_EXCEL_PATH") or None,
            smoke_base_url=env.get("SMOKE_BASE_URL") or None,
        )

    def with_database_url(self, url: Optional[str]) -> "Settings":
        """Copy with an explicit --db URL taking precedence over the environment."""
        if not url:
            return self
        return replace(self, database_url=url)

    def connect_kwargs(self) -> dict:
        """Keyword arguments for psycopg2.connect / the connection pool."""
        if not self.database_url and not self.db_username:
            raise ConfigurationMissing(
                "Database not configured. Set DATABASE_URL, or DB_USERNAME, DB_PASSWORD, "
                "DB_HOST, DB_NAME in the environment."
            )
        if self.database_url:
            kwargs = {"dsn": self.database_url}
        else:
            kwargs = {
                "host": self.db_host,
                "dbname": self.db_name,
                "user": self.db_username,
                "password": self.db_password,
                "port": self.db_port,
            }
        kwargs["connect_timeout"] = self.connect_timeout
        if self.db_sslmode:
            kwargs["sslmode"] = self.db_sslmode
        if self.statement_timeout_ms:
            kwargs["options"] = f"-c statement_timeout={self.statement_timeout_ms}"
        return kwargs
