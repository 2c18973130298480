"""
Shared fixtures: an in-memory stand-in for the connection pool.

FakeStore holds what the "server" knows (tables, columns, canned responses) and what was
committed. Each FakeConnection keeps its uncommitted statements in `pending`; commit moves
them to `store.committed`, rollback discards them, savepoints truncate them.
"""
from contextlib import contextmanager

import pytest
from psycopg2 import sql

from db.schema import USER_COLUMNS

DDL_PREFIXES = ("CREATE", "ALTER", "TRUNCATE", "DROP")


def _raw(query) -> str:
    if isinstance(query, str):
        return query
    if isinstance(query, sql.Composed):
        return "".join(_raw(part) for part in query.seq)
    if isinstance(query, sql.Identifier):
        return ".".join(f'"{s}"' for s in query.strings)
    if isinstance(query, sql.SQL):
        return query.string
    if isinstance(query, sql.Literal):
        return repr(query.wrapped)
    if isinstance(query, sql.Placeholder):
        return "%s"
    raise TypeError(f"Unsupported query type: {type(query)!r}")


def render(query) -> str:
    """SQL text of a str or psycopg2.sql composable, whitespace collapsed."""
    return " ".join(_raw(query).split())


class FakeStore:
    def __init__(self):
        self.tables = set()
        self.columns = {}
        self.responses = []
        self.executed = []
        self.committed = []
        self.commits = 0
        self.rollbacks = 0
        self.fail_rollback = False

    def on(self, fragment: str, rows=None, rowcount=None, error=None, first=False):
        """First registered fragment contained in the SQL text decides the result."""
        response = {"fragment": fragment, "rows": rows, "rowcount": rowcount, "error": error}
        if first:
            self.responses.insert(0, response)
        else:
            self.responses.append(response)
        return self

    def committed_sql(self) -> list[str]:
        return [text for text, _params in self.committed]


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self.store = conn.store
        self.rowcount = -1
        self._rows = []
        self.closed = False

    def execute(self, query, params=None):
        text = render(query)
        self.store.executed.append((text, params))
        upper = text.upper()

        if upper.startswith("SAVEPOINT"):
            self.conn.savepoints.append(len(self.conn.pending))
            return
        if upper.startswith("ROLLBACK TO SAVEPOINT"):
            self.conn.pending = self.conn.pending[: self.conn.savepoints.pop()]
            return
        if upper.startswith("RELEASE SAVEPOINT"):
            self.conn.savepoints.pop()
            return

        if "TO_REGCLASS" in upper:
            name = str(params[0]).split(".")[-1]
            self._set([(name in self.store.tables,)])
            return
        if "INFORMATION_SCHEMA.COLUMNS" in upper:
            table = params[1]
            self._set([(c,) for c in self.store.columns.get(table, [])])
            return

        for r in self.store.responses:
            if r["fragment"] in text:
                if r["error"] is not None:
                    raise r["error"]
                rows = r["rows"](params) if callable(r["rows"]) else (r["rows"] or [])
                self._set(list(rows), r["rowcount"])
                break
        else:
            self._set([], -1 if upper.startswith(DDL_PREFIXES) else None)

        if not upper.startswith("SELECT"):
            self.conn.pending.append((text, params))

    def _set(self, rows, rowcount=None):
        self._rows = rows
        self.rowcount = rowcount if rowcount is not None else len(rows)

    def fetchone(self):
        return self._rows.pop(0) if self._rows else None

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class FakeConnection:
    def __init__(self, store: FakeStore):
        self.store = store
        self.pending = []
        self.savepoints = []
        self.autocommit = False
        self.closed = 0

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.store.committed.extend(self.pending)
        self.store.commits += 1
        self.pending = []

    def rollback(self):
        self.store.rollbacks += 1
        self.pending = []
        if self.store.fail_rollback:
            raise RuntimeError("connection lost during rollback")


class FakeDatabase:
    """Drop-in for db.connection.Database."""

    def __init__(self, store: FakeStore):
        self.store = store
        self.opened = 0
        self.acquired = 0
        self.released = 0

    def open(self):
        self.opened += 1
        return self

    def close(self):
        pass

    @contextmanager
    def connection(self):
        self.acquired += 1
        conn = FakeConnection(self.store)
        try:
            yield conn
        finally:
            conn.pending = []
            self.released += 1

    def __enter__(self):
        return self.open()

    def __exit__(self, *exc):
        self.close()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def fake_db(store):
    return FakeDatabase(store)


@pytest.fixture
def user_row():
    """One users row as the database returns it, in USER_COLUMNS order."""
    return (7, "Ana@Example.com", "ana", "Ana", "gerente", True, ["US"], None, None)


@pytest.fixture
def users_store(store, user_row):
    store.tables.update({"users", "suppliers_json"})
    store.columns["users"] = list(USER_COLUMNS)
    store.on("FROM users WHERE LOWER(email)", rows=lambda params: [user_row] if params[0].lower() == "ana@example.com" else [])
    store.on("UPDATE users", rowcount=1)
    return store


@pytest.fixture
def cli_env(monkeypatch, tmp_path):
    """Environment for CLI tests: fake URL, manifests and run log under tmp_path."""
    monkeypatch.setenv("DATABASE_URL", "postgresql://test@localhost/test")
    monkeypatch.setenv("MANIFEST_DIR", str(tmp_path / "backup"))
    monkeypatch.setenv("LOGS_DIR", str(tmp_path / "logs"))
    monkeypatch.delenv("CONFIRM", raising=False)
    monkeypatch.delenv("REQUIRE_AUDIT", raising=False)
    return tmp_path


@pytest.fixture
def sql_text():
    return render
