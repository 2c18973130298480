"""
All-or-nothing execution of an ordered list of statements.

    mutator = TransactionalMutator(db, confirmed=args.yes, dry_run=args.dry_run,
                                   confirm_override=settings.confirm_override)
    rows = mutator.run([Statement("truncate users", "TRUNCATE users", exists=...)])

Gate: without confirmation (flag or CONFIRM=1) nothing is opened or executed; dry runs
need no confirmation because they always roll back.
Per statement: existence check (missing target -> skipped, batch continues), execute,
optional fallback when the statement touches an optional column, require_match -> NotFound.
Any other error -> rollback -> TransactionFailed. A failing rollback is logged only.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

import psycopg2

from errors import ConfirmationRequired, NotFound, OpsError, TransactionFailed

logger = logging.getLogger(__name__)

SAVEPOINT = "mutator_fallback"


@dataclass
class Statement:
    name: str
    sql: Any = None
    params: Any = None
    # run(cur) -> affected rows; replaces sql/params for multi-step work
    run: Optional[Callable[[Any], int]] = None
    # exists(cur) -> bool; False skips this statement
    exists: Optional[Callable[[Any], bool]] = None
    # same change without the optional column, tried when this one fails
    fallback: Optional["Statement"] = None
    require_match: bool = False

    def execute(self, cur) -> int:
        if self.run is not None:
            return int(self.run(cur) or 0)
        cur.execute(self.sql, self.params)
        # DDL / TRUNCATE report no row count
        return cur.rowcount if cur.rowcount is not None and cur.rowcount >= 0 else 1


class TransactionalMutator:
    def __init__(self, database, confirmed: bool = False, dry_run: bool = False,
                 confirm_override: bool = False):
        self.database = database
        self.confirmed = confirmed
        self.dry_run = dry_run
        self.confirm_override = confirm_override
        self.skipped: list[str] = []
        self.affected = 0

    def check_gate(self) -> None:
        if self.dry_run or self.confirmed or self.confirm_override:
            return
        raise ConfirmationRequired()

    def run(self, statements: Iterable[Statement]) -> int:
        """Execute statements in order in one transaction. Returns affected rows."""
        statements = list(statements)
        self.check_gate()
        self.skipped = []
        self.affected = 0
        with self.database.connection() as conn:
            cur = conn.cursor()
            current = None
            try:
                for st in statements:
                    current = st.name
                    if st.exists is not None and not st.exists(cur):
                        logger.warning("Skipping %s: target does not exist", st.name)
                        self.skipped.append(st.name)
                        continue
                    n = self._execute(cur, st)
                    logger.debug("%s: %s row(s)", st.name, n)
                    if st.require_match and n == 0:
                        raise NotFound(f"{st.name}: no matching rows")
                    self.affected += n
                current = None
                if self.dry_run:
                    conn.rollback()
                    logger.info("Dry run: %s statement(s) rolled back", len(statements) - len(self.skipped))
                else:
                    conn.commit()
                    logger.info("Committed %s statement(s), %s row(s)",
                                len(statements) - len(self.skipped), self.affected)
            except OpsError:
                self._rollback(conn)
                raise
            except Exception as e:
                self._rollback(conn)
                where = current or "commit"
                raise TransactionFailed(f"{where} failed, transaction rolled back", cause=e) from e
            finally:
                cur.close()
        return self.affected

    def _execute(self, cur, st: Statement) -> int:
        if st.fallback is None:
            return st.execute(cur)
        cur.execute(f"SAVEPOINT {SAVEPOINT}")
        try:
            n = st.execute(cur)
        except psycopg2.Error as e:
            logger.warning("%s failed (%s); retrying as %s", st.name, str(e).strip(), st.fallback.name)
            cur.execute(f"ROLLBACK TO SAVEPOINT {SAVEPOINT}")
            return self._execute(cur, st.fallback)
        cur.execute(f"RELEASE SAVEPOINT {SAVEPOINT}")
        return n

    @staticmethod
    def _rollback(conn) -> None:
        try:
            conn.rollback()
        except Exception as e:
            logger.error("Rollback failed: %s", e)
