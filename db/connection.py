"""
Connection pool handle. Constructed once per process from Settings, connections are
acquired per unit of work and always returned to the pool.

    with Database(settings) as db:
        with db.connection() as conn:
            ...
"""
import logging
from contextlib import contextmanager
from typing import Iterator

import psycopg2
import psycopg2.pool

from errors import ConnectionFailed
from settings import Settings

logger = logging.getLogger(__name__)


class Database:
    def __init__(self, settings: Settings):
        self.settings = settings
        self._pool = None

    def open(self) -> "Database":
        if self._pool is not None:
            return self
        kwargs = self.settings.connect_kwargs()
        try:
            self._pool = psycopg2.pool.ThreadedConnectionPool(
                minconn=1, maxconn=self.settings.pool_max, **kwargs
            )
        except psycopg2.Error as e:
            raise ConnectionFailed(f"Connection failed: {e}") from e
        logger.debug("Connection pool opened (max %s)", self.settings.pool_max)
        return self

    def close(self) -> None:
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logger.debug("Connection pool closed")

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    @contextmanager
    def connection(self) -> Iterator:
        """Borrow a connection (autocommit off). Uncommitted work is rolled back on release."""
        if self._pool is None:
            self.open()
        conn = self._pool.getconn()
        try:
            conn.autocommit = False
            yield conn
        finally:
            try:
                if not conn.closed:
                    conn.rollback()
            except psycopg2.Error as e:
                logger.warning("Rollback on release failed: %s", e)
            self._pool.putconn(conn)

    def __enter__(self) -> "Database":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
