"""
SQLite database integration and simple migration system.

This module provides a bounded pool of SQLite connections shared by
the bot and the HTTP API (``ConnectionPool``) and applies schema
migrations on start (``init_db``).  Connections are opened lazily up to
the pool size and handed out one at a time; a caller that finds the
pool exhausted waits for a connection to be returned.

The migration mechanism stores applied migration versions in the
``migrations`` table and executes new migrations in order.
"""

import logging
import queue
import sqlite3
import threading
from contextlib import contextmanager
from typing import Iterator, List, Tuple

from .errors import StorageError

logger = logging.getLogger(__name__)

MIGRATIONS: List[Tuple[int, str]] = [
    # Migration 1: Initial schema
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS cards (
            id TEXT NOT NULL,
            owner_id TEXT NOT NULL UNIQUE,
            username TEXT NOT NULL
        );
        """,
    ),
    # Migration 2: count in-place overwrites so an upsert can report
    # whether it created or updated the row
    (
        2,
        """
        ALTER TABLE cards ADD COLUMN revision INTEGER NOT NULL DEFAULT 0;
        """,
    ),
]


class ConnectionPool:
    """Fixed-capacity pool of SQLite connections.

    Parameters
    ----------
    database : str
        Path of the database file.  The file is created if missing.
    size : int
        Maximum number of open connections.
    acquire_timeout : float
        Seconds to wait for a free connection before giving up with
        :class:`StorageError`.
    busy_timeout : float
        Seconds SQLite waits on a locked database before failing.
    """

    def __init__(
        self,
        database: str,
        size: int = 5,
        acquire_timeout: float = 30.0,
        busy_timeout: float = 30.0,
    ) -> None:
        if size < 1:
            raise ValueError("pool size must be at least 1")
        self.database = database
        self.size = size
        self.acquire_timeout = acquire_timeout
        self.busy_timeout = busy_timeout
        self._idle: "queue.LifoQueue[sqlite3.Connection]" = queue.LifoQueue(maxsize=size)
        self._slots = threading.BoundedSemaphore(size)
        self._closed = False

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(
                self.database,
                timeout=self.busy_timeout,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode = WAL")
        except sqlite3.Error as exc:
            raise StorageError(f"cannot open database {self.database}: {exc}") from exc
        return conn

    def _acquire(self) -> sqlite3.Connection:
        if self._closed:
            raise StorageError("connection pool is closed")
        if not self._slots.acquire(timeout=self.acquire_timeout):
            raise StorageError("timed out waiting for a database connection")
        try:
            return self._idle.get_nowait()
        except queue.Empty:
            pass
        try:
            return self._connect()
        except StorageError:
            self._slots.release()
            raise

    def _release(self, conn: sqlite3.Connection) -> None:
        if self._closed:
            conn.close()
        else:
            self._idle.put_nowait(conn)
        self._slots.release()

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Borrow a connection for one transaction.

        The transaction is committed when the block exits normally and
        rolled back when it raises.
        """
        conn = self._acquire()
        try:
            with conn:
                yield conn
        finally:
            self._release(conn)

    def close(self) -> None:
        """Close idle connections; borrowed ones are closed when returned."""
        self._closed = True
        while True:
            try:
                self._idle.get_nowait().close()
            except queue.Empty:
                break


def init_db(pool: ConnectionPool) -> int:
    """Apply pending migrations and return the resulting schema version.

    Creates the ``migrations`` table if it does not exist, checks the
    current schema version, and applies any newer entries of
    ``MIGRATIONS``.  Raises :class:`StorageError` when the database
    cannot be opened or a migration fails.
    """
    try:
        with pool.connection() as conn:
            conn.execute("CREATE TABLE IF NOT EXISTS migrations (version INTEGER PRIMARY KEY)")
            row = conn.execute("SELECT MAX(version) AS version FROM migrations").fetchone()
            current_version = row["version"] if row and row["version"] is not None else 0

            for version, sql in MIGRATIONS:
                if version > current_version:
                    # executescript() commits first, so each migration runs
                    # in its own explicit transaction
                    conn.executescript(
                        f"BEGIN;\n{sql}\nINSERT INTO migrations (version) VALUES ({version});\nCOMMIT;"
                    )
                    logger.info("Applied database migration %d", version)
                    current_version = version
    except sqlite3.Error as exc:
        raise StorageError(f"cannot apply migrations: {exc}") from exc
    return current_version
