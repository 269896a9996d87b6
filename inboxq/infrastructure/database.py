"""
SQLite access for the ledger, digests, corrections, sender profiles and
user config.

Everything lives in one database file (INBOXQ_DB_PATH, default
inboxq/data/inboxq.db). The triage timer, the digest schedule and API
request threads share a small connection pool; when it runs dry a bounded
number of overflow connections is opened and closed again on return.
Writers that may collide wrap themselves in @retry_on_db_lock().
"""

from __future__ import annotations

import atexit
import os
import random
import sqlite3
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from functools import wraps
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Any, TypeVar

from inboxq.config import (
    DB_CONNECT_TIMEOUT,
    DB_POOL_SIZE,
    DB_POOL_TIMEOUT,
    DB_RETRY_BASE_DELAY,
    DB_RETRY_JITTER,
    DB_RETRY_MAX,
    DB_RETRY_MAX_DELAY,
    DB_TEMP_CONN_MAX,
)
from inboxq.observability.logging import get_logger
from inboxq.observability.telemetry import counter, log_event

F = TypeVar("F", bound=Callable[..., Any])

DB_PATH = Path(__file__).parent.parent / "data" / "inboxq.db"

logger = get_logger(__name__)


def _is_lock_error(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return "locked" in message or "busy" in message


def _backoff(attempt: int, base_delay: float, max_delay: float) -> float:
    delay = min(base_delay * 2**attempt, max_delay)
    return delay + random.uniform(0, delay * DB_RETRY_JITTER)


def retry_on_db_lock(
    max_retries: int = DB_RETRY_MAX,
    base_delay: float = DB_RETRY_BASE_DELAY,
    max_delay: float = DB_RETRY_MAX_DELAY,
) -> Callable[[F], F]:
    """
    Retry a database operation while SQLite reports the database busy.

    Other OperationalErrors propagate immediately, as does the lock error
    from the final attempt.

    Side Effects:
        - Sleeps with exponential backoff and jitter between attempts
        - Increments database.lock_retry per retry
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except sqlite3.OperationalError as e:
                    if not _is_lock_error(e) or attempt >= max_retries:
                        raise
                    pause = _backoff(attempt, base_delay, max_delay)
                    attempt += 1
                    counter("database.lock_retry")
                    logger.warning(
                        "%s hit a locked database (retry %d/%d in %.2fs)",
                        func.__name__,
                        attempt,
                        max_retries,
                        pause,
                    )
                    time.sleep(pause)

        return wrapper  # type: ignore[return-value]

    return decorator


class DatabaseConnectionPool:
    """
    Fixed-size pool of SQLite connections usable from any thread.

    Connections use WAL journaling, enforce foreign keys and return
    sqlite3.Row rows so the Store can build models from dict(row).
    """

    def __init__(self, db_path: Path, pool_size: int = DB_POOL_SIZE):
        self.db_path = db_path
        self.pool_size = pool_size
        self.closed = False
        self._idle: Queue[sqlite3.Connection] = Queue(maxsize=pool_size)
        self._lock = threading.Lock()
        # sqlite3.Connection takes no extra attributes, so overflow
        # connections are remembered by id
        self._overflow: set[int] = set()

        for _ in range(pool_size):
            self._idle.put(self._connect())
        atexit.register(self.close_all)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self.db_path), timeout=DB_CONNECT_TIMEOUT, check_same_thread=False
        )
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA foreign_keys=ON")
        conn.row_factory = sqlite3.Row
        return conn

    def get_connection(self) -> sqlite3.Connection:
        """
        Raises:
            RuntimeError: If the pool is closed, or empty with every
                overflow slot taken
        """
        if self.closed:
            raise RuntimeError("Connection pool has been closed")

        try:
            return self._idle.get(timeout=DB_POOL_TIMEOUT)
        except Empty:
            pass

        with self._lock:
            if len(self._overflow) >= DB_TEMP_CONN_MAX:
                raise RuntimeError(
                    f"Database pool exhausted ({self.pool_size} pooled, "
                    f"{DB_TEMP_CONN_MAX} overflow connections in use)"
                )
            conn = self._connect()
            self._overflow.add(id(conn))
            in_use = len(self._overflow)

        counter("database.pool_exhausted")
        log_event("database.pool_exhausted", pool_size=self.pool_size, overflow=in_use)
        return conn

    def return_connection(self, conn: sqlite3.Connection) -> None:
        with self._lock:
            overflow = id(conn) in self._overflow
            self._overflow.discard(id(conn))

        if overflow or self.closed:
            conn.close()
            return
        try:
            self._idle.put_nowait(conn)
        except Full:
            conn.close()

    def close_all(self) -> None:
        self.closed = True
        while True:
            try:
                self._idle.get_nowait().close()
            except Empty:
                return


_pool: DatabaseConnectionPool | None = None
_pool_lock = threading.Lock()


def get_db_path() -> Path:
    """INBOXQ_DB_PATH if set, else inboxq/data/inboxq.db."""
    override = os.getenv("INBOXQ_DB_PATH")
    return Path(override) if override else DB_PATH


def get_pool() -> DatabaseConnectionPool:
    """The process pool, opened on first use against get_db_path()."""
    global _pool
    with _pool_lock:
        if _pool is None:
            _pool = DatabaseConnectionPool(get_db_path())
        return _pool


def reset_pool() -> None:
    """
    Close and drop the process pool; the next access reopens it, picking up
    a changed INBOXQ_DB_PATH.
    """
    global _pool
    with _pool_lock:
        if _pool is not None:
            _pool.close_all()
        _pool = None


@contextmanager
def get_db_connection() -> Iterator[sqlite3.Connection]:
    """
    Borrow a pooled connection for the duration of the block.

    Raises:
        FileNotFoundError: If the database file does not exist yet
    """
    db_path = get_db_path()
    if not db_path.exists():
        raise FileNotFoundError(f"Database not found: {db_path} (run init_database() first)")

    pool = get_pool()
    conn = pool.get_connection()
    try:
        yield conn
    finally:
        pool.return_connection(conn)


@contextmanager
def db_transaction() -> Iterator[sqlite3.Connection]:
    """Borrowed connection that commits on success and rolls back on error."""
    with get_db_connection() as conn:
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        conn.commit()


def init_database() -> None:
    """
    Create the schema if missing (idempotent).

    Side Effects:
        - Creates the data directory, tables and indexes
    """
    from inboxq.infrastructure.database_schema import init_database as create_schema

    create_schema(get_db_path())
