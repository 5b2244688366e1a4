import logging
import os
import queue
import sqlite3
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional

from src.book import BOOK_FIELDS

logger = logging.getLogger(__name__)

SQLITE_SCHEME = "sqlite://"


class PoolAcquireError(Exception):
    """Raised when no connection could be checked out of the pool."""


def parse_database_url(url: str) -> str:
    """Turns a connection string into a SQLite database file path.

    Accepts ``sqlite:///relative.db``, ``sqlite:////absolute/path.db`` or a bare
    filesystem path. Any other scheme is rejected.
    """
    if not url or not url.strip():
        raise ValueError("Database URL is empty.")
    url = url.strip()
    if url.startswith(SQLITE_SCHEME):
        path = url[len(SQLITE_SCHEME):]
        # sqlite:///books.db -> "/books.db" -> "books.db", sqlite:////tmp/x.db -> "//tmp/x.db" -> "/tmp/x.db"
        if path.startswith("/"):
            path = path[1:]
        if not path:
            raise ValueError(f"Database URL has no path: {url}")
        return path
    if "://" in url:
        raise ValueError(f"Unsupported database URL scheme: {url.split('://', 1)[0]}")
    return url


def _open_connection(database_file: str, busy_timeout: float) -> sqlite3.Connection:
    conn = sqlite3.connect(database_file, timeout=busy_timeout, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    # WAL lets readers proceed while another connection writes
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA temp_store=MEMORY;")
    return conn


class ConnectionPool:
    """A bounded set of SQLite connections shared by every request.

    All connections are opened up front so a bad database path fails at startup
    rather than on the first request. ``acquire()`` hands a connection to exactly
    one caller at a time and always puts it back.
    """

    def __init__(self, database_url: str, size: int = 10, acquire_timeout: float = 30.0) -> None:
        if size < 1:
            raise ValueError("Pool size must be at least 1.")
        self.database_file = parse_database_url(database_url)
        self.size = size
        self.acquire_timeout = acquire_timeout
        self._idle: "queue.Queue[sqlite3.Connection]" = queue.Queue(maxsize=size)
        self._all: List[sqlite3.Connection] = []
        self._lock = threading.Lock()
        self._closed = False

        try:
            for _ in range(size):
                conn = _open_connection(self.database_file, acquire_timeout)
                self._all.append(conn)
                self._idle.put_nowait(conn)
        except sqlite3.Error:
            self._close_all()
            raise
        logger.info(f"Connection pool opened: file={self.database_file}, size={size}")

    @property
    def closed(self) -> bool:
        return self._closed

    @contextmanager
    def acquire(self, timeout: Optional[float] = None) -> Iterator[sqlite3.Connection]:
        """Checks out one connection for the duration of the ``with`` block."""
        if self._closed:
            raise PoolAcquireError("Connection pool is closed.")
        wait = self.acquire_timeout if timeout is None else timeout
        try:
            conn = self._idle.get(timeout=wait)
        except queue.Empty as e:
            raise PoolAcquireError(f"No connection available within {wait}s (pool size {self.size}).") from e

        try:
            yield conn
        finally:
            self._release(conn)

    def _release(self, conn: sqlite3.Connection) -> None:
        try:
            # Never hand the next request an open transaction
            if conn.in_transaction:
                conn.rollback()
        except sqlite3.Error as e:
            logger.error(f"Rollback on release failed: {e}")
        # Checked under the lock so close() cannot drain before this put lands
        with self._lock:
            if not self._closed:
                self._idle.put_nowait(conn)
                return
        conn.close()

    def idle_count(self) -> int:
        return self._idle.qsize()

    def close(self) -> None:
        """Closes the pool. Connections still checked out are closed on release."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        while True:
            try:
                conn = self._idle.get_nowait()
            except queue.Empty:
                break
            conn.close()
        logger.info(f"Connection pool closed: file={self.database_file}")

    def _close_all(self) -> None:
        for conn in self._all:
            try:
                conn.close()
            except sqlite3.Error:
                pass
        self._all.clear()


_COLUMN_TYPES = {
    "id": "INTEGER PRIMARY KEY AUTOINCREMENT",
    "title": "TEXT NOT NULL",
    "author": "TEXT NOT NULL",
    "publisher": "TEXT NOT NULL",
    "isbn": "TEXT NOT NULL",
    "comment": "TEXT NOT NULL",
    "created_at": "TIMESTAMP NOT NULL",
    "updated_at": "TIMESTAMP NOT NULL",
}


def create_tables(pool: ConnectionPool) -> None:
    """Creates the books table if it does not exist yet. Existing tables are left untouched."""
    columns = ",\n            ".join(f"{name} {_COLUMN_TYPES[name]}" for name in BOOK_FIELDS)
    with pool.acquire() as conn:
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS books (
            {columns}
            )
        """)
        conn.commit()


def open_pool(database_url: Optional[str], size: int = 10, acquire_timeout: float = 30.0) -> ConnectionPool:
    """Opens the process-wide pool, failing loudly when configuration is missing."""
    if not database_url:
        raise RuntimeError("DATABASE_URL is not set.")
    directory = os.path.dirname(parse_database_url(database_url))
    if directory and not os.path.isdir(directory):
        raise RuntimeError(f"Database directory does not exist: {directory}")
    return ConnectionPool(database_url, size=size, acquire_timeout=acquire_timeout)
