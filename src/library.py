import logging
import sqlite3
from datetime import datetime
from enum import Enum
from typing import Callable, List

from src.book import Book, insert_params, update_comment_params
from src.database import ConnectionPool, PoolAcquireError

logger = logging.getLogger(__name__)

SELECT_ALL_BOOKS = "SELECT * FROM books"
INSERT_BOOK = (
    "INSERT INTO books (title, author, publisher, isbn, comment, created_at, updated_at) "
    "VALUES (?, ?, ?, ?, ?, ?, ?)"
)
# MAX() keeps updated_at >= created_at when the wall clock steps back
UPDATE_COMMENT = "UPDATE books SET comment = ?, updated_at = MAX(?, created_at) WHERE id = ?"
DELETE_BOOK = "DELETE FROM books WHERE id = ?"


class ErrorKind(Enum):
    ACQUIRE = "acquire"      # no connection could be checked out
    QUERY = "query"          # the statement (or row mapping) failed
    ROW_COUNT = "row_count"  # statement ran but touched an unexpected number of rows


class BookStoreError(Exception):
    """Failure of a single book operation, classified by kind."""

    def __init__(self, kind: ErrorKind, detail: str) -> None:
        super().__init__(detail)
        self.kind = kind
        self.detail = detail


class Library:
    """Runs the book statements against a shared connection pool.

    Every method checks out one connection, runs exactly one statement and gives the
    connection back. Storage errors never leave this class as ``sqlite3`` exceptions:
    they are re-raised as ``BookStoreError`` with the matching ``ErrorKind``.
    """

    def __init__(self, pool: ConnectionPool, clock: Callable[[], datetime] = datetime.now) -> None:
        self.pool = pool
        self._clock = clock

    # ------------------------- Core operations ------------------------- #
    def list_books(self) -> List[Book]:
        try:
            with self.pool.acquire() as conn:
                rows = conn.execute(SELECT_ALL_BOOKS).fetchall()
                return [Book.from_row(row) for row in rows]
        except PoolAcquireError as e:
            raise self._acquire_failed(e) from e
        except sqlite3.Error as e:
            raise self._query_failed("list books", e) from e
        except (KeyError, IndexError, ValueError, TypeError) as e:
            raise self._query_failed("map book rows", e) from e

    def create_book(self, title: str, author: str, publisher: str, isbn: str, comment: str) -> None:
        params = insert_params(title, author, publisher, isbn, comment, self._clock())
        count = self._execute(INSERT_BOOK, params, "create book")
        if count != 1:
            raise BookStoreError(ErrorKind.ROW_COUNT, f"Insert affected {count} rows.")

    def update_comment(self, book_id: int, comment: str) -> None:
        params = update_comment_params(book_id, comment, self._clock())
        count = self._execute(UPDATE_COMMENT, params, f"update comment of book {book_id}")
        if count != 1:
            raise BookStoreError(ErrorKind.ROW_COUNT, f"Book {book_id} not found.")

    def delete_book(self, book_id: int) -> None:
        count = self._execute(DELETE_BOOK, (book_id,), f"delete book {book_id}")
        if count != 1:
            raise BookStoreError(ErrorKind.ROW_COUNT, f"Book {book_id} not found.")

    # ------------------------- Helpers ------------------------- #
    def _execute(self, sql: str, params: tuple, action: str) -> int:
        """Runs one write statement, commits it and returns the affected row count."""
        try:
            with self.pool.acquire() as conn:
                cursor = conn.execute(sql, params)
                conn.commit()
                return cursor.rowcount
        except PoolAcquireError as e:
            raise self._acquire_failed(e) from e
        except OverflowError as e:
            # An id wider than SQLite INTEGER cannot match any row
            logger.warning(f"Failed to {action}: {e}")
            raise BookStoreError(ErrorKind.ROW_COUNT, f"No row matches: {e}") from e
        except (sqlite3.Error, ValueError, TypeError) as e:
            # ValueError covers UnicodeEncodeError while binding text
            raise self._query_failed(action, e) from e

    @staticmethod
    def _acquire_failed(e: Exception) -> BookStoreError:
        logger.error(f"Failed to acquire database connection: {e}")
        return BookStoreError(ErrorKind.ACQUIRE, str(e))

    @staticmethod
    def _query_failed(action: str, e: Exception) -> BookStoreError:
        logger.error(f"Failed to {action}: {e!r}")
        return BookStoreError(ErrorKind.QUERY, str(e))
