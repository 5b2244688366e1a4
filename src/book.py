from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

# Column order of the books table; the single source for mapping and DDL.
BOOK_FIELDS = ("id", "title", "author", "publisher", "isbn", "comment", "created_at", "updated_at")


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        return datetime.fromisoformat(value.strip())
    raise ValueError(f"Not a timestamp: {value!r}")


def format_timestamp(value: datetime) -> str:
    """Naive ISO-8601 text, the form timestamps are stored in."""
    return value.replace(tzinfo=None).isoformat()


class Book:
    """A single row of the books table."""

    def __init__(self, id: int, title: str, author: str, publisher: str, isbn: str, comment: str,
                 created_at: datetime, updated_at: datetime) -> None:
        self.id = id
        self.title = title
        self.author = author
        self.publisher = publisher
        self.isbn = isbn
        self.comment = comment
        self.created_at = created_at
        self.updated_at = updated_at

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Book):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def to_dict(self) -> dict:
        return {name: getattr(self, name) for name in BOOK_FIELDS}

    @staticmethod
    def from_row(row: Mapping[str, Any]) -> "Book":
        """Builds a Book from a database row, field by field.

        A missing column raises KeyError (IndexError for ``sqlite3.Row``) and a
        malformed value raises ValueError; a half-filled record is never returned.
        """
        return Book(
            id=int(row["id"]),
            title=str(row["title"]),
            author=str(row["author"]),
            publisher=str(row["publisher"]),
            isbn=str(row["isbn"]),
            comment=str(row["comment"]),
            created_at=_parse_timestamp(row["created_at"]),
            updated_at=_parse_timestamp(row["updated_at"]),
        )


def insert_params(title: str, author: str, publisher: str, isbn: str, comment: str, now: datetime) -> tuple:
    """Bind parameters for the INSERT statement; both timestamps get the same instant."""
    stamp = format_timestamp(now)
    return (title, author, publisher, isbn, comment, stamp, stamp)


def update_comment_params(book_id: int, comment: str, now: datetime) -> tuple:
    return (comment, format_timestamp(now), book_id)
