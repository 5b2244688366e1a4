from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from api import create_app
from config import Settings
from src.library import Library

BOOK = {"title": "T", "author": "A", "publisher": "P", "isbn": "123", "comment": "c"}


class TickingClock:
    """Returns a later instant on every call."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def _pool(client):
    return client.app.state.library.pool


def _books(client):
    response = client.get("/books/")
    assert response.status_code == 200
    return response.json()


def test_health_returns_no_content(client):
    response = client.get("/health")
    assert response.status_code == 204
    assert response.content == b""


def test_health_ignores_storage_state(client):
    _pool(client).close()
    assert client.get("/health").status_code == 204
    assert client.get("/books/").status_code == 500


def test_get_books_empty(client):
    assert _books(client) == []


def test_create_book(client):
    response = client.post("/books/", json=BOOK)
    assert response.status_code == 201
    assert response.content == b""

    books = _books(client)
    assert len(books) == 1
    book = books[0]
    for key, value in BOOK.items():
        assert book[key] == value
    assert isinstance(book["id"], int)
    assert book["created_at"] == book["updated_at"]


def test_book_json_shape(client):
    client.post("/books/", json=BOOK)
    book = _books(client)[0]
    assert set(book) == {"id", "title", "author", "publisher", "isbn", "comment", "created_at", "updated_at"}
    # Naive timestamps: no offset, no "Z"
    parsed = datetime.fromisoformat(book["created_at"])
    assert parsed.tzinfo is None
    assert not book["created_at"].endswith("Z")


def test_create_adds_exactly_one_book(client):
    client.post("/books/", json=BOOK)
    client.post("/books/", json={**BOOK, "title": "Second"})
    books = _books(client)
    assert len(books) == 2
    assert len({b["id"] for b in books}) == 2


def test_create_book_missing_field(client):
    payload = {k: v for k, v in BOOK.items() if k != "isbn"}
    response = client.post("/books/", json=payload)
    assert response.status_code == 422
    assert _books(client) == []


def test_create_book_malformed_json(client):
    response = client.post("/books/", content=b"{not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 422


def test_update_comment_changes_only_comment(client):
    client.app.state.library = Library(_pool(client), clock=TickingClock())
    client.post("/books/", json=BOOK)
    before = _books(client)[0]

    response = client.patch(f"/books/{before['id']}", json={"comment": "c2"})
    assert response.status_code == 204
    assert response.content == b""

    after = _books(client)[0]
    assert after["comment"] == "c2"
    for key in ("id", "title", "author", "publisher", "isbn", "created_at"):
        assert after[key] == before[key]
    assert datetime.fromisoformat(after["updated_at"]) > datetime.fromisoformat(before["updated_at"])


def test_update_comment_unknown_id(client):
    client.post("/books/", json=BOOK)
    before = _books(client)

    response = client.patch("/books/9999", json={"comment": "nope"})
    assert response.status_code == 400
    assert _books(client) == before


def test_update_comment_requires_comment(client):
    client.post("/books/", json=BOOK)
    book_id = _books(client)[0]["id"]
    response = client.patch(f"/books/{book_id}", json={})
    assert response.status_code == 422


def test_non_integer_id_rejected(client):
    assert client.delete("/books/abc").status_code == 422
    assert client.patch("/books/abc", json={"comment": "x"}).status_code == 422


def test_delete_twice(client):
    client.post("/books/", json=BOOK)
    book_id = _books(client)[0]["id"]

    assert client.delete(f"/books/{book_id}").status_code == 204
    assert client.delete(f"/books/{book_id}").status_code == 400
    assert all(b["id"] != book_id for b in _books(client))


def test_delete_unknown_id_leaves_storage(client):
    client.post("/books/", json=BOOK)
    before = _books(client)
    assert client.delete("/books/424242").status_code == 400
    assert _books(client) == before


def test_full_book_lifecycle(client):
    assert client.post("/books/", json=BOOK).status_code == 201
    created = [b for b in _books(client) if b["title"] == "T"]
    assert len(created) == 1
    book_id = created[0]["id"]
    assert created[0]["comment"] == "c"

    assert client.patch(f"/books/{book_id}", json={"comment": "c2"}).status_code == 204
    assert [b["comment"] for b in _books(client) if b["id"] == book_id] == ["c2"]

    assert client.delete(f"/books/{book_id}").status_code == 204
    assert all(b["id"] != book_id for b in _books(client))

    assert client.patch(f"/books/{book_id}", json={"comment": "c3"}).status_code == 400


def test_query_failure_returns_500(client):
    with _pool(client).acquire() as conn:
        conn.execute("DROP TABLE books")
        conn.commit()

    assert client.get("/books/").status_code == 500
    assert client.post("/books/", json=BOOK).status_code == 500
    assert client.patch("/books/1", json={"comment": "x"}).status_code == 500
    assert client.delete("/books/1").status_code == 500


def test_error_body_hides_storage_details(client):
    with _pool(client).acquire() as conn:
        conn.execute("DROP TABLE books")
        conn.commit()
    response = client.get("/books/")
    assert "books" not in response.text


def test_pool_exhaustion_returns_500(db_url):
    cfg = Settings(database_url=db_url, database_pool_size=1, database_acquire_timeout=0.05)
    with TestClient(create_app(cfg)) as test_client:
        pool = _pool(test_client)
        with pool.acquire():
            assert test_client.get("/books/").status_code == 500
            assert test_client.post("/books/", json=BOOK).status_code == 500
            assert test_client.patch("/books/1", json={"comment": "x"}).status_code == 500
            assert test_client.delete("/books/1").status_code == 500
        # Connection is back; requests work again
        assert test_client.get("/books/").status_code == 200


def test_unexpected_row_count_on_create(client, monkeypatch):
    monkeypatch.setattr(Library, "_execute", lambda self, sql, params, action: 0)
    assert client.post("/books/", json=BOOK).status_code == 400


def test_startup_fails_without_database_url():
    app = create_app(Settings(database_url=None))
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        with TestClient(app):
            pass


def test_startup_fails_when_database_unreachable(tmp_path):
    missing = tmp_path / "no-such-dir" / "books.db"
    app = create_app(Settings(database_url=f"sqlite:///{missing}"))
    with pytest.raises(RuntimeError):
        with TestClient(app):
            pass


def test_pool_closed_on_shutdown(app_settings):
    with TestClient(create_app(app_settings)) as test_client:
        pool = _pool(test_client)
        assert not pool.closed
    assert pool.closed


@pytest.mark.parametrize("method", ["patch", "delete"])
def test_id_wider_than_integer_column(client, method):
    client.post("/books/", json=BOOK)
    before = _books(client)
    kwargs = {"json": {"comment": "x"}} if method == "patch" else {}
    response = getattr(client, method)("/books/99999999999999999999", **kwargs)
    assert response.status_code == 400
    assert _books(client) == before


def test_unencodable_text_returns_500(client):
    # A lone surrogate survives JSON decoding but cannot be stored as UTF-8
    body = b'{"title":"\\ud800","author":"A","publisher":"P","isbn":"1","comment":"c"}'
    response = client.post("/books/", content=body, headers={"Content-Type": "application/json"})
    assert response.status_code == 500
    assert _books(client) == []


def test_unencodable_comment_returns_500(client):
    client.post("/books/", json=BOOK)
    book = _books(client)[0]
    body = b'{"comment":"\\udfff"}'
    response = client.patch(f"/books/{book['id']}", content=body, headers={"Content-Type": "application/json"})
    assert response.status_code == 500
    assert _books(client)[0]["comment"] == "c"
