import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import Response
from pydantic import BaseModel

from config import Settings, settings as default_settings
from src.book import Book
from src.database import create_tables, open_pool
from src.library import BookStoreError, ErrorKind, Library


# --- Models ---
class BookModel(BaseModel):
    id: int
    title: str
    author: str
    publisher: str
    isbn: str
    comment: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_book(cls, book: Book) -> "BookModel":
        return cls(**book.to_dict())


class CreateNewBookRequest(BaseModel):
    title: str
    author: str
    publisher: str
    isbn: str
    comment: str


class UpdateCommentRequest(BaseModel):
    comment: str


# --- Dependencies ---
def get_library(request: Request) -> Library:
    """Hands each request the process-wide Library bound to the shared pool."""
    return request.app.state.library


# Storage error kinds -> HTTP status
STATUS_BY_KIND = {
    ErrorKind.ACQUIRE: 500,
    ErrorKind.QUERY: 500,
    ErrorKind.ROW_COUNT: 400,
}


def _to_http_error(e: BookStoreError) -> HTTPException:
    status = STATUS_BY_KIND[e.kind]
    if status >= 500:
        # Storage details stay in the log
        return HTTPException(status_code=status, detail="Internal Server Error")
    return HTTPException(status_code=status, detail=e.detail)


# --- Health check ---
def health_check():
    """Liveness probe; does not touch the database."""
    return Response(status_code=204)


# --- Books ---
books_router = APIRouter(prefix="/books", tags=["books"])


@books_router.get("/", response_model=List[BookModel])
def book_list(library: Library = Depends(get_library)):
    try:
        books = library.list_books()
    except BookStoreError as e:
        raise _to_http_error(e)
    return [BookModel.from_book(book) for book in books]


@books_router.post("/", status_code=201)
def create_item(req: CreateNewBookRequest, library: Library = Depends(get_library)):
    try:
        library.create_book(req.title, req.author, req.publisher, req.isbn, req.comment)
    except BookStoreError as e:
        raise _to_http_error(e)
    return Response(status_code=201)


@books_router.patch("/{id}", status_code=204)
def update_comment(id: int, req: UpdateCommentRequest, library: Library = Depends(get_library)):
    try:
        library.update_comment(id, req.comment)
    except BookStoreError as e:
        raise _to_http_error(e)
    return Response(status_code=204)


@books_router.delete("/{id}", status_code=204)
def delete_item(id: int, library: Library = Depends(get_library)):
    try:
        library.delete_book(id)
    except BookStoreError as e:
        raise _to_http_error(e)
    return Response(status_code=204)


# --- Application ---
def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """Builds the FastAPI app. The pool opens on startup and closes on shutdown."""
    cfg = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Missing DATABASE_URL or an unreachable database aborts startup
        pool = open_pool(
            cfg.database_url,
            size=cfg.database_pool_size,
            acquire_timeout=cfg.database_acquire_timeout,
        )
        try:
            create_tables(pool)
            app.state.library = Library(pool)
            yield
        finally:
            pool.close()

    app = FastAPI(title=cfg.app_name, version=cfg.app_version, debug=cfg.debug, lifespan=lifespan)
    app.add_api_route("/health", health_check, methods=["GET"], status_code=204)
    app.include_router(books_router)
    return app


logging.basicConfig(level=default_settings.log_level)

app = create_app()
