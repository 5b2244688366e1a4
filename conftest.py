import pytest
from fastapi.testclient import TestClient

from api import create_app
from config import Settings
from src.database import ConnectionPool, create_tables
from src.library import Library


@pytest.fixture
def db_url(tmp_path):
    # Each test gets its own SQLite file
    return f"sqlite:///{tmp_path / 'books.db'}"


@pytest.fixture
def pool(db_url):
    pool = ConnectionPool(db_url, size=2, acquire_timeout=0.2)
    create_tables(pool)
    yield pool
    pool.close()


@pytest.fixture
def lib(pool):
    return Library(pool)


@pytest.fixture
def app_settings(db_url):
    return Settings(database_url=db_url, database_pool_size=2, database_acquire_timeout=0.2)


@pytest.fixture
def client(app_settings):
    # Entering the context runs the lifespan, which opens the pool
    with TestClient(create_app(app_settings)) as test_client:
        yield test_client
