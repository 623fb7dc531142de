"""
Shared fixtures for PostgreSQL integration tests.

Requires PostgreSQL at ``DATABASE_URL`` (run with ``pytest -m integration``).
"""

from collections.abc import Generator

import pytest
from psycopg_pool import ConnectionPool

from waypost.adapters.repository.postgres import PostgresIdentityStore, run_migrations
from waypost.config.settings import get_settings


@pytest.fixture(scope="module")
def pool() -> Generator[ConnectionPool, None, None]:
    """Create connection pool and apply migrations."""
    settings = get_settings()
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=1,
        max_size=10,
        open=True,
    )
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture
def pg_store(pool: ConnectionPool) -> PostgresIdentityStore:
    return PostgresIdentityStore(pool)


@pytest.fixture
def clean_database(pool: ConnectionPool) -> Generator[None, None, None]:
    """Clean identities table before each test."""
    with pool.connection() as conn:
        conn.execute("DELETE FROM identities")
        conn.commit()
    yield
