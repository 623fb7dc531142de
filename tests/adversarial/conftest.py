"""
Shared fixtures for adversarial tests.

Provides common test infrastructure for race condition, token guessing
and timing tests against PostgreSQL.
"""

from collections.abc import Generator
from unittest.mock import Mock

import pytest
from psycopg_pool import ConnectionPool

from waypost.adapters.repository.postgres import PostgresIdentityStore, run_migrations
from waypost.config.settings import get_settings
from waypost.domain.credentials import CredentialService
from waypost.domain.identity import Identity, NewIdentityRequest

# Module-level marker for all adversarial tests
pytestmark = pytest.mark.adversarial


@pytest.fixture(scope="module")
def pool() -> Generator[ConnectionPool, None, None]:
    """Create connection pool for adversarial tests."""
    settings = get_settings()
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=1,
        max_size=20,
        open=True,
    )
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture
def pg_store(pool: ConnectionPool) -> PostgresIdentityStore:
    """Create store instance for each test."""
    return PostgresIdentityStore(pool)


@pytest.fixture
def pg_service(pg_store: PostgresIdentityStore) -> CredentialService:
    """Credential service over PostgreSQL with mocked outbound ports."""
    return CredentialService(
        store=pg_store,
        notifier=Mock(),
        sessions=Mock(),
        token_exchange=Mock(),
        bcrypt_rounds=10,
    )


@pytest.fixture(autouse=True)
def clean_database(pool: ConnectionPool) -> Generator[None, None, None]:
    """Clean identities table before each test."""
    with pool.connection() as conn:
        conn.execute("DELETE FROM identities")
        conn.commit()
    yield


@pytest.fixture
def signup_user(pg_service: CredentialService):
    """Factory: sign up ``username`` and return the stored identity (token included)."""

    def signup(username: str, password: str = "password123") -> Identity:
        pg_service.signup(
            NewIdentityRequest(
                first_name="Full",
                last_name="Name",
                username=username,
                password=password,
                email=f"{username}@example.com",
            )
        )
        return pg_service.store.find_by_username(username)

    return signup
