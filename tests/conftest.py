"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- In-memory identity store
- Credential service wired with mocked notifier, sessions and token exchange
- Signup request factory
"""

from datetime import UTC, datetime
from unittest.mock import Mock

import pytest

from waypost.adapters.repository.memory import InMemoryIdentityStore
from waypost.domain.credentials import CredentialService
from waypost.domain.identity import NewIdentityRequest

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    """Settable clock for token and expiry timestamps."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def make_signup_request(**overrides) -> NewIdentityRequest:
    """Signup request with all required fields, overridable per test."""
    values = {
        "first_name": "Full",
        "last_name": "Name",
        "username": "u1",
        "password": "password123",
        "email": "u1@test.com",
    }
    values.update(overrides)
    return NewIdentityRequest(**values)


@pytest.fixture
def make_request():
    """Factory fixture for signup requests."""
    return make_signup_request


@pytest.fixture
def store() -> InMemoryIdentityStore:
    return InMemoryIdentityStore()


@pytest.fixture
def notifier() -> Mock:
    return Mock()


@pytest.fixture
def sessions() -> Mock:
    return Mock()


@pytest.fixture
def token_exchange() -> Mock:
    return Mock()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def service(
    store: InMemoryIdentityStore,
    notifier: Mock,
    sessions: Mock,
    token_exchange: Mock,
    clock: FakeClock,
) -> CredentialService:
    """Credential service with in-memory store; bcrypt cost lowered for speed."""
    return CredentialService(
        store=store,
        notifier=notifier,
        sessions=sessions,
        token_exchange=token_exchange,
        provider_clients={"facebook": ("fb-client-id", "fb-client-secret")},
        bcrypt_rounds=4,
        clock=clock,
    )
