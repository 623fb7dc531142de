"""
Integration tests for PostgresIdentityStore.

Tests store operations against a real PostgreSQL database.
Requires PostgreSQL to be running (via docker-compose).
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from waypost.adapters.repository.postgres import PostgresIdentityStore
from waypost.domain.exceptions import ConflictError, StorageError
from waypost.domain.identity import Identity, ProviderLink, ProviderName, compute_email_hash
from waypost.domain.ports import Present, Set, Unset

pytestmark = [pytest.mark.integration, pytest.mark.usefixtures("clean_database")]

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def make_identity(**overrides) -> Identity:
    values = {
        "first_name": "Full",
        "last_name": "Name",
        "username": "u1",
        "email": "u1@test.com",
        "display_name": "Full Name",
        "display_username": "u1",
        "email_temporary": "u1@test.com",
        "email_token": "a" * 40,
        "email_token_expires": NOW + timedelta(days=7),
        "email_hash": compute_email_hash("u1@test.com"),
        "password_hash": "$2b$10$hashedpasswordvalue",
        "salt": "$2b$10$salt",
        "profile": {"description": "Hello"},
        "created": NOW,
        "updated": NOW,
    }
    values.update(overrides)
    return Identity(**values)


class TestCreate:
    """Tests for create."""

    def test_create_round_trip(self, pg_store: PostgresIdentityStore) -> None:
        identity = make_identity()

        created = pg_store.create(identity)

        assert created == identity
        assert pg_store.find_by_id(identity.id) == identity
        assert pg_store.find_by_username("u1") == identity

    def test_duplicate_username(self, pg_store: PostgresIdentityStore) -> None:
        pg_store.create(make_identity())

        with pytest.raises(ConflictError, match="Username"):
            pg_store.create(make_identity(email="other@test.com", email_token="b" * 40))

    def test_duplicate_email_case_insensitive(self, pg_store: PostgresIdentityStore) -> None:
        pg_store.create(make_identity())

        with pytest.raises(ConflictError, match="Email"):
            pg_store.create(make_identity(username="u2", email="U1@test.com", email_token="b" * 40))

    def test_special_characters_are_parameters(self, pg_store: PostgresIdentityStore) -> None:
        identity = make_identity(first_name="Robert'); DROP TABLE identities;--")

        pg_store.create(identity)

        assert pg_store.find_by_id(identity.id).first_name == identity.first_name


class TestFindByToken:
    """Tests for find_by_token."""

    def test_unexpired(self, pg_store: PostgresIdentityStore) -> None:
        identity = pg_store.create(make_identity())

        assert pg_store.find_by_token("a" * 40, NOW).id == identity.id

    def test_expired(self, pg_store: PostgresIdentityStore) -> None:
        pg_store.create(make_identity())

        assert pg_store.find_by_token("a" * 40, NOW + timedelta(days=8)) is None

    def test_no_expiry(self, pg_store: PostgresIdentityStore) -> None:
        pg_store.create(make_identity(email_token_expires=None))

        assert pg_store.find_by_token("a" * 40, NOW + timedelta(days=3650)) is not None


class TestAtomicUpdate:
    """Tests for atomic_update."""

    def test_set_and_unset(self, pg_store: PostgresIdentityStore) -> None:
        identity = pg_store.create(make_identity())

        updated = pg_store.atomic_update(
            identity.id,
            {"email_token": Set("c" * 40), "email_token_expires": Unset()},
            precondition={"email_temporary": Present()},
        )

        assert updated.email_token == "c" * 40
        assert updated.email_token_expires is None

    def test_precondition_failure(self, pg_store: PostgresIdentityStore) -> None:
        identity = pg_store.create(make_identity(email_temporary=None, email_token=None))

        with pytest.raises(StorageError):
            pg_store.atomic_update(
                identity.id,
                {"email_token": Set("c" * 40)},
                precondition={"email_temporary": Present()},
            )

    def test_missing_identity(self, pg_store: PostgresIdentityStore) -> None:
        with pytest.raises(StorageError):
            pg_store.atomic_update(uuid4(), {"display_name": Set("x")})

    def test_provider_link_lifecycle(self, pg_store: PostgresIdentityStore) -> None:
        identity = pg_store.create(make_identity())
        link = ProviderLink(provider=ProviderName.FACEBOOK, profile={"id": "fb-1"}, access_token="old")

        pg_store.atomic_update(
            identity.id,
            {"linked_providers.facebook": Set(link)},
            precondition={"linked_providers.facebook": None},
        )
        with pytest.raises(StorageError):
            pg_store.atomic_update(
                identity.id,
                {"linked_providers.facebook": Set(link)},
                precondition={"linked_providers.facebook": None},
            )

        refreshed = pg_store.atomic_update(
            identity.id,
            {
                "linked_providers.facebook.access_token": Set("long"),
                "linked_providers.facebook.access_token_expires": Set(NOW),
                "updated": Set(NOW + timedelta(minutes=1)),
            },
            precondition={"linked_providers.facebook": Present()},
        )
        assert refreshed.linked_providers["facebook"].access_token == "long"
        assert refreshed.linked_providers["facebook"].access_token_expires == NOW
        assert refreshed.linked_providers["facebook"].provider_user_id == "fb-1"

        cleared = pg_store.atomic_update(
            identity.id, {"linked_providers.facebook.access_token_expires": Unset()}
        )
        assert cleared.linked_providers["facebook"].access_token_expires is None

        removed = pg_store.atomic_update(identity.id, {"linked_providers.facebook": Unset()})
        assert removed.linked_providers == {}


class TestRedeemEmailToken:
    """Tests for redeem_email_token."""

    def test_redeem_once(self, pg_store: PostgresIdentityStore) -> None:
        identity = pg_store.create(make_identity(public_reminder_count=2))

        redeemed, made_public = pg_store.redeem_email_token("a" * 40, NOW)

        assert made_public is True
        assert redeemed.id == identity.id
        assert redeemed.is_public is True
        assert redeemed.email == "u1@test.com"
        assert redeemed.email_hash == compute_email_hash("u1@test.com")
        assert redeemed.email_temporary is None
        assert redeemed.email_token is None
        assert redeemed.public_reminder_count is None
        assert pg_store.redeem_email_token("a" * 40, NOW) is None

    def test_email_change(self, pg_store: PostgresIdentityStore) -> None:
        pg_store.create(make_identity(is_public=True, email_temporary="New@Test.com"))

        redeemed, made_public = pg_store.redeem_email_token("a" * 40, NOW)

        assert made_public is False
        assert redeemed.email == "New@Test.com"
        assert redeemed.email_hash == compute_email_hash("new@test.com")

    def test_expired(self, pg_store: PostgresIdentityStore) -> None:
        pg_store.create(make_identity())

        assert pg_store.redeem_email_token("a" * 40, NOW + timedelta(days=7)) is None

    def test_concurrent_redemption_exactly_one_succeeds(
        self, pg_store: PostgresIdentityStore
    ) -> None:
        pg_store.create(make_identity())

        with ThreadPoolExecutor(max_workers=10) as executor:
            results = list(executor.map(lambda _: pg_store.redeem_email_token("a" * 40, NOW), range(10)))

        assert sum(1 for result in results if result is not None) == 1

    def test_address_confirmed_elsewhere_is_conflict(self, pg_store: PostgresIdentityStore) -> None:
        changing = pg_store.create(make_identity(is_public=True, email_temporary="taken@test.com"))
        pg_store.create(
            make_identity(username="u2", email="Taken@Test.com", email_token="b" * 40)
        )

        with pytest.raises(ConflictError):
            pg_store.redeem_email_token("a" * 40, NOW)

        assert pg_store.find_by_id(changing.id).email == "u1@test.com"

    def test_find_by_email_ignores_case(self, pg_store: PostgresIdentityStore) -> None:
        identity = pg_store.create(make_identity())

        assert pg_store.find_by_email("U1@TEST.com").id == identity.id
