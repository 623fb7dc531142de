"""
In-memory repository adapter - Implements IdentityStore protocol.

Keeps identities in a dict guarded by a single lock, which gives every
operation the same all-or-nothing behavior as the PostgreSQL adapter.
Used by the unit tests and for local development without a database.
"""

import copy
import threading
from datetime import datetime
from typing import Any
from uuid import UUID

from waypost.domain.exceptions import ConflictError, StorageError
from waypost.domain.identity import Identity, compute_email_hash
from waypost.domain.ports import Mutations, Precondition, Present, Set, Unset

_LINK_FIELDS = frozenset({"access_token", "access_token_expires"})


class InMemoryIdentityStore:
    """
    Implements IdentityStore protocol with process-local state.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Identities are copied on the way in and out.
    """

    def __init__(self) -> None:
        self._identities: dict[UUID, Identity] = {}
        self._lock = threading.Lock()

    def find_by_id(self, identity_id: UUID) -> Identity | None:
        with self._lock:
            identity = self._identities.get(identity_id)
            return copy.deepcopy(identity)

    def find_by_username(self, username: str) -> Identity | None:
        with self._lock:
            for identity in self._identities.values():
                if identity.username == username:
                    return copy.deepcopy(identity)
            return None

    def find_by_email(self, email: str) -> Identity | None:
        with self._lock:
            return copy.deepcopy(self._by_email(email))

    def find_by_token(self, token: str, now: datetime | None = None) -> Identity | None:
        with self._lock:
            identity = self._by_token(token, now)
            return copy.deepcopy(identity)

    def create(self, identity: Identity) -> Identity:
        with self._lock:
            for existing in self._identities.values():
                if existing.id == identity.id:
                    raise ConflictError("Identity already exists.")
                if existing.username == identity.username:
                    raise ConflictError("Username already exists.")
            if identity.email and self._by_email(identity.email) is not None:
                raise ConflictError("Email already exists.")

            self._identities[identity.id] = copy.deepcopy(identity)
            return copy.deepcopy(identity)

    def atomic_update(
        self,
        identity_id: UUID,
        mutations: Mutations,
        precondition: Precondition | None = None,
    ) -> Identity:
        with self._lock:
            current = self._identities.get(identity_id)
            if current is None:
                raise StorageError(f"Identity {identity_id} not found")

            for path, expected in (precondition or {}).items():
                if not _matches(_resolve(current, path), expected):
                    raise StorageError(f"Precondition on {path} failed")

            updated = copy.deepcopy(current)
            for path, mutation in mutations.items():
                _apply(updated, path, mutation)

            self._identities[identity_id] = updated
            return copy.deepcopy(updated)

    def redeem_email_token(self, token: str, now: datetime) -> tuple[Identity, bool] | None:
        with self._lock:
            identity = self._by_token(token, now)
            if identity is None or identity.email_temporary is None:
                return None

            owner = self._by_email(identity.email_temporary)
            if owner is not None and owner.id != identity.id:
                raise ConflictError("Email already exists.")

            profile_made_public = not identity.is_public

            identity.email = identity.email_temporary
            identity.email_hash = compute_email_hash(identity.email_temporary)
            identity.is_public = True
            identity.email_temporary = None
            identity.email_token = None
            identity.email_token_expires = None
            identity.public_reminder_count = None
            identity.public_reminder_sent = None
            identity.updated = now

            return copy.deepcopy(identity), profile_made_public

    def _by_token(self, token: str, now: datetime | None) -> Identity | None:
        for identity in self._identities.values():
            if identity.email_token is None or identity.email_token != token:
                continue
            if now is not None and identity.email_token_expires is not None:
                if identity.email_token_expires <= now:
                    return None
            return identity
        return None

    def _by_email(self, email: str) -> Identity | None:
        for identity in self._identities.values():
            if identity.email and identity.email.lower() == email.lower():
                return identity
        return None


def _resolve(identity: Identity, path: str) -> Any:
    parts = path.split(".")
    if parts[0] != "linked_providers" or len(parts) == 1:
        return getattr(identity, path, None)

    link = identity.linked_providers.get(parts[1])
    if len(parts) == 2 or link is None:
        return link
    return getattr(link, parts[2])


def _matches(value: Any, expected: Any) -> bool:
    if isinstance(expected, Present):
        return value is not None
    return value == expected


def _apply(identity: Identity, path: str, mutation: Set | Unset) -> None:
    value = mutation.value if isinstance(mutation, Set) else None
    parts = path.split(".")

    if parts[0] != "linked_providers" or len(parts) == 1:
        if not hasattr(identity, path):
            raise StorageError(f"Unknown field {path}")
        setattr(identity, path, copy.deepcopy(value))
        return

    provider = parts[1]
    if len(parts) == 2:
        if isinstance(mutation, Unset):
            identity.linked_providers.pop(provider, None)
        else:
            identity.linked_providers[provider] = copy.deepcopy(value)
        return

    link = identity.linked_providers.get(provider)
    if link is None or parts[2] not in _LINK_FIELDS:
        raise StorageError(f"Cannot update {path}")
    setattr(link, parts[2], value)
