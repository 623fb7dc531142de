"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from .identity import Identity, TokenExchangeResult


@dataclass(frozen=True)
class Set:
    """Mutation: assign ``value`` to the field."""

    value: Any


@dataclass(frozen=True)
class Unset:
    """Mutation: remove the field. Distinct from ``Set("")``."""


@dataclass(frozen=True)
class Present:
    """Precondition: the field currently holds a non-null value."""


Mutations = Mapping[str, Set | Unset]
Precondition = Mapping[str, Any]


class IdentityStore(Protocol):
    """Port interface for identity persistence."""

    def find_by_id(self, identity_id: UUID) -> Identity | None: ...

    def find_by_username(self, username: str) -> Identity | None: ...

    def find_by_email(self, email: str) -> Identity | None:
        """Find the identity whose confirmed email matches, ignoring case."""
        ...

    def find_by_token(self, token: str, now: datetime | None = None) -> Identity | None:
        """
        Find the identity holding ``token``.

        When ``now`` is given, identities whose token expired before ``now``
        are not returned.
        """
        ...

    def create(self, identity: Identity) -> Identity:
        """
        Persist a new identity.

        Raises:
            ConflictError: username or email already taken
        """
        ...

    def atomic_update(
        self,
        identity_id: UUID,
        mutations: Mutations,
        precondition: Precondition | None = None,
    ) -> Identity:
        """
        Apply exactly ``mutations`` in one atomic step.

        ``precondition`` maps field names to expected values (or ``Present()``);
        the update only applies while every entry still holds.

        Returns:
            The identity after the update

        Raises:
            StorageError: record missing, precondition failed, or driver error
        """
        ...

    def redeem_email_token(self, token: str, now: datetime) -> tuple[Identity, bool] | None:
        """
        Consume a confirmation token in a single atomic operation.

        Moves ``email_temporary`` to ``email``, makes the profile public,
        recomputes ``email_hash`` and clears the token, its expiry and the
        public reminder counters.

        Returns:
            (updated identity, profile_made_public) or None when no unexpired
            identity holds the token
        """
        ...


class Notifier(Protocol):
    """Port interface for confirmation emails."""

    def send_signup_confirmation(self, identity: Identity) -> None: ...

    def send_change_email_confirmation(self, identity: Identity) -> None: ...


class ProviderTokenExchange(Protocol):
    """Port interface for swapping a short-lived OAuth token for a long-lived one."""

    def exchange(self, short_token: str, client_id: str, client_secret: str) -> TokenExchangeResult: ...


class SessionManager(Protocol):
    """Establishes an authenticated session for an identity. Raises on failure."""

    def login(self, identity: Identity) -> None: ...


class MeasurementWriter(Protocol):
    """Port interface for the time-series database."""

    def write_points(self, measurement: str, points: Sequence[Mapping[str, Any]]) -> None:
        """
        Write points to ``measurement``.

        Each point is ``{"fields": {...}, "tags": {...}, "time": datetime}``.
        """
        ...
