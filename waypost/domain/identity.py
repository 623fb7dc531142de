"""
Identity records - User account data and its sanitized outward view.

Confirmation State Machine
==========================

States (derived from ``email_temporary`` and ``is_public``):
- UNCONFIRMED: Signed up, initial email not yet confirmed (profile hidden)
- PENDING_CHANGE: Confirmed identity with an unconfirmed new email
- CONFIRMED: No email confirmation pending

Valid Transitions:
    UNCONFIRMED    -> CONFIRMED       (token redeemed)
    CONFIRMED      -> PENDING_CHANGE  (email change requested)
    PENDING_CHANGE -> CONFIRMED       (token redeemed)

No transition reaches CONFIRMED without a valid, single-use token.
``is_public`` never flips back to False once the first confirmation happened.
"""

import hashlib
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class ProviderName(str, Enum):
    """OAuth providers an identity may link to."""

    FACEBOOK = "facebook"
    GITHUB = "github"
    TWITTER = "twitter"


class ConfirmationStatus(str, Enum):
    """Email confirmation state of an identity."""

    UNCONFIRMED = "UNCONFIRMED"
    PENDING_CHANGE = "PENDING_CHANGE"
    CONFIRMED = "CONFIRMED"


class EmailTokenValidity(Enum):
    """Outcome of a read-only confirmation token check."""

    VALID = "valid"
    INVALID = "invalid"


LOCAL_PROVIDER = "local"

# Keys a caller may never set through signup.
PRIVILEGED_FIELDS = frozenset(
    {
        "roles",
        "avatar_uploaded",
        "created",
        "updated",
        "is_public",
        "provider",
        "email_token",
        "email_token_expires",
        "email_temporary",
        "password_hash",
        "salt",
        "linked_providers",
    }
)


@dataclass
class ProviderLink:
    """A linked third-party account. Owned by exactly one identity."""

    provider: ProviderName
    profile: dict[str, Any] = field(default_factory=dict)
    access_token: str | None = None
    access_token_expires: datetime | None = None

    @property
    def provider_user_id(self) -> str | None:
        """Provider-assigned account id, if the provider profile carries one."""
        value = self.profile.get("id")
        return None if value is None else str(value)


@dataclass
class Identity:
    """Persisted user account."""

    first_name: str
    last_name: str
    username: str
    email: str | None = None
    id: UUID = field(default_factory=uuid4)
    display_name: str = ""
    display_username: str = ""
    email_temporary: str | None = None
    email_token: str | None = None
    email_token_expires: datetime | None = None
    email_hash: str | None = None
    password_hash: str | None = None
    salt: str | None = None
    is_public: bool = False
    provider: str = LOCAL_PROVIDER
    roles: list[str] = field(default_factory=lambda: ["user"])
    profile: dict[str, Any] = field(default_factory=dict)
    linked_providers: dict[str, ProviderLink] = field(default_factory=dict)
    public_reminder_count: int | None = None
    public_reminder_sent: datetime | None = None
    created: datetime | None = None
    updated: datetime | None = None

    @property
    def confirmation_status(self) -> ConfirmationStatus:
        if self.email_temporary is None:
            return ConfirmationStatus.CONFIRMED
        if self.is_public:
            return ConfirmationStatus.PENDING_CHANGE
        return ConfirmationStatus.UNCONFIRMED

    def without_secrets(self) -> "Identity":
        """Copy with password material removed."""
        return replace(self, password_hash=None, salt=None)


@dataclass(frozen=True)
class PublicProviderLink:
    """Outward view of a provider link. Never carries the access token."""

    provider: str
    profile: dict[str, Any]
    access_token_expires: datetime | None


@dataclass(frozen=True)
class PublicIdentity:
    """Sanitized identity, safe to cross the system boundary."""

    id: UUID
    first_name: str
    last_name: str
    username: str
    display_name: str
    display_username: str
    email: str | None
    email_temporary: str | None
    email_hash: str | None
    is_public: bool
    provider: str
    roles: list[str]
    profile: dict[str, Any]
    linked_providers: dict[str, PublicProviderLink]
    created: datetime | None
    updated: datetime | None


@dataclass(frozen=True)
class NewIdentityRequest:
    """Signup payload as submitted by the caller."""

    first_name: str | None
    last_name: str | None
    username: str | None
    password: str | None
    email: str | None
    extra: dict[str, Any] = field(default_factory=dict)

    def missing_fields(self) -> list[str]:
        required = {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "username": self.username,
            "password": self.password,
            "email": self.email,
        }
        return [name for name, value in required.items() if not value or not str(value).strip()]


@dataclass(frozen=True)
class ConfirmationResult:
    """Result of a successful token redemption."""

    profile_made_public: bool
    identity: PublicIdentity


@dataclass(frozen=True)
class TokenExchangeResult:
    """Long-lived token returned by an OAuth provider."""

    token: str
    expires_in_seconds: int | None = None


def sanitize(identity: Identity) -> PublicIdentity:
    """Strip password material, pending tokens and provider access tokens."""
    links = {
        name: PublicProviderLink(
            provider=link.provider.value,
            profile=dict(link.profile),
            access_token_expires=link.access_token_expires,
        )
        for name, link in identity.linked_providers.items()
    }
    return PublicIdentity(
        id=identity.id,
        first_name=identity.first_name,
        last_name=identity.last_name,
        username=identity.username,
        display_name=identity.display_name,
        display_username=identity.display_username,
        email=identity.email,
        email_temporary=identity.email_temporary,
        email_hash=identity.email_hash,
        is_public=identity.is_public,
        provider=identity.provider,
        roles=list(identity.roles),
        profile=dict(identity.profile),
        linked_providers=links,
        created=identity.created,
        updated=identity.updated,
    )


def compute_email_hash(email: str) -> str:
    """md5 of the trimmed, lowercased email (avatar lookups)."""
    return hashlib.md5(email.strip().lower().encode()).hexdigest()
