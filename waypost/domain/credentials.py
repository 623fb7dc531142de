"""
Credential lifecycle domain service.

Orchestrates signup, signin, email confirmation, confirmation resend,
email change, OAuth provider linking/unlinking and OAuth token refresh.

Every operation is an explicit sequence of fallible steps that stops at
the first failure. Each step calls at most one port (store, notifier,
token exchange, sessions) and states its precondition up front.

Persistence Rules
=================

- New identities are written with a single ``create`` call.
- Every later write goes through ``atomic_update`` with an explicit
  mutation set; nothing is saved implicitly.
- Token redemption is a single ``redeem_email_token`` call so that two
  concurrent redemptions cannot both observe a valid token.
- Password material is stripped from every identity returned by the store
  before any further use, and every outward result is ``sanitize``d.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt

from .exceptions import (
    AlreadyConfirmedError,
    ConflictError,
    ForbiddenError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotificationError,
    ProviderExchangeError,
    UnauthenticatedError,
    ValidationError,
)
from .identity import (
    LOCAL_PROVIDER,
    PRIVILEGED_FIELDS,
    ConfirmationResult,
    EmailTokenValidity,
    Identity,
    NewIdentityRequest,
    ProviderLink,
    ProviderName,
    PublicIdentity,
    compute_email_hash,
    sanitize,
)
from .ports import (
    IdentityStore,
    Mutations,
    Notifier,
    Present,
    ProviderTokenExchange,
    SessionManager,
    Set,
    Unset,
)
from .tokens import TokenGenerator

logger = logging.getLogger(__name__)

# Compared against when a username is unknown so signin always pays the bcrypt cost.
_DUMMY_BCRYPT_HASH = bcrypt.hashpw(b"dummy_password_for_timing_safety", bcrypt.gensalt(10))

DEFAULT_TOKEN_TTL_SECONDS = 7 * 24 * 60 * 60


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _looks_like_email(value: str) -> bool:
    local, _, domain = value.strip().partition("@")
    return bool(local) and "." in domain and " " not in value.strip()


@dataclass
class CredentialService:
    """
    Domain service for the credential and identity lifecycle.

    ``provider_clients`` maps a provider name to its OAuth
    ``(client_id, client_secret)`` pair. ``token_ttl_seconds`` of None
    issues confirmation tokens that never expire.
    """

    store: IdentityStore
    notifier: Notifier
    sessions: SessionManager
    token_exchange: ProviderTokenExchange
    token_generator: TokenGenerator = field(default_factory=TokenGenerator)
    provider_clients: Mapping[str, tuple[str, str]] = field(default_factory=dict)
    token_ttl_seconds: int | None = DEFAULT_TOKEN_TTL_SECONDS
    bcrypt_rounds: int = 10
    clock: Callable[[], datetime] = _utcnow

    # Signup / signin

    def signup(self, request: NewIdentityRequest) -> PublicIdentity:
        """
        Create an unconfirmed identity and send the signup confirmation.

        The identity stays persisted when the notification fails.

        Raises:
            ValidationError: A required field is missing or the email is malformed
                (nothing written)
            ConflictError: Username or email already taken
            EntropySourceError: No token could be generated
            NotificationError: Identity persisted, confirmation not sent
        """
        if request.missing_fields():
            raise ValidationError("missing required fields")
        if not _looks_like_email(request.email):
            raise ValidationError("Please provide a valid email.")

        profile = self._strip_privileged(request.extra)
        token = self.token_generator.generate()
        now = self.clock()

        salt = bcrypt.gensalt(rounds=self.bcrypt_rounds)
        password_hash = bcrypt.hashpw(request.password.encode(), salt)

        identity = Identity(
            first_name=request.first_name,
            last_name=request.last_name,
            username=self._normalize_username(request.username),
            email=request.email.strip(),
            display_name=f"{request.first_name.strip()} {request.last_name.strip()}",
            display_username=request.username.strip(),
            # Initial confirmation reuses the email-change path: the address
            # waits in email_temporary until its token is redeemed.
            email_temporary=request.email.strip(),
            email_token=token,
            email_token_expires=self._token_expiry(now),
            email_hash=compute_email_hash(request.email),
            password_hash=password_hash.decode(),
            salt=salt.decode(),
            is_public=False,
            provider=LOCAL_PROVIDER,
            profile=profile,
            created=now,
            updated=now,
        )

        persisted = self.store.create(identity).without_secrets()
        logger.info("Identity %s signed up", persisted.id)

        self._notify(self.notifier.send_signup_confirmation, persisted)
        self.sessions.login(persisted)
        return sanitize(persisted)

    def signin(self, username: str, password: str) -> PublicIdentity:
        """
        Authenticate with username and password.

        Raises:
            InvalidCredentialsError: Unknown username or wrong password
        """
        if not username or not password:
            raise ValidationError("missing required fields")

        identity = self.store.find_by_username(self._normalize_username(username))
        stored_hash = (
            identity.password_hash.encode()
            if identity is not None and identity.password_hash
            else _DUMMY_BCRYPT_HASH
        )
        password_valid = bcrypt.checkpw(password.encode(), stored_hash)

        if identity is None or not password_valid:
            raise InvalidCredentialsError("Invalid username or password")

        identity = identity.without_secrets()
        self.sessions.login(identity)
        return sanitize(identity)

    # Email confirmation

    def confirm_email(self, token: str) -> ConfirmationResult:
        """
        Redeem a confirmation token.

        Raises:
            InvalidTokenError: Token unknown, expired or already used
            ConflictError: The address was confirmed by another identity meanwhile
        """
        if not token:
            raise InvalidTokenError("Email confirm token is invalid or has expired.")

        redeemed = self.store.redeem_email_token(token, self.clock())
        if redeemed is None:
            raise InvalidTokenError("Email confirm token is invalid or has expired.")

        identity, profile_made_public = redeemed
        identity = identity.without_secrets()
        logger.info(
            "Identity %s confirmed email (profile made public: %s)",
            identity.id,
            profile_made_public,
        )

        self.sessions.login(identity)
        return ConfirmationResult(
            profile_made_public=profile_made_public,
            identity=sanitize(identity),
        )

    def validate_email_token(self, token: str) -> EmailTokenValidity:
        """Read-only check whether ``token`` could currently be redeemed."""
        if not token:
            return EmailTokenValidity.INVALID
        if self.store.find_by_token(token, self.clock()) is None:
            return EmailTokenValidity.INVALID
        return EmailTokenValidity.VALID

    def resend_confirmation(self, identity: Identity | None) -> None:
        """
        Rotate the pending confirmation token and send it again.

        The previous token stops working as soon as the new one is stored.

        Raises:
            ForbiddenError: No authenticated identity
            AlreadyConfirmedError: Nothing pending
            NotificationError: Token rotated, email not sent
        """
        if identity is None:
            raise ForbiddenError("Forbidden.")
        if identity.email_temporary is None:
            raise AlreadyConfirmedError("Already confirmed.")

        is_email_change = identity.is_public
        updated = self._issue_token(identity, {}, precondition={"email_temporary": Present()})

        if is_email_change:
            self._notify(self.notifier.send_change_email_confirmation, updated)
        else:
            self._notify(self.notifier.send_signup_confirmation, updated)

    def request_email_change(self, identity: Identity | None, new_email: str) -> PublicIdentity:
        """
        Put ``new_email`` up for confirmation.

        ``email`` keeps its current value until the token is redeemed.

        Raises:
            ForbiddenError: No authenticated identity
            ValidationError: Email missing or unchanged
            ConflictError: Email belongs to another identity
            NotificationError: Change recorded, email not sent
        """
        if identity is None:
            raise ForbiddenError("Forbidden.")

        new_email = (new_email or "").strip()
        if not _looks_like_email(new_email):
            raise ValidationError("Please provide a valid email.")
        if identity.email and new_email.lower() == identity.email.lower():
            raise ValidationError("Email is unchanged.")
        owner = self.store.find_by_email(new_email)
        if owner is not None and owner.id != identity.id:
            raise ConflictError("Email already exists.")

        updated = self._issue_token(identity, {"email_temporary": Set(new_email)})

        if identity.is_public:
            self._notify(self.notifier.send_change_email_confirmation, updated)
        else:
            self._notify(self.notifier.send_signup_confirmation, updated)
        return sanitize(updated)

    # OAuth providers

    def link_provider(
        self,
        identity: Identity | None,
        provider: str,
        profile: Mapping[str, Any],
        access_token: str | None = None,
    ) -> PublicIdentity:
        """
        Attach an additional OAuth provider to a signed-in identity.

        Signup always happens locally first; providers are only additive.
        The session is refreshed with the updated identity.

        Raises:
            UnauthenticatedError: No authenticated identity
            ValidationError: Unknown provider
            ConflictError: Provider is primary or already linked
        """
        if identity is None:
            raise UnauthenticatedError("You must be logged in to connect to other networks.")

        name = self._provider_name(provider)
        if identity.provider == name.value or name.value in identity.linked_providers:
            raise ConflictError("You are already connected using this network.")

        link = ProviderLink(provider=name, profile=dict(profile), access_token=access_token)
        updated = self.store.atomic_update(
            identity.id,
            {f"linked_providers.{name.value}": Set(link), "updated": Set(self.clock())},
            precondition={f"linked_providers.{name.value}": None},
        ).without_secrets()

        logger.info("Identity %s linked provider %s", identity.id, name.value)
        self.sessions.login(updated)
        return sanitize(updated)

    def unlink_provider(self, identity: Identity | None, provider: str) -> PublicIdentity:
        """
        Remove a linked provider. Removing an absent link is a no-op.

        Raises:
            ForbiddenError: No authenticated identity
            ValidationError: Provider not in the allowed set
            StorageError: Update failed
        """
        if identity is None:
            raise ForbiddenError("Forbidden.")

        name = self._provider_name(provider)
        if name.value not in identity.linked_providers:
            return sanitize(identity.without_secrets())

        updated = self.store.atomic_update(
            identity.id,
            {f"linked_providers.{name.value}": Unset(), "updated": Set(self.clock())},
        ).without_secrets()

        logger.info("Identity %s unlinked provider %s", identity.id, name.value)
        self.sessions.login(updated)
        return sanitize(updated)

    def refresh_provider_token(
        self,
        identity: Identity | None,
        short_token: str,
        provider_user_id: str,
        provider: ProviderName = ProviderName.FACEBOOK,
    ) -> None:
        """
        Exchange a short-lived provider token for a long-lived one and store it.

        The token is only accepted for the provider account already linked to
        ``identity``; the exchange is never attempted otherwise.

        Raises:
            ValidationError: Token or provider user id missing
            UnauthenticatedError: No authenticated identity
            ForbiddenError: Provider not linked, or linked to another account
            ProviderExchangeError: Exchange failed or provider not configured
        """
        if not short_token or not provider_user_id:
            raise ValidationError("Missing `accessToken` or `userID`.")
        if identity is None:
            raise UnauthenticatedError("You must be logged in.")

        link = identity.linked_providers.get(provider.value)
        if link is None:
            logger.error(
                "Identity %s is not connected to %s (requested provider user %s)",
                identity.id,
                provider.value,
                provider_user_id,
            )
            raise ForbiddenError("Forbidden.")

        if link.provider_user_id != str(provider_user_id):
            logger.error(
                "Provider user ids do not match when updating %s token for identity %s "
                "(requested provider user %s)",
                provider.value,
                identity.id,
                provider_user_id,
            )
            raise ForbiddenError("Forbidden.")

        result = self._exchange(provider, short_token)

        if result.expires_in_seconds is not None:
            expires = self.clock() + timedelta(seconds=result.expires_in_seconds)
            expires_mutation: Set | Unset = Set(expires)
        else:
            expires_mutation = Unset()

        prefix = f"linked_providers.{provider.value}"
        self.store.atomic_update(
            identity.id,
            {
                f"{prefix}.access_token": Set(result.token),
                f"{prefix}.access_token_expires": expires_mutation,
                "updated": Set(self.clock()),
            },
            precondition={prefix: Present()},
        )
        logger.info("Identity %s refreshed %s access token", identity.id, provider.value)

    # Helpers

    def _issue_token(
        self,
        identity: Identity,
        extra_mutations: Mutations,
        precondition: Mapping[str, Any] | None = None,
    ) -> Identity:
        """Store a fresh token (overwriting any previous one) with ``extra_mutations``."""
        token = self.token_generator.generate()
        now = self.clock()
        expiry = self._token_expiry(now)

        mutations: dict[str, Set | Unset] = {
            "email_token": Set(token),
            "email_token_expires": Set(expiry) if expiry is not None else Unset(),
            "updated": Set(now),
        }
        mutations.update(extra_mutations)

        return self.store.atomic_update(identity.id, mutations, precondition).without_secrets()

    def _exchange(self, provider: ProviderName, short_token: str):
        client = self.provider_clients.get(provider.value)
        if not client or not all(client):
            logger.error("No %s client configured when attempting to extend access token", provider.value)
            raise ProviderExchangeError(f"{provider.value} is not configured")

        client_id, client_secret = client
        try:
            result = self.token_exchange.exchange(short_token, client_id, client_secret)
        except ProviderExchangeError:
            logger.error("Failed to extend %s access token", provider.value)
            raise
        except Exception as e:
            logger.error("Failed to extend %s access token: %s", provider.value, e)
            raise ProviderExchangeError(f"Failed to extend {provider.value} access token") from e

        if not result.token:
            logger.error("Missing extended %s access token in response", provider.value)
            raise ProviderExchangeError(f"Failed to extend {provider.value} access token")
        return result

    def _notify(self, send: Callable[[Identity], None], identity: Identity) -> None:
        try:
            send(identity)
        except NotificationError:
            raise
        except Exception as e:
            logger.error("Failed to send confirmation email to identity %s: %s", identity.id, e)
            raise NotificationError("Failed to send confirmation email") from e

    def _token_expiry(self, now: datetime) -> datetime | None:
        if self.token_ttl_seconds is None:
            return None
        return now + timedelta(seconds=self.token_ttl_seconds)

    def _provider_name(self, provider: str) -> ProviderName:
        try:
            return ProviderName(provider)
        except ValueError:
            raise ValidationError("No provider defined.") from None

    def _strip_privileged(self, extra: Mapping[str, Any]) -> dict[str, Any]:
        """Drop caller-supplied role, audit and state fields, in snake_case or camelCase."""
        privileged = {name.replace("_", "") for name in PRIVILEGED_FIELDS}
        return {
            key: value
            for key, value in extra.items()
            if key.replace("_", "").lower() not in privileged
        }

    def _normalize_username(self, username: str) -> str:
        return username.strip().lower()
