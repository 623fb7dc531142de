"""
Domain exceptions - Semantic error types for the credential lifecycle.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.
Every operation surfaces exactly one of these kinds; none are retried
internally.
"""


class CredentialError(Exception):
    """Base class for credential lifecycle domain errors."""

    pass


class ValidationError(CredentialError):
    """Malformed or missing input. No side effect occurred."""

    pass


class ConflictError(CredentialError):
    """Uniqueness or state conflict (duplicate username/email, provider already linked)."""

    pass


class UnauthenticatedError(CredentialError):
    """No authenticated identity in the request context."""

    pass


class InvalidCredentialsError(UnauthenticatedError):
    """Username or password mismatch at signin."""

    pass


class ForbiddenError(CredentialError):
    """Caller identity is missing or not allowed to perform the operation."""

    pass


class InvalidTokenError(CredentialError):
    """Confirmation token is unknown, expired, or already consumed.

    The three cases are intentionally indistinguishable to the caller.
    """

    pass


class AlreadyConfirmedError(CredentialError):
    """No email confirmation is pending for the identity."""

    pass


class ProviderExchangeError(CredentialError):
    """The OAuth provider refused or failed the token exchange.

    The upstream failure is kept as ``__cause__``.
    """

    pass


class StorageError(CredentialError):
    """Identity store failure (missing record, failed precondition, driver error)."""

    pass


class NotificationError(CredentialError):
    """Outbound notification could not be delivered."""

    pass


class EntropySourceError(CredentialError):
    """The cryptographic random source could not supply bytes."""

    pass
