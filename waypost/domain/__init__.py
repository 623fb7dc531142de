"""
Domain layer - Pure business logic with zero framework imports.

This package contains the credential lifecycle (signup, email confirmation,
OAuth provider linking and token refresh) and the business event metrics
sink. It defines its own port interfaces for infrastructure abstraction.
"""

from .credentials import CredentialService
from .exceptions import (
    AlreadyConfirmedError,
    ConflictError,
    CredentialError,
    EntropySourceError,
    ForbiddenError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotificationError,
    ProviderExchangeError,
    StorageError,
    UnauthenticatedError,
    ValidationError,
)
from .identity import (
    ConfirmationResult,
    ConfirmationStatus,
    EmailTokenValidity,
    Identity,
    NewIdentityRequest,
    ProviderLink,
    ProviderName,
    PublicIdentity,
    TokenExchangeResult,
    sanitize,
)
from .metrics import MessagePosition, MessageStatsRecorder, MetricsSettings, MetricsSink
from .ports import (
    IdentityStore,
    MeasurementWriter,
    Notifier,
    Present,
    ProviderTokenExchange,
    SessionManager,
    Set,
    Unset,
)
from .tokens import TokenGenerator

__all__ = [
    "AlreadyConfirmedError",
    "ConfirmationResult",
    "ConfirmationStatus",
    "ConflictError",
    "CredentialError",
    "CredentialService",
    "EmailTokenValidity",
    "EntropySourceError",
    "ForbiddenError",
    "Identity",
    "IdentityStore",
    "InvalidCredentialsError",
    "InvalidTokenError",
    "MeasurementWriter",
    "MessagePosition",
    "MessageStatsRecorder",
    "MetricsSettings",
    "MetricsSink",
    "NewIdentityRequest",
    "NotificationError",
    "Notifier",
    "Present",
    "ProviderExchangeError",
    "ProviderLink",
    "ProviderName",
    "ProviderTokenExchange",
    "PublicIdentity",
    "SessionManager",
    "Set",
    "StorageError",
    "TokenExchangeResult",
    "TokenGenerator",
    "UnauthenticatedError",
    "Unset",
    "ValidationError",
    "sanitize",
]
