"""
Domain error translation for the HTTP layer.

Every domain error maps to one status code. Response bodies carry only the
error message, never identity data.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from waypost.domain.exceptions import (
    AlreadyConfirmedError,
    ConflictError,
    CredentialError,
    EntropySourceError,
    ForbiddenError,
    InvalidTokenError,
    NotificationError,
    ProviderExchangeError,
    StorageError,
    UnauthenticatedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Checked in order; subclasses come before their bases.
ERROR_STATUS: tuple[tuple[type[CredentialError], int], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AlreadyConfirmedError, status.HTTP_400_BAD_REQUEST),
    (InvalidTokenError, status.HTTP_400_BAD_REQUEST),
    (ConflictError, status.HTTP_409_CONFLICT),
    (UnauthenticatedError, status.HTTP_401_UNAUTHORIZED),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (ProviderExchangeError, status.HTTP_502_BAD_GATEWAY),
    (NotificationError, status.HTTP_502_BAD_GATEWAY),
    (StorageError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (EntropySourceError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)

# Internal failures get a generic message.
_GENERIC_DETAIL = "Something went wrong."


def status_for(error: CredentialError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


async def credential_error_handler(request: Request, exc: CredentialError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
        detail = _GENERIC_DETAIL
    else:
        detail = str(exc) or _GENERIC_DETAIL
    return JSONResponse(status_code=status_code, content={"detail": detail})


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the domain error handler to ``app``."""
    app.add_exception_handler(CredentialError, credential_error_handler)
