"""
Cookie sessions - Implements SessionManager protocol.

A session is a signed JWT carrying the identity id, stored in an HTTP-only
cookie. Nothing else about the identity goes into the token.
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID

import jwt
from fastapi import Response

from waypost.config.settings import Settings
from waypost.domain.identity import Identity


class SessionError(Exception):
    """Session token is invalid or expired."""

    pass


def create_session_token(identity_id: UUID, settings: Settings) -> str:
    """
    Create a signed session token for ``identity_id``.

    Args:
        identity_id: Identity to authenticate
        settings: Application settings

    Returns:
        Encoded JWT
    """
    now = datetime.now(UTC)
    payload = {
        "sub": str(identity_id),
        "iat": now,
        "exp": now + timedelta(days=settings.session_ttl_days),
    }
    return jwt.encode(payload, settings.session_secret, algorithm=settings.session_algorithm)


def read_session_token(token: str, settings: Settings) -> UUID:
    """
    Verify a session token and return the identity id it carries.

    Raises:
        SessionError: If the token is invalid or expired
    """
    try:
        payload = jwt.decode(token, settings.session_secret, algorithms=[settings.session_algorithm])
        return UUID(payload["sub"])
    except jwt.ExpiredSignatureError:
        raise SessionError("Session has expired") from None
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise SessionError("Invalid session") from None


class CookieSession:
    """
    Implements SessionManager protocol by setting the session cookie on ``response``.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, response: Response, settings: Settings) -> None:
        self._response = response
        self._settings = settings

    def login(self, identity: Identity) -> None:
        token = create_session_token(identity.id, self._settings)
        self._response.set_cookie(
            self._settings.session_cookie_name,
            token,
            max_age=self._settings.session_ttl_days * 24 * 60 * 60,
            httponly=True,
            samesite="lax",
        )

    def logout(self) -> None:
        self._response.delete_cookie(self._settings.session_cookie_name)
