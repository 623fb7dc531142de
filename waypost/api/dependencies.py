"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.
"""

import logging

from fastapi import Depends, Request, Response

from waypost.adapters.oauth.facebook import FacebookTokenExchange
from waypost.adapters.smtp.console import ConsoleNotifier
from waypost.api.session import CookieSession, SessionError, read_session_token
from waypost.config.settings import Settings, get_settings
from waypost.domain.credentials import CredentialService
from waypost.domain.identity import Identity
from waypost.domain.ports import IdentityStore
from waypost.domain.tokens import TokenGenerator

logger = logging.getLogger(__name__)


def get_identity_store(request: Request) -> IdentityStore:
    """
    Get the identity store from app state.

    The store is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.store


def get_notifier(settings: Settings = Depends(get_settings)) -> ConsoleNotifier:
    """Get console notifier (stateless)."""
    return ConsoleNotifier(public_url=settings.public_url)


def get_token_exchange(settings: Settings = Depends(get_settings)) -> FacebookTokenExchange:
    return FacebookTokenExchange(
        graph_url=settings.facebook_graph_url,
        timeout=settings.provider_timeout_seconds,
    )


def get_session(response: Response, settings: Settings = Depends(get_settings)) -> CookieSession:
    """Session bound to the outgoing response of this request."""
    return CookieSession(response, settings)


def get_credential_service(
    store: IdentityStore = Depends(get_identity_store),
    notifier: ConsoleNotifier = Depends(get_notifier),
    token_exchange: FacebookTokenExchange = Depends(get_token_exchange),
    session: CookieSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> CredentialService:
    """
    Create credential service with injected dependencies.

    Wires together the store, notifier, token exchange and session for the
    domain service.
    """
    return CredentialService(
        store=store,
        notifier=notifier,
        sessions=session,
        token_exchange=token_exchange,
        token_generator=TokenGenerator(token_bytes=settings.confirmation_token_bytes),
        provider_clients=settings.provider_clients(),
        token_ttl_seconds=settings.confirmation_token_ttl_seconds,
        bcrypt_rounds=settings.bcrypt_cost,
    )


def get_current_identity(
    request: Request,
    store: IdentityStore = Depends(get_identity_store),
    settings: Settings = Depends(get_settings),
) -> Identity | None:
    """
    Resolve the identity behind the session cookie.

    Missing, invalid or expired cookies and deleted identities all yield an
    anonymous caller (None).
    """
    token = request.cookies.get(settings.session_cookie_name)
    if not token:
        return None

    try:
        identity_id = read_session_token(token, settings)
    except SessionError as e:
        logger.debug("Ignoring session cookie: %s", e)
        return None

    identity = store.find_by_id(identity_id)
    return identity.without_secrets() if identity is not None else None
