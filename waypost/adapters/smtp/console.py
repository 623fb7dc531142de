"""
Console notifier adapter - Implements Notifier protocol.

This module provides a console-based implementation of the domain's
notifier port, logging confirmation links for development and demos.
"""

import logging

from waypost.domain.identity import Identity

logger = logging.getLogger(__name__)


class ConsoleNotifier:
    """
    Implements Notifier protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    In production, this would be replaced with an SMTP adapter.
    """

    def __init__(self, public_url: str = "http://localhost:3000") -> None:
        self._public_url = public_url.rstrip("/")

    def send_signup_confirmation(self, identity: Identity) -> None:
        """Log the signup confirmation link for ``identity.email_temporary``."""
        logger.info(
            "[SIGNUP CONFIRMATION] Email: %s Link: %s",
            identity.email_temporary,
            self.confirmation_url(identity),
        )

    def send_change_email_confirmation(self, identity: Identity) -> None:
        """Log the change-of-email confirmation link for the new address."""
        logger.info(
            "[CHANGE EMAIL CONFIRMATION] Email: %s Link: %s",
            identity.email_temporary,
            self.confirmation_url(identity),
        )

    def confirmation_url(self, identity: Identity) -> str:
        if not identity.email_token:
            raise ValueError("Identity has no pending confirmation token")
        return f"{self._public_url}/confirm-email/{identity.email_token}"
