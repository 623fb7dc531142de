"""
Facebook token exchange adapter - Implements ProviderTokenExchange protocol.

Swaps a short-lived Facebook access token (~hours) for a long-lived one
(~60 days). Facebook refuses to exchange tokens that already expired; the
user then has to go through the login flow again.
"""

import logging

import httpx

from waypost.domain.exceptions import ProviderExchangeError
from waypost.domain.identity import TokenExchangeResult

logger = logging.getLogger(__name__)


class FacebookTokenExchange:
    """
    Implements ProviderTokenExchange protocol against the Graph API.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(
        self,
        graph_url: str = "https://graph.facebook.com/v2.12",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Initialize the exchange client.

        Args:
            graph_url: Graph API base URL including version
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use ``httpx.MockTransport``)
        """
        self.token_url = f"{graph_url.rstrip('/')}/oauth/access_token"
        self._timeout = timeout
        self._transport = transport

    def exchange(self, short_token: str, client_id: str, client_secret: str) -> TokenExchangeResult:
        """
        Exchange ``short_token`` for a long-lived token.

        Raises:
            ProviderExchangeError: Transport failure, error status, or a
                response without ``access_token``
        """
        if not short_token or not isinstance(short_token, str):
            raise ProviderExchangeError("Missing access token.")

        params = {
            "grant_type": "fb_exchange_token",
            "client_id": client_id,
            "client_secret": client_secret,
            "fb_exchange_token": short_token,
        }

        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.get(self.token_url, params=params)
        except httpx.HTTPError as e:
            logger.error("Facebook token exchange HTTP error: %s", e)
            raise ProviderExchangeError(f"HTTP error during token exchange: {e}") from e

        if response.status_code != 200:
            logger.error(
                "Facebook token exchange failed: status=%s body=%s",
                response.status_code,
                response.text,
            )
            raise ProviderExchangeError(f"Token exchange failed: {response.status_code}")

        try:
            result = response.json()
        except ValueError as e:
            raise ProviderExchangeError("Token exchange returned invalid JSON") from e

        access_token = result.get("access_token")
        if not access_token:
            logger.error("Missing extended Facebook access token from response")
            raise ProviderExchangeError("Token exchange response has no access token")

        expires_in = result.get("expires_in")
        # bool is an int subclass but never a valid lifetime
        if not isinstance(expires_in, int | float) or isinstance(expires_in, bool):
            expires_in = None

        return TokenExchangeResult(
            token=access_token,
            expires_in_seconds=int(expires_in) if expires_in is not None else None,
        )
