"""
Confirmation token generation.

Tokens are opaque hex strings drawn from the operating system's CSPRNG.
There is no fallback to a weaker source.
"""

import secrets
from collections.abc import Callable
from dataclasses import dataclass

from .exceptions import EntropySourceError

MIN_TOKEN_BYTES = 20


@dataclass
class TokenGenerator:
    """Produces email confirmation tokens (``2 * token_bytes`` hex characters)."""

    token_bytes: int = MIN_TOKEN_BYTES
    random_source: Callable[[int], bytes] = secrets.token_bytes

    def __post_init__(self) -> None:
        if self.token_bytes < MIN_TOKEN_BYTES:
            raise ValueError(f"token_bytes must be at least {MIN_TOKEN_BYTES}")

    def generate(self) -> str:
        """
        Generate a new confirmation token.

        Raises:
            EntropySourceError: If the random source cannot supply bytes
        """
        try:
            raw = self.random_source(self.token_bytes)
        except (OSError, NotImplementedError) as e:
            raise EntropySourceError("Random source unavailable") from e

        if len(raw) < self.token_bytes:
            raise EntropySourceError("Random source returned too few bytes")
        return raw.hex()
