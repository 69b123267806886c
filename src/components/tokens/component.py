"""
TokenIssuer component.

Issues the opaque tokens that authorize confirm and unsubscribe
actions from an email link, and computes confirmation expiry.

Key behaviors:
- Tokens come from the OS CSPRNG (secrets.token_urlsafe)
- Confirmation tokens expire 24h after issue (configurable)
- Unsubscribe tokens never expire
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta

from src.components.tokens.models import DEFAULT_TOKEN_BYTES, TokenConfig


def generate_token(length: int = DEFAULT_TOKEN_BYTES) -> str:
    """
    Generate a cryptographically secure URL-safe token.

    Args:
        length: Number of random bytes (will be base64-encoded)

    Returns:
        URL-safe token string
    """
    return secrets.token_urlsafe(length)


def is_expired(expiry: datetime | None, now: datetime) -> bool:
    """A missing expiry counts as expired."""
    if expiry is None:
        return True
    return now > expiry


class TokenIssuer:
    """Issues confirmation and unsubscribe tokens."""

    def __init__(self, config: TokenConfig | None = None) -> None:
        self._config = config or TokenConfig()

    @property
    def confirmation_window(self) -> timedelta:
        return timedelta(hours=self._config.confirmation_token_expiry_hours)

    def new_token(self) -> str:
        return generate_token(self._config.token_bytes)

    def expiry_from(self, now: datetime) -> datetime:
        """Expiry of a confirmation token issued at ``now``."""
        return now + self.confirmation_window
