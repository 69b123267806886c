"""
Token issuer component.

Unguessable single-action tokens for confirmation and unsubscribe links.
"""

from src.components.tokens.component import TokenIssuer, generate_token, is_expired
from src.components.tokens.models import (
    DEFAULT_CONFIRMATION_EXPIRY_HOURS,
    DEFAULT_TOKEN_BYTES,
    TokenConfig,
)

__all__ = [
    "TokenIssuer",
    "generate_token",
    "is_expired",
    "TokenConfig",
    "DEFAULT_CONFIRMATION_EXPIRY_HOURS",
    "DEFAULT_TOKEN_BYTES",
]
