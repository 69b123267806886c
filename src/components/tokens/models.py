"""Token issuer models."""

from __future__ import annotations

from dataclasses import dataclass

# Confirmation window policy
DEFAULT_CONFIRMATION_EXPIRY_HOURS = 24

# 32 random bytes, URL-safe base64 encoded (43 chars)
DEFAULT_TOKEN_BYTES = 32


@dataclass(frozen=True)
class TokenConfig:
    """Token issuer configuration."""

    confirmation_token_expiry_hours: int = DEFAULT_CONFIRMATION_EXPIRY_HOURS
    token_bytes: int = DEFAULT_TOKEN_BYTES

    def __post_init__(self) -> None:
        if self.confirmation_token_expiry_hours <= 0:
            raise ValueError("confirmation_token_expiry_hours must be positive")
        # Below 16 bytes collisions stop being negligible
        if self.token_bytes < 16:
            raise ValueError("token_bytes must be at least 16")
