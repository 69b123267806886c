"""
Static bearer-token authenticator.

Maps SHA-256 hashes of credentials to auth identities. Stands in for a
real identity provider in dev and tests; plaintext credentials are
never stored.
"""

from __future__ import annotations

import hashlib
import hmac


def hash_credential(credential: str) -> str:
    return hashlib.sha256(credential.encode()).hexdigest()


class StaticTokenAuthenticator:
    """Implements AuthenticatorPort over a fixed credential table."""

    def __init__(self, hashed_credentials: dict[str, str] | None = None) -> None:
        # sha256 hex digest -> auth_id
        self._identities: dict[str, str] = dict(hashed_credentials or {})

    @classmethod
    def from_plain(cls, credentials: dict[str, str]) -> StaticTokenAuthenticator:
        """Build from {credential: auth_id}, hashing each credential."""
        return cls({hash_credential(c): auth_id for c, auth_id in credentials.items()})

    def register(self, credential: str, auth_id: str) -> None:
        if not credential or not auth_id:
            raise ValueError("credential and auth_id are required")
        self._identities[hash_credential(credential)] = auth_id

    def resolve(self, credential: str) -> str | None:
        if not credential:
            return None
        digest = hash_credential(credential)
        for known, auth_id in self._identities.items():
            if hmac.compare_digest(known, digest):
                return auth_id
        return None
