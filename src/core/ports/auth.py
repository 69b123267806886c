from typing import Protocol


class AuthenticatorPort(Protocol):
    def resolve(self, credential: str) -> str | None:
        """
        Resolve an inbound credential to a stable caller identity.

        Returns None if the credential is unknown or invalid. The core never
        parses credentials itself; it only sees the returned identity.
        """
        ...
