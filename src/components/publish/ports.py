"""Publish component port definitions - protocols for dependencies."""

from __future__ import annotations

from typing import Protocol
from uuid import UUID

from src.core.entities import Editor, Post, Subscriber


class ActiveSubscribersPort(Protocol):
    """Source of the recipient list (the subscription state machine)."""

    def list_all_active(self, newsletter_id: UUID | str) -> list[Subscriber]:
        """Every active subscriber of the newsletter."""
        ...


class PostOwnershipPort(Protocol):
    """Ownership check for the post being published."""

    def verify_post_ownership(self, caller_auth_id: str, post_id: UUID) -> tuple[Editor, Post]:
        """Return the caller's editor and the post, or raise NotFound/Forbidden."""
        ...
