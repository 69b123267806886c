"""
Store interfaces for the newsletter core.

Protocol-based interfaces for the persistence collaborators.
Implementations: SQLite (src/adapters/sqlite/repos.py).

Stores must provide per-row atomic conditional updates; the core
never needs multi-row transactions across subscribers and posts.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from src.core.entities import Editor, Newsletter, Post, Subscriber, SubscriberStatus

# -----------------------------------------------------------------------------
# Subscribers
# -----------------------------------------------------------------------------


class SubscriberStorePort(Protocol):
    """
    Repository for newsletter subscribers.

    Invariants:
    - At most one row per (email, newsletter_id); create raises ConflictError
      on a duplicate.
    - Token-consuming updates match on the token and report whether a row
      changed, so two concurrent requests cannot both win.
    """

    def get_by_id(self, subscriber_id: UUID) -> Subscriber | None:
        ...

    def find_by_email_and_newsletter(
        self, email: str, newsletter_id: UUID
    ) -> Subscriber | None:
        ...

    def create(self, subscriber: Subscriber) -> Subscriber:
        """Insert a new row. Raises ConflictError if (email, newsletter_id) exists."""
        ...

    def update_status(self, subscriber_id: UUID, status: SubscriberStatus) -> None:
        """
        Unconditional status write, for operator repair only.

        The lifecycle never calls this; it moves rows with the conditional
        methods below.
        """
        ...

    def update_unsubscribe_token(self, subscriber_id: UUID, token: str) -> None:
        """Unconditional token write, for operator repair only."""
        ...

    def reactivate(
        self, subscriber_id: UUID, unsubscribe_token: str, now: datetime
    ) -> Subscriber | None:
        """
        Flip an unsubscribed row back to active with a new unsubscribe token.

        Returns the updated row, or None if the row was not unsubscribed.
        """
        ...

    def reissue_confirmation(
        self, subscriber_id: UUID, token: str, expiry: datetime
    ) -> Subscriber | None:
        """Replace the confirmation token of a pending row. None if not pending."""
        ...

    def find_by_confirmation_token(self, token: str) -> Subscriber | None:
        ...

    def find_by_unsubscribe_token(self, token: str) -> Subscriber | None:
        """Match the live unsubscribe token or the retired one."""
        ...

    def confirm_atomic(
        self,
        subscriber_id: UUID,
        confirmation_token: str,
        unsubscribe_token: str,
        now: datetime,
    ) -> bool:
        """
        Activate a pending row if it still holds ``confirmation_token``.

        Clears the confirmation token, sets confirmed_at and the unsubscribe
        token. Returns True if exactly this call changed the row.
        """
        ...

    def consume_unsubscribe_token(self, token: str, now: datetime) -> bool:
        """
        Clear the live unsubscribe token and mark the row unsubscribed.

        Only matches an active row holding ``token``. Returns True if this
        call changed the row.
        """
        ...

    def list_active_by_newsletter(
        self, newsletter_id: UUID, limit: int, offset: int
    ) -> tuple[list[Subscriber], int]:
        """Page of active subscribers and the total active count."""
        ...

    def list_all_active_by_newsletter(self, newsletter_id: UUID) -> list[Subscriber]:
        ...


# -----------------------------------------------------------------------------
# Newsletters, posts, editors
# -----------------------------------------------------------------------------


class NewsletterStorePort(Protocol):
    def get_by_id(self, newsletter_id: UUID) -> Newsletter | None:
        ...


class EditorStorePort(Protocol):
    def get_by_auth_id(self, auth_id: str) -> Editor | None:
        """Resolve an authenticator identity to an editor."""
        ...


class PostStorePort(Protocol):
    """
    Repository for posts, as seen by the publishing workflow.

    published_at is monotonic here: it is set once and never cleared.
    """

    def get_by_id(self, post_id: UUID) -> Post | None:
        ...

    def claim_for_publishing(
        self, post_id: UUID, claim_id: str, now: datetime, stale_before: datetime
    ) -> bool:
        """
        Take the publishing claim on a draft post.

        Succeeds only if the post is unpublished and has no claim, or its
        claim was taken before ``stale_before``.
        """
        ...

    def release_claim(self, post_id: UUID, claim_id: str) -> None:
        ...

    def renew_claim(self, post_id: UUID, claim_id: str, now: datetime) -> bool:
        """
        Move claimed_at forward to ``now`` while ``claim_id`` holds the claim.

        Returns False once the claim has been taken over or the post published.
        """
        ...

    def mark_published_conditional(self, post_id: UUID, claim_id: str, now: datetime) -> bool:
        """
        Set published_at if still unset and ``claim_id`` holds the claim.

        Returns True if this call set it.
        """
        ...
