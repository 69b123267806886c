"""In-memory store adapters.

Implement the store ports for tests and single-process dev runs.
A single lock per store makes every conditional update atomic, which
is the same guarantee the SQLite adapter gets from one UPDATE statement.
"""

from __future__ import annotations

import threading
from datetime import datetime
from uuid import UUID

from src.core.entities import Editor, Newsletter, Post, Subscriber, SubscriberStatus
from src.core.errors import ConflictError


class InMemorySubscriberStore:
    """Subscriber storage - suitable for single-process deployments."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[UUID, Subscriber] = {}

    def _copy(self, subscriber: Subscriber | None) -> Subscriber | None:
        return subscriber.model_copy() if subscriber else None

    def get_by_id(self, subscriber_id: UUID) -> Subscriber | None:
        with self._lock:
            return self._copy(self._subscribers.get(subscriber_id))

    def find_by_email_and_newsletter(
        self, email: str, newsletter_id: UUID
    ) -> Subscriber | None:
        with self._lock:
            for s in self._subscribers.values():
                if s.email == email and s.newsletter_id == newsletter_id:
                    return self._copy(s)
            return None

    def create(self, subscriber: Subscriber) -> Subscriber:
        with self._lock:
            for s in self._subscribers.values():
                if s.email == subscriber.email and s.newsletter_id == subscriber.newsletter_id:
                    raise ConflictError(
                        f"subscriber '{subscriber.email}' already exists for newsletter "
                        f"'{subscriber.newsletter_id}'"
                    )
            self._subscribers[subscriber.id] = subscriber.model_copy()
            return subscriber

    def update_status(self, subscriber_id: UUID, status: SubscriberStatus) -> None:
        with self._lock:
            s = self._subscribers.get(subscriber_id)
            if s:
                s.status = status

    def update_unsubscribe_token(self, subscriber_id: UUID, token: str) -> None:
        with self._lock:
            s = self._subscribers.get(subscriber_id)
            if s:
                s.unsubscribe_token = token

    def reactivate(
        self, subscriber_id: UUID, unsubscribe_token: str, now: datetime
    ) -> Subscriber | None:
        with self._lock:
            s = self._subscribers.get(subscriber_id)
            if s is None or s.status != SubscriberStatus.UNSUBSCRIBED:
                return None
            s.status = SubscriberStatus.ACTIVE
            s.unsubscribe_token = unsubscribe_token
            s.retired_unsubscribe_token = ""
            s.subscription_date = now
            return self._copy(s)

    def reissue_confirmation(
        self, subscriber_id: UUID, token: str, expiry: datetime
    ) -> Subscriber | None:
        with self._lock:
            s = self._subscribers.get(subscriber_id)
            if s is None or s.status != SubscriberStatus.PENDING_CONFIRMATION:
                return None
            s.confirmation_token = token
            s.token_expiry = expiry
            return self._copy(s)

    def find_by_confirmation_token(self, token: str) -> Subscriber | None:
        if not token:
            return None
        with self._lock:
            for s in self._subscribers.values():
                if s.confirmation_token == token:
                    return self._copy(s)
            return None

    def find_by_unsubscribe_token(self, token: str) -> Subscriber | None:
        if not token:
            return None
        with self._lock:
            for s in self._subscribers.values():
                if token in (s.unsubscribe_token, s.retired_unsubscribe_token):
                    return self._copy(s)
            return None

    def confirm_atomic(
        self,
        subscriber_id: UUID,
        confirmation_token: str,
        unsubscribe_token: str,
        now: datetime,
    ) -> bool:
        with self._lock:
            s = self._subscribers.get(subscriber_id)
            if (
                s is None
                or s.status != SubscriberStatus.PENDING_CONFIRMATION
                or not confirmation_token
                or s.confirmation_token != confirmation_token
            ):
                return False
            s.status = SubscriberStatus.ACTIVE
            s.confirmed_at = now
            s.confirmation_token = ""
            s.token_expiry = None
            s.unsubscribe_token = unsubscribe_token
            return True

    def consume_unsubscribe_token(self, token: str, now: datetime) -> bool:
        if not token:
            return False
        with self._lock:
            for s in self._subscribers.values():
                if s.unsubscribe_token == token and s.status == SubscriberStatus.ACTIVE:
                    s.retired_unsubscribe_token = token
                    s.unsubscribe_token = ""
                    s.status = SubscriberStatus.UNSUBSCRIBED
                    return True
            return False

    def _active(self, newsletter_id: UUID) -> list[Subscriber]:
        rows = [
            s
            for s in self._subscribers.values()
            if s.newsletter_id == newsletter_id and s.status == SubscriberStatus.ACTIVE
        ]
        rows.sort(key=lambda s: (s.subscription_date, s.email))
        return rows

    def list_active_by_newsletter(
        self, newsletter_id: UUID, limit: int, offset: int
    ) -> tuple[list[Subscriber], int]:
        with self._lock:
            rows = self._active(newsletter_id)
            page = [s.model_copy() for s in rows[offset : offset + limit]]
            return page, len(rows)

    def list_all_active_by_newsletter(self, newsletter_id: UUID) -> list[Subscriber]:
        with self._lock:
            return [s.model_copy() for s in self._active(newsletter_id)]

    def clear(self) -> None:
        """Clear all subscribers - useful for testing."""
        with self._lock:
            self._subscribers.clear()


class InMemoryNewsletterStore:
    def __init__(self) -> None:
        self._newsletters: dict[UUID, Newsletter] = {}

    def save(self, newsletter: Newsletter) -> Newsletter:
        self._newsletters[newsletter.id] = newsletter
        return newsletter

    def get_by_id(self, newsletter_id: UUID) -> Newsletter | None:
        return self._newsletters.get(newsletter_id)


class InMemoryEditorStore:
    def __init__(self) -> None:
        self._editors: dict[str, Editor] = {}

    def save(self, editor: Editor) -> Editor:
        self._editors[editor.auth_id] = editor
        return editor

    def get_by_auth_id(self, auth_id: str) -> Editor | None:
        return self._editors.get(auth_id)


class InMemoryPostStore:
    """Post storage with an atomic publishing claim."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._posts: dict[UUID, Post] = {}
        # post_id -> (claim_id, claimed_at)
        self._claims: dict[UUID, tuple[str, datetime]] = {}

    def save(self, post: Post) -> Post:
        with self._lock:
            self._posts[post.id] = post.model_copy()
            return post

    def get_by_id(self, post_id: UUID) -> Post | None:
        with self._lock:
            post = self._posts.get(post_id)
            return post.model_copy() if post else None

    def claim_for_publishing(
        self, post_id: UUID, claim_id: str, now: datetime, stale_before: datetime
    ) -> bool:
        with self._lock:
            post = self._posts.get(post_id)
            if post is None or post.published_at is not None:
                return False
            current = self._claims.get(post_id)
            if current is not None and current[1] >= stale_before:
                return False
            self._claims[post_id] = (claim_id, now)
            return True

    def release_claim(self, post_id: UUID, claim_id: str) -> None:
        with self._lock:
            current = self._claims.get(post_id)
            if current is not None and current[0] == claim_id:
                del self._claims[post_id]

    def renew_claim(self, post_id: UUID, claim_id: str, now: datetime) -> bool:
        with self._lock:
            post = self._posts.get(post_id)
            current = self._claims.get(post_id)
            if post is None or post.published_at is not None:
                return False
            if current is None or current[0] != claim_id:
                return False
            self._claims[post_id] = (claim_id, now)
            return True

    def mark_published_conditional(self, post_id: UUID, claim_id: str, now: datetime) -> bool:
        with self._lock:
            post = self._posts.get(post_id)
            if post is None or post.published_at is not None:
                return False
            current = self._claims.get(post_id)
            if current is None or current[0] != claim_id:
                return False
            post.published_at = now
            post.updated_at = now
            self._claims.pop(post_id, None)
            return True
