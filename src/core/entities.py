"""
Domain entities for the newsletter core.

Editors own newsletters, newsletters own posts and subscribers.
Only the fields the subscription lifecycle and the publishing
fan-out read or write are modelled here.

Lifecycle notes:
- Subscriber rows are created by subscribe and mutated by
  confirm / unsubscribe / resubscribe; the core never deletes them.
- Posts are created elsewhere; the core only marks them published.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SubscriberStatus(str, Enum):
    """
    Subscriber status.

    pending_confirmation -> active -> unsubscribed
    unsubscribed -> active (resubscription, no re-confirmation)
    """

    PENDING_CONFIRMATION = "pending_confirmation"
    ACTIVE = "active"
    UNSUBSCRIBED = "unsubscribed"


class Editor(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    auth_id: str  # Stable identity from the authenticator
    email: str
    created_at: datetime = Field(default_factory=_utcnow)


class Newsletter(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    editor_id: UUID
    name: str
    description: str = ""
    created_at: datetime = Field(default_factory=_utcnow)


class Post(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    newsletter_id: UUID
    title: str
    content: str
    published_at: datetime | None = None  # None means draft
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_published(self) -> bool:
        return self.published_at is not None


class Subscriber(BaseModel):
    """
    Subscription of one email address to one newsletter.

    At most one row exists per (email, newsletter_id).
    """

    id: UUID = Field(default_factory=uuid4)
    email: str  # Normalized: trimmed, lower-cased
    newsletter_id: UUID
    status: SubscriberStatus = SubscriberStatus.PENDING_CONFIRMATION
    confirmation_token: str = ""  # Only while pending
    token_expiry: datetime | None = None  # Only meaningful with a confirmation token
    unsubscribe_token: str = ""  # Present whenever active
    retired_unsubscribe_token: str = ""  # Consumed token, kept for idempotent unsubscribe
    subscription_date: datetime = Field(default_factory=_utcnow)
    confirmed_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status == SubscriberStatus.ACTIVE
