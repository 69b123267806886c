"""Publish component models - frozen dataclass config and outputs, publish errors."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from uuid import UUID

from src.core.errors import NewsletterCoreError


class PublishStatus(str, Enum):
    """Outcome of a publish call."""

    PUBLISHED = "published"
    ALREADY_PUBLISHED = "already_published"
    PARTIAL_FAILURE = "partial_failure"


@dataclass(frozen=True)
class PublishConfig:
    """Fan-out configuration."""

    base_url: str = "http://localhost:8080"
    unsubscribe_path: str = "/api/subscriptions/unsubscribe"
    fanout_max_workers: int = 8
    publish_claim_ttl_seconds: int = 3600

    def __post_init__(self) -> None:
        if self.fanout_max_workers < 1:
            raise ValueError("fanout_max_workers must be at least 1")
        if self.publish_claim_ttl_seconds < 1:
            raise ValueError("publish_claim_ttl_seconds must be positive")

    @property
    def claim_renew_interval(self) -> timedelta:
        """How often a running fan-out refreshes its claim."""
        return timedelta(seconds=self.publish_claim_ttl_seconds / 4)


@dataclass(frozen=True)
class DeliveryFailure:
    """One recipient the issue could not be delivered to."""

    subscriber_id: UUID
    email: str
    error: str


@dataclass(frozen=True)
class PublishOutput:
    """Result of publishing a post."""

    status: PublishStatus
    post_id: UUID
    recipients: int = 0
    sent: int = 0
    skipped: int = 0
    failures: list[DeliveryFailure] = field(default_factory=list)
    published_at: datetime | None = None

    @property
    def failed(self) -> int:
        return len(self.failures)

    def raise_for_failures(self) -> None:
        """Raise PartialDeliveryFailure when any recipient failed."""
        if self.failures:
            raise PartialDeliveryFailure(self.failed, self.failures)


# --- Error Types ---


class PartialDeliveryFailure(NewsletterCoreError):
    """The post was published but some recipients were not reached."""

    code = "PARTIAL_DELIVERY_FAILURE"

    def __init__(self, count: int, failures: list[DeliveryFailure] | None = None) -> None:
        self.count = count
        self.failures = list(failures or [])
        super().__init__(f"delivery failed for {count} subscriber(s)")


class PublishCancelledError(NewsletterCoreError):
    """Fan-out was cancelled; the post stays unpublished."""

    code = "PUBLISH_CANCELLED"

    def __init__(self, sent: int, failed: int, not_attempted: int) -> None:
        self.sent = sent
        self.failed = failed
        self.not_attempted = not_attempted
        super().__init__(
            f"publish cancelled: {sent} sent, {failed} failed, {not_attempted} not attempted"
        )
