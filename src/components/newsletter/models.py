"""
Newsletter subscription models.

Transition table, configuration, validation results and the
subscription-specific errors.

State machine:
    pending_confirmation -> active       (confirm)
    active -> unsubscribed               (unsubscribe by token)
    unsubscribed -> active               (resubscribe, no re-confirmation)
"""

from __future__ import annotations

from dataclasses import dataclass, field

from src.core.entities import SubscriberStatus
from src.core.errors import ConflictError, NewsletterCoreError

# --- State Machine ---

VALID_TRANSITIONS: dict[SubscriberStatus, set[SubscriberStatus]] = {
    SubscriberStatus.PENDING_CONFIRMATION: {SubscriberStatus.ACTIVE},
    SubscriberStatus.ACTIVE: {SubscriberStatus.UNSUBSCRIBED},
    SubscriberStatus.UNSUBSCRIBED: {SubscriberStatus.ACTIVE},
}


def can_transition(from_status: SubscriberStatus, to_status: SubscriberStatus) -> bool:
    """Check if a subscriber state transition is allowed."""
    return to_status in VALID_TRANSITIONS.get(from_status, set())


# --- Validation ---


@dataclass(frozen=True)
class ValidationIssue:
    """Validation error detail."""

    code: str
    message: str
    field: str | None = None


@dataclass(frozen=True)
class ValidateEmailOutput:
    """Output from email validation."""

    is_valid: bool
    normalized_email: str | None = None  # Lowercase, trimmed
    errors: list[ValidationIssue] = field(default_factory=list)


# --- Configuration ---


@dataclass(frozen=True)
class NewsletterConfig:
    """Subscription flow configuration."""

    base_url: str = "http://localhost:8080"
    confirmation_path: str = "/api/subscriptions/confirm"
    unsubscribe_path: str = "/api/subscriptions/unsubscribe"
    default_page_limit: int = 10
    site_name: str = "Newsletter"


# --- Error Types ---


class AlreadySubscribedError(ConflictError):
    code = "ALREADY_SUBSCRIBED"

    def __init__(self, email: str, newsletter_name: str) -> None:
        self.email = email
        super().__init__(f"'{email}' is already subscribed to '{newsletter_name}'")


class AlreadyConfirmedError(ConflictError):
    code = "ALREADY_CONFIRMED"

    def __init__(self) -> None:
        super().__init__("subscription is already confirmed")


class InvalidOrExpiredTokenError(NewsletterCoreError):
    """Token unknown, already consumed, or past its expiry."""

    code = "INVALID_OR_EXPIRED_TOKEN"

    def __init__(self) -> None:
        super().__init__("token is invalid or expired")
