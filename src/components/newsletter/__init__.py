"""
Newsletter subscription component.

Double opt-in subscription lifecycle with single-use confirmation
tokens, idempotent unsubscribe and immediate resubscription.
"""

from src.components.newsletter.component import (
    EMAIL_REGEX,
    SubscriptionStateMachine,
    build_confirmation_url,
    build_unsubscribe_url,
    normalize_email,
    parse_id,
    validate_email,
)
from src.components.newsletter.models import (
    VALID_TRANSITIONS,
    AlreadyConfirmedError,
    AlreadySubscribedError,
    InvalidOrExpiredTokenError,
    NewsletterConfig,
    ValidateEmailOutput,
    ValidationIssue,
    can_transition,
)

__all__ = [
    # Component
    "SubscriptionStateMachine",
    # Pure functions
    "validate_email",
    "normalize_email",
    "parse_id",
    "build_confirmation_url",
    "build_unsubscribe_url",
    # Constants
    "EMAIL_REGEX",
    # Models
    "VALID_TRANSITIONS",
    "can_transition",
    "NewsletterConfig",
    "ValidateEmailOutput",
    "ValidationIssue",
    # Errors
    "AlreadyConfirmedError",
    "AlreadySubscribedError",
    "InvalidOrExpiredTokenError",
]
