"""
SubscriptionStateMachine component.

Owns the subscriber lifecycle: subscribe, confirm, unsubscribe by
token, resubscribe, and the active-subscriber read path used by the
owner-facing listing and by publishing.

Key behaviors:
- Double opt-in: new subscriptions start pending_confirmation
- Confirmation tokens are single-use and expire (checked at confirm time)
- Resubscription reactivates immediately with a fresh unsubscribe token
- Unsubscribe is idempotent
- Each successful subscribe sends exactly one email

Invariants:
- At most one row per (email, newsletter); lookup happens before insert
  and a duplicate insert from a concurrent request falls back to lookup
- Token lookup and invalidation happen in one conditional store update
- A failed email never fails the state transition. This holds on the
  create path and on the resubscribe path alike: the subscriber can ask
  again and the pending row re-sends its confirmation link.

Pending rows whose confirmation token has expired are left in place;
they never activate and cleaning them up is an external maintenance task.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from uuid import UUID, uuid4

from src.components.newsletter.models import (
    AlreadyConfirmedError,
    AlreadySubscribedError,
    InvalidOrExpiredTokenError,
    NewsletterConfig,
    ValidateEmailOutput,
    ValidationIssue,
)
from src.components.ownership import OwnershipGuard
from src.components.tokens import TokenIssuer, is_expired
from src.core.entities import Newsletter, Subscriber, SubscriberStatus
from src.core.errors import ConflictError, InternalError, NotFoundError, ValidationError
from src.core.ports.db import NewsletterStorePort, SubscriberStorePort
from src.core.ports.email import EmailError, EmailResult, MailerPort
from src.core.ports.time import ClockPort

logger = logging.getLogger(__name__)

# --- Email Validation Regex (RFC 5322 simplified) ---

EMAIL_REGEX = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@"
    r"[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)

MAX_EMAIL_LENGTH = 254


# --- Pure Functions ---


def normalize_email(email: str | None) -> str:
    return email.strip().lower() if email else ""


def validate_email(email: str | None) -> ValidateEmailOutput:
    """
    Validate email address format.

    Args:
        email: Email address to validate

    Returns:
        ValidateEmailOutput with the normalized address when valid
    """
    normalized = normalize_email(email)

    if not normalized:
        return ValidateEmailOutput(
            is_valid=False,
            errors=[ValidationIssue("EMPTY_EMAIL", "Email address is required", "email")],
        )

    if len(normalized) > MAX_EMAIL_LENGTH:
        return ValidateEmailOutput(
            is_valid=False,
            errors=[ValidationIssue("EMAIL_TOO_LONG", "Email address is too long", "email")],
        )

    if not EMAIL_REGEX.match(normalized):
        return ValidateEmailOutput(
            is_valid=False,
            errors=[ValidationIssue("INVALID_FORMAT", "Invalid email format", "email")],
        )

    return ValidateEmailOutput(is_valid=True, normalized_email=normalized)


def parse_id(value: UUID | str, field: str) -> UUID:
    """Accept a UUID or its string form; anything else is a validation error."""
    if isinstance(value, UUID):
        return value
    raw = (value or "").strip()
    if not raw:
        raise ValidationError(f"{field} cannot be empty", field=field)
    try:
        return UUID(raw)
    except ValueError as e:
        raise ValidationError(f"{field} '{raw}' is not a valid id", field=field) from e


def build_confirmation_url(
    base_url: str,
    token: str,
    path: str = "/api/subscriptions/confirm",
) -> str:
    base = base_url.rstrip("/")
    return f"{base}{path}?token={token}"


def build_unsubscribe_url(
    base_url: str,
    token: str,
    path: str = "/api/subscriptions/unsubscribe",
) -> str:
    base = base_url.rstrip("/")
    return f"{base}{path}?token={token}"


# --- State Machine ---


class SubscriptionStateMachine:
    """Subscriber state transitions and the active-subscriber read path."""

    def __init__(
        self,
        subscribers: SubscriberStorePort,
        newsletters: NewsletterStorePort,
        tokens: TokenIssuer,
        mailer: MailerPort,
        clock: ClockPort,
        *,
        config: NewsletterConfig | None = None,
        ownership: OwnershipGuard | None = None,
    ) -> None:
        self._subscribers = subscribers
        self._newsletters = newsletters
        self._tokens = tokens
        self._mailer = mailer
        self._clock = clock
        self._config = config or NewsletterConfig()
        self._ownership = ownership

    # --- Links ---

    def confirmation_link(self, token: str) -> str:
        return build_confirmation_url(
            self._config.base_url, token, self._config.confirmation_path
        )

    def unsubscribe_link(self, token: str) -> str:
        return build_unsubscribe_url(self._config.base_url, token, self._config.unsubscribe_path)

    # --- Subscribe ---

    def subscribe(self, email: str, newsletter_id: UUID | str) -> Subscriber:
        """
        Subscribe an email address to a newsletter.

        Returns the pending row for a new subscription, or the reactivated
        row for a returning subscriber.

        Raises:
            ValidationError: malformed email or newsletter id
            NotFoundError: newsletter does not exist
            AlreadySubscribedError: the address is already active
        """
        check = validate_email(email)
        if not check.is_valid or check.normalized_email is None:
            issue = check.errors[0]
            raise ValidationError(issue.message, field=issue.field, code=issue.code)
        normalized = check.normalized_email
        nid = parse_id(newsletter_id, "newsletter_id")

        newsletter = self._newsletters.get_by_id(nid)
        if newsletter is None:
            raise NotFoundError("newsletter", nid)

        existing = self._subscribers.find_by_email_and_newsletter(normalized, nid)
        if existing is None:
            try:
                return self._create_pending(normalized, newsletter)
            except ConflictError:
                # A concurrent subscribe inserted the row first
                existing = self._subscribers.find_by_email_and_newsletter(normalized, nid)
                if existing is None:
                    raise

        return self._subscribe_existing(existing, newsletter)

    def _create_pending(self, email: str, newsletter: Newsletter) -> Subscriber:
        now = self._clock.now_utc()
        subscriber = Subscriber(
            id=uuid4(),
            email=email,
            newsletter_id=newsletter.id,
            status=SubscriberStatus.PENDING_CONFIRMATION,
            confirmation_token=self._tokens.new_token(),
            token_expiry=self._tokens.expiry_from(now),
            subscription_date=now,
        )
        created = self._subscribers.create(subscriber)
        logger.info(
            "Subscriber %s pending confirmation for newsletter %s", created.id, newsletter.id
        )

        self._notify(
            lambda: self._mailer.send_confirmation(
                created.email, self.confirmation_link(created.confirmation_token)
            ),
            created.email,
            "confirmation",
        )
        return created

    def _subscribe_existing(self, existing: Subscriber, newsletter: Newsletter) -> Subscriber:
        if existing.status == SubscriberStatus.ACTIVE:
            raise AlreadySubscribedError(existing.email, newsletter.name)
        if existing.status == SubscriberStatus.UNSUBSCRIBED:
            return self._resubscribe(existing, newsletter)
        return self._resend_confirmation(existing, newsletter)

    def _resubscribe(self, existing: Subscriber, newsletter: Newsletter) -> Subscriber:
        """
        Reactivate an unsubscribed row.

        The address was proven deliverable by the original confirmation,
        so no new confirmation round-trip is required.
        """
        now = self._clock.now_utc()
        reactivated = self._subscribers.reactivate(existing.id, self._tokens.new_token(), now)
        if reactivated is None:
            # Another request changed the row between lookup and update
            current = self._subscribers.get_by_id(existing.id)
            if current is not None and current.status == SubscriberStatus.ACTIVE:
                raise AlreadySubscribedError(existing.email, newsletter.name)
            raise InternalError(f"could not reactivate subscriber '{existing.id}'")

        logger.info("Subscriber %s reactivated for newsletter %s", reactivated.id, newsletter.id)
        self._notify(
            lambda: self._mailer.send_welcome_back(
                reactivated.email, self.unsubscribe_link(reactivated.unsubscribe_token)
            ),
            reactivated.email,
            "welcome back",
        )
        return reactivated

    def _resend_confirmation(self, existing: Subscriber, newsletter: Newsletter) -> Subscriber:
        """Repeat subscribe on a pending row: same row, confirmation link sent again."""
        now = self._clock.now_utc()
        pending = existing
        if not existing.confirmation_token or is_expired(existing.token_expiry, now):
            reissued = self._subscribers.reissue_confirmation(
                existing.id, self._tokens.new_token(), self._tokens.expiry_from(now)
            )
            if reissued is None:
                # Confirmed concurrently
                raise AlreadySubscribedError(existing.email, newsletter.name)
            pending = reissued
            logger.info("Reissued confirmation token for subscriber %s", pending.id)

        self._notify(
            lambda: self._mailer.send_confirmation(
                pending.email, self.confirmation_link(pending.confirmation_token)
            ),
            pending.email,
            "confirmation",
        )
        return pending

    def _notify(self, send: Callable[[], EmailResult], recipient: str, kind: str) -> None:
        """Send one email; failures are logged and never change the outcome."""
        try:
            result = send()
        except EmailError as e:
            logger.warning("Failed to send %s email to %s: %s", kind, recipient, e)
            return
        if not result.ok:
            logger.warning("Failed to send %s email to %s: %s", kind, recipient, result.error)

    # --- Confirm ---

    def confirm(self, token: str) -> Subscriber:
        """
        Activate a pending subscription with its confirmation token.

        Raises:
            ValidationError: empty token
            InvalidOrExpiredTokenError: unknown, consumed or expired token
            AlreadyConfirmedError: subscription already active and confirmed
        """
        token = (token or "").strip()
        if not token:
            raise ValidationError("confirmation token cannot be empty", field="token")

        subscriber = self._subscribers.find_by_confirmation_token(token)
        if subscriber is None:
            raise InvalidOrExpiredTokenError()

        if subscriber.status == SubscriberStatus.ACTIVE and subscriber.confirmed_at is not None:
            raise AlreadyConfirmedError()

        if subscriber.status != SubscriberStatus.PENDING_CONFIRMATION:
            raise InvalidOrExpiredTokenError()

        now = self._clock.now_utc()
        if is_expired(subscriber.token_expiry, now):
            raise InvalidOrExpiredTokenError()

        unsubscribe_token = self._tokens.new_token()
        if not self._subscribers.confirm_atomic(subscriber.id, token, unsubscribe_token, now):
            # Lost the race to a concurrent confirm with the same token
            raise InvalidOrExpiredTokenError()

        logger.info("Subscriber %s confirmed", subscriber.id)
        return subscriber.model_copy(
            update={
                "status": SubscriberStatus.ACTIVE,
                "confirmed_at": now,
                "confirmation_token": "",
                "token_expiry": None,
                "unsubscribe_token": unsubscribe_token,
            }
        )

    # --- Unsubscribe ---

    def unsubscribe_by_token(self, token: str) -> None:
        """
        Unsubscribe using the token from an email link. Idempotent.

        Raises:
            ValidationError: empty token
            InvalidOrExpiredTokenError: token never belonged to an active subscription
        """
        token = (token or "").strip()
        if not token:
            raise ValidationError("unsubscribe token cannot be empty", field="token")

        subscriber = self._subscribers.find_by_unsubscribe_token(token)
        if subscriber is None:
            raise InvalidOrExpiredTokenError()

        if subscriber.status == SubscriberStatus.UNSUBSCRIBED:
            return

        if subscriber.status != SubscriberStatus.ACTIVE:
            raise InvalidOrExpiredTokenError()

        if self._subscribers.consume_unsubscribe_token(token, self._clock.now_utc()):
            logger.info("Subscriber %s unsubscribed", subscriber.id)
            return

        # A concurrent request consumed the token first
        current = self._subscribers.get_by_id(subscriber.id)
        if current is not None and current.status == SubscriberStatus.UNSUBSCRIBED:
            return
        raise InvalidOrExpiredTokenError()

    # --- Read Path ---

    def list_active(
        self, newsletter_id: UUID | str, limit: int = 0, offset: int = 0
    ) -> tuple[list[Subscriber], int]:
        """Page of active subscribers plus the total active count."""
        nid = parse_id(newsletter_id, "newsletter_id")
        if limit <= 0:
            limit = self._config.default_page_limit
        if offset < 0:
            offset = 0
        return self._subscribers.list_active_by_newsletter(nid, limit, offset)

    def list_active_for_editor(
        self,
        caller_auth_id: str,
        newsletter_id: UUID | str,
        limit: int = 0,
        offset: int = 0,
    ) -> tuple[list[Subscriber], int]:
        """Owner-facing subscriber listing; the caller must own the newsletter."""
        if self._ownership is None:
            raise InternalError("ownership guard is not configured")
        nid = parse_id(newsletter_id, "newsletter_id")
        self._ownership.verify_newsletter_ownership(caller_auth_id, nid)
        return self.list_active(nid, limit, offset)

    def list_all_active(self, newsletter_id: UUID | str) -> list[Subscriber]:
        """Every active subscriber of a newsletter, unpaginated."""
        nid = parse_id(newsletter_id, "newsletter_id")
        if self._newsletters.get_by_id(nid) is None:
            raise NotFoundError("newsletter", nid)
        return self._subscribers.list_all_active_by_newsletter(nid)
