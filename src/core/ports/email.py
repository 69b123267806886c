"""
Email interfaces.

Two layers:
- EmailPort: a mail transport (console/dev, SMTP). Knows nothing about
  newsletters.
- MailerPort: the newsletter-facing mailer used by the core. Sends the
  confirmation, welcome-back and issue emails.

Implementations:
1. DevEmailAdapter: logs emails (dev/test)
2. SMTPEmailAdapter: sends via SMTP
3. TransportMailer: MailerPort over any EmailPort

Delivery failure is reported either as a FAILED EmailResult or as an
EmailError raised by the transport; callers handle both.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol


class EmailStatus(Enum):
    """Email send result status."""

    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"  # Dev adapter or dry-run


@dataclass(frozen=True)
class EmailAddress:
    """
    Email address with optional display name.

    Examples:
        EmailAddress("user@example.com")
        EmailAddress("user@example.com", "John Doe")
    """

    email: str
    name: str | None = None

    def __str__(self) -> str:
        """Format as RFC 5322 address."""
        if self.name:
            safe_name = self.name.replace('"', '\\"')
            return f'"{safe_name}" <{self.email}>'
        return self.email


@dataclass(frozen=True)
class EmailMessage:
    """Email message to be sent, with HTML and plain text bodies."""

    recipient: EmailAddress
    subject: str
    body_html: str
    body_text: str
    sender: EmailAddress | None = None  # None = use default sender
    headers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.recipient.email:
            raise ValueError("Recipient email is required")
        if not self.subject:
            raise ValueError("Subject is required")
        if not self.body_html and not self.body_text:
            raise ValueError("At least one of body_html or body_text is required")


@dataclass
class EmailResult:
    """Result of an email send attempt."""

    status: EmailStatus
    message_id: str | None = None
    error: str | None = None
    sent_at: datetime | None = None
    recipient: str = ""

    @property
    def ok(self) -> bool:
        """SENT and SKIPPED both count as delivered from the caller's view."""
        return self.status != EmailStatus.FAILED

    @classmethod
    def success(cls, recipient: str, message_id: str | None = None) -> EmailResult:
        return cls(
            status=EmailStatus.SENT,
            message_id=message_id,
            recipient=recipient,
            sent_at=datetime.now(UTC),
        )

    @classmethod
    def skipped(cls, recipient: str, reason: str = "Dev mode") -> EmailResult:
        return cls(
            status=EmailStatus.SKIPPED,
            recipient=recipient,
            error=reason,
        )

    @classmethod
    def failed(cls, recipient: str, error: str) -> EmailResult:
        return cls(
            status=EmailStatus.FAILED,
            recipient=recipient,
            error=error,
        )


class EmailPort(Protocol):
    """Mail transport interface."""

    def send_email(
        self,
        recipient: str,
        subject: str,
        body_html: str,
        body_text: str | None = None,
    ) -> EmailResult:
        """
        Send a transactional email.

        Args:
            recipient: Email address of recipient
            subject: Email subject line
            body_html: HTML body content
            body_text: Plain text body (optional, fallback)

        Returns:
            EmailResult with send outcome
        """
        ...

    def send(self, message: EmailMessage) -> EmailResult:
        """Send an email message with full options."""
        ...


class MailerPort(Protocol):
    """
    Newsletter mailer used by the subscription and publishing flows.

    Each method returns an EmailResult; a transport may also raise EmailError.
    """

    def send_confirmation(self, to: str, confirmation_link: str) -> EmailResult:
        """Send the double opt-in confirmation link."""
        ...

    def send_welcome_back(self, to: str, unsubscribe_link: str) -> EmailResult:
        """Notify a reactivated subscriber, with their new unsubscribe link."""
        ...

    def send_issue(
        self, to: str, subject: str, body: str, unsubscribe_link: str
    ) -> EmailResult:
        """Deliver one published post to one subscriber."""
        ...


# --- Error Types ---


class EmailError(Exception):
    """Base exception for email-related errors."""

    pass


class EmailSendError(EmailError):
    """Failed to send email."""

    def __init__(self, recipient: str, error: str, retriable: bool = True) -> None:
        self.recipient = recipient
        self.error = error
        self.retriable = retriable
        super().__init__(f"Failed to send email to {recipient}: {error}")
