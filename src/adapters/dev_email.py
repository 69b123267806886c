"""
Dev mail transport.

Logs emails instead of sending them and keeps every message in memory,
so local runs and tests can read confirmation and unsubscribe links
straight out of the outbox.

Key behaviors:
- Returns SKIPPED status (not SENT), which callers treat as delivered
- Safe to call from the publishing fan-out threads
- Addresses listed in fail_for get a FAILED result, for exercising
  partial-delivery paths without a real mail server
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from src.core.ports.email import EmailMessage, EmailResult, EmailStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutboxEmail:
    """One logged email."""

    id: str
    recipient: str
    subject: str
    body_html: str
    body_text: str
    sender: str | None
    logged_at: datetime


@dataclass
class DevEmailAdapter:
    """Mail transport that logs instead of sending. Implements EmailPort."""

    outbox: list[OutboxEmail] = field(default_factory=list)
    fail_for: set[str] = field(default_factory=set)

    log_level: int = logging.INFO
    log_body: bool = True
    body_preview_length: int = 100

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def send_email(
        self,
        recipient: str,
        subject: str,
        body_html: str,
        body_text: str | None = None,
    ) -> EmailResult:
        return self._record(recipient, subject, body_html, body_text or "", sender=None)

    def send(self, message: EmailMessage) -> EmailResult:
        sender = str(message.sender) if message.sender else None
        return self._record(
            message.recipient.email,
            message.subject,
            message.body_html,
            message.body_text,
            sender=sender,
        )

    def _record(
        self,
        recipient: str,
        subject: str,
        body_html: str,
        body_text: str,
        sender: str | None,
    ) -> EmailResult:
        if recipient in self.fail_for:
            logger.log(self.log_level, "EMAIL (dev): simulated failure for %s", recipient)
            return EmailResult.failed(recipient, "Dev mode - simulated failure")

        email = OutboxEmail(
            id=f"dev-{uuid4().hex[:12]}",
            recipient=recipient,
            subject=subject,
            body_html=body_html,
            body_text=body_text,
            sender=sender,
            logged_at=datetime.now(UTC),
        )
        with self._lock:
            self.outbox.append(email)

        self._log_email(email)
        return EmailResult(
            status=EmailStatus.SKIPPED,
            message_id=email.id,
            recipient=recipient,
            error="Dev mode - email logged, not sent",
        )

    def _log_email(self, email: OutboxEmail) -> None:
        parts = [f"EMAIL (dev): To={email.recipient}", f"Subject={email.subject}"]
        if email.sender:
            parts.append(f"From={email.sender}")

        body = email.body_text or email.body_html
        if self.log_body and body:
            preview = body[: self.body_preview_length]
            if len(body) > self.body_preview_length:
                preview += "..."
            parts.append(f"Body={preview}")

        parts.append(f"MessageID={email.id}")
        logger.log(self.log_level, ", ".join(parts))

    # --- Test Helper Methods ---

    def get_last_email(self) -> OutboxEmail | None:
        with self._lock:
            return self.outbox[-1] if self.outbox else None

    def get_emails_to(self, recipient: str) -> list[OutboxEmail]:
        with self._lock:
            return [e for e in self.outbox if e.recipient == recipient]

    def clear(self) -> None:
        """Clear the outbox (for test isolation)."""
        with self._lock:
            self.outbox.clear()

    @property
    def email_count(self) -> int:
        return len(self.outbox)
