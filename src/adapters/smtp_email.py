"""
SMTP mail transport.

Sends multipart text/HTML messages through an SMTP relay with STARTTLS
and login. One connection per message; the publishing fan-out calls
this from several threads at once.

Delivery problems come back as a FAILED EmailResult, never as an
exception, so a bad recipient cannot abort a fan-out.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage as MIMEEmailMessage
from email.utils import make_msgid

from src.core.ports.email import EmailAddress, EmailMessage, EmailResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SMTPConfig:
    """SMTP relay settings."""

    host: str
    port: int
    sender: str
    username: str | None = None
    password: str | None = None
    use_starttls: bool = True
    timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("SMTP host is required")
        if not self.sender:
            raise ValueError("SMTP sender is required")
        if (self.username is None) != (self.password is None):
            raise ValueError("SMTP username and password must be given together")


class SMTPEmailAdapter:
    """Mail transport over smtplib. Implements EmailPort."""

    def __init__(self, config: SMTPConfig) -> None:
        self._config = config

    def send_email(
        self,
        recipient: str,
        subject: str,
        body_html: str,
        body_text: str | None = None,
    ) -> EmailResult:
        message = EmailMessage(
            recipient=EmailAddress(recipient),
            subject=subject,
            body_html=body_html,
            body_text=body_text or "",
        )
        return self.send(message)

    def send(self, message: EmailMessage) -> EmailResult:
        recipient = message.recipient.email
        mime = self._build_mime(message)
        try:
            with smtplib.SMTP(
                self._config.host, self._config.port, timeout=self._config.timeout_seconds
            ) as smtp:
                if self._config.use_starttls:
                    smtp.starttls(context=ssl.create_default_context())
                if self._config.username is not None and self._config.password is not None:
                    smtp.login(self._config.username, self._config.password)
                smtp.send_message(mime)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(
                "SMTP send to %s via %s:%s failed: %s",
                recipient,
                self._config.host,
                self._config.port,
                e,
            )
            return EmailResult.failed(recipient, str(e))

        logger.debug("SMTP sent %s to %s", mime["Message-ID"], recipient)
        return EmailResult.success(recipient, message_id=mime["Message-ID"])

    def _build_mime(self, message: EmailMessage) -> MIMEEmailMessage:
        mime = MIMEEmailMessage()
        mime["From"] = str(message.sender) if message.sender else self._config.sender
        mime["To"] = str(message.recipient)
        mime["Subject"] = message.subject
        mime["Message-ID"] = make_msgid()
        for name, value in message.headers.items():
            mime[name] = value

        if message.body_text:
            mime.set_content(message.body_text)
            if message.body_html:
                mime.add_alternative(message.body_html, subtype="html")
        else:
            mime.set_content(message.body_html, subtype="html")
        return mime
