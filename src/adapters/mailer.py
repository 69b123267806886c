"""
Newsletter mailer over a mail transport.

Composes the three outbound emails (confirmation, welcome back, issue)
and hands them to an EmailPort. Bodies are plain text; the HTML part is
the same text, escaped, with line breaks preserved.
"""

from __future__ import annotations

import html

from src.core.ports.email import EmailAddress, EmailMessage, EmailPort, EmailResult

CONFIRMATION_SUBJECT = "Confirm Your Subscription"
WELCOME_BACK_SUBJECT = "Welcome Back & Unsubscribe Link"


def recipient_name(email: str) -> str:
    """Greeting name: the local part of the address."""
    return email.split("@", 1)[0]


def text_to_html(text: str) -> str:
    return html.escape(text).replace("\n", "<br>\n")


class TransportMailer:
    """Implements MailerPort on top of any EmailPort."""

    def __init__(
        self,
        transport: EmailPort,
        site_name: str = "Newsletter",
        sender: str | None = None,
    ) -> None:
        self._transport = transport
        self._site_name = site_name
        self._sender = EmailAddress(sender, site_name) if sender else None

    def send_confirmation(self, to: str, confirmation_link: str) -> EmailResult:
        body = (
            f"Hi {recipient_name(to)},\n\n"
            f"Please confirm your subscription to {self._site_name} by opening this link:\n"
            f"{confirmation_link}\n\n"
            "The link expires in 24 hours. If you did not subscribe, ignore this email."
        )
        return self._send(to, CONFIRMATION_SUBJECT, body)

    def send_welcome_back(self, to: str, unsubscribe_link: str) -> EmailResult:
        body = (
            f"Hi {recipient_name(to)},\n\n"
            f"Welcome back! You are subscribed to {self._site_name} again.\n\n"
            f"You can unsubscribe at any time:\n{unsubscribe_link}"
        )
        return self._send(to, WELCOME_BACK_SUBJECT, body)

    def send_issue(self, to: str, subject: str, body: str, unsubscribe_link: str) -> EmailResult:
        text = (
            f"Hi {recipient_name(to)},\n\n"
            f"{body}\n\n"
            "--\n"
            f"To stop receiving {self._site_name}, unsubscribe here:\n{unsubscribe_link}"
        )
        return self._send(
            to, subject, text, headers={"List-Unsubscribe": f"<{unsubscribe_link}>"}
        )

    def _send(
        self, to: str, subject: str, text: str, headers: dict[str, str] | None = None
    ) -> EmailResult:
        message = EmailMessage(
            recipient=EmailAddress(to),
            subject=subject,
            body_html=text_to_html(text),
            body_text=text,
            sender=self._sender,
            headers=headers or {},
        )
        return self._transport.send(message)
