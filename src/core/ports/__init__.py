# Ports (Protocol Interfaces)
# Abstract interfaces for adapters; no implementations here

from src.core.ports.auth import AuthenticatorPort
from src.core.ports.db import (
    EditorStorePort,
    NewsletterStorePort,
    PostStorePort,
    SubscriberStorePort,
)
from src.core.ports.email import (
    EmailAddress,
    EmailError,
    EmailMessage,
    EmailPort,
    EmailResult,
    EmailSendError,
    EmailStatus,
    MailerPort,
)
from src.core.ports.time import ClockPort

__all__ = [
    # Auth
    "AuthenticatorPort",
    # Stores
    "EditorStorePort",
    "NewsletterStorePort",
    "PostStorePort",
    "SubscriberStorePort",
    # Email
    "EmailAddress",
    "EmailError",
    "EmailMessage",
    "EmailPort",
    "EmailResult",
    "EmailSendError",
    "EmailStatus",
    "MailerPort",
    # Time
    "ClockPort",
]
