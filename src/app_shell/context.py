from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from src.adapters.auth.static_token import StaticTokenAuthenticator
from src.adapters.clock import SystemClock
from src.adapters.dev_email import DevEmailAdapter
from src.adapters.mailer import TransportMailer
from src.adapters.smtp_email import SMTPConfig, SMTPEmailAdapter
from src.adapters.sqlite.migrator import SQLiteMigrator
from src.adapters.sqlite.repos import (
    SQLiteEditorRepo,
    SQLiteNewsletterRepo,
    SQLitePostRepo,
    SQLiteSubscriberRepo,
)
from src.components.newsletter import NewsletterConfig, SubscriptionStateMachine
from src.components.ownership import OwnershipGuard
from src.components.publish import PublishConfig, PublishingOrchestrator
from src.components.tokens import TokenConfig, TokenIssuer
from src.core.errors import ForbiddenError
from src.core.ports.auth import AuthenticatorPort
from src.core.ports.email import EmailPort
from src.core.ports.time import ClockPort
from src.rules.models import EmailRules, Rules

logger = logging.getLogger(__name__)


def build_transport(email: EmailRules, environ: Mapping[str, str] | None = None) -> EmailPort:
    """Mail transport selected by email.transport."""
    if email.transport == "dev":
        return DevEmailAdapter()

    env = os.environ if environ is None else environ
    username = env.get(email.smtp_username_env) if email.smtp_username_env else None
    password = env.get(email.smtp_password_env) if email.smtp_password_env else None
    return SMTPEmailAdapter(
        SMTPConfig(
            host=email.smtp_host,
            port=email.smtp_port,
            sender=email.sender,
            username=username,
            password=password,
            use_starttls=email.smtp_starttls,
        )
    )


@dataclass
class ServiceContext:
    subscriptions: SubscriptionStateMachine
    publisher: PublishingOrchestrator
    ownership: OwnershipGuard
    subscriber_repo: SQLiteSubscriberRepo
    newsletter_repo: SQLiteNewsletterRepo
    editor_repo: SQLiteEditorRepo
    post_repo: SQLitePostRepo
    transport: EmailPort
    authenticator: AuthenticatorPort
    migrator: SQLiteMigrator
    rules: Rules
    clock: ClockPort

    @classmethod
    def create(
        cls,
        rules: Rules,
        base_dir: Path | None = None,
        *,
        clock: ClockPort | None = None,
        transport: EmailPort | None = None,
        authenticator: AuthenticatorPort | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> ServiceContext:
        base = base_dir or Path.cwd()
        db_path = str(base / rules.ops.db_path)

        # Adapters
        subscriber_repo = SQLiteSubscriberRepo(db_path)
        newsletter_repo = SQLiteNewsletterRepo(db_path)
        editor_repo = SQLiteEditorRepo(db_path)
        post_repo = SQLitePostRepo(db_path)
        migrator = SQLiteMigrator(db_path, str(base / rules.ops.migrations_dir))

        clock = clock or SystemClock()
        transport = transport or build_transport(rules.email, environ)
        authenticator = authenticator or StaticTokenAuthenticator()
        mailer = TransportMailer(
            transport, site_name=rules.newsletter.site_name, sender=rules.email.sender
        )

        # Components
        nl = rules.newsletter
        ownership = OwnershipGuard(editor_repo, newsletter_repo, post_repo)
        subscriptions = SubscriptionStateMachine(
            subscriber_repo,
            newsletter_repo,
            TokenIssuer(
                TokenConfig(confirmation_token_expiry_hours=nl.confirmation_token_expiry_hours)
            ),
            mailer,
            clock,
            config=NewsletterConfig(
                base_url=nl.base_url,
                confirmation_path=nl.confirmation_path,
                unsubscribe_path=nl.unsubscribe_path,
                default_page_limit=nl.default_page_limit,
                site_name=nl.site_name,
            ),
            ownership=ownership,
        )
        publisher = PublishingOrchestrator(
            ownership,
            subscriptions,
            post_repo,
            mailer,
            clock,
            PublishConfig(
                base_url=nl.base_url,
                unsubscribe_path=nl.unsubscribe_path,
                fanout_max_workers=rules.publishing.fanout_max_workers,
                publish_claim_ttl_seconds=rules.publishing.publish_claim_ttl_seconds,
            ),
        )

        logger.debug(
            "Service context created (db=%s, transport=%s)", db_path, rules.email.transport
        )
        return cls(
            subscriptions=subscriptions,
            publisher=publisher,
            ownership=ownership,
            subscriber_repo=subscriber_repo,
            newsletter_repo=newsletter_repo,
            editor_repo=editor_repo,
            post_repo=post_repo,
            transport=transport,
            authenticator=authenticator,
            migrator=migrator,
            rules=rules,
            clock=clock,
        )

    def resolve_caller(self, credential: str) -> str:
        """Auth identity for a credential; unknown credentials are forbidden."""
        auth_id = self.authenticator.resolve(credential)
        if not auth_id:
            raise ForbiddenError("invalid credentials")
        return auth_id
