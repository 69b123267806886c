"""
PublishingOrchestrator component.

Delivers one post to every active subscriber of its newsletter and marks
the post published.

Flow:
    verify ownership -> claim post -> list active subscribers
    -> bounded fan-out (barrier) -> mark published conditionally

A per-recipient failure never aborts the fan-out. A post is marked
published at most once: concurrent publishers race on the claim, a long
fan-out keeps renewing it and stops sending once it is lost, and the final
mark only matches a draft still held by the same claim.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from uuid import UUID, uuid4

from src.components.newsletter.component import build_unsubscribe_url, parse_id
from src.components.publish.models import (
    DeliveryFailure,
    PublishCancelledError,
    PublishConfig,
    PublishOutput,
    PublishStatus,
)
from src.components.publish.ports import ActiveSubscribersPort, PostOwnershipPort
from src.core.entities import Post, Subscriber
from src.core.errors import InternalError
from src.core.ports.db import PostStorePort
from src.core.ports.email import MailerPort
from src.core.ports.time import ClockPort

logger = logging.getLogger(__name__)


class _Delivery(Enum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"
    NOT_ATTEMPTED = "not_attempted"


@dataclass(frozen=True)
class _Outcome:
    subscriber: Subscriber
    delivery: _Delivery
    error: str | None = None


class _ClaimLease:
    """
    The publishing claim held by one fan-out.

    ``held()`` runs before every send. It renews the claim once the renew
    interval has passed and reports False for good once the claim is lost.
    """

    def __init__(
        self,
        posts: PostStorePort,
        clock: ClockPort,
        post_id: UUID,
        claim_id: str,
        claimed_at: datetime,
        renew_interval: timedelta,
    ) -> None:
        self._posts = posts
        self._clock = clock
        self.post_id = post_id
        self.claim_id = claim_id
        self._renewed_at = claimed_at
        self._renew_interval = renew_interval
        self._lock = threading.Lock()
        self.lost = False

    def held(self) -> bool:
        with self._lock:
            if self.lost:
                return False
            now = self._clock.now_utc()
            if now - self._renewed_at < self._renew_interval:
                return True
            if self._posts.renew_claim(self.post_id, self.claim_id, now):
                self._renewed_at = now
                return True
            logger.warning("Lost the publishing claim on post %s; stopping fan-out", self.post_id)
            self.lost = True
            return False


class PublishingOrchestrator:
    """Publishes posts to their newsletter's active subscribers."""

    def __init__(
        self,
        ownership: PostOwnershipPort,
        subscriptions: ActiveSubscribersPort,
        posts: PostStorePort,
        mailer: MailerPort,
        clock: ClockPort,
        config: PublishConfig | None = None,
    ) -> None:
        self._ownership = ownership
        self._subscriptions = subscriptions
        self._posts = posts
        self._mailer = mailer
        self._clock = clock
        self._config = config or PublishConfig()

    def publish(
        self,
        post_id: UUID | str,
        caller_auth_id: str,
        *,
        cancel: threading.Event | None = None,
    ) -> PublishOutput:
        """
        Publish a post to every active subscriber.

        Args:
            post_id: Post to publish
            caller_auth_id: Authenticated identity of the caller
            cancel: Optional event; once set, unsent recipients are skipped
                and the post is left unpublished

        Returns:
            PublishOutput with PUBLISHED, PARTIAL_FAILURE or ALREADY_PUBLISHED

        Raises:
            NotFoundError: post or newsletter missing
            ForbiddenError: caller does not own the newsletter
            PublishCancelledError: cancel was set during fan-out
            InternalError: the post could not be marked published
        """
        pid = parse_id(post_id, "post_id")
        _, post = self._ownership.verify_post_ownership(caller_auth_id, pid)

        if post.published_at is not None:
            logger.info("Post %s already published at %s", pid, post.published_at)
            return PublishOutput(
                status=PublishStatus.ALREADY_PUBLISHED,
                post_id=pid,
                published_at=post.published_at,
            )

        now = self._clock.now_utc()
        claim_id = uuid4().hex
        stale_before = now - timedelta(seconds=self._config.publish_claim_ttl_seconds)
        if not self._posts.claim_for_publishing(pid, claim_id, now, stale_before):
            logger.info("Post %s is being published by another request", pid)
            return PublishOutput(status=PublishStatus.ALREADY_PUBLISHED, post_id=pid)

        lease = _ClaimLease(
            self._posts, self._clock, pid, claim_id, now, self._config.claim_renew_interval
        )
        try:
            return self._publish_claimed(post, lease, cancel)
        except BaseException:
            self._release(lease)
            raise

    def _release(self, lease: _ClaimLease) -> None:
        try:
            self._posts.release_claim(lease.post_id, lease.claim_id)
        except Exception:
            logger.exception("Failed to release the publishing claim on post %s", lease.post_id)

    def _publish_claimed(
        self, post: Post, lease: _ClaimLease, cancel: threading.Event | None
    ) -> PublishOutput:
        recipients = self._subscriptions.list_all_active(post.newsletter_id)
        outcomes = self._fan_out(post, recipients, lease, cancel)

        sent = sum(1 for o in outcomes if o.delivery == _Delivery.SENT)
        skipped = sum(1 for o in outcomes if o.delivery == _Delivery.SKIPPED)
        failures = [
            DeliveryFailure(o.subscriber.id, o.subscriber.email, o.error or "unknown error")
            for o in outcomes
            if o.delivery == _Delivery.FAILED
        ]

        if cancel is not None and cancel.is_set():
            not_attempted = sum(1 for o in outcomes if o.delivery == _Delivery.NOT_ATTEMPTED)
            logger.warning(
                "Publishing post %s cancelled: %d sent, %d failed, %d not attempted",
                post.id,
                sent,
                len(failures),
                not_attempted,
            )
            raise PublishCancelledError(sent, len(failures), not_attempted)

        changed = False
        published_at = self._clock.now_utc()
        if not lease.lost:
            try:
                changed = self._posts.mark_published_conditional(
                    post.id, lease.claim_id, published_at
                )
            except Exception as e:
                logger.exception("Failed to mark post %s published", post.id)
                raise InternalError(f"failed to mark post '{post.id}' published") from e

        if not changed:
            logger.warning(
                "Post %s was claimed or published by another request; keeping that result",
                post.id,
            )
            current = self._posts.get_by_id(post.id)
            return PublishOutput(
                status=PublishStatus.ALREADY_PUBLISHED,
                post_id=post.id,
                recipients=len(recipients),
                sent=sent,
                skipped=skipped,
                failures=failures,
                published_at=current.published_at if current else None,
            )

        status = PublishStatus.PARTIAL_FAILURE if failures else PublishStatus.PUBLISHED
        logger.info(
            "Published post %s to %d subscribers: %d sent, %d failed, %d skipped",
            post.id,
            len(recipients),
            sent,
            len(failures),
            skipped,
        )
        return PublishOutput(
            status=status,
            post_id=post.id,
            recipients=len(recipients),
            sent=sent,
            skipped=skipped,
            failures=failures,
            published_at=published_at,
        )

    def _fan_out(
        self,
        post: Post,
        recipients: list[Subscriber],
        lease: _ClaimLease,
        cancel: threading.Event | None,
    ) -> list[_Outcome]:
        """Send to every recipient; returns only after all sends complete."""
        if not recipients:
            return []

        workers = min(self._config.fanout_max_workers, len(recipients))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="publish") as executor:
            futures = [executor.submit(self._deliver, post, s, lease, cancel) for s in recipients]
            return [f.result() for f in futures]

    def _deliver(
        self,
        post: Post,
        subscriber: Subscriber,
        lease: _ClaimLease,
        cancel: threading.Event | None,
    ) -> _Outcome:
        if cancel is not None and cancel.is_set():
            return _Outcome(subscriber, _Delivery.NOT_ATTEMPTED)
        if not lease.held():
            return _Outcome(subscriber, _Delivery.NOT_ATTEMPTED)

        if not subscriber.unsubscribe_token:
            logger.warning(
                "Skipping subscriber %s for post %s: no unsubscribe token",
                subscriber.id,
                post.id,
            )
            return _Outcome(subscriber, _Delivery.SKIPPED)

        link = build_unsubscribe_url(
            self._config.base_url, subscriber.unsubscribe_token, self._config.unsubscribe_path
        )
        try:
            result = self._mailer.send_issue(subscriber.email, post.title, post.content, link)
        except Exception as e:
            logger.warning("Failed to send post %s to %s: %s", post.id, subscriber.email, e)
            return _Outcome(subscriber, _Delivery.FAILED, str(e))

        if not result.ok:
            logger.warning(
                "Failed to send post %s to %s: %s", post.id, subscriber.email, result.error
            )
            return _Outcome(subscriber, _Delivery.FAILED, result.error)

        return _Outcome(subscriber, _Delivery.SENT)
