"""
Publish component unit tests.

Tests for fan-out, partial failure isolation, idempotent publishing,
cancellation and ownership gating.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from src.adapters.memory import (
    InMemoryEditorStore,
    InMemoryNewsletterStore,
    InMemoryPostStore,
    InMemorySubscriberStore,
)
from src.components.newsletter import SubscriptionStateMachine
from src.components.ownership import OwnershipGuard
from src.components.publish import (
    PartialDeliveryFailure,
    PublishCancelledError,
    PublishConfig,
    PublishingOrchestrator,
    PublishStatus,
)
from src.components.tokens import TokenIssuer
from src.core.entities import Editor, Newsletter, Post, Subscriber, SubscriberStatus
from src.core.errors import ForbiddenError, InternalError, NotFoundError
from src.core.ports.email import EmailResult, EmailSendError

# --- Mock Implementations ---


class MockClock:
    """Mock clock for deterministic testing."""

    def __init__(self, fixed_time: datetime | None = None) -> None:
        self._time = fixed_time or datetime(2024, 6, 15, 12, 0, 0, tzinfo=UTC)

    def now_utc(self) -> datetime:
        return self._time

    def advance(self, delta: timedelta) -> None:
        self._time = self._time + delta


class MockMailer:
    """Thread-safe recording mailer with per-recipient failure modes."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.issues: list[tuple[str, str, str, str]] = []
        self.fail_for: set[str] = set()
        self.raise_for: set[str] = set()
        self.on_send = None

    def send_confirmation(self, to: str, confirmation_link: str) -> EmailResult:
        return EmailResult.success(to)

    def send_welcome_back(self, to: str, unsubscribe_link: str) -> EmailResult:
        return EmailResult.success(to)

    def send_issue(self, to: str, subject: str, body: str, unsubscribe_link: str) -> EmailResult:
        with self._lock:
            self.issues.append((to, subject, body, unsubscribe_link))
        if self.on_send is not None:
            self.on_send(to)
        if to in self.raise_for:
            raise EmailSendError(to, "connection reset")
        if to in self.fail_for:
            return EmailResult.failed(to, "mailbox full")
        return EmailResult.success(to)

    def recipients(self) -> list[str]:
        return sorted(i[0] for i in self.issues)


# --- Fixtures ---


@pytest.fixture
def clock() -> MockClock:
    return MockClock()


@pytest.fixture
def mailer() -> MockMailer:
    return MockMailer()


@pytest.fixture
def subscribers() -> InMemorySubscriberStore:
    return InMemorySubscriberStore()


@pytest.fixture
def posts() -> InMemoryPostStore:
    return InMemoryPostStore()


@pytest.fixture
def editors() -> InMemoryEditorStore:
    store = InMemoryEditorStore()
    store.save(Editor(auth_id="auth-owner", email="owner@example.com"))
    store.save(Editor(auth_id="auth-other", email="other@example.com"))
    return store


@pytest.fixture
def newsletters() -> InMemoryNewsletterStore:
    return InMemoryNewsletterStore()


@pytest.fixture
def newsletter(newsletters, editors) -> Newsletter:
    owner = editors.get_by_auth_id("auth-owner")
    return newsletters.save(Newsletter(editor_id=owner.id, name="Weekly Notes"))


@pytest.fixture
def post(posts, newsletter) -> Post:
    return posts.save(Post(newsletter_id=newsletter.id, title="Issue #1", content="Hello!"))


def make_orchestrator(subscribers, newsletters, editors, posts, mailer, clock, **config):
    ownership = OwnershipGuard(editors, newsletters, posts)
    machine = SubscriptionStateMachine(
        subscribers, newsletters, TokenIssuer(), mailer, clock, ownership=ownership
    )
    return PublishingOrchestrator(
        ownership,
        machine,
        posts,
        mailer,
        clock,
        PublishConfig(base_url="https://news.example.com", **config),
    )


@pytest.fixture
def orchestrator(subscribers, newsletters, editors, posts, mailer, clock):
    return make_orchestrator(subscribers, newsletters, editors, posts, mailer, clock)


def add_active(subscribers, newsletter, email: str, token: str | None = None) -> Subscriber:
    return subscribers.create(
        Subscriber(
            email=email,
            newsletter_id=newsletter.id,
            status=SubscriberStatus.ACTIVE,
            unsubscribe_token=token if token is not None else f"unsub-{email}",
            confirmed_at=datetime(2024, 1, 1, tzinfo=UTC),
        )
    )


# --- Publish ---


class TestPublish:
    def test_sends_to_every_active_subscriber(
        self, orchestrator, mailer, subscribers, newsletter, post, posts, clock
    ) -> None:
        for name in ("a", "b", "c"):
            add_active(subscribers, newsletter, f"{name}@example.com")
        subscribers.create(Subscriber(email="pending@example.com", newsletter_id=newsletter.id))

        result = orchestrator.publish(post.id, "auth-owner")

        assert result.status == PublishStatus.PUBLISHED
        assert result.recipients == 3
        assert result.sent == 3
        assert result.failed == 0
        assert result.published_at == clock.now_utc()
        assert mailer.recipients() == ["a@example.com", "b@example.com", "c@example.com"]
        assert posts.get_by_id(post.id).published_at == clock.now_utc()

    def test_issue_carries_post_and_unsubscribe_link(
        self, orchestrator, mailer, subscribers, newsletter, post
    ) -> None:
        add_active(subscribers, newsletter, "a@example.com", token="tok-a")

        orchestrator.publish(str(post.id), "auth-owner")

        to, subject, body, link = mailer.issues[0]
        assert to == "a@example.com"
        assert subject == "Issue #1"
        assert body == "Hello!"
        assert link == "https://news.example.com/api/subscriptions/unsubscribe?token=tok-a"

    def test_no_subscribers_still_publishes(self, orchestrator, mailer, post, posts) -> None:
        result = orchestrator.publish(post.id, "auth-owner")

        assert result.status == PublishStatus.PUBLISHED
        assert result.recipients == 0
        assert mailer.issues == []
        assert posts.get_by_id(post.id).is_published

    def test_subscriber_without_token_is_skipped(
        self, orchestrator, mailer, subscribers, newsletter, post
    ) -> None:
        add_active(subscribers, newsletter, "a@example.com")
        add_active(subscribers, newsletter, "broken@example.com", token="")

        result = orchestrator.publish(post.id, "auth-owner")

        assert result.status == PublishStatus.PUBLISHED
        assert result.sent == 1
        assert result.skipped == 1
        assert mailer.recipients() == ["a@example.com"]

    def test_fan_out_bounded_by_worker_count(
        self, subscribers, newsletters, editors, posts, mailer, clock, newsletter, post
    ) -> None:
        for i in range(20):
            add_active(subscribers, newsletter, f"r{i}@example.com")
        lock = threading.Lock()
        state = {"current": 0, "peak": 0}
        release = threading.Event()

        def track(_to: str) -> None:
            with lock:
                state["current"] += 1
                state["peak"] = max(state["peak"], state["current"])
            release.wait(0.01)
            with lock:
                state["current"] -= 1

        mailer.on_send = track
        orchestrator = make_orchestrator(
            subscribers, newsletters, editors, posts, mailer, clock, fanout_max_workers=3
        )

        result = orchestrator.publish(post.id, "auth-owner")

        assert result.sent == 20
        assert state["peak"] <= 3


class TestPartialFailure:
    def test_one_failed_recipient_does_not_abort(
        self, orchestrator, mailer, subscribers, newsletter, post, posts
    ) -> None:
        for name in ("one", "two", "three"):
            add_active(subscribers, newsletter, f"{name}@example.com")
        mailer.fail_for = {"two@example.com"}

        result = orchestrator.publish(post.id, "auth-owner")

        assert result.status == PublishStatus.PARTIAL_FAILURE
        assert result.sent == 2
        assert result.failed == 1
        assert result.failures[0].email == "two@example.com"
        assert result.failures[0].error == "mailbox full"
        assert posts.get_by_id(post.id).is_published
        assert mailer.recipients().count("one@example.com") == 1
        assert mailer.recipients().count("three@example.com") == 1

    def test_raised_error_counts_as_failure(
        self, orchestrator, mailer, subscribers, newsletter, post
    ) -> None:
        add_active(subscribers, newsletter, "a@example.com")
        add_active(subscribers, newsletter, "b@example.com")
        mailer.raise_for = {"a@example.com"}

        result = orchestrator.publish(post.id, "auth-owner")

        assert result.status == PublishStatus.PARTIAL_FAILURE
        assert result.sent == 1
        assert "connection reset" in result.failures[0].error

    def test_raise_for_failures(self, orchestrator, mailer, subscribers, newsletter, post) -> None:
        add_active(subscribers, newsletter, "a@example.com")
        mailer.fail_for = {"a@example.com"}

        result = orchestrator.publish(post.id, "auth-owner")

        with pytest.raises(PartialDeliveryFailure) as exc:
            result.raise_for_failures()
        assert exc.value.count == 1

    def test_raise_for_failures_noop_when_clean(self, orchestrator, post) -> None:
        orchestrator.publish(post.id, "auth-owner").raise_for_failures()


class TestIdempotence:
    def test_second_publish_sends_nothing(
        self, orchestrator, mailer, subscribers, newsletter, post, clock
    ) -> None:
        add_active(subscribers, newsletter, "a@example.com")
        first = orchestrator.publish(post.id, "auth-owner")
        clock.advance(timedelta(hours=1))

        second = orchestrator.publish(post.id, "auth-owner")

        assert second.status == PublishStatus.ALREADY_PUBLISHED
        assert second.published_at == first.published_at
        assert len(mailer.issues) == 1

    def test_concurrent_publish_fans_out_once(
        self, orchestrator, mailer, subscribers, newsletter, post
    ) -> None:
        add_active(subscribers, newsletter, "a@example.com")
        nested: list = []

        def publish_again(_to: str) -> None:
            if not nested:
                nested.append(orchestrator.publish(post.id, "auth-owner"))

        mailer.on_send = publish_again

        result = orchestrator.publish(post.id, "auth-owner")

        assert result.status == PublishStatus.PUBLISHED
        assert nested[0].status == PublishStatus.ALREADY_PUBLISHED
        assert len(mailer.issues) == 1

    def test_stale_claim_can_be_taken_over(
        self, orchestrator, posts, post, clock, mailer, subscribers, newsletter
    ) -> None:
        add_active(subscribers, newsletter, "a@example.com")
        posts.claim_for_publishing(post.id, "crashed", clock.now_utc(), clock.now_utc())
        clock.advance(timedelta(seconds=3601))

        result = orchestrator.publish(post.id, "auth-owner")

        assert result.status == PublishStatus.PUBLISHED
        assert len(mailer.issues) == 1

    def test_live_claim_blocks(self, orchestrator, posts, post, clock, mailer) -> None:
        posts.claim_for_publishing(post.id, "other", clock.now_utc(), clock.now_utc())
        clock.advance(timedelta(seconds=60))

        result = orchestrator.publish(post.id, "auth-owner")

        assert result.status == PublishStatus.ALREADY_PUBLISHED
        assert not posts.get_by_id(post.id).is_published

    def test_lost_conditional_mark_reports_already_published(
        self, orchestrator, posts, post, subscribers, newsletter, monkeypatch
    ) -> None:
        add_active(subscribers, newsletter, "a@example.com")
        monkeypatch.setattr(
            posts, "mark_published_conditional", lambda post_id, claim_id, now: False
        )

        result = orchestrator.publish(post.id, "auth-owner")

        assert result.status == PublishStatus.ALREADY_PUBLISHED
        assert result.sent == 1


class TestClaimLease:
    def test_long_fan_out_renews_its_claim(
        self, subscribers, newsletters, editors, posts, mailer, clock, newsletter, post
    ) -> None:
        for i in range(3):
            add_active(subscribers, newsletter, f"r{i}@example.com")
        orchestrator = make_orchestrator(
            subscribers, newsletters, editors, posts, mailer, clock, fanout_max_workers=1
        )
        nested: list = []

        def slow_send(_to: str) -> None:
            clock.advance(timedelta(minutes=40))
            if len(mailer.issues) == 3:
                # Two hours after the claim was taken, forty minutes after its last renewal
                nested.append(orchestrator.publish(post.id, "auth-owner"))

        mailer.on_send = slow_send

        result = orchestrator.publish(post.id, "auth-owner")

        assert nested[0].status == PublishStatus.ALREADY_PUBLISHED
        assert nested[0].sent == 0
        assert result.status == PublishStatus.PUBLISHED
        assert result.sent == 3
        assert len(mailer.issues) == 3

    def test_taken_over_fan_out_stops_sending(
        self, subscribers, newsletters, editors, posts, mailer, clock, newsletter, post
    ) -> None:
        for i in range(3):
            add_active(subscribers, newsletter, f"r{i}@example.com")
        orchestrator = make_orchestrator(
            subscribers, newsletters, editors, posts, mailer, clock, fanout_max_workers=1
        )
        nested: list = []

        def stall_then_publish_again(_to: str) -> None:
            if nested:
                return
            nested.append(None)
            clock.advance(timedelta(hours=2))
            nested[0] = orchestrator.publish(post.id, "auth-owner")

        mailer.on_send = stall_then_publish_again

        result = orchestrator.publish(post.id, "auth-owner")

        takeover = nested[0]
        assert takeover.status == PublishStatus.PUBLISHED
        assert takeover.sent == 3
        # Only the send in flight at takeover time is duplicated
        assert result.status == PublishStatus.ALREADY_PUBLISHED
        assert result.sent == 1
        assert len(mailer.issues) == 4
        assert posts.get_by_id(post.id).published_at == takeover.published_at

    def test_claim_lost_after_last_send_is_not_marked(
        self, orchestrator, subscribers, newsletter, posts, post, mailer, clock
    ) -> None:
        add_active(subscribers, newsletter, "a@example.com")

        def stall_and_lose_claim(_to: str) -> None:
            clock.advance(timedelta(hours=2))
            now = clock.now_utc()
            assert posts.claim_for_publishing(post.id, "other", now, now - timedelta(hours=1))

        mailer.on_send = stall_and_lose_claim

        result = orchestrator.publish(post.id, "auth-owner")

        assert result.status == PublishStatus.ALREADY_PUBLISHED
        assert result.sent == 1
        assert not posts.get_by_id(post.id).is_published
        # The new holder still owns the claim
        assert posts.renew_claim(post.id, "other", clock.now_utc())


class TestCancellation:
    def test_cancel_stops_unsent_and_leaves_draft(
        self, subscribers, newsletters, editors, posts, mailer, clock, newsletter, post
    ) -> None:
        for i in range(3):
            add_active(subscribers, newsletter, f"r{i}@example.com")
        cancel = threading.Event()
        mailer.on_send = lambda _to: cancel.set()
        orchestrator = make_orchestrator(
            subscribers, newsletters, editors, posts, mailer, clock, fanout_max_workers=1
        )

        with pytest.raises(PublishCancelledError) as exc:
            orchestrator.publish(post.id, "auth-owner", cancel=cancel)

        assert exc.value.sent == 1
        assert exc.value.not_attempted == 2
        assert len(mailer.issues) == 1
        assert not posts.get_by_id(post.id).is_published

    def test_cancelled_publish_releases_claim(
        self, orchestrator, mailer, subscribers, newsletter, post
    ) -> None:
        add_active(subscribers, newsletter, "a@example.com")
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(PublishCancelledError):
            orchestrator.publish(post.id, "auth-owner", cancel=cancel)

        result = orchestrator.publish(post.id, "auth-owner")
        assert result.status == PublishStatus.PUBLISHED
        assert len(mailer.issues) == 1


class TestStoreFailure:
    def test_mark_failure_is_internal_error(
        self, orchestrator, posts, post, subscribers, newsletter, monkeypatch
    ) -> None:
        add_active(subscribers, newsletter, "a@example.com")

        def broken(post_id, claim_id, now):
            raise RuntimeError("disk I/O error")

        monkeypatch.setattr(posts, "mark_published_conditional", broken)

        with pytest.raises(InternalError) as exc:
            orchestrator.publish(post.id, "auth-owner")
        assert isinstance(exc.value.__cause__, RuntimeError)
        monkeypatch.undo()
        # Claim released, a retry can proceed
        assert posts.claim_for_publishing(
            post.id, "retry", datetime(2024, 6, 15, tzinfo=UTC), datetime(2024, 6, 14, tzinfo=UTC)
        )

    def test_release_failure_keeps_original_error(
        self, orchestrator, posts, post, subscribers, newsletter, monkeypatch, caplog
    ) -> None:
        add_active(subscribers, newsletter, "a@example.com")

        def broken_mark(post_id, claim_id, now):
            raise RuntimeError("disk I/O error")

        def broken_release(post_id, claim_id):
            raise OSError("store unavailable")

        monkeypatch.setattr(posts, "mark_published_conditional", broken_mark)
        monkeypatch.setattr(posts, "release_claim", broken_release)

        with pytest.raises(InternalError) as exc:
            orchestrator.publish(post.id, "auth-owner")

        assert isinstance(exc.value.__cause__, RuntimeError)
        assert "Failed to release the publishing claim" in caplog.text


class TestOwnership:
    def test_unknown_post(self, orchestrator) -> None:
        with pytest.raises(NotFoundError):
            orchestrator.publish(uuid4(), "auth-owner")

    def test_foreign_editor(
        self, orchestrator, mailer, subscribers, newsletter, post, posts
    ) -> None:
        add_active(subscribers, newsletter, "a@example.com")

        with pytest.raises(ForbiddenError):
            orchestrator.publish(post.id, "auth-other")
        assert mailer.issues == []
        assert not posts.get_by_id(post.id).is_published

    def test_anonymous_caller(self, orchestrator, post) -> None:
        with pytest.raises(ForbiddenError):
            orchestrator.publish(post.id, "")


class TestConfig:
    def test_rejects_zero_workers(self) -> None:
        with pytest.raises(ValueError):
            PublishConfig(fanout_max_workers=0)

    def test_renew_interval_is_a_quarter_of_the_ttl(self) -> None:
        config = PublishConfig(publish_claim_ttl_seconds=3600)
        assert config.claim_renew_interval == timedelta(minutes=15)
