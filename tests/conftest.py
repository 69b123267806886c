from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from src.adapters.dev_email import DevEmailAdapter
from src.adapters.sqlite.migrator import SQLiteMigrator
from src.app_shell.context import ServiceContext
from src.core.entities import Editor, Newsletter, Post
from src.rules.loader import load_rules
from src.rules.models import OpsRules

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class FixedClock:
    """Deterministic clock; advance() moves it forward."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)

    def now_utc(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def migrations_dir():
    return str(PROJECT_ROOT / "migrations")


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "newsletter.db")


@pytest.fixture
def migrated_db(db_path, migrations_dir):
    SQLiteMigrator(db_path, migrations_dir).run_migrations()
    return db_path


@pytest.fixture
def rules():
    return load_rules(PROJECT_ROOT / "rules.yaml")


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def dev_transport():
    return DevEmailAdapter()


@pytest.fixture
def test_ctx(rules, migrated_db, migrations_dir, clock, dev_transport, tmp_path):
    """
    Creates a full ServiceContext backed by a temporary, migrated SQLite DB
    and the in-memory dev mail transport.
    """
    rules = rules.model_copy(
        update={"ops": OpsRules(db_path=migrated_db, migrations_dir=migrations_dir)}
    )
    return ServiceContext.create(rules, tmp_path, clock=clock, transport=dev_transport)


@pytest.fixture
def owner(test_ctx):
    return test_ctx.editor_repo.save(Editor(auth_id="auth-owner", email="owner@example.com"))


@pytest.fixture
def newsletter(test_ctx, owner):
    return test_ctx.newsletter_repo.save(Newsletter(editor_id=owner.id, name="Weekly Notes"))


@pytest.fixture
def post(test_ctx, newsletter):
    return test_ctx.post_repo.save(
        Post(newsletter_id=newsletter.id, title="Issue #1", content="First issue.\nEnjoy!")
    )
