from unittest.mock import Mock
from uuid import uuid4

import pytest

from src.components.ownership import OwnershipGuard
from src.core.entities import Editor, Newsletter, Post
from src.core.errors import ForbiddenError, NotFoundError


@pytest.fixture
def editors():
    return Mock()


@pytest.fixture
def newsletters():
    return Mock()


@pytest.fixture
def posts():
    return Mock()


@pytest.fixture
def guard(editors, newsletters, posts):
    return OwnershipGuard(editors, newsletters, posts)


@pytest.fixture
def owner():
    return Editor(auth_id="auth-owner", email="owner@example.com")


@pytest.fixture
def newsletter(owner):
    return Newsletter(editor_id=owner.id, name="Weekly")


def test_owner_verified(guard, editors, newsletters, owner, newsletter):
    editors.get_by_auth_id.return_value = owner
    newsletters.get_by_id.return_value = newsletter

    editor, nl = guard.verify_newsletter_ownership("auth-owner", newsletter.id)

    assert editor == owner
    assert nl == newsletter
    editors.get_by_auth_id.assert_called_with("auth-owner")


def test_other_editor_forbidden(guard, editors, newsletters, newsletter):
    editors.get_by_auth_id.return_value = Editor(auth_id="auth-other", email="o@example.com")
    newsletters.get_by_id.return_value = newsletter

    with pytest.raises(ForbiddenError):
        guard.verify_newsletter_ownership("auth-other", newsletter.id)


def test_missing_newsletter_not_found(guard, editors, newsletters, owner):
    editors.get_by_auth_id.return_value = owner
    newsletters.get_by_id.return_value = None

    with pytest.raises(NotFoundError):
        guard.verify_newsletter_ownership("auth-owner", uuid4())


def test_unknown_caller_is_forbidden_not_not_found(guard, editors, newsletters):
    # Neither the caller nor the newsletter exists; the caller check wins.
    editors.get_by_auth_id.return_value = None
    newsletters.get_by_id.return_value = None

    with pytest.raises(ForbiddenError):
        guard.verify_newsletter_ownership("ghost", uuid4())
    newsletters.get_by_id.assert_not_called()


def test_blank_caller_forbidden_without_lookup(guard, editors):
    with pytest.raises(ForbiddenError):
        guard.resolve_editor("   ")
    editors.get_by_auth_id.assert_not_called()


def test_post_ownership_returns_post(guard, editors, newsletters, posts, owner, newsletter):
    post = Post(newsletter_id=newsletter.id, title="T", content="C")
    posts.get_by_id.return_value = post
    editors.get_by_auth_id.return_value = owner
    newsletters.get_by_id.return_value = newsletter

    editor, found = guard.verify_post_ownership("auth-owner", post.id)

    assert editor == owner
    assert found == post
    newsletters.get_by_id.assert_called_with(newsletter.id)


def test_post_missing_not_found(guard, posts):
    posts.get_by_id.return_value = None

    with pytest.raises(NotFoundError):
        guard.verify_post_ownership("auth-owner", uuid4())


def test_post_of_foreign_newsletter_forbidden(guard, editors, newsletters, posts, newsletter):
    posts.get_by_id.return_value = Post(newsletter_id=newsletter.id, title="T", content="C")
    editors.get_by_auth_id.return_value = Editor(auth_id="auth-other", email="o@example.com")
    newsletters.get_by_id.return_value = newsletter

    with pytest.raises(ForbiddenError):
        guard.verify_post_ownership("auth-other", uuid4())
