"""
OwnershipGuard component.

Verifies that a caller, identified only by an opaque authenticator
identity, owns the newsletter or post it is acting on.

An unresolvable caller is reported as Forbidden, never NotFound, so a
client cannot use the error to enumerate editors.
"""

from __future__ import annotations

import logging
from uuid import UUID

from src.core.entities import Editor, Newsletter, Post
from src.core.errors import ForbiddenError, NotFoundError
from src.core.ports.db import EditorStorePort, NewsletterStorePort, PostStorePort

logger = logging.getLogger(__name__)


class OwnershipGuard:
    def __init__(
        self,
        editors: EditorStorePort,
        newsletters: NewsletterStorePort,
        posts: PostStorePort,
    ) -> None:
        self._editors = editors
        self._newsletters = newsletters
        self._posts = posts

    def resolve_editor(self, caller_auth_id: str) -> Editor:
        caller_auth_id = (caller_auth_id or "").strip()
        editor = self._editors.get_by_auth_id(caller_auth_id) if caller_auth_id else None
        if editor is None:
            raise ForbiddenError("caller is not a known editor")
        return editor

    def verify_newsletter_ownership(
        self, caller_auth_id: str, newsletter_id: UUID
    ) -> tuple[Editor, Newsletter]:
        """
        Check that the caller owns the newsletter.

        Raises:
            ForbiddenError: caller unknown, or newsletter owned by someone else
            NotFoundError: newsletter does not exist
        """
        editor = self.resolve_editor(caller_auth_id)

        newsletter = self._newsletters.get_by_id(newsletter_id)
        if newsletter is None:
            raise NotFoundError("newsletter", newsletter_id)

        if newsletter.editor_id != editor.id:
            logger.info(
                "Editor %s denied access to newsletter %s", editor.id, newsletter_id
            )
            raise ForbiddenError(f"editor does not own newsletter '{newsletter_id}'")

        return editor, newsletter

    def verify_post_ownership(self, caller_auth_id: str, post_id: UUID) -> tuple[Editor, Post]:
        """Check that the caller owns the newsletter the post belongs to."""
        post = self._posts.get_by_id(post_id)
        if post is None:
            raise NotFoundError("post", post_id)

        editor, _ = self.verify_newsletter_ownership(caller_auth_id, post.newsletter_id)
        return editor, post
