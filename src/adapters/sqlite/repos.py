import sqlite3
from datetime import datetime
from typing import Any
from uuid import UUID

from src.core.entities import Editor, Newsletter, Post, Subscriber, SubscriberStatus
from src.core.errors import ConflictError


# Helper to convert sqlite rows to dicts
def dict_factory(cursor: sqlite3.Cursor, row: Any) -> dict[str, Any]:
    d = {}
    for idx, col in enumerate(cursor.description):
        d[col[0]] = row[idx]
    return d


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class _SQLiteRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = dict_factory
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn


class SQLiteEditorRepo(_SQLiteRepo):
    def save(self, editor: Editor) -> Editor:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO editors (id, auth_id, email, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    auth_id=excluded.auth_id,
                    email=excluded.email
            """,
                (str(editor.id), editor.auth_id, editor.email, editor.created_at.isoformat()),
            )
            conn.commit()
            return editor
        except sqlite3.IntegrityError as e:
            conn.rollback()
            raise ConflictError(f"editor '{editor.auth_id}' already exists") from e
        finally:
            conn.close()

    def get_by_auth_id(self, auth_id: str) -> Editor | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM editors WHERE auth_id = ?", (auth_id,)).fetchone()
            if not row:
                return None
            return Editor(
                id=UUID(row["id"]),
                auth_id=row["auth_id"],
                email=row["email"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
        finally:
            conn.close()


class SQLiteNewsletterRepo(_SQLiteRepo):
    def save(self, newsletter: Newsletter) -> Newsletter:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO newsletters (id, editor_id, name, description, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name=excluded.name,
                    description=excluded.description
            """,
                (
                    str(newsletter.id),
                    str(newsletter.editor_id),
                    newsletter.name,
                    newsletter.description,
                    newsletter.created_at.isoformat(),
                ),
            )
            conn.commit()
            return newsletter
        finally:
            conn.close()

    def get_by_id(self, newsletter_id: UUID) -> Newsletter | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM newsletters WHERE id = ?", (str(newsletter_id),)
            ).fetchone()
            if not row:
                return None
            return Newsletter(
                id=UUID(row["id"]),
                editor_id=UUID(row["editor_id"]),
                name=row["name"],
                description=row["description"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
        finally:
            conn.close()


class SQLitePostRepo(_SQLiteRepo):
    """
    Posts plus the publishing claim.

    The claim lives in publish_claim_id / publish_claimed_at; it is set by
    claim_for_publishing and cleared by release_claim or by marking the
    post published.
    """

    def save(self, post: Post) -> Post:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO posts (
                    id, newsletter_id, title, content, published_at, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title=excluded.title,
                    content=excluded.content,
                    updated_at=excluded.updated_at
            """,
                (
                    str(post.id),
                    str(post.newsletter_id),
                    post.title,
                    post.content,
                    _iso(post.published_at),
                    post.created_at.isoformat(),
                    post.updated_at.isoformat(),
                ),
            )
            conn.commit()
            return post
        finally:
            conn.close()

    def get_by_id(self, post_id: UUID) -> Post | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM posts WHERE id = ?", (str(post_id),)).fetchone()
            if not row:
                return None
            return Post(
                id=UUID(row["id"]),
                newsletter_id=UUID(row["newsletter_id"]),
                title=row["title"],
                content=row["content"],
                published_at=_dt(row["published_at"]),
                created_at=datetime.fromisoformat(row["created_at"]),
                updated_at=datetime.fromisoformat(row["updated_at"]),
            )
        finally:
            conn.close()

    def claim_for_publishing(
        self, post_id: UUID, claim_id: str, now: datetime, stale_before: datetime
    ) -> bool:
        conn = self._get_conn()
        try:
            # Atomic claim: only drafts without a live claim
            row = conn.execute(
                """
                UPDATE posts
                SET publish_claim_id = ?, publish_claimed_at = ?
                WHERE id = ? AND published_at IS NULL
                AND (publish_claimed_at IS NULL OR publish_claimed_at < ?)
                RETURNING id
            """,
                (claim_id, now.isoformat(), str(post_id), stale_before.isoformat()),
            ).fetchone()
            conn.commit()
            return row is not None
        finally:
            conn.close()

    def release_claim(self, post_id: UUID, claim_id: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                UPDATE posts
                SET publish_claim_id = NULL, publish_claimed_at = NULL
                WHERE id = ? AND publish_claim_id = ?
            """,
                (str(post_id), claim_id),
            )
            conn.commit()
        finally:
            conn.close()

    def renew_claim(self, post_id: UUID, claim_id: str, now: datetime) -> bool:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                """
                UPDATE posts
                SET publish_claimed_at = ?
                WHERE id = ? AND publish_claim_id = ? AND published_at IS NULL
            """,
                (now.isoformat(), str(post_id), claim_id),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def mark_published_conditional(self, post_id: UUID, claim_id: str, now: datetime) -> bool:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                """
                UPDATE posts
                SET published_at = ?, updated_at = ?,
                    publish_claim_id = NULL, publish_claimed_at = NULL
                WHERE id = ? AND published_at IS NULL AND publish_claim_id = ?
            """,
                (now.isoformat(), now.isoformat(), str(post_id), claim_id),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()


class SQLiteSubscriberRepo(_SQLiteRepo):
    """
    Subscribers, unique per (email, newsletter_id).

    Every state transition is a single conditional UPDATE; the caller
    learns whether it won from the affected row count.
    """

    def _map_row(self, row: dict[str, Any]) -> Subscriber:
        return Subscriber(
            id=UUID(row["id"]),
            email=row["email"],
            newsletter_id=UUID(row["newsletter_id"]),
            status=SubscriberStatus(row["status"]),
            confirmation_token=row["confirmation_token"],
            token_expiry=_dt(row["token_expiry"]),
            unsubscribe_token=row["unsubscribe_token"],
            retired_unsubscribe_token=row["retired_unsubscribe_token"],
            subscription_date=datetime.fromisoformat(row["subscription_date"]),
            confirmed_at=_dt(row["confirmed_at"]),
        )

    def _fetch_one(self, sql: str, params: tuple[Any, ...]) -> Subscriber | None:
        conn = self._get_conn()
        try:
            row = conn.execute(sql, params).fetchone()
            return self._map_row(row) if row else None
        finally:
            conn.close()

    def get_by_id(self, subscriber_id: UUID) -> Subscriber | None:
        return self._fetch_one("SELECT * FROM subscribers WHERE id = ?", (str(subscriber_id),))

    def find_by_email_and_newsletter(self, email: str, newsletter_id: UUID) -> Subscriber | None:
        return self._fetch_one(
            "SELECT * FROM subscribers WHERE email = ? AND newsletter_id = ?",
            (email, str(newsletter_id)),
        )

    def find_by_confirmation_token(self, token: str) -> Subscriber | None:
        if not token:
            return None
        return self._fetch_one("SELECT * FROM subscribers WHERE confirmation_token = ?", (token,))

    def find_by_unsubscribe_token(self, token: str) -> Subscriber | None:
        if not token:
            return None
        return self._fetch_one(
            """
            SELECT * FROM subscribers
            WHERE unsubscribe_token = ? OR retired_unsubscribe_token = ?
            """,
            (token, token),
        )

    def create(self, subscriber: Subscriber) -> Subscriber:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO subscribers (
                    id, email, newsletter_id, status, confirmation_token, token_expiry,
                    unsubscribe_token, retired_unsubscribe_token, subscription_date, confirmed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    str(subscriber.id),
                    subscriber.email,
                    str(subscriber.newsletter_id),
                    subscriber.status.value,
                    subscriber.confirmation_token,
                    _iso(subscriber.token_expiry),
                    subscriber.unsubscribe_token,
                    subscriber.retired_unsubscribe_token,
                    subscriber.subscription_date.isoformat(),
                    _iso(subscriber.confirmed_at),
                ),
            )
            conn.commit()
            return subscriber
        except sqlite3.IntegrityError as e:
            conn.rollback()
            raise ConflictError(
                f"subscriber '{subscriber.email}' already exists for newsletter "
                f"'{subscriber.newsletter_id}'"
            ) from e
        finally:
            conn.close()

    def update_status(self, subscriber_id: UUID, status: SubscriberStatus) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                "UPDATE subscribers SET status = ? WHERE id = ?",
                (status.value, str(subscriber_id)),
            )
            conn.commit()
        finally:
            conn.close()

    def update_unsubscribe_token(self, subscriber_id: UUID, token: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                "UPDATE subscribers SET unsubscribe_token = ? WHERE id = ?",
                (token, str(subscriber_id)),
            )
            conn.commit()
        finally:
            conn.close()

    def reactivate(
        self, subscriber_id: UUID, unsubscribe_token: str, now: datetime
    ) -> Subscriber | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                """
                UPDATE subscribers
                SET status = 'active', unsubscribe_token = ?,
                    retired_unsubscribe_token = '', subscription_date = ?
                WHERE id = ? AND status = 'unsubscribed'
                RETURNING *
            """,
                (unsubscribe_token, now.isoformat(), str(subscriber_id)),
            ).fetchone()
            conn.commit()
            return self._map_row(row) if row else None
        finally:
            conn.close()

    def reissue_confirmation(
        self, subscriber_id: UUID, token: str, expiry: datetime
    ) -> Subscriber | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                """
                UPDATE subscribers
                SET confirmation_token = ?, token_expiry = ?
                WHERE id = ? AND status = 'pending_confirmation'
                RETURNING *
            """,
                (token, expiry.isoformat(), str(subscriber_id)),
            ).fetchone()
            conn.commit()
            return self._map_row(row) if row else None
        finally:
            conn.close()

    def confirm_atomic(
        self,
        subscriber_id: UUID,
        confirmation_token: str,
        unsubscribe_token: str,
        now: datetime,
    ) -> bool:
        if not confirmation_token:
            return False
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                """
                UPDATE subscribers
                SET status = 'active', confirmed_at = ?, confirmation_token = '',
                    token_expiry = NULL, unsubscribe_token = ?
                WHERE id = ? AND confirmation_token = ? AND status = 'pending_confirmation'
            """,
                (now.isoformat(), unsubscribe_token, str(subscriber_id), confirmation_token),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def consume_unsubscribe_token(self, token: str, now: datetime) -> bool:
        if not token:
            return False
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                """
                UPDATE subscribers
                SET status = 'unsubscribed', unsubscribe_token = '',
                    retired_unsubscribe_token = ?
                WHERE unsubscribe_token = ? AND status = 'active'
            """,
                (token, token),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def list_active_by_newsletter(
        self, newsletter_id: UUID, limit: int, offset: int
    ) -> tuple[list[Subscriber], int]:
        conn = self._get_conn()
        try:
            total = conn.execute(
                """
                SELECT COUNT(*) AS n FROM subscribers
                WHERE newsletter_id = ? AND status = 'active'
            """,
                (str(newsletter_id),),
            ).fetchone()["n"]
            rows = conn.execute(
                """
                SELECT * FROM subscribers
                WHERE newsletter_id = ? AND status = 'active'
                ORDER BY subscription_date ASC, email ASC
                LIMIT ? OFFSET ?
            """,
                (str(newsletter_id), limit, offset),
            ).fetchall()
            return [self._map_row(r) for r in rows], total
        finally:
            conn.close()

    def list_all_active_by_newsletter(self, newsletter_id: UUID) -> list[Subscriber]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT * FROM subscribers
                WHERE newsletter_id = ? AND status = 'active'
                ORDER BY subscription_date ASC, email ASC
            """,
                (str(newsletter_id),),
            ).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            conn.close()
