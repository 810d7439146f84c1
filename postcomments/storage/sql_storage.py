"""
Relational implementation of the storage interface.

Works against PostgreSQL or SQLite through postcomments.db_adapter. Every
operation borrows one connection, runs inside one transaction and is bounded
by the adapter timeout. Domain checks run as explicit lookups so the raised
error matches the in-memory backend exactly instead of surfacing a raw
constraint violation.
"""
import logging
import os
import time
from contextlib import contextmanager
from typing import Any, Iterable, List, Optional
from uuid import UUID

from postcomments.db_adapter import BaseDatabaseAdapter
from postcomments.exceptions import (
    CommentNotFoundError,
    CommentsDisabledError,
    CommentTooLongError,
    DuplicateError,
    ParentCommentNotFoundError,
    ParentCommentWrongPostError,
    PostNotFoundError,
    ServiceError,
    StorageUnavailableError,
)
from postcomments.models import MAX_COMMENT_LENGTH, Comment, Post
from postcomments.models._ids import id_or_new
from postcomments.models._timestamps import utcnow
from postcomments.tracing import add_span_attribute, trace_span
from opentelemetry import trace
from .interface import StorageInterface
from .pagination import normalize_page

logger = logging.getLogger(__name__)

# Query performance threshold (seconds) - queries slower than this will be logged
QUERY_SLOW_THRESHOLD = float(os.getenv("DB_QUERY_SLOW_THRESHOLD", "0.1"))

POST_COLUMNS = "id, title, author_id, content, comments_allowed, created_at"
COMMENT_COLUMNS = "id, post_id, parent_id, author_id, content, created_at"

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS posts (
        id UUID PRIMARY KEY,
        title TEXT NOT NULL,
        author_id UUID,
        content TEXT NOT NULL,
        comments_allowed BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS comments (
        id UUID PRIMARY KEY,
        post_id UUID NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
        parent_id UUID REFERENCES comments(id) ON DELETE CASCADE,
        author_id UUID,
        content TEXT NOT NULL CHECK (length(content) <= 2000),
        created_at TIMESTAMPTZ NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_posts_created ON posts(created_at, id)",
    "CREATE INDEX IF NOT EXISTS idx_comments_post_created ON comments(post_id, created_at, id)",
    "CREATE INDEX IF NOT EXISTS idx_comments_parent ON comments(parent_id)",
)


class SQLStorage(StorageInterface):
    """Storage backend for PostgreSQL and SQLite."""

    def __init__(self, adapter: BaseDatabaseAdapter, init_schema: bool = True):
        """
        Args:
            adapter: Database adapter for the target engine
            init_schema: Create tables and indexes if they do not exist
        """
        self.adapter = adapter
        self.db_type = adapter.db_type.value
        if init_schema:
            self._init_schema()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self._transaction("init_schema") as cursor:
            for statement in SCHEMA:
                self._execute_with_logging(cursor, statement)
        logger.info(f"Schema ready ({self.db_type})")

    @contextmanager
    def _transaction(self, operation: str, write: bool = True):
        """
        Borrow a connection, open a transaction and yield a cursor.

        Commits on success and rolls back on any error. Driver errors are
        re-raised as StorageUnavailableError; domain errors pass through.
        """
        conn = None
        try:
            conn = self.adapter.connect()
            cursor = self.adapter.cursor(conn)
            self.adapter.begin(cursor, write)
            yield cursor
            conn.commit()
        except ServiceError:
            if conn is not None:
                self.adapter.rollback(conn)
            raise
        except self.adapter.errors as e:
            if conn is not None:
                self.adapter.rollback(conn)
            logger.error(f"Storage operation {operation} failed: {e}", exc_info=True)
            raise StorageUnavailableError(
                f"Storage operation '{operation}' failed",
                operation=operation,
                original_error=e,
            ) from e
        finally:
            if conn is not None:
                self.adapter.close(conn)

    def _execute_with_logging(self, cursor, query: str, params: Optional[Iterable[Any]] = None):
        """
        Execute a query with performance logging and tracing.

        Args:
            cursor: Database cursor
            query: SQL query string
            params: Query parameters
        """
        query_type = query.strip().split(None, 1)[0].lower()
        start_time = time.time()
        with trace_span(
            f"db.{query_type}",
            attributes={
                "db.system": self.db_type,
                "db.operation": query_type,
            },
            kind=trace.SpanKind.CLIENT
        ):
            result = self.adapter.execute(cursor, query, params)
            duration = time.time() - start_time
            add_span_attribute("db.duration_ms", duration * 1000)

            query_preview = " ".join(query.split())[:200]
            if duration >= QUERY_SLOW_THRESHOLD:
                logger.warning(
                    f"Slow query: {duration:.4f}s - {query_preview}",
                    extra={"duration": duration}
                )
                add_span_attribute("db.slow_query", True)
            else:
                logger.debug(f"Query executed in {duration:.4f}s: {query_preview}")
            return result

    def _fetch_one(self, cursor, query: str, params: Iterable[Any]) -> Optional[dict]:
        self._execute_with_logging(cursor, query, params)
        row = cursor.fetchone()
        return dict(row) if row is not None else None

    def _fetch_all(self, cursor, query: str, params: Iterable[Any]) -> List[dict]:
        self._execute_with_logging(cursor, query, params)
        return [dict(row) for row in cursor.fetchall()]

    def _insert(self, cursor, query: str, params: Iterable[Any]) -> None:
        """
        Run an INSERT behind a savepoint.

        A constraint violation rolls back to the savepoint and re-raises, so
        the surrounding transaction can still run lookups (PostgreSQL aborts
        the whole transaction otherwise).
        """
        self._execute_with_logging(cursor, "SAVEPOINT before_insert")
        try:
            self._execute_with_logging(cursor, query, params)
        except self.adapter.integrity_error:
            self._execute_with_logging(cursor, "ROLLBACK TO SAVEPOINT before_insert")
            raise
        self._execute_with_logging(cursor, "RELEASE SAVEPOINT before_insert")

    # Lifecycle
    def ping(self) -> None:
        with self._transaction("ping", write=False) as cursor:
            self._execute_with_logging(cursor, "SELECT 1")
            cursor.fetchone()

    def close(self) -> None:
        self.adapter.shutdown()

    # Post operations
    def create_post(self, post: Post) -> Post:
        stored = post.model_copy(update={
            "id": id_or_new(post.id),
            "created_at": post.created_at or utcnow(),
        })
        with self._transaction("create_post") as cursor:
            if self._fetch_one(cursor, "SELECT id FROM posts WHERE id = ?", (stored.id,)):
                raise DuplicateError("Post", "id", stored.id)
            try:
                self._insert(cursor, f"""
                    INSERT INTO posts ({POST_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (stored.id, stored.title, stored.author_id, stored.content,
                      stored.comments_allowed, stored.created_at))
            except self.adapter.integrity_error as e:
                # Only the primary key can collide: a concurrent insert took the id
                raise DuplicateError("Post", "id", stored.id) from e
        logger.info(f"Created post {stored.id}")
        return stored

    def get_post(self, post_id: UUID) -> Post:
        with self._transaction("get_post", write=False) as cursor:
            row = self._fetch_one(cursor, f"SELECT {POST_COLUMNS} FROM posts WHERE id = ?", (post_id,))
        if row is None:
            raise PostNotFoundError(post_id)
        return Post.model_validate(row)

    def list_posts(self, limit: int, offset: int) -> List[Post]:
        page = normalize_page(limit, offset)
        if page is None:
            return []
        with self._transaction("list_posts", write=False) as cursor:
            rows = self._fetch_all(cursor, f"""
                SELECT {POST_COLUMNS}
                FROM posts
                ORDER BY created_at, id
                LIMIT ? OFFSET ?
            """, page)
        return [Post.model_validate(row) for row in rows]

    def update_post(self, post: Post) -> Post:
        if post.id is None:
            raise PostNotFoundError(None)
        with self._transaction("update_post") as cursor:
            self._execute_with_logging(cursor, """
                UPDATE posts
                SET title = ?, content = ?, comments_allowed = ?
                WHERE id = ?
            """, (post.title, post.content, post.comments_allowed, post.id))
            if cursor.rowcount == 0:
                raise PostNotFoundError(post.id)
            row = self._fetch_one(cursor, f"SELECT {POST_COLUMNS} FROM posts WHERE id = ?", (post.id,))
        logger.info(f"Updated post {post.id}")
        return Post.model_validate(row)

    def delete_post(self, post_id: UUID) -> None:
        with self._transaction("delete_post") as cursor:
            # Replies first so the self-referencing parent key never blocks the delete
            self._execute_with_logging(cursor, "DELETE FROM comments WHERE post_id = ?", (post_id,))
            removed = cursor.rowcount
            self._execute_with_logging(cursor, "DELETE FROM posts WHERE id = ?", (post_id,))
            if cursor.rowcount == 0:
                raise PostNotFoundError(post_id)
        logger.info(f"Deleted post {post_id} and {removed} comment(s)")

    # Comment operations
    def create_comment(self, comment: Comment) -> Comment:
        stored = comment.model_copy(update={
            "id": id_or_new(comment.id),
            "created_at": comment.created_at or utcnow(),
        })
        with self._transaction("create_comment") as cursor:
            post_row = self._fetch_one(cursor, "SELECT comments_allowed FROM posts WHERE id = ?", (stored.post_id,))
            if post_row is None:
                raise PostNotFoundError(stored.post_id)
            if not post_row["comments_allowed"]:
                raise CommentsDisabledError(stored.post_id)
            _check_length(stored.content)
            if stored.parent_id is not None:
                parent_row = self._fetch_one(cursor, "SELECT post_id FROM comments WHERE id = ?", (stored.parent_id,))
                if parent_row is None:
                    raise ParentCommentNotFoundError(stored.parent_id)
                if str(parent_row["post_id"]) != str(stored.post_id):
                    raise ParentCommentWrongPostError(stored.parent_id, stored.post_id)
            if self._fetch_one(cursor, "SELECT id FROM comments WHERE id = ?", (stored.id,)):
                raise DuplicateError("Comment", "id", stored.id)
            try:
                self._insert(cursor, f"""
                    INSERT INTO comments ({COMMENT_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (stored.id, stored.post_id, stored.parent_id, stored.author_id,
                      stored.content, stored.created_at))
            except self.adapter.integrity_error as e:
                logger.warning(f"Comment insert lost a race: {e}")
                # A concurrent insert took the id, or a concurrent delete removed the post or parent
                if self._fetch_one(cursor, "SELECT id FROM comments WHERE id = ?", (stored.id,)):
                    raise DuplicateError("Comment", "id", stored.id) from e
                if stored.parent_id is not None:
                    raise ParentCommentNotFoundError(stored.parent_id) from e
                raise PostNotFoundError(stored.post_id) from e
        logger.info(f"Created comment {stored.id} on post {stored.post_id}")
        return stored

    def get_comment(self, comment_id: UUID) -> Comment:
        with self._transaction("get_comment", write=False) as cursor:
            row = self._fetch_one(cursor, f"SELECT {COMMENT_COLUMNS} FROM comments WHERE id = ?", (comment_id,))
        if row is None:
            raise CommentNotFoundError(comment_id)
        return Comment.model_validate(row)

    def get_comments(self, post_id: UUID, limit: int, offset: int) -> List[Comment]:
        page = normalize_page(limit, offset)
        if page is None:
            return []
        with self._transaction("get_comments", write=False) as cursor:
            rows = self._fetch_all(cursor, f"""
                SELECT {COMMENT_COLUMNS}
                FROM comments
                WHERE post_id = ?
                ORDER BY created_at, id
                LIMIT ? OFFSET ?
            """, (post_id,) + page)
        return [Comment.model_validate(row) for row in rows]

    def update_comment(self, comment: Comment) -> Comment:
        if comment.id is None:
            raise CommentNotFoundError(None)
        with self._transaction("update_comment") as cursor:
            row = self._fetch_one(cursor, f"SELECT {COMMENT_COLUMNS} FROM comments WHERE id = ?", (comment.id,))
            if row is None:
                raise CommentNotFoundError(comment.id)
            _check_length(comment.content)
            # Only content is written; post_id, parent_id and created_at stay as stored
            self._execute_with_logging(cursor, "UPDATE comments SET content = ? WHERE id = ?",
                                       (comment.content, comment.id))
            if cursor.rowcount == 0:
                raise CommentNotFoundError(comment.id)
        updated = Comment.model_validate(row).model_copy(update={"content": comment.content})
        logger.info(f"Updated comment {updated.id}")
        return updated

    def delete_comment(self, comment_id: UUID) -> None:
        with self._transaction("delete_comment") as cursor:
            # Replies go with their parent through ON DELETE CASCADE
            self._execute_with_logging(cursor, "DELETE FROM comments WHERE id = ?", (comment_id,))
            if cursor.rowcount == 0:
                raise CommentNotFoundError(comment_id)
        logger.info(f"Deleted comment {comment_id}")


def _check_length(content: str) -> None:
    if len(content) > MAX_COMMENT_LENGTH:
        raise CommentTooLongError(len(content), MAX_COMMENT_LENGTH)
