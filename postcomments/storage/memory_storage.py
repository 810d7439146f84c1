"""
In-memory implementation of the storage interface.

All state lives in three structures guarded by one reader/writer lock:

    posts          post id -> Post
    comments       comment id -> Comment
    post_comments  post id -> comment ids in insertion order

Every operation holds the lock for its whole duration, so validation and the
mutation it guards are atomic, and a post deletion can never interleave with
a comment being created on the same post.
"""
import logging
from typing import Dict, List
from uuid import UUID

from postcomments.exceptions import (
    CommentNotFoundError,
    CommentsDisabledError,
    CommentTooLongError,
    DuplicateError,
    ParentCommentNotFoundError,
    ParentCommentWrongPostError,
    PostNotFoundError,
)
from postcomments.models import MAX_COMMENT_LENGTH, Comment, Post
from postcomments.models._ids import id_or_new
from postcomments.models._timestamps import utcnow
from .interface import StorageInterface
from .locks import ReadWriteLock
from .pagination import paginate

logger = logging.getLogger(__name__)


class MemoryStorage(StorageInterface):
    """Process-local storage backend."""

    def __init__(self):
        self._lock = ReadWriteLock()
        self._posts: Dict[UUID, Post] = {}
        self._comments: Dict[UUID, Comment] = {}
        self._post_comments: Dict[UUID, List[UUID]] = {}

    # Post operations
    def create_post(self, post: Post) -> Post:
        stored = post.model_copy(update={
            "id": id_or_new(post.id),
            "created_at": post.created_at or utcnow(),
        })
        with self._lock.write_locked():
            if stored.id in self._posts:
                raise DuplicateError("Post", "id", stored.id)
            self._posts[stored.id] = stored
        logger.info(f"Created post {stored.id}")
        return stored.model_copy()

    def get_post(self, post_id: UUID) -> Post:
        with self._lock.read_locked():
            post = self._posts.get(post_id)
            if post is None:
                raise PostNotFoundError(post_id)
            return post.model_copy()

    def list_posts(self, limit: int, offset: int) -> List[Post]:
        if limit <= 0:
            return []
        with self._lock.read_locked():
            ordered = sorted(self._posts.values(), key=Post.sort_key)
        return [post.model_copy() for post in paginate(ordered, limit, offset)]

    def update_post(self, post: Post) -> Post:
        with self._lock.write_locked():
            existing = self._posts.get(post.id) if post.id is not None else None
            if existing is None:
                raise PostNotFoundError(post.id)
            updated = existing.model_copy(update={
                "title": post.title,
                "content": post.content,
                "comments_allowed": post.comments_allowed,
            })
            self._posts[updated.id] = updated
        logger.info(f"Updated post {updated.id}")
        return updated.model_copy()

    def delete_post(self, post_id: UUID) -> None:
        with self._lock.write_locked():
            if post_id not in self._posts:
                raise PostNotFoundError(post_id)
            del self._posts[post_id]
            comment_ids = self._post_comments.pop(post_id, [])
            for comment_id in comment_ids:
                self._comments.pop(comment_id, None)
        logger.info(f"Deleted post {post_id} and {len(comment_ids)} comment(s)")

    # Comment operations
    def create_comment(self, comment: Comment) -> Comment:
        with self._lock.write_locked():
            post = self._posts.get(comment.post_id)
            if post is None:
                raise PostNotFoundError(comment.post_id)
            if not post.comments_allowed:
                raise CommentsDisabledError(comment.post_id)
            _check_length(comment.content)
            if comment.parent_id is not None:
                parent = self._comments.get(comment.parent_id)
                if parent is None:
                    raise ParentCommentNotFoundError(comment.parent_id)
                if parent.post_id != comment.post_id:
                    raise ParentCommentWrongPostError(comment.parent_id, comment.post_id)

            stored = comment.model_copy(update={
                "id": id_or_new(comment.id),
                "created_at": comment.created_at or utcnow(),
            })
            if stored.id in self._comments:
                raise DuplicateError("Comment", "id", stored.id)
            self._comments[stored.id] = stored
            self._post_comments.setdefault(stored.post_id, []).append(stored.id)
        logger.info(f"Created comment {stored.id} on post {stored.post_id}")
        return stored.model_copy()

    def get_comment(self, comment_id: UUID) -> Comment:
        with self._lock.read_locked():
            comment = self._comments.get(comment_id)
            if comment is None:
                raise CommentNotFoundError(comment_id)
            return comment.model_copy()

    def get_comments(self, post_id: UUID, limit: int, offset: int) -> List[Comment]:
        if limit <= 0:
            return []
        with self._lock.read_locked():
            ordered = sorted(
                (self._comments[cid] for cid in self._post_comments.get(post_id, [])),
                key=Comment.sort_key,
            )
        return [comment.model_copy() for comment in paginate(ordered, limit, offset)]

    def update_comment(self, comment: Comment) -> Comment:
        with self._lock.write_locked():
            existing = self._comments.get(comment.id) if comment.id is not None else None
            if existing is None:
                raise CommentNotFoundError(comment.id)
            _check_length(comment.content)
            # post_id, parent_id, created_at and author_id always keep their stored values
            updated = existing.model_copy(update={"content": comment.content})
            self._comments[updated.id] = updated
        logger.info(f"Updated comment {updated.id}")
        return updated.model_copy()

    def delete_comment(self, comment_id: UUID) -> None:
        with self._lock.write_locked():
            comment = self._comments.get(comment_id)
            if comment is None:
                raise CommentNotFoundError(comment_id)
            doomed = self._collect_thread(comment)
            siblings = self._post_comments.get(comment.post_id, [])
            remaining = [cid for cid in siblings if cid not in doomed]
            if remaining:
                self._post_comments[comment.post_id] = remaining
            else:
                self._post_comments.pop(comment.post_id, None)
            for cid in doomed:
                del self._comments[cid]
        logger.info(f"Deleted comment {comment_id} and {len(doomed) - 1} repl(ies)")

    def _collect_thread(self, root: Comment) -> set:
        """Ids of root and every transitive reply. Caller holds the write lock."""
        siblings = [self._comments[cid] for cid in self._post_comments.get(root.post_id, [])]
        doomed = {root.id}
        frontier = [root.id]
        while frontier:
            parent_id = frontier.pop()
            for candidate in siblings:
                if candidate.parent_id == parent_id and candidate.id not in doomed:
                    doomed.add(candidate.id)
                    frontier.append(candidate.id)
        return doomed


def _check_length(content: str) -> None:
    if len(content) > MAX_COMMENT_LENGTH:
        raise CommentTooLongError(len(content), MAX_COMMENT_LENGTH)
