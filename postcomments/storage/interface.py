"""
Storage interface - defines the contract for all storage backends.

Every backend raises the same exception classes from postcomments.exceptions
for the same sequence of operations:

    PostNotFoundError, CommentNotFoundError, CommentTooLongError,
    CommentsDisabledError, ParentCommentNotFoundError,
    ParentCommentWrongPostError

Infrastructure failures are reported as StorageUnavailableError.
"""
from abc import ABC, abstractmethod
from typing import List
from uuid import UUID

from postcomments.models import Comment, Post


class StorageInterface(ABC):
    """Abstract interface for storage operations."""

    # Post operations
    @abstractmethod
    def create_post(self, post: Post) -> Post:
        """Persist a post, assigning id and created_at when absent. Returns the stored post."""
        pass

    @abstractmethod
    def get_post(self, post_id: UUID) -> Post:
        """Get a post by ID or raise PostNotFoundError."""
        pass

    @abstractmethod
    def list_posts(self, limit: int, offset: int) -> List[Post]:
        """
        List posts ordered by created_at, then id.

        offset < 0 is treated as 0; limit <= 0 yields an empty list.
        """
        pass

    @abstractmethod
    def update_post(self, post: Post) -> Post:
        """Replace title, content and comments_allowed of an existing post."""
        pass

    @abstractmethod
    def delete_post(self, post_id: UUID) -> None:
        """Delete a post together with all of its comments."""
        pass

    # Comment operations
    @abstractmethod
    def create_comment(self, comment: Comment) -> Comment:
        """
        Validate and persist a comment. Checks run in this order and the first
        failure is raised: post exists, comments allowed, content length,
        parent exists, parent on the same post.
        """
        pass

    @abstractmethod
    def get_comment(self, comment_id: UUID) -> Comment:
        """Get a comment by ID or raise CommentNotFoundError."""
        pass

    @abstractmethod
    def get_comments(self, post_id: UUID, limit: int, offset: int) -> List[Comment]:
        """List one post's comments ordered by created_at, then id. Unknown posts yield []."""
        pass

    @abstractmethod
    def update_comment(self, comment: Comment) -> Comment:
        """Update comment content; post_id, parent_id and created_at keep their stored values."""
        pass

    @abstractmethod
    def delete_comment(self, comment_id: UUID) -> None:
        """Delete a comment and its replies."""
        pass

    # Lifecycle
    def ping(self) -> None:
        """Raise StorageUnavailableError if the backend cannot serve requests."""
        return None

    def close(self) -> None:
        """Release backend resources."""
        return None
