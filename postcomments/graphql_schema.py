"""
GraphQL schema for the posts/comments service.
"""
import logging
from datetime import datetime
from typing import AsyncGenerator, List, Optional
from uuid import UUID

import strawberry
from graphql import GraphQLError

from postcomments.dependencies.services import get_services
from postcomments.exceptions import ServiceError, StorageUnavailableError, http_status_for
from postcomments.models import Comment, Post
from postcomments.monitoring import record_storage_operation

logger = logging.getLogger(__name__)


def _call(operation: str, *args):
    """
    Invoke a storage operation and translate its errors into GraphQL errors.

    The error message is the domain message; extensions.code carries the
    error kind and extensions.status its HTTP equivalent, so clients can
    branch without parsing text.
    """
    storage = get_services().storage
    backend = type(storage).__name__
    try:
        result = getattr(storage, operation)(*args)
    except StorageUnavailableError as e:
        record_storage_operation(backend, operation, e)
        raise GraphQLError(
            "Storage is temporarily unavailable. Please try again later.",
            original_error=e,
            extensions=_extensions(e),
        )
    except ServiceError as e:
        record_storage_operation(backend, operation, e)
        raise GraphQLError(e.message, original_error=e, extensions=_extensions(e))
    record_storage_operation(backend, operation)
    return result


def _extensions(exc: ServiceError) -> dict:
    return {"code": exc.code, "status": http_status_for(exc)}


@strawberry.type(name="Comment")
class CommentType:
    """Comment GraphQL type."""
    id: UUID
    post_id: UUID
    author_id: Optional[UUID]
    parent_id: Optional[UUID]
    content: str
    created_at: datetime

    @classmethod
    def from_model(cls, comment: Comment) -> "CommentType":
        return cls(
            id=comment.id,
            post_id=comment.post_id,
            author_id=comment.author_id,
            parent_id=comment.parent_id,
            content=comment.content,
            created_at=comment.created_at,
        )


@strawberry.type(name="Post")
class PostType:
    """Post GraphQL type."""
    id: UUID
    title: str
    author_id: Optional[UUID]
    content: str
    created_at: datetime
    comments_allowed: bool

    @strawberry.field
    def comments(self, limit: int = 10, offset: int = 0) -> List[CommentType]:
        """Comments on this post, oldest first."""
        return [CommentType.from_model(c) for c in _call("get_comments", self.id, limit, offset)]

    @classmethod
    def from_model(cls, post: Post) -> "PostType":
        return cls(
            id=post.id,
            title=post.title,
            author_id=post.author_id,
            content=post.content,
            created_at=post.created_at,
            comments_allowed=post.comments_allowed,
        )


@strawberry.input
class CreatePostInput:
    """Input for createPost."""
    title: str
    content: str
    author_id: Optional[UUID] = None
    comments_allowed: bool = True


@strawberry.input
class UpdatePostInput:
    """Input for updatePost; replaces every mutable field."""
    title: str
    content: str
    comments_allowed: bool


@strawberry.input
class CreateCommentInput:
    """Input for createComment."""
    post_id: UUID
    content: str
    author_id: Optional[UUID] = None
    parent_id: Optional[UUID] = None


@strawberry.type
class Query:
    """GraphQL Query root."""

    @strawberry.field
    def post(self, id: UUID) -> PostType:
        """Get a post by ID."""
        return PostType.from_model(_call("get_post", id))

    @strawberry.field
    def posts(self, limit: int = 10, offset: int = 0) -> List[PostType]:
        """List posts, oldest first."""
        return [PostType.from_model(p) for p in _call("list_posts", limit, offset)]

    @strawberry.field
    def comment(self, id: UUID) -> CommentType:
        """Get a comment by ID."""
        return CommentType.from_model(_call("get_comment", id))

    @strawberry.field
    def comments(self, post_id: UUID, limit: int = 10, offset: int = 0) -> List[CommentType]:
        """List a post's comments, oldest first. Unknown posts yield an empty list."""
        return [CommentType.from_model(c) for c in _call("get_comments", post_id, limit, offset)]


@strawberry.type
class Mutation:
    """GraphQL Mutation root."""

    @strawberry.mutation
    def create_post(self, input: CreatePostInput) -> PostType:
        post = Post(
            title=input.title,
            content=input.content,
            author_id=input.author_id,
            comments_allowed=input.comments_allowed,
        )
        return PostType.from_model(_call("create_post", post))

    @strawberry.mutation
    def update_post(self, id: UUID, input: UpdatePostInput) -> PostType:
        post = Post(
            id=id,
            title=input.title,
            content=input.content,
            comments_allowed=input.comments_allowed,
        )
        return PostType.from_model(_call("update_post", post))

    @strawberry.mutation
    def set_comments_allowed(self, id: UUID, allowed: bool) -> PostType:
        """Open or close a post for new comments."""
        current = _call("get_post", id)
        return PostType.from_model(_call("update_post", current.model_copy(update={"comments_allowed": allowed})))

    @strawberry.mutation
    def delete_post(self, id: UUID) -> bool:
        _call("delete_post", id)
        return True

    @strawberry.mutation
    def create_comment(self, input: CreateCommentInput) -> CommentType:
        comment = Comment(
            post_id=input.post_id,
            content=input.content,
            author_id=input.author_id,
            parent_id=input.parent_id,
        )
        created = _call("create_comment", comment)
        notified = get_services().broker.publish(created)
        if notified:
            logger.debug(f"Comment {created.id} delivered to {notified} subscriber(s)")
        return CommentType.from_model(created)

    @strawberry.mutation
    def update_comment(self, id: UUID, content: str) -> CommentType:
        current = _call("get_comment", id)
        return CommentType.from_model(_call("update_comment", current.model_copy(update={"content": content})))

    @strawberry.mutation
    def delete_comment(self, id: UUID) -> bool:
        _call("delete_comment", id)
        return True


@strawberry.type
class Subscription:
    """GraphQL Subscription root."""

    @strawberry.subscription
    async def comment_added(self, post_id: UUID) -> AsyncGenerator[CommentType, None]:
        """Stream comments created on a post after subscribing."""
        async for comment in get_services().broker.listen(post_id):
            yield CommentType.from_model(comment)


# Create GraphQL schema
schema = strawberry.Schema(query=Query, mutation=Mutation, subscription=Subscription)
