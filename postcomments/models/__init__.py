"""
Pydantic domain models.
"""
from .post_models import Post
from .comment_models import Comment, MAX_COMMENT_LENGTH

__all__ = [
    "Post",
    "Comment",
    "MAX_COMMENT_LENGTH",
]
