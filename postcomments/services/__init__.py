"""
Service layer helpers shared by the API surface.
"""

from postcomments.services.comment_events import CommentBroker

__all__ = ["CommentBroker"]
