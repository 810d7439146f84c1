"""
Comment domain model.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from postcomments.models._timestamps import as_utc

MAX_COMMENT_LENGTH = 2000


class Comment(BaseModel):
    """A reply to a post, optionally nested under another comment on the same post."""
    id: Optional[UUID] = Field(None, description="Generated on creation when absent")
    post_id: UUID = Field(..., description="Owning post")
    author_id: Optional[UUID] = Field(None, description="Author identifier")
    parent_id: Optional[UUID] = Field(None, description="Parent comment for threaded replies")
    content: str = Field("", description="Comment body")
    created_at: Optional[datetime] = Field(None, description="Set on creation when absent")

    @field_validator('created_at')
    @classmethod
    def normalize_created_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)

    def sort_key(self):
        """Ordering used by every listing: creation time, then identifier."""
        return (self.created_at, str(self.id))
