"""
Post domain model.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from postcomments.models._timestamps import as_utc


class Post(BaseModel):
    """A top-level content item that owns zero or more comments."""
    id: Optional[UUID] = Field(None, description="Generated on creation when absent")
    title: str = Field("", description="Post title")
    author_id: Optional[UUID] = Field(None, description="Author identifier")
    content: str = Field("", description="Post body")
    created_at: Optional[datetime] = Field(None, description="Set on creation when absent")
    comments_allowed: bool = Field(True, description="Whether new comments may be added")

    @field_validator('created_at')
    @classmethod
    def normalize_created_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)

    def sort_key(self):
        """Ordering used by every listing: creation time, then identifier."""
        return (self.created_at, str(self.id))
