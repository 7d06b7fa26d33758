"""Post models read from the content store."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class PostRef(BaseModel):
    """Lightweight reference returned by the sampler."""

    id: str = Field(..., description="Internal post id")
    external_id: str = Field(..., description="Platform post id")


class Post(BaseModel):
    """Social-media post with its cached embedding."""

    id: str = Field(..., description="Internal post id")
    external_id: str = Field(..., description="Platform post id")
    zone_id: str = Field(..., description="Zone the post was collected for")
    text: str = Field("", description="Post text")
    author_name: Optional[str] = Field(None, description="Author display name")
    author_username: Optional[str] = Field(None, description="Author handle")
    hashtags: List[str] = Field(default_factory=list, description="Hashtags without the #")
    created_at: datetime = Field(..., description="When the post was published")
    total_engagement: int = Field(0, description="Likes, reposts and replies combined")
    embedding: Optional[List[float]] = Field(None, description="Cached embedding vector")
    embedding_model: Optional[str] = Field(None, description="Model that produced the embedding")
    embedding_created_at: Optional[datetime] = Field(None, description="When the embedding was stored")

    class Config:
        """Pydantic config."""

        from_attributes = True

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)
