"""Record model for persisted content items."""

from enum import Enum
from typing import Optional

from pydantic import Field

from .base import DBModel


class EmbeddingStatus(str, Enum):
    """Embedding lifecycle of a record."""

    NONE = "none"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Record(DBModel):
    """Content item discovered from a source."""

    source_id: int = Field(..., description="Foreign key to sources table")
    title: str = Field(..., description="Record title")
    url: str = Field(..., description="Canonical URL, globally unique")
    body: Optional[str] = Field(None, description="Full content if the feed carries it")
    summary: Optional[str] = Field(None, description="Summary or abstract")
    publish_date: Optional[str] = Field(None, description="Publish date as YYYY-MM-DD")
    author: Optional[str] = Field(None, description="Author")
    is_read: bool = Field(False, description="Read flag")
    is_favorite: bool = Field(False, description="Favorite flag")
    embedding_status: EmbeddingStatus = Field(EmbeddingStatus.NONE, description="Embedding status")

    def embedding_text(self, max_chars: int = 8000) -> str:
        """Text fed to the embedding model."""
        text = f"{self.title}\n\n{self.summary or ''}\n\n{self.body or ''}"
        return text[:max_chars]
