"""Search and statistics models."""

from typing import Optional

from pydantic import BaseModel, Field


class SearchHit(BaseModel):
    """Similarity search result hydrated from vector metadata."""

    record_id: int = Field(..., description="Record ID")
    title: str = Field(..., description="Record title")
    url: str = Field(..., description="Record URL")
    source_id: Optional[int] = Field(None, description="Source ID")
    publish_date: Optional[str] = Field(None, description="Publish date")
    distance: float = Field(..., description="Distance in the store's native metric")


class SourceStats(BaseModel):
    """Embedding coverage for a source."""

    source_id: int = Field(..., description="Source ID")
    source_name: str = Field(..., description="Source name")
    total: int = Field(0, description="Records for the source")
    embedded: int = Field(0, description="Records with a completed embedding")
    percent: int = Field(0, description="Embedded share, rounded percent")
