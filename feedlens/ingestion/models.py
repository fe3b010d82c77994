"""Data models for ingestion."""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class RecordDraft(BaseModel):
    """Candidate record produced by extraction."""

    title: str = Field("", description="Record title")
    url: str = Field("", description="Record URL")
    body: Optional[str] = Field(None, description="Full content")
    summary: Optional[str] = Field(None, description="Summary or abstract")
    publish_date: Optional[str] = Field(None, description="Raw publish date as found in the feed")
    author: Optional[str] = Field(None, description="Author")

    @field_validator("title", "url", mode="before")
    @classmethod
    def coerce_text(cls, v: object) -> str:
        """Treat missing values as empty and strip whitespace."""
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("body", "summary", "publish_date", "author", mode="before")
    @classmethod
    def coerce_optional_text(cls, v: object) -> Optional[str]:
        """Stringify optional scalars, join author lists."""
        if v is None:
            return None
        if isinstance(v, (list, tuple)):
            return ", ".join(str(item) for item in v if item)
        return str(v)

    @property
    def has_url(self) -> bool:
        """Whether the draft carries a non-blank URL."""
        return bool(self.url)


class ExtractionResult(BaseModel):
    """Output of the extraction sandbox."""

    drafts: List[RecordDraft] = Field(default_factory=list, description="Extracted drafts")
    error: Optional[str] = Field(None, description="Why extraction degraded to an empty result")

    @property
    def failed(self) -> bool:
        """Whether extraction failed."""
        return self.error is not None


class FetchOutcome(BaseModel):
    """Result of one source fetch cycle."""

    source_id: int = Field(..., description="Source ID")
    success: bool = Field(..., description="Whether the cycle succeeded")
    new_count: int = Field(0, description="Records created")
    skipped_count: int = Field(0, description="Drafts suppressed as duplicates or blank")
    purged_count: int = Field(0, description="Stale blank-URL records removed")
    error: Optional[str] = Field(None, description="Error message if failed")


class FeedPreview(BaseModel):
    """Unpersisted look at a feed."""

    url: str = Field(..., description="Feed URL")
    success: bool = Field(..., description="Whether the feed could be read")
    title: Optional[str] = Field(None, description="Feed title")
    description: Optional[str] = Field(None, description="Feed description")
    items: List[RecordDraft] = Field(default_factory=list, description="First few items")
    error: Optional[str] = Field(None, description="Error message if failed")
