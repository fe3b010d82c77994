"""Source model for syndication sources."""

from datetime import datetime
from typing import Optional

from pydantic import Field

from .base import DBModel


class Source(DBModel):
    """Configured content origin."""

    name: str = Field(..., description="Source name")
    url: str = Field(..., description="Feed or page URL")
    proxy_override: Optional[str] = Field(None, description="Proxy used instead of the global one")
    parsing_script: Optional[str] = Field(None, description="Custom extraction script")
    enabled: bool = Field(True, description="Whether the source is fetched by update runs")
    error_count: int = Field(0, description="Consecutive failed fetches", ge=0)
    last_updated: Optional[datetime] = Field(None, description="Last successful fetch")
