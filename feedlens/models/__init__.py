"""Data models for feedlens."""

from .record import EmbeddingStatus, Record
from .search import SearchHit, SourceStats
from .source import Source

__all__ = ["EmbeddingStatus", "Record", "SearchHit", "Source", "SourceStats"]
