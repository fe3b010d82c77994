"""Feed fetching, extraction and date normalization."""

from .dates import normalize_publish_date
from .extractor import Extractor, parse_feed_content
from .models import ExtractionResult, FeedPreview, FetchOutcome, RecordDraft
from .sandbox import ScriptSandbox
from .scheduler import FeedScheduler

__all__ = [
    "Extractor",
    "ExtractionResult",
    "FeedPreview",
    "FeedScheduler",
    "FetchOutcome",
    "RecordDraft",
    "ScriptSandbox",
    "normalize_publish_date",
    "parse_feed_content",
]
