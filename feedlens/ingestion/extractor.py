"""Turn fetched content into record drafts."""

import asyncio
import io
import logging
from typing import Any, Dict, List, Optional, Tuple

import feedparser

from .models import ExtractionResult, RecordDraft
from .sandbox import ScriptSandbox

logger = logging.getLogger(__name__)


def _entry_body(entry: Any) -> Optional[str]:
    """Full content of a feed entry, if present."""
    content = entry.get("content")
    if content and isinstance(content, list):
        value = content[0].get("value")
        if value:
            return value
    return None


def _entry_author(entry: Any) -> Optional[str]:
    if entry.get("author"):
        return entry["author"]
    names = [a.get("name") for a in entry.get("authors", []) if isinstance(a, dict) and a.get("name")]
    return ", ".join(names) if names else None


def entry_to_draft(entry: Any) -> RecordDraft:
    """Map a feedparser entry onto a record draft."""
    return RecordDraft(
        title=entry.get("title"),
        url=entry.get("link"),
        body=_entry_body(entry),
        summary=entry.get("summary") or entry.get("description"),
        publish_date=entry.get("published") or entry.get("updated") or entry.get("dc_date"),
        author=_entry_author(entry),
    )


def parse_feed_content(content: str) -> Tuple[Dict[str, Any], ExtractionResult]:
    """
    Parse RSS, Atom or RDF content with feedparser.

    Returns:
        Tuple of (feed metadata, extraction result)
    """
    feed = feedparser.parse(io.BytesIO(content.encode("utf-8")))

    # bozo is set for recoverable issues too; only fail when nothing came out
    if feed.bozo and not feed.entries:
        return dict(feed.feed), ExtractionResult(
            error=f"Invalid feed: {feed.bozo_exception}"
        )

    drafts: List[RecordDraft] = []
    for entry in feed.entries:
        try:
            drafts.append(entry_to_draft(entry))
        except ValueError as e:
            logger.debug("Skipping malformed feed entry: %s", e)

    return dict(feed.feed), ExtractionResult(drafts=drafts)


class Extractor:
    """Generic feed parsing, or a source's own script in the sandbox."""

    def __init__(self, sandbox: ScriptSandbox) -> None:
        """Initialize extractor."""
        self.sandbox = sandbox

    async def extract(self, content: str, script: Optional[str] = None) -> ExtractionResult:
        """
        Extract record drafts from raw content.

        Failures never raise; they come back as an empty result with ``error`` set.
        """
        if script and script.strip():
            return await self.sandbox.run(script, content)

        try:
            _, result = await asyncio.to_thread(parse_feed_content, content)
        except Exception as e:
            logger.warning("Feed parsing crashed: %s", e)
            return ExtractionResult(error=f"Feed parsing failed: {e}")
        return result
