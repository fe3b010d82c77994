"""Shared fixtures and in-memory fakes."""

import asyncio
import itertools
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
import pytest

from feedlens.config import SchedulerConfig
from feedlens.embedding.providers import EmbeddingProvider
from feedlens.embedding.vector_store import VectorStoreBase
from feedlens.events import EventBus
from feedlens.models import EmbeddingStatus, Record, Source


class FakeSourceStore:
    """In-memory stand-in for SourceStore."""

    def __init__(self, sources: Optional[List[Source]] = None, records: Any = None) -> None:
        self.sources: Dict[int, Source] = {s.id: s for s in sources or []}
        self.records = records

    def list_sources(self, enabled_only: bool = False) -> List[Source]:
        sources = sorted(self.sources.values(), key=lambda s: s.id)
        if enabled_only:
            sources = [s for s in sources if s.enabled]
        return sources

    def get(self, source_id: int) -> Optional[Source]:
        return self.sources.get(source_id)

    def delete(self, source_id: int) -> bool:
        if self.sources.pop(source_id, None) is None:
            return False
        if self.records is not None:
            for record in self.records.list_by_source(source_id):
                del self.records.records[record.id]
        return True

    def mark_success(self, source_id: int) -> None:
        source = self.sources[source_id]
        self.sources[source_id] = source.model_copy(
            update={"error_count": 0, "last_updated": datetime.now()}
        )

    def mark_failure(self, source_id: int) -> None:
        source = self.sources[source_id]
        self.sources[source_id] = source.model_copy(
            update={"error_count": source.error_count + 1}
        )


class FakeRecordStore:
    """In-memory stand-in for RecordStore with the same uniqueness rules."""

    def __init__(self) -> None:
        self.records: Dict[int, Record] = {}
        self.status_history: Dict[int, List[EmbeddingStatus]] = {}
        self._ids = itertools.count(1)

    def add(self, **fields: Any) -> Record:
        """Seed a record directly, bypassing uniqueness checks."""
        record_id = fields.pop("id", None) or next(self._ids)
        fields.setdefault("title", f"Record {record_id}")
        fields.setdefault("url", f"http://example.com/{record_id}")
        fields.setdefault("source_id", 1)
        record = Record(id=record_id, created_at=datetime.now(), **fields)
        self.records[record_id] = record
        return record

    def insert(self, record: Record) -> Optional[int]:
        for existing in self.records.values():
            if existing.url == record.url:
                return None
            if existing.source_id == record.source_id and existing.title == record.title:
                return None
        record_id = next(self._ids)
        self.records[record_id] = record.model_copy(
            update={"id": record_id, "created_at": datetime.now()}
        )
        return record_id

    def get(self, record_id: int) -> Optional[Record]:
        return self.records.get(record_id)

    def update_status(self, record_id: int, status: EmbeddingStatus) -> None:
        if record_id in self.records:
            self.records[record_id] = self.records[record_id].model_copy(
                update={"embedding_status": status}
            )
            self.status_history.setdefault(record_id, []).append(status)

    def find_by_url(self, url: str) -> Optional[Record]:
        return next((r for r in self.records.values() if r.url == url), None)

    def find_by_source_and_title(self, source_id: int, title: str) -> Optional[Record]:
        return next(
            (r for r in self.records.values() if r.source_id == source_id and r.title == title),
            None,
        )

    def delete_empty_url_records(self, source_id: int) -> List[int]:
        doomed = [
            r.id for r in self.records.values()
            if r.source_id == source_id and not (r.url or "").strip()
        ]
        for record_id in doomed:
            del self.records[record_id]
        return doomed

    def list_by_source(
        self, source_id: int, exclude_status: Optional[EmbeddingStatus] = None
    ) -> List[Record]:
        return [
            r for r in sorted(self.records.values(), key=lambda r: -r.id)
            if r.source_id == source_id and r.embedding_status != exclude_status
        ]

    def list_incomplete(self) -> List[int]:
        return sorted(
            r.id for r in self.records.values()
            if r.embedding_status in (EmbeddingStatus.NONE, EmbeddingStatus.PENDING)
        )

    def count_by_source_and_status(self) -> Dict[int, Dict[str, int]]:
        counts: Dict[int, Dict[str, int]] = {}
        for r in self.records.values():
            by_status = counts.setdefault(r.source_id, {})
            by_status[r.embedding_status.value] = by_status.get(r.embedding_status.value, 0) + 1
        return counts

    def reset_all_statuses(self) -> int:
        for record_id in list(self.records):
            self.update_status(record_id, EmbeddingStatus.NONE)
        return len(self.records)


class FakeVectorStore(VectorStoreBase):
    """In-memory vector store using squared euclidean distance."""

    def __init__(self) -> None:
        super().__init__("test-collection")
        self.entries: Dict[int, Dict[str, Any]] = {}
        self.upsert_calls: List[int] = []
        self.fail_delete_all = False

    def upsert(self, record_id: int, vector: List[float], metadata: Dict[str, Any]) -> None:
        self.upsert_calls.append(record_id)
        self.entries[record_id] = {"vector": list(vector), "metadata": dict(metadata)}

    def delete(self, record_id: int) -> None:
        self.entries.pop(record_id, None)

    def delete_all(self) -> None:
        if self.fail_delete_all:
            raise RuntimeError("vector store unavailable")
        self.entries.clear()

    def similarity_search(self, vector: List[float], limit: int = 10) -> List[Dict[str, Any]]:
        scored = []
        for record_id, entry in self.entries.items():
            distance = sum((a - b) ** 2 for a, b in zip(vector, entry["vector"]))
            scored.append({"id": record_id, "distance": distance, "metadata": entry["metadata"]})
        scored.sort(key=lambda hit: hit["distance"])
        return scored[:limit]

    def count(self) -> int:
        return len(self.entries)


class FakeProvider(EmbeddingProvider):
    """Deterministic provider with scriptable failures."""

    name = "fake"

    def __init__(self, failures: Optional[Dict[str, int]] = None, delay: float = 0.0) -> None:
        super().__init__("fake-model")
        self.failures = dict(failures or {})
        self.delay = delay
        self.calls: List[str] = []
        self.active = 0
        self.peak = 0

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            title = text.split("\n", 1)[0]
            if self.failures.get(title, 0) > 0:
                self.failures[title] -= 1
                raise RuntimeError(f"provider failure for {title}")
            return [float(len(text)), float(sum(map(ord, text)) % 97), 1.0]
        finally:
            self.active -= 1


def make_source(source_id: int = 1, **fields: Any) -> Source:
    fields.setdefault("name", f"Source {source_id}")
    fields.setdefault("url", f"http://feeds.test/{source_id}.xml")
    return Source(id=source_id, **fields)


def rss(*items: Dict[str, str], title: str = "Test Feed") -> str:
    """Build a small RSS 2.0 document."""
    parts = []
    for item in items:
        fields = "".join(f"<{key}>{value}</{key}>" for key, value in item.items())
        parts.append(f"<item>{fields}</item>")
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel>'
        f"<title>{title}</title><link>http://feeds.test/</link>"
        "<description>Feed for tests</description>"
        f"{''.join(parts)}"
        "</channel></rss>"
    )


def feed_transport(routes: Dict[str, Any]) -> httpx.MockTransport:
    """Serve fixed bodies by URL; a value that is an exception is raised instead."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = routes.get(str(request.url))
        if body is None:
            return httpx.Response(404, text="not found")
        if isinstance(body, Exception):
            raise body
        return httpx.Response(200, text=body, headers={"Content-Type": "application/rss+xml"})

    return httpx.MockTransport(handler)


@pytest.fixture()
def bus() -> EventBus:
    return EventBus()


@pytest.fixture()
def record_store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture()
def vector_store() -> FakeVectorStore:
    return FakeVectorStore()


@pytest.fixture()
def scheduler_settings() -> SchedulerConfig:
    return SchedulerConfig(max_concurrent_fetches=3, fetch_timeout_seconds=5.0)


def collect(bus: EventBus, *names: str) -> List[tuple]:
    """Record (event, payload) pairs for the given events."""
    seen: List[tuple] = []
    for name in names:
        bus.on(name, lambda payload, name=name: seen.append((name, payload)))
    return seen
