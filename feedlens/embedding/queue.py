"""Embedding queue with bounded concurrency and bounded retry."""

import asyncio
import logging
from collections import deque
from typing import Any, Deque, Dict, List, Set

from .. import events
from ..events import EventBus
from ..models import EmbeddingStatus, Record, SearchHit, SourceStats
from .providers import EmbeddingProvider
from .vector_store import VectorStoreBase

logger = logging.getLogger(__name__)


class EmbeddingQueue:
    """Turn persisted records into vector entries.

    Fresh work is taken first in, first out. A failed record goes back to the
    front of the queue until it has failed ``max_retries`` times, after which
    it is marked failed. All bookkeeping lives on one event loop.
    """

    def __init__(
        self,
        records: Any,
        sources: Any,
        vector_store: VectorStoreBase,
        provider: EmbeddingProvider,
        bus: EventBus,
        max_concurrent_tasks: int = 2,
        max_retries: int = 3,
        max_text_chars: int = 8000,
    ) -> None:
        """
        Initialize embedding queue.

        Args:
            records: Record store
            sources: Source store, used for statistics
            vector_store: Destination for vectors
            provider: Embedding provider
            bus: Event bus; new records are picked up from it
            max_concurrent_tasks: Embeddings in flight at once
            max_retries: Failures before a record is marked failed
            max_text_chars: Characters of record text sent to the provider
        """
        self.records = records
        self.sources = sources
        self.vector_store = vector_store
        self.provider = provider
        self.bus = bus
        self.max_concurrent_tasks = max_concurrent_tasks
        self.max_retries = max_retries
        self.max_text_chars = max_text_chars

        self._queue: Deque[int] = deque()
        self._queued: Set[int] = set()
        self._in_flight: Set[int] = set()
        self._retries: Dict[int, int] = {}
        self._deleted: Set[int] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()

        self.active_tasks = 0
        self.peak_tasks = 0

        bus.on(events.ARTICLE_CREATED, self._on_record_created)
        bus.on(events.ARTICLES_DELETED, self._on_records_deleted)

    @property
    def queued_count(self) -> int:
        """Records waiting for a slot."""
        return len(self._queue)

    def retry_count(self, record_id: int) -> int:
        """Failures so far for a record still being retried."""
        return self._retries.get(record_id, 0)

    def _on_record_created(self, payload: Dict[str, Any]) -> None:
        record_id = payload["id"]
        try:
            self.enqueue(record_id)
        except Exception as e:
            # Bus handlers cannot raise to the emitter
            logger.error("Could not queue new record %s: %s", record_id, e)
            self.bus.emit(events.EMBEDDING_ERROR, {"record_id": record_id, "error": str(e)})

    def _on_records_deleted(self, payload: Dict[str, Any]) -> None:
        self.forget(payload["record_ids"])

    def enqueue(self, record_id: int) -> bool:
        """
        Queue a record for embedding.

        Returns:
            False when the record is already queued or in flight
        """
        if record_id in self._queued or record_id in self._in_flight:
            logger.debug("Record %s already queued", record_id)
            return False

        self.records.update_status(record_id, EmbeddingStatus.PENDING)
        self._queue.append(record_id)
        self._queued.add(record_id)
        self._idle.clear()

        self.bus.emit(events.EMBEDDING_QUEUED, {"record_id": record_id})
        self._drain()
        return True

    def _drain(self) -> None:
        """Start tasks until the ceiling is reached or the queue is empty."""
        while self._queue and self.active_tasks < self.max_concurrent_tasks:
            record_id = self._queue.popleft()
            self._queued.discard(record_id)
            self._in_flight.add(record_id)

            self.active_tasks += 1
            self.peak_tasks = max(self.peak_tasks, self.active_tasks)

            task = asyncio.get_running_loop().create_task(self._process(record_id))
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

        if not self._queue and self.active_tasks == 0:
            self._idle.set()

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Embedding task crashed", exc_info=task.exception())

    async def _process(self, record_id: int) -> None:
        try:
            record = self.records.get(record_id)
            if record is None:
                logger.warning("Record %s vanished before embedding, dropping it", record_id)
                self._retries.pop(record_id, None)
                return

            await self._embed(record)
        except Exception as e:
            if record_id in self._deleted:
                self._retries.pop(record_id, None)
            else:
                self._handle_failure(record_id, e)
        else:
            if record_id in self._deleted:
                self._drop_vectors([record_id])
            else:
                self._handle_success(record_id)
        finally:
            self._deleted.discard(record_id)
            self._in_flight.discard(record_id)
            self.active_tasks -= 1
            self._drain()

    async def _embed(self, record: Record) -> None:
        vector = await self.provider.embed(record.embedding_text(self.max_text_chars))
        self.vector_store.upsert(
            record.id,
            vector,
            {
                "title": record.title,
                "url": record.url,
                "source_id": record.source_id,
                "publish_date": record.publish_date,
                "created_at": record.created_at.isoformat() if record.created_at else None,
            },
        )

    def _handle_success(self, record_id: int) -> None:
        self.records.update_status(record_id, EmbeddingStatus.COMPLETED)
        self._retries.pop(record_id, None)
        self.bus.emit(events.EMBEDDING_SUCCESS, {"record_id": record_id})
        logger.debug("Embedded record %s", record_id)

    def _handle_failure(self, record_id: int, error: Exception) -> None:
        count = self._retries.get(record_id, 0) + 1

        if count < self.max_retries:
            self._retries[record_id] = count
            self._queue.appendleft(record_id)
            self._queued.add(record_id)
            logger.warning(
                "Embedding record %s failed (attempt %d/%d): %s",
                record_id, count, self.max_retries, error,
            )
            return

        self._retries.pop(record_id, None)
        self.records.update_status(record_id, EmbeddingStatus.FAILED)
        self.bus.emit(events.EMBEDDING_ERROR, {"record_id": record_id, "error": str(error)})
        logger.error(
            "Embedding record %s failed after %d attempts: %s", record_id, count, error
        )

    def queue_for_source(self, source_id: int) -> int:
        """
        Queue every record of a source that is not embedded yet.

        Returns:
            Number of records newly queued
        """
        pending = self.records.list_by_source(source_id, exclude_status=EmbeddingStatus.COMPLETED)
        queued = sum(1 for record in pending if self.enqueue(record.id))
        logger.info("Queued %d records of source %s", queued, source_id)
        return queued

    def requeue_incomplete(self) -> int:
        """
        Queue every record left ``none`` or ``pending``, e.g. after a restart.

        Records marked ``failed`` already used up their retries and are left
        alone; ``queue_for_source`` picks them up again.
        """
        queued = sum(1 for record_id in self.records.list_incomplete() if self.enqueue(record_id))
        if queued:
            logger.info("Requeued %d unembedded records", queued)
        return queued

    def forget(self, record_ids: List[int]) -> int:
        """
        Drop deleted records from the queue and the vector store.

        A record still being embedded has its vector removed once the
        embedding finishes.

        Returns:
            Number of vector entries removed
        """
        doomed = set(record_ids)
        if not doomed:
            return 0

        self._queue = deque(r for r in self._queue if r not in doomed)
        self._queued -= doomed
        for record_id in doomed:
            self._retries.pop(record_id, None)
        self._deleted |= doomed & self._in_flight
        if not self._queue and self.active_tasks == 0:
            self._idle.set()

        return self._drop_vectors(sorted(doomed - self._in_flight))

    def _drop_vectors(self, record_ids: List[int]) -> int:
        removed = 0
        for record_id in record_ids:
            try:
                self.vector_store.delete(record_id)
                removed += 1
            except Exception as e:
                logger.warning("Failed to delete vector of record %s: %s", record_id, e)
        return removed

    def reset(self) -> int:
        """
        Drop all vectors and mark every record unembedded.

        Returns:
            Number of records reset
        """
        try:
            self.vector_store.delete_all()
        except Exception:
            logger.exception("Failed to clear the vector store")

        self._queue.clear()
        self._queued.clear()
        self._retries.clear()
        if self.active_tasks == 0:
            self._idle.set()

        count = self.records.reset_all_statuses()
        logger.info("Reset embedding status of %d records", count)
        return count

    async def search(self, query: str, limit: int = 10) -> List[SearchHit]:
        """Records closest to a free-text query; empty on any failure."""
        try:
            if self.vector_store.count() == 0:
                return []
            vector = await self.provider.embed(query)
            hits = self.vector_store.similarity_search(vector, limit)
        except Exception as e:
            logger.warning("Search for %r failed: %s", query, e)
            return []

        results = []
        for hit in hits:
            meta = hit.get("metadata") or {}
            results.append(
                SearchHit(
                    record_id=hit["id"],
                    title=meta.get("title", ""),
                    url=meta.get("url", ""),
                    source_id=meta.get("source_id"),
                    publish_date=meta.get("publish_date"),
                    distance=hit["distance"],
                )
            )
        return results

    def get_stats(self) -> List[SourceStats]:
        """Embedding coverage per source."""
        counts = self.records.count_by_source_and_status()
        stats = []
        for source in self.sources.list_sources():
            by_status = counts.get(source.id, {})
            total = sum(by_status.values())
            embedded = by_status.get(EmbeddingStatus.COMPLETED.value, 0)
            stats.append(
                SourceStats(
                    source_id=source.id,
                    source_name=source.name,
                    total=total,
                    embedded=embedded,
                    percent=round(embedded * 100 / total) if total else 0,
                )
            )
        return stats

    async def join(self) -> None:
        """Wait until nothing is queued or in flight."""
        await self._idle.wait()
