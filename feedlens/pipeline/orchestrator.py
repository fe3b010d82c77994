"""Pipeline that wires fetching, storage, embedding and search together."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import Config, load_sources
from ..db import RecordStore, SourceStore, close_connection_pool, get_connection_pool
from ..embedding import (
    ChromaVectorStore,
    EmbeddingProvider,
    EmbeddingQueue,
    LocalInferenceWorker,
    VectorStoreBase,
    build_provider,
)
from .. import events
from ..events import EventBus
from ..ingestion import Extractor, FeedPreview, FeedScheduler, FetchOutcome, ScriptSandbox
from ..models import SearchHit, SourceStats

logger = logging.getLogger(__name__)


class Pipeline:
    """All services of one feedlens instance on a single event loop.

    Use as an async context manager, or call :meth:`start` and :meth:`close`.
    Stores, vector store and provider may be injected; anything not given is
    built from the configuration.
    """

    def __init__(
        self,
        config: Config,
        *,
        sources: Any = None,
        records: Any = None,
        vector_store: Optional[VectorStoreBase] = None,
        provider: Optional[EmbeddingProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize pipeline."""
        self.config = config
        settings = config.config

        self._owns_pool = sources is None or records is None
        if self._owns_pool:
            pool = get_connection_pool(config.get_db_config())
            sources = sources or SourceStore(pool)
            records = records or RecordStore(pool)

        self.sources = sources
        self.records = records
        self.bus = EventBus()
        self.extractor = Extractor(ScriptSandbox(timeout=settings.sandbox.timeout_seconds))
        self.scheduler = FeedScheduler(
            sources,
            records,
            self.bus,
            self.extractor,
            settings=settings.scheduler,
            transport=transport,
        )

        self.local_worker: Optional[LocalInferenceWorker] = None
        self.provider = provider
        self.vector_store = vector_store
        self.queue: Optional[EmbeddingQueue] = None

    async def __aenter__(self) -> "Pipeline":
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def start(self) -> None:
        """Start local inference if configured and build the embedding queue."""
        if self.queue is not None:
            return

        embedding = self.config.get_embedding_config()

        if self.provider is None:
            if embedding["provider"] == "local":
                self.local_worker = LocalInferenceWorker(
                    str(self.config.model_cache_dir),
                    timeout=embedding["inference_timeout_seconds"],
                )
                self.local_worker.start()
            self.provider = build_provider(embedding, self.local_worker)

        if self.vector_store is None:
            store = self.config.config.vector_store
            self.vector_store = ChromaVectorStore(
                store.collection,
                path=store.path,
                host=store.host,
                port=store.port,
                distance=store.distance,
            )

        self.queue = EmbeddingQueue(
            self.records,
            self.sources,
            self.vector_store,
            self.provider,
            self.bus,
            max_concurrent_tasks=embedding["max_concurrent_tasks"],
            max_retries=embedding["max_retries"],
            max_text_chars=embedding["max_text_chars"],
        )
        logger.info("Pipeline started with %s embeddings", self.provider.name)

    def _require_queue(self) -> EmbeddingQueue:
        if self.queue is None:
            raise RuntimeError("Pipeline not started")
        return self.queue

    def sync_sources(self) -> Dict[str, int]:
        """Upsert the sources listed in sources.yaml."""
        return self.sources.sync_sources(load_sources(self.config.sources_path))

    async def update_all(self) -> List[FetchOutcome]:
        """Fetch every enabled source."""
        self._require_queue()
        return await self.scheduler.update_all()

    async def fetch_one(self, source_id: int) -> FetchOutcome:
        """Fetch one source."""
        self._require_queue()
        return await self.scheduler.fetch_one(source_id)

    async def preview(
        self, url: str, script: Optional[str] = None, proxy: Optional[str] = None
    ) -> FeedPreview:
        """Look at a feed without storing anything."""
        return await self.scheduler.preview(url, script=script, proxy=proxy)

    async def run_periodically(self, interval_minutes: Optional[int] = None) -> None:
        """Update on a fixed interval until cancelled."""
        self._require_queue()
        await self.scheduler.run_periodically(interval_minutes)

    def enqueue(self, record_id: int) -> bool:
        """Queue one record for embedding."""
        return self._require_queue().enqueue(record_id)

    def queue_for_source(self, source_id: int) -> int:
        """Queue the unembedded records of a source."""
        return self._require_queue().queue_for_source(source_id)

    def requeue_incomplete(self) -> int:
        """Queue every record left unembedded."""
        return self._require_queue().requeue_incomplete()

    def delete_source(self, source_id: int) -> bool:
        """
        Delete a source together with its records and their vectors.

        Returns:
            False when the source does not exist
        """
        self._require_queue()
        record_ids = [record.id for record in self.records.list_by_source(source_id)]
        if not self.sources.delete(source_id):
            return False

        self.bus.emit(events.ARTICLES_DELETED, {"source_id": source_id, "record_ids": record_ids})
        logger.info("Deleted source %s with %d records", source_id, len(record_ids))
        return True

    def reset(self) -> int:
        """Drop all vectors and mark every record unembedded."""
        return self._require_queue().reset()

    async def search(self, query: str, limit: int = 10) -> List[SearchHit]:
        """Semantic search over embedded records."""
        return await self._require_queue().search(query, limit)

    def get_stats(self) -> List[SourceStats]:
        """Embedding coverage per source."""
        return self._require_queue().get_stats()

    async def join(self) -> None:
        """Wait for the embedding queue to drain."""
        await self._require_queue().join()

    async def close(self) -> None:
        """Release provider, inference process and database pool."""
        if self.provider is not None:
            try:
                await self.provider.close()
            except Exception as e:
                logger.warning("Closing embedding provider failed: %s", e)

        if self.local_worker is not None:
            self.local_worker.close()
            self.local_worker = None

        if self._owns_pool:
            close_connection_pool()
