"""Feed fetch scheduler with bounded concurrency."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from .. import events
from ..config import SchedulerConfig
from ..events import EventBus
from ..exceptions import SourceNotFoundError
from ..models import Record, Source
from .dates import normalize_publish_date
from .extractor import Extractor, parse_feed_content
from .models import FeedPreview, FetchOutcome

logger = logging.getLogger(__name__)

PREVIEW_ITEMS = 5


class FeedScheduler:
    """Fetch sources, extract drafts and persist new records.

    At most ``max_concurrent_fetches`` fetches are in flight at once; further
    requests wait for a slot. Each source is fetched once per cycle with no
    in-cycle retry.
    """

    def __init__(
        self,
        sources: Any,
        records: Any,
        bus: EventBus,
        extractor: Extractor,
        settings: Optional[SchedulerConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize scheduler.

        Args:
            sources: Source store
            records: Record store
            bus: Event bus for progress and discovery events
            extractor: Content extractor
            settings: Scheduler settings
            transport: Optional httpx transport, replaces the network in tests
        """
        self.sources = sources
        self.records = records
        self.bus = bus
        self.extractor = extractor
        self.settings = settings or SchedulerConfig()
        self.transport = transport

        self._slots = asyncio.Semaphore(self.settings.max_concurrent_fetches)
        self.active_fetches = 0
        self.peak_fetches = 0

    @asynccontextmanager
    async def _admit(self) -> AsyncIterator[None]:
        """Hold one fetch slot."""
        async with self._slots:
            self.active_fetches += 1
            self.peak_fetches = max(self.peak_fetches, self.active_fetches)
            try:
                yield
            finally:
                self.active_fetches -= 1

    def _client(self, proxy: Optional[str]) -> httpx.AsyncClient:
        kwargs: Dict[str, Any] = {
            "timeout": self.settings.fetch_timeout_seconds,
            "follow_redirects": True,
            "headers": {"User-Agent": self.settings.user_agent},
        }
        if self.transport is not None:
            kwargs["transport"] = self.transport
        elif proxy:
            kwargs["proxy"] = proxy
        return httpx.AsyncClient(**kwargs)

    async def _download(self, url: str, proxy: Optional[str]) -> str:
        async with self._client(proxy) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.text

    async def update_all(self) -> List[FetchOutcome]:
        """Fetch every enabled source; one failing source never stops the others."""
        sources = self.sources.list_sources(enabled_only=True)
        total = len(sources)
        completed = 0

        self.bus.emit(events.SOURCE_UPDATE_START, {"total": total})
        logger.info("Updating %d sources", total)

        async def run(source: Source) -> FetchOutcome:
            nonlocal completed
            self.bus.emit(
                events.SOURCE_UPDATE_PROGRESS,
                {"current": completed, "total": total, "message": f"Updating {source.name}"},
            )
            try:
                outcome = await self.fetch_source(source)
            except Exception as e:
                logger.error("Source %s (%s) failed: %s", source.id, source.name, e)
                outcome = FetchOutcome(source_id=source.id, success=False, error=str(e))

            completed += 1
            self.bus.emit(
                events.SOURCE_UPDATE_PROGRESS,
                {"current": completed, "total": total, "message": f"Updated {source.name}"},
            )
            return outcome

        outcomes = list(await asyncio.gather(*(run(source) for source in sources)))

        new_count = sum(o.new_count for o in outcomes)
        failed = sum(1 for o in outcomes if not o.success)
        self.bus.emit(
            events.SOURCE_UPDATE_COMPLETE,
            {"total": total, "new_count": new_count, "failed": failed},
        )
        logger.info("Update finished: %d new records, %d failed sources", new_count, failed)
        return outcomes

    async def fetch_one(self, source_id: int) -> FetchOutcome:
        """
        Fetch a single source by ID.

        Raises:
            SourceNotFoundError: If the source does not exist
            httpx.HTTPError: If the feed could not be downloaded
        """
        source = self.sources.get(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        return await self.fetch_source(source)

    async def fetch_source(self, source: Source) -> FetchOutcome:
        """Run one fetch cycle for a source under the admission ceiling."""
        async with self._admit():
            return await self._fetch(source)

    async def _fetch(self, source: Source) -> FetchOutcome:
        self.bus.emit(events.FEED_FETCH_START, {"source_id": source.id, "url": source.url})

        try:
            content = await self._download(
                source.url, source.proxy_override or self.settings.proxy_url
            )
        except Exception as e:
            self._record_failure(source, f"{type(e).__name__}: {e}")
            raise

        result = await self.extractor.extract(content, source.parsing_script)
        if result.failed:
            self._record_failure(source, result.error)
            return FetchOutcome(source_id=source.id, success=False, error=result.error)

        try:
            outcome = self._persist(source, result.drafts)
        except Exception as e:
            self._record_failure(source, f"{type(e).__name__}: {e}")
            raise

        self.sources.mark_success(source.id)
        self.bus.emit(
            events.FEED_FETCH_SUCCESS,
            {"source_id": source.id, "new_count": outcome.new_count},
        )
        logger.info(
            "Source %s: %d new, %d skipped, %d purged",
            source.id, outcome.new_count, outcome.skipped_count, outcome.purged_count,
        )
        return outcome

    def _persist(self, source: Source, drafts: List) -> FetchOutcome:
        """Purge blank-URL leftovers and insert unseen drafts."""
        purged = self.records.delete_empty_url_records(source.id)
        if purged:
            logger.info("Purged %d blank-URL records of source %s", len(purged), source.id)
            self.bus.emit(
                events.ARTICLES_DELETED,
                {"source_id": source.id, "record_ids": list(purged)},
            )

        new_count = 0
        skipped = 0
        for draft in drafts:
            if not draft.url or not draft.title:
                skipped += 1
                continue

            if self.records.find_by_source_and_title(source.id, draft.title) is not None:
                skipped += 1
                continue
            if self.records.find_by_url(draft.url) is not None:
                skipped += 1
                continue

            record = Record(
                source_id=source.id,
                title=draft.title,
                url=draft.url,
                body=draft.body,
                summary=draft.summary,
                publish_date=normalize_publish_date(draft.publish_date),
                author=draft.author,
            )
            record_id = self.records.insert(record)
            if record_id is None:
                # Lost a race with a concurrent insert of the same URL or title
                skipped += 1
                continue

            new_count += 1
            self.bus.emit(
                events.ARTICLE_DISCOVERED,
                {"url": record.url, "title": record.title, "source_id": source.id},
            )
            self.bus.emit(events.ARTICLE_CREATED, {"id": record_id, "title": record.title})

        return FetchOutcome(
            source_id=source.id,
            success=True,
            new_count=new_count,
            skipped_count=skipped,
            purged_count=len(purged),
        )

    def _record_failure(self, source: Source, error: str) -> None:
        logger.warning("Fetch failed for source %s (%s): %s", source.id, source.url, error)
        self.sources.mark_failure(source.id)
        self.bus.emit(events.FEED_FETCH_ERROR, {"source_id": source.id, "error": error})

    async def run_periodically(self, interval_minutes: Optional[int] = None) -> None:
        """Run update cycles forever, sleeping between them."""
        interval = interval_minutes or self.settings.update_interval_minutes
        while True:
            try:
                await self.update_all()
            except Exception:
                logger.exception("Update cycle failed")
            await asyncio.sleep(interval * 60)

    async def preview(
        self,
        url: str,
        script: Optional[str] = None,
        proxy: Optional[str] = None,
    ) -> FeedPreview:
        """Fetch and extract a feed without persisting anything."""
        meta: Dict[str, Any] = {}
        try:
            content = await self._download(url, proxy or self.settings.proxy_url)
            if script and script.strip():
                result = await self.extractor.extract(content, script)
            else:
                meta, result = await asyncio.to_thread(parse_feed_content, content)
        except Exception as e:
            logger.warning("Preview of %s failed: %s", url, e)
            return FeedPreview(url=url, success=False, error=str(e))

        if result.failed:
            return FeedPreview(url=url, success=False, error=result.error)

        return FeedPreview(
            url=url,
            success=True,
            title=meta.get("title"),
            description=meta.get("subtitle") or meta.get("description"),
            items=result.drafts[:PREVIEW_ITEMS],
        )
