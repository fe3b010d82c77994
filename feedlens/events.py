"""In-process publish/subscribe event bus."""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

# Scheduler events
SOURCE_UPDATE_START = "source:update-start"
SOURCE_UPDATE_PROGRESS = "source:update-progress"
SOURCE_UPDATE_COMPLETE = "source:update-complete"
FEED_FETCH_START = "feed:fetch-start"
FEED_FETCH_SUCCESS = "feed:fetch-success"
FEED_FETCH_ERROR = "feed:fetch-error"

# Record events
ARTICLE_DISCOVERED = "article:discovered"
ARTICLE_CREATED = "article:created"
ARTICLES_DELETED = "article:deleted"

# Embedding events
EMBEDDING_QUEUED = "embedding:queued"
EMBEDDING_SUCCESS = "embedding:success"
EMBEDDING_ERROR = "embedding:error"

Handler = Callable[[Any], Any]


class EventBus:
    """Fire-and-forget event dispatch.

    Plain handlers run inline during :meth:`emit`. Coroutine handlers are
    scheduled on the running event loop. A failing handler is logged and never
    affects the emitter or the other handlers. Late subscribers do not see
    earlier events.
    """

    def __init__(self) -> None:
        """Initialize event bus."""
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)
        self._tasks: Set[asyncio.Task] = set()

    def on(self, event: str, handler: Handler) -> Handler:
        """Subscribe a handler to an event."""
        self._handlers[event].append(handler)
        return handler

    def off(self, event: str, handler: Handler) -> None:
        """Unsubscribe a handler."""
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def once(self, event: str, handler: Handler) -> Handler:
        """Subscribe a handler that fires for the next emission only."""

        def wrapper(payload: Any) -> Any:
            self.off(event, wrapper)
            return handler(payload)

        return self.on(event, wrapper)

    def emit(self, event: str, payload: Optional[Dict[str, Any]] = None) -> int:
        """
        Dispatch an event to its current subscribers.

        Returns:
            Number of handlers invoked
        """
        handlers = list(self._handlers.get(event, []))
        for handler in handlers:
            try:
                result = handler(payload)
            except Exception:
                logger.exception("Handler %r failed for event %s", handler, event)
                continue

            if asyncio.iscoroutine(result):
                self._schedule(event, result)

        return len(handlers)

    def _schedule(self, event: str, coro: Any) -> None:
        """Run a coroutine handler on the current loop."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.error("Async handler for %s dropped: no running event loop", event)
            return

        task = loop.create_task(coro)
        self._tasks.add(task)

        def _done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error(
                    "Async handler failed for event %s", event, exc_info=t.exception()
                )

        task.add_done_callback(_done)

    def handler_count(self, event: str) -> int:
        """Number of handlers subscribed to an event."""
        return len(self._handlers.get(event, []))
