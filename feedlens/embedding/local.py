"""Client side of the local inference process."""

import asyncio
import logging
import multiprocessing
import queue
import threading
import uuid
from typing import Any, Callable, Dict, Optional, Tuple

from ..exceptions import InferenceError, InferenceTimeoutError, WorkerNotStartedError
from .worker import run_worker

logger = logging.getLogger(__name__)

_POLL_SECONDS = 0.5


def _settle(future: asyncio.Future, result: Any = None, error: Optional[BaseException] = None) -> None:
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)


class LocalInferenceWorker:
    """Async request/response access to the inference process.

    Every request carries a fresh correlation ID. A reader thread matches
    replies against the table of pending futures and settles them on the
    event loop that issued the request.
    """

    def __init__(
        self,
        cache_dir: str,
        timeout: float = 120.0,
        ctx: Any = None,
        target: Callable[..., None] = run_worker,
        load_encoder: Optional[Callable[[str, str], Any]] = None,
    ) -> None:
        """
        Initialize worker client.

        Args:
            cache_dir: Model cache directory passed to the process
            timeout: Seconds a single round trip may take
            ctx: Multiprocessing context, spawn by default
            target: Process entry point
            load_encoder: Optional encoder factory forwarded to ``target``
        """
        self.cache_dir = str(cache_dir)
        self.timeout = timeout
        self._ctx = ctx or multiprocessing.get_context("spawn")
        self._target = target
        self._load_encoder = load_encoder

        self._process: Any = None
        self._requests: Any = None
        self._responses: Any = None
        self._reader: Optional[threading.Thread] = None
        self._pending: Dict[str, Tuple[asyncio.AbstractEventLoop, asyncio.Future]] = {}
        self._lock = threading.Lock()

        self.ready = threading.Event()
        self.loading_model: Optional[str] = None

    @property
    def is_running(self) -> bool:
        """Whether the inference process is alive."""
        return self._process is not None and self._process.is_alive()

    @property
    def pending_count(self) -> int:
        """Requests awaiting a reply."""
        with self._lock:
            return len(self._pending)

    def start(self) -> None:
        """Start the process and the reply reader."""
        if self.is_running:
            return

        self.ready.clear()
        self._requests = self._ctx.Queue()
        self._responses = self._ctx.Queue()

        args: Tuple = (self._requests, self._responses, self.cache_dir)
        if self._load_encoder is not None:
            args += (self._load_encoder,)

        self._process = self._ctx.Process(target=self._target, args=args, daemon=True)
        self._process.start()

        self._reader = threading.Thread(
            target=self._read_responses, name="inference-reader", daemon=True
        )
        self._reader.start()
        logger.info("Local inference worker started")

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the process has announced itself."""
        return self.ready.wait(timeout)

    async def embed(self, text: str, model: str) -> list:
        """
        Embed a text in the inference process.

        Raises:
            WorkerNotStartedError: If the process is not running
            InferenceTimeoutError: If no reply arrives within ``timeout``
            InferenceError: If the process reports a failure or exits
        """
        if not self.is_running:
            raise WorkerNotStartedError("Local inference worker is not running")

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        task_id = uuid.uuid4().hex

        with self._lock:
            self._pending[task_id] = (loop, future)

        self._requests.put({"task_id": task_id, "text": text, "model": model})
        try:
            return await asyncio.wait_for(future, self.timeout)
        except asyncio.TimeoutError:
            raise InferenceTimeoutError(
                f"Inference task {task_id} timed out after {self.timeout:g}s"
            ) from None
        finally:
            with self._lock:
                self._pending.pop(task_id, None)

    def _read_responses(self) -> None:
        while True:
            try:
                message = self._responses.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                if not self.is_running:
                    self._fail_all(InferenceError("Inference process exited"))
                    return
                continue

            if "status" in message:
                self._on_status(message)
            else:
                self._resolve(message)

    def _on_status(self, message: Dict[str, Any]) -> None:
        if message["status"] == "ready":
            self.ready.set()
        elif message["status"] == "loading":
            self.loading_model = message.get("model")
            logger.info("Inference process loading model %s", self.loading_model)

    def _resolve(self, message: Dict[str, Any]) -> None:
        task_id = message.get("task_id")
        with self._lock:
            entry = self._pending.pop(task_id, None)
        if entry is None:
            logger.debug("Reply for unknown or expired task %s", task_id)
            return

        loop, future = entry
        if message.get("success"):
            args: Tuple = (future, message.get("embedding"))
        else:
            args = (future, None, InferenceError(message.get("error") or "inference failed"))

        try:
            loop.call_soon_threadsafe(_settle, *args)
        except RuntimeError:
            logger.debug("Event loop closed before task %s was settled", task_id)

    def _fail_all(self, error: BaseException) -> None:
        with self._lock:
            entries = list(self._pending.values())
            self._pending.clear()

        if entries:
            logger.error("Failing %d pending inference tasks: %s", len(entries), error)
        for loop, future in entries:
            try:
                loop.call_soon_threadsafe(_settle, future, None, error)
            except RuntimeError:
                continue

    def close(self, timeout: float = 5.0) -> None:
        """Stop the process; pending requests fail."""
        if self._process is None:
            return

        try:
            self._requests.put(None)
        except (OSError, ValueError) as e:
            logger.debug("Could not send stop sentinel: %s", e)

        self._process.join(timeout)
        if self._process.is_alive() and hasattr(self._process, "terminate"):
            self._process.terminate()
            self._process.join(timeout)

        if self._reader is not None:
            self._reader.join(timeout)

        self._fail_all(InferenceError("Inference worker closed"))
        self._process = None
        self._reader = None
        logger.info("Local inference worker stopped")
