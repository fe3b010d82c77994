"""Exceptions raised by feedlens."""


class FeedlensError(Exception):
    """Base class for feedlens errors."""


class SourceNotFoundError(FeedlensError):
    """Raised when a source id does not exist."""

    def __init__(self, source_id: int) -> None:
        super().__init__(f"Source {source_id} not found")
        self.source_id = source_id


class ScriptRejectedError(FeedlensError):
    """Raised when a parsing script uses a forbidden construct."""


class WorkerNotStartedError(FeedlensError):
    """Raised when local inference is requested before the worker is running."""


class InferenceError(FeedlensError):
    """Raised when the inference process reports a failure."""


class InferenceTimeoutError(InferenceError):
    """Raised when an inference round trip exceeds its time budget."""
