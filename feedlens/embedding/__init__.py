"""Embedding providers, local inference, queue and vector store."""

from .local import LocalInferenceWorker
from .providers import (
    EmbeddingProvider,
    LocalEmbeddingProvider,
    OllamaEmbeddingProvider,
    OpenAIEmbeddingProvider,
    build_provider,
)
from .queue import EmbeddingQueue
from .vector_store import ChromaVectorStore, VectorStoreBase
from .worker import run_worker

__all__ = [
    "ChromaVectorStore",
    "EmbeddingProvider",
    "EmbeddingQueue",
    "LocalEmbeddingProvider",
    "LocalInferenceWorker",
    "OllamaEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "VectorStoreBase",
    "build_provider",
    "run_worker",
]
