"""Embedding provider interface and implementations."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
from openai import AsyncOpenAI

from ..exceptions import InferenceError, WorkerNotStartedError

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    name = "base"

    def __init__(self, model: str) -> None:
        self.model = model

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """
        Compute the embedding of a text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector
        """

    async def close(self) -> None:
        """Release client resources."""


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI embeddings API, or any OpenAI-compatible endpoint."""

    name = "openai"

    def __init__(self, api_key: Optional[str], model: str, base_url: Optional[str] = None) -> None:
        """
        Initialize OpenAI provider.

        Args:
            api_key: API key
            model: Embedding model name
            base_url: Custom base URL for compatible endpoints
        """
        super().__init__(model)
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url)

    async def embed(self, text: str) -> List[float]:
        response = await self.client.embeddings.create(model=self.model, input=text)
        return list(response.data[0].embedding)

    async def close(self) -> None:
        await self.client.close()


class OllamaEmbeddingProvider(EmbeddingProvider):
    """Ollama embeddings endpoint."""

    name = "ollama"

    def __init__(
        self,
        model: str,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(model)
        self.base_url = (base_url or DEFAULT_OLLAMA_URL).rstrip("/")
        self.client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def embed(self, text: str) -> List[float]:
        response = await self.client.post(
            "/api/embeddings", json={"model": self.model, "prompt": text}
        )
        response.raise_for_status()
        embedding = response.json().get("embedding")
        if not embedding:
            raise InferenceError(f"Ollama returned no embedding for model {self.model}")
        return [float(x) for x in embedding]

    async def close(self) -> None:
        await self.client.aclose()


class LocalEmbeddingProvider(EmbeddingProvider):
    """Embeddings computed by the local inference process."""

    name = "local"

    def __init__(self, worker: Any, model: str) -> None:
        super().__init__(model)
        self.worker = worker

    async def embed(self, text: str) -> List[float]:
        return await self.worker.embed(text, self.model)


def build_provider(config: Dict[str, Any], local_worker: Any = None) -> EmbeddingProvider:
    """
    Create the provider named by an embedding config dict.

    Raises:
        ValueError: If the provider is unknown
        WorkerNotStartedError: If the local provider is chosen without a running worker
    """
    provider = config.get("provider", "openai")
    model = config["model"]

    if provider in ("openai", "custom"):
        api_key = config.get("api_key")
        if provider == "custom":
            if not config.get("base_url"):
                raise ValueError("The custom embedding provider needs a base_url")
            # Self-hosted compatible servers often take any key
            api_key = api_key or "unused"
        return OpenAIEmbeddingProvider(
            api_key=api_key,
            model=model,
            base_url=config.get("base_url"),
        )

    if provider == "ollama":
        return OllamaEmbeddingProvider(model=model, base_url=config.get("base_url"))

    if provider == "local":
        if local_worker is None or not local_worker.is_running:
            raise WorkerNotStartedError("Local inference worker is not running")
        return LocalEmbeddingProvider(local_worker, model)

    raise ValueError(f"Unknown embedding provider: {provider}")
