"""Tests for embedding providers and the Chroma vector store."""

import asyncio
import json
import uuid

import chromadb
import httpx
import pytest

from feedlens.embedding import (
    ChromaVectorStore,
    OllamaEmbeddingProvider,
    OpenAIEmbeddingProvider,
    build_provider,
)
from feedlens.exceptions import InferenceError


def test_build_openai_provider():
    provider = build_provider({"provider": "openai", "model": "text-embedding-3-small", "api_key": "sk-test"})

    assert isinstance(provider, OpenAIEmbeddingProvider)
    assert provider.model == "text-embedding-3-small"


def test_custom_provider_needs_base_url():
    with pytest.raises(ValueError, match="base_url"):
        build_provider({"provider": "custom", "model": "m"})

    provider = build_provider({"provider": "custom", "model": "m", "base_url": "http://llm.local/v1"})
    assert isinstance(provider, OpenAIEmbeddingProvider)


def test_unknown_provider():
    with pytest.raises(ValueError, match="Unknown embedding provider"):
        build_provider({"provider": "carrier-pigeon", "model": "m"})


def test_ollama_embeddings():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append((request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={"embedding": [0.1, 0.2, 0.3]})

    provider = OllamaEmbeddingProvider(
        "nomic-embed-text", base_url="http://ollama.test:11434/", transport=httpx.MockTransport(handler)
    )

    async def main():
        try:
            return await provider.embed("hello")
        finally:
            await provider.close()

    assert asyncio.run(main()) == [0.1, 0.2, 0.3]
    assert requests == [("/api/embeddings", {"model": "nomic-embed-text", "prompt": "hello"})]


def test_ollama_missing_embedding():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"error": "model not found"}))
    provider = OllamaEmbeddingProvider("missing", transport=transport)

    with pytest.raises(InferenceError):
        asyncio.run(provider.embed("hello"))


@pytest.fixture()
def chroma_store():
    return ChromaVectorStore(f"test-{uuid.uuid4().hex}", client=chromadb.EphemeralClient())


def test_chroma_empty_search(chroma_store):
    assert chroma_store.similarity_search([1.0, 0.0, 0.0], 5) == []


def test_chroma_upsert_and_search(chroma_store):
    chroma_store.upsert(1, [1.0, 0.0, 0.0], {"title": "East", "url": "http://x/1", "source_id": 1, "publish_date": None})
    chroma_store.upsert(2, [0.0, 1.0, 0.0], {"title": "North", "url": "http://x/2", "source_id": 1})
    chroma_store.upsert(1, [1.0, 0.1, 0.0], {"title": "East v2", "url": "http://x/1", "source_id": 1})

    hits = chroma_store.similarity_search([0.9, 0.05, 0.0], 5)

    assert chroma_store.count() == 2
    assert [h["id"] for h in hits] == [1, 2]
    assert hits[0]["metadata"]["title"] == "East v2"
    assert hits[0]["metadata"]["record_id"] == 1
    assert hits[0]["distance"] < hits[1]["distance"]


def test_chroma_delete(chroma_store):
    for record_id in (1, 2, 3):
        chroma_store.upsert(record_id, [float(record_id), 1.0], {"title": str(record_id)})

    chroma_store.delete(2)
    assert chroma_store.count() == 2

    chroma_store.delete_all()
    assert chroma_store.count() == 0
