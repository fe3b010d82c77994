"""Vector store abstraction and its Chroma implementation.

Entries are keyed by the string form of the record ID and carry the record's
title, URL, source and publish date as metadata so search hits can be shown
without a round trip to the relational store.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import chromadb

logger = logging.getLogger(__name__)


class VectorStoreBase(ABC):
    """Backend-agnostic vector store interface."""

    def __init__(self, collection_name: str) -> None:
        self.collection_name = collection_name

    @abstractmethod
    def upsert(self, record_id: int, vector: List[float], metadata: Dict[str, Any]) -> None:
        """Store the vector of a record, replacing any previous entry."""

    @abstractmethod
    def delete(self, record_id: int) -> None:
        """Remove the entry of a record if present."""

    @abstractmethod
    def delete_all(self) -> None:
        """Remove every entry."""

    @abstractmethod
    def similarity_search(self, vector: List[float], limit: int = 10) -> List[Dict[str, Any]]:
        """
        Return the entries closest to ``vector``, closest first.

        Each hit is a dict with ``id`` (record ID), ``distance`` and ``metadata``.
        """

    @abstractmethod
    def count(self) -> int:
        """Number of stored entries."""


def _clean_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Chroma metadata only takes scalar, non-null values."""
    cleaned = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            cleaned[key] = value
        else:
            cleaned[key] = str(value)
    return cleaned


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed vector store.

    Uses a persistent on-disk client by default, or an HTTP client when a host
    is given. The collection is created on first use with the configured
    distance space; vectors are always supplied by the caller.
    """

    def __init__(
        self,
        collection_name: str = "records",
        *,
        path: Optional[str] = None,
        host: Optional[str] = None,
        port: int = 8000,
        distance: str = "cosine",
        client: Any = None,
    ) -> None:
        super().__init__(collection_name)
        self.distance = distance

        if client is not None:
            self._client = client
        elif host:
            self._client = chromadb.HttpClient(host=host, port=port)
        elif path:
            self._client = chromadb.PersistentClient(path=os.path.expanduser(path))
        else:
            self._client = chromadb.EphemeralClient()

        self._collection = None

    def create_if_missing(self) -> Any:
        """Get the collection, creating it on first use."""
        if self._collection is None:
            self._collection = self._client.get_or_create_collection(
                name=self.collection_name,
                metadata={"hnsw:space": self.distance},
                embedding_function=None,
            )
            logger.debug("Using Chroma collection %s", self.collection_name)
        return self._collection

    def upsert(self, record_id: int, vector: List[float], metadata: Dict[str, Any]) -> None:
        collection = self.create_if_missing()
        collection.upsert(
            ids=[str(record_id)],
            embeddings=[list(vector)],
            metadatas=[_clean_metadata({**metadata, "record_id": record_id})],
        )

    def delete(self, record_id: int) -> None:
        self.create_if_missing().delete(ids=[str(record_id)])

    def delete_all(self) -> None:
        collection = self.create_if_missing()
        ids = collection.get(include=[])["ids"]
        if ids:
            collection.delete(ids=ids)
        logger.info("Deleted %d vector entries", len(ids))

    def similarity_search(self, vector: List[float], limit: int = 10) -> List[Dict[str, Any]]:
        collection = self.create_if_missing()
        size = collection.count()
        if size == 0 or limit <= 0:
            return []

        results = collection.query(
            query_embeddings=[list(vector)],
            n_results=min(limit, size),
            include=["metadatas", "distances"],
        )

        ids = results.get("ids", [[]])[0]
        metas = (results.get("metadatas") or [[]])[0]
        distances = (results.get("distances") or [[]])[0]

        hits: List[Dict[str, Any]] = []
        for entry_id, meta, dist in zip(ids, metas, distances):
            hits.append({"id": int(entry_id), "distance": float(dist), "metadata": meta or {}})
        return hits

    def count(self) -> int:
        return self.create_if_missing().count()
