"""ChromaDB-backed vector index.

Two Chroma collections are used: one holds document vectors (cosine HNSW)
with the document JSON as the Chroma document, the other holds one record
per knowledge collection. Chroma has no transactions, so ``store`` snapshots
the previous state and restores it when a write fails.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional, Sequence

import chromadb

from common.exceptions import StoreError

from .models import Document, KnowledgeCollection, SearchResult
from .vector_index import (
    KNOWLEDGE_ID_KEY,
    VectorIndex,
    distance_to_score,
    has_dimension,
    prepare_collection,
    rank_results,
)

# Collection records carry no meaningful vector; Chroma still wants one.
_RECORD_EMBEDDING = [1.0]


class ChromaVectorIndex(VectorIndex):
    backend_name = "chroma"

    def __init__(
        self,
        persist_directory: str = "data/knowledge",
        collection_name: str = "knowledge_documents",
        dimension: Optional[int] = None,
        chroma_client: Optional[Any] = None,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(dimension=dimension, logger=logger)
        self._client = chroma_client or chromadb.PersistentClient(path=persist_directory)
        self._vectors = self._client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
            embedding_function=None,
        )
        self._records = self._client.get_or_create_collection(
            name=f"{collection_name}__collections",
            embedding_function=None,
        )
        self._lock = threading.Lock()
        if self.dimension is None:
            self.dimension = self._infer_dimension()

    def _infer_dimension(self) -> Optional[int]:
        peek = self._vectors.get(limit=1, include=["embeddings"])
        embeddings = peek.get("embeddings")
        if embeddings is None or len(embeddings) == 0:
            return None
        return len(embeddings[0])

    def store(self, collection: KnowledgeCollection) -> str:
        prepared = prepare_collection(collection)
        if self.dimension is None:
            first = next((d.embedding for d in prepared.documents if d.embedding), None)
            if first is not None:
                self.dimension = len(first)

        ids: list[str] = []
        embeddings: list[list[float]] = []
        documents: list[str] = []
        metadatas: list[dict[str, Any]] = []
        for position, document in enumerate(prepared.documents):
            if not has_dimension(document, self.dimension):
                if document.embedding:
                    self.logger.warning(
                        "Document %s has dimension %d, index expects %s; stored without a vector",
                        document.id,
                        len(document.embedding),
                        self.dimension,
                    )
                continue
            ids.append(document.id)
            embeddings.append(list(document.embedding))
            documents.append(document.model_dump_json(exclude={"embedding"}))
            metadatas.append({KNOWLEDGE_ID_KEY: prepared.id, "position": position})

        record = prepared.model_copy(deep=True)
        for document in record.documents:
            document.embedding = None

        with self._lock:
            self._check_open()
            snapshot = self._snapshot(prepared.id)
            try:
                self._vectors.delete(where={KNOWLEDGE_ID_KEY: prepared.id})
                if ids:
                    self._vectors.add(
                        ids=ids,
                        embeddings=embeddings,
                        documents=documents,
                        metadatas=metadatas,
                    )
                self._records.upsert(
                    ids=[prepared.id],
                    embeddings=[_RECORD_EMBEDDING],
                    documents=[record.model_dump_json()],
                    metadatas=[{"document_count": len(record.documents)}],
                )
            except Exception as exc:
                self._restore(prepared.id, snapshot)
                raise StoreError(
                    f"Failed to store collection {prepared.id}", original_error=exc
                ) from exc
        self.logger.debug("Stored collection %s (%d vectors)", prepared.id, len(ids))
        return prepared.id

    def _snapshot(self, collection_id: str) -> dict[str, Any]:
        vectors = self._vectors.get(
            where={KNOWLEDGE_ID_KEY: collection_id},
            include=["embeddings", "documents", "metadatas"],
        )
        record = self._records.get(ids=[collection_id], include=["documents", "metadatas"])
        return {"vectors": vectors, "record": record}

    def _restore(self, collection_id: str, snapshot: dict[str, Any]) -> None:
        self.logger.warning("Rolling back collection %s", collection_id)
        self._vectors.delete(where={KNOWLEDGE_ID_KEY: collection_id})
        vectors = snapshot["vectors"]
        if vectors["ids"]:
            self._vectors.add(
                ids=vectors["ids"],
                embeddings=vectors["embeddings"],
                documents=vectors["documents"],
                metadatas=vectors["metadatas"],
            )
        record = snapshot["record"]
        if record["ids"]:
            self._records.upsert(
                ids=record["ids"],
                embeddings=[_RECORD_EMBEDDING],
                documents=record["documents"],
                metadatas=record["metadatas"],
            )
        else:
            self._records.delete(ids=[collection_id])

    def search(
        self,
        query_vector: Sequence[float],
        limit: int,
        allowed_collection_ids: Optional[Sequence[str]] = None,
    ) -> list[SearchResult]:
        with self._lock:
            self._check_open()
            if self.dimension is None or not self._query_is_searchable(query_vector, limit):
                return []
            count = self._vectors.count()
            if count == 0:
                return []
            params: dict[str, Any] = {
                "query_embeddings": [list(query_vector)],
                "n_results": min(limit, count),
                "include": ["documents", "distances"],
            }
            if allowed_collection_ids is not None:
                allowed = list(dict.fromkeys(allowed_collection_ids))
                if not allowed:
                    return []
                params["where"] = {KNOWLEDGE_ID_KEY: {"$in": allowed}}
            try:
                results = self._vectors.query(**params)
            except Exception as exc:
                raise StoreError("Vector search failed", original_error=exc) from exc

        hits: list[SearchResult] = []
        if not results["ids"] or not results["ids"][0]:
            return hits
        for idx, _ in enumerate(results["ids"][0]):
            distance = results["distances"][0][idx]
            document = Document.model_validate_json(results["documents"][0][idx])
            hits.append(SearchResult(document=document, score=distance_to_score(distance)))
        return rank_results(hits, limit)

    def get_by_id(self, collection_id: str) -> Optional[KnowledgeCollection]:
        with self._lock:
            self._check_open()
            record = self._records.get(ids=[collection_id], include=["documents"])
        if not record["ids"]:
            return None
        return KnowledgeCollection.model_validate_json(record["documents"][0])

    def delete_by_id(self, collection_id: str) -> None:
        with self._lock:
            self._check_open()
            try:
                self._vectors.delete(where={KNOWLEDGE_ID_KEY: collection_id})
                self._records.delete(ids=[collection_id])
            except Exception as exc:
                raise StoreError(
                    f"Failed to delete collection {collection_id}", original_error=exc
                ) from exc

    def close(self) -> None:
        with self._lock:
            self._closed = True
