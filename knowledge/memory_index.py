from __future__ import annotations

import logging
import threading
from typing import Optional, Sequence

import numpy as np

from .models import KnowledgeCollection, SearchResult
from .vector_index import (
    VectorIndex,
    has_dimension,
    prepare_collection,
    public_document,
    rank_results,
    similarity_to_score,
)


class InMemoryVectorIndex(VectorIndex):
    """Process-local index with an exact linear scan.

    Nothing survives the process. Writes and reads share one lock, so a
    search never sees a half-replaced collection.
    """

    backend_name = "in-memory"

    def __init__(self, dimension: Optional[int] = None, logger: Optional[logging.Logger] = None):
        super().__init__(dimension=dimension, logger=logger)
        self._collections: dict[str, KnowledgeCollection] = {}
        self._lock = threading.Lock()

    def store(self, collection: KnowledgeCollection) -> str:
        prepared = prepare_collection(collection)
        if self.dimension is not None:
            for document in prepared.documents:
                if document.embedding and len(document.embedding) != self.dimension:
                    self.logger.warning(
                        "Document %s has dimension %d, index expects %d; it will not be searchable",
                        document.id,
                        len(document.embedding),
                        self.dimension,
                    )
        with self._lock:
            self._check_open()
            self._collections[prepared.id] = prepared
        self.logger.debug("Stored collection %s (%d documents)", prepared.id, len(prepared.documents))
        return prepared.id

    def search(
        self,
        query_vector: Sequence[float],
        limit: int,
        allowed_collection_ids: Optional[Sequence[str]] = None,
    ) -> list[SearchResult]:
        with self._lock:
            self._check_open()
            if not self._query_is_searchable(query_vector, limit):
                return []
            dimension = self.dimension or len(query_vector)
            allowed = set(allowed_collection_ids) if allowed_collection_ids is not None else None

            candidates = [
                document
                for collection_id, collection in self._collections.items()
                if allowed is None or collection_id in allowed
                for document in collection.documents
                if has_dimension(document, dimension)
            ]
            if not candidates:
                return []

            matrix = np.asarray([d.embedding for d in candidates], dtype=np.float64)
            query = np.asarray(query_vector, dtype=np.float64)
            norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
            dots = matrix @ query
            with np.errstate(divide="ignore", invalid="ignore"):
                similarities = np.where(norms > 0, dots / norms, 0.0)
            similarities = np.clip(similarities, -1.0, 1.0)

            scored = sorted(
                zip(candidates, similarities),
                key=lambda pair: (-float(pair[1]), pair[0].id),
            )[:limit]
            results = [
                SearchResult(document=public_document(document), score=similarity_to_score(float(sim)))
                for document, sim in scored
            ]
        return rank_results(results, limit)

    def get_by_id(self, collection_id: str) -> Optional[KnowledgeCollection]:
        with self._lock:
            self._check_open()
            collection = self._collections.get(collection_id)
            if collection is None:
                return None
            copy = collection.model_copy(deep=True)
        copy.documents = [public_document(d) for d in copy.documents]
        return copy

    def delete_by_id(self, collection_id: str) -> None:
        with self._lock:
            self._check_open()
            self._collections.pop(collection_id, None)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._collections.clear()
            self._closed = True
