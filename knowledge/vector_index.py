"""
Vector index contract shared by every storage backend.

An index holds knowledge collections, each a group of documents with
optional embeddings. Backends differ in durability, not in behaviour:

- ``store`` replaces a collection and its documents atomically
- ``search`` returns at most ``limit`` results, best first, scores in [0, 1]
- documents whose embedding has the wrong dimension are never returned
- ``get_by_id`` returns None for unknown ids, ``delete_by_id`` ignores them
- every operation after ``close`` raises IndexClosedError
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Iterable, Optional, Sequence

import numpy as np

from common.exceptions import IndexClosedError
from common.logging_config import get_logger

from .models import Document, KnowledgeCollection, SearchResult

KNOWLEDGE_ID_KEY = "knowledge_id"


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1]; 0.0 for zero vectors or length mismatch."""
    if len(a) != len(b) or len(a) == 0:
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / (norm_a * norm_b), -1.0, 1.0))


def similarity_to_score(similarity: float) -> float:
    """Map cosine similarity [-1, 1] onto a score in [0, 1]."""
    return min(max((similarity + 1.0) / 2.0, 0.0), 1.0)


def distance_to_score(distance: float) -> float:
    """Map a cosine distance onto a score in [0, 1]."""
    return min(max(1.0 - float(distance), 0.0), 1.0)


def prepare_collection(collection: KnowledgeCollection) -> KnowledgeCollection:
    """Deep copy of ``collection`` with ids assigned and back-references set."""
    prepared = collection.model_copy(deep=True)
    if not prepared.id:
        prepared.id = str(uuid.uuid4())
    for document in prepared.documents:
        if not document.id:
            document.id = str(uuid.uuid4())
        document.metadata[KNOWLEDGE_ID_KEY] = prepared.id
    return prepared


def public_document(document: Document) -> Document:
    """Copy of ``document`` safe to hand to callers (no stored embedding)."""
    return document.model_copy(update={"embedding": None}, deep=True)


def has_dimension(document: Document, dimension: Optional[int]) -> bool:
    if not document.embedding:
        return False
    return dimension is None or len(document.embedding) == dimension


def rank_results(results: Iterable[SearchResult], limit: int) -> list[SearchResult]:
    """Best score first, ties by document id, cut to ``limit``."""
    ordered = sorted(results, key=lambda r: (-r.score, r.document.id))
    return ordered[:limit]


class VectorIndex(ABC):
    """Base class for knowledge vector indexes."""

    backend_name = "vector"

    def __init__(self, dimension: Optional[int] = None, logger: Optional[logging.Logger] = None):
        self.dimension = dimension
        self.logger = logger or get_logger(__name__)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise IndexClosedError(self.backend_name)

    def _query_is_searchable(self, query_vector: Sequence[float], limit: int) -> bool:
        if limit <= 0 or not query_vector:
            return False
        if self.dimension is not None and len(query_vector) != self.dimension:
            self.logger.warning(
                "Query vector has dimension %d, index expects %d",
                len(query_vector),
                self.dimension,
            )
            return False
        return True

    @abstractmethod
    def store(self, collection: KnowledgeCollection) -> str:
        """Store ``collection`` with all its documents; returns the collection id."""

    @abstractmethod
    def search(
        self,
        query_vector: Sequence[float],
        limit: int,
        allowed_collection_ids: Optional[Sequence[str]] = None,
    ) -> list[SearchResult]:
        """Nearest documents to ``query_vector``, best first."""

    @abstractmethod
    def get_by_id(self, collection_id: str) -> Optional[KnowledgeCollection]:
        """Stored collection or None."""

    @abstractmethod
    def delete_by_id(self, collection_id: str) -> None:
        """Remove a collection and its vectors."""

    @abstractmethod
    def close(self) -> None:
        """Release resources. Safe to call twice."""

    def __enter__(self) -> "VectorIndex":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
