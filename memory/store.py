"""
In-process store for agent memories.

Keys are unique: ``add`` refuses an existing key and ``replace`` is the
only way to overwrite. Search scores every memory whose embedding matches
the query dimension with cosine similarity mapped onto [0, 1].
"""

from __future__ import annotations

import threading
from typing import Optional, Sequence

import numpy as np

from common.exceptions import DuplicateMemoryKeyError
from common.logging_config import get_logger

from .models import Memory, ScoredMemory

logger = get_logger(__name__)


class MemoryStore:
    def __init__(self):
        self._memories: dict[str, Memory] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._memories)

    def add(self, memory: Memory) -> None:
        with self._lock:
            if memory.key in self._memories:
                raise DuplicateMemoryKeyError(memory.key)
            self._memories[memory.key] = memory.model_copy(deep=True)

    def replace(self, memory: Memory) -> None:
        with self._lock:
            self._memories[memory.key] = memory.model_copy(deep=True)

    def get(self, key: str) -> Optional[Memory]:
        with self._lock:
            memory = self._memories.get(key)
            return memory.model_copy(deep=True) if memory is not None else None

    def list(self) -> list[Memory]:
        with self._lock:
            return [self._memories[k].model_copy(deep=True) for k in sorted(self._memories)]

    def delete(self, key: str) -> None:
        with self._lock:
            self._memories.pop(key, None)

    def search(self, query_embedding: Sequence[float], limit: Optional[int] = None) -> list[ScoredMemory]:
        """Memories most similar to ``query_embedding``; ``limit=None`` returns all."""
        if not query_embedding or (limit is not None and limit <= 0):
            return []

        dim = len(query_embedding)
        with self._lock:
            candidates = [
                m for m in self._memories.values()
                if m.embedding is not None and len(m.embedding) == dim
            ]
            if not candidates:
                return []
            matrix = np.asarray([m.embedding for m in candidates], dtype=np.float64)
            candidates = [m.model_copy(deep=True) for m in candidates]

        query = np.asarray(query_embedding, dtype=np.float64)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        with np.errstate(divide="ignore", invalid="ignore"):
            similarities = np.where(norms > 0, (matrix @ query) / norms, 0.0)
        scores = np.clip((similarities + 1.0) * 0.5, 0.0, 1.0)

        scored = [
            ScoredMemory(memory=memory, score=float(score))
            for memory, score in zip(candidates, scores)
        ]
        scored.sort(key=lambda s: (-s.score, s.memory.key))
        if limit is not None:
            scored = scored[:limit]
        logger.debug("Memory search over %d candidates returned %d", len(candidates), len(scored))
        return scored
