from __future__ import annotations

import logging
from typing import Optional, Sequence

from common.exceptions import DuplicateMemoryKeyError
from common.logging_config import get_logger
from knowledge.embedder import Embedder, create_embedder

from .config import MemoryConfig
from .models import Memory, MemorySource, ScoredMemory
from .store import MemoryStore


class MemoryService:
    """Agent long-term memory: keyed facts searchable by meaning."""

    def __init__(
        self,
        embedder: Embedder,
        store: Optional[MemoryStore] = None,
        default_limit: int = 5,
        logger: Optional[logging.Logger] = None,
    ):
        self.embedder = embedder
        self.store = store if store is not None else MemoryStore()
        self.default_limit = default_limit
        self.logger = logger or get_logger(__name__)

    @classmethod
    def from_config(
        cls,
        config: MemoryConfig,
        embedder: Optional[Embedder] = None,
        api_key: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "MemoryService":
        config.validate()
        if embedder is None:
            embedder = create_embedder(
                config.embedding_provider,
                config.embedding_model,
                base_url=config.ollama_base_url,
                api_key=api_key,
            )
        return cls(embedder, default_limit=config.search_limit, logger=logger)

    def _build(self, key: str, value: str, source: MemorySource, tags: Optional[Sequence[str]]) -> Memory:
        return Memory(
            key=key,
            value=value,
            source=MemorySource(source),
            tags=list(tags or []),
            embedding=self.embedder.embed(value),
        )

    def remember(
        self,
        key: str,
        value: str,
        source: MemorySource = MemorySource.AGENT,
        tags: Optional[Sequence[str]] = None,
    ) -> Memory:
        """Store a new memory. Raises DuplicateMemoryKeyError if ``key`` exists."""
        if self.store.get(key) is not None:
            raise DuplicateMemoryKeyError(key)
        memory = self._build(key, value, source, tags)
        self.store.add(memory)
        self.logger.info("Remembered %s (%s)", key, memory.source.value)
        return memory

    def replace(
        self,
        key: str,
        value: str,
        source: MemorySource = MemorySource.AGENT,
        tags: Optional[Sequence[str]] = None,
    ) -> Memory:
        memory = self._build(key, value, source, tags)
        self.store.replace(memory)
        self.logger.info("Replaced memory %s", key)
        return memory

    def get(self, key: str) -> Optional[Memory]:
        return self.store.get(key)

    def list(self) -> list[Memory]:
        return self.store.list()

    def delete(self, key: str) -> None:
        self.store.delete(key)

    def search_memory(self, query: str, limit: Optional[int] = None) -> list[ScoredMemory]:
        if not query or not query.strip():
            return []
        embedding = self.embedder.embed(query)
        return self.store.search(embedding, self.default_limit if limit is None else limit)
