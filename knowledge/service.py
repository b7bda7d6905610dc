"""
Knowledge retrieval orchestration.

Ties the vector index, embedder, query rewriter and reranker together:

    query -> variants -> embed + search each -> merge by document id
          -> rerank with the original query -> top ``limit`` results

Usage:
    from knowledge import KnowledgeConfig, KnowledgeService

    service = KnowledgeService.from_config(KnowledgeConfig.from_env(), generator=router)
    service.index_knowledge_from_map("faq", [{"title": "Refunds", "content": "..."}])
    results = service.retrieve_relevant_knowledge("how do refunds work?", limit=5)
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable, Optional, Sequence, Union

from common.exceptions import (
    ConfigurationError,
    ContextPipelineError,
    EmbeddingError,
    IndexClosedError,
    RetrievalCancelledError,
    RetrievalError,
    StoreError,
)
from common.logging_config import get_logger
from common.outcome import Outcome
from generation.base import TextGenerator

from .chroma_index import ChromaVectorIndex
from .config import KnowledgeConfig
from .embedder import Embedder, create_embedder
from .map_loader import collection_from_maps
from .memory_index import InMemoryVectorIndex
from .models import KnowledgeCollection, SearchResult
from .pdf_loader import PdfSource, collection_from_pdf
from .query_rewriter import NoOpQueryRewriter, QueryRewriter, create_query_rewriter
from .rerank import Reranker, RerankStrategy, create_reranker
from .sqlite_index import SqliteVectorIndex
from .url_loader import DEFAULT_MAX_CHUNK_SIZE, collection_from_urls
from .vector_index import VectorIndex, rank_results


def create_vector_index(config: KnowledgeConfig, logger: Optional[logging.Logger] = None) -> VectorIndex:
    config.validate()
    if config.backend == "sqlite":
        return SqliteVectorIndex(config.sqlite_path, config.vector_dimension, logger=logger)
    if config.backend == "chroma":
        return ChromaVectorIndex(
            persist_directory=config.chroma_path,
            collection_name=config.chroma_collection,
            dimension=config.vector_dimension,
            logger=logger,
        )
    return InMemoryVectorIndex(config.vector_dimension, logger=logger)


class KnowledgeService:
    def __init__(
        self,
        config: KnowledgeConfig,
        index: VectorIndex,
        embedder: Optional[Embedder] = None,
        rewriter: Optional[QueryRewriter] = None,
        reranker: Optional[Reranker] = None,
        logger: Optional[logging.Logger] = None,
    ):
        config.validate()
        self.config = config
        self.index = index
        self.embedder = embedder
        self.logger = logger or get_logger(__name__)
        self.rewriter = rewriter or NoOpQueryRewriter(self.logger)
        self.reranker = reranker if config.rerank_enabled else None

    @classmethod
    def from_config(
        cls,
        config: KnowledgeConfig,
        generator: Optional[TextGenerator] = None,
        embedder: Optional[Embedder] = None,
        api_key: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "KnowledgeService":
        """Build the index, embedder, rewriter and reranker the config asks for."""
        logger = logger or get_logger(__name__)
        index = create_vector_index(config, logger)
        if embedder is None:
            embedder = create_embedder(
                config.embedding_provider,
                config.embedding_model,
                base_url=config.ollama_base_url,
                api_key=api_key,
            )

        rewriter = None
        if config.query_rewrite_enabled:
            rewriter = create_query_rewriter(
                config.query_rewrite_strategy, generator, config.query_rewrite_model, logger
            )

        reranker = None
        if config.rerank_enabled:
            if generator is None:
                logger.warning("Reranking enabled but no text generator given; results are not reranked")
            else:
                strategy = RerankStrategy.BATCH if config.use_batch_rerank else RerankStrategy.POINTWISE
                reranker = create_reranker(strategy, generator, config.rerank_model, logger)

        return cls(config, index, embedder, rewriter, reranker, logger)

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    def _require_embedder(self) -> Embedder:
        if self.embedder is None:
            raise ConfigurationError(
                "Embedder is not available",
                "Knowledge indexing and retrieval require an embedding provider",
            )
        return self.embedder

    def index_knowledge(self, collection: KnowledgeCollection) -> str:
        """Embed documents that have no vector yet and store the collection.

        Re-indexing an existing collection id replaces its documents.
        Returns the collection id.
        """
        embedder = self._require_embedder()
        prepared = collection.model_copy(deep=True)

        missing = [d for d in prepared.documents if not d.embedding and (d.embedding_text or d.text).strip()]
        if missing:
            vectors = embedder.embed_batch([d.embedding_text or d.text for d in missing])
            if len(vectors) != len(missing):
                raise EmbeddingError(
                    f"embedding count mismatch: got {len(vectors)}, expected {len(missing)}"
                )
            for document, vector in zip(missing, vectors):
                document.embedding = vector or None

        collection_id = self.index.store(prepared)
        self.logger.info(
            "Indexed collection %s: %d documents (%d embedded now)",
            collection_id,
            len(prepared.documents),
            len(missing),
        )
        return collection_id

    def index_knowledge_from_map(self, collection_id: str, items: Iterable[dict[str, Any]]) -> str:
        collection = collection_from_maps(collection_id, items)
        if not collection.documents:
            raise ValueError(f"no documents found for knowledge {collection_id}")
        return self.index_knowledge(collection)

    def index_knowledge_from_pdf(
        self,
        collection_id: str,
        source: PdfSource,
        include_page_images: bool = False,
    ) -> str:
        """Index a PDF with one document per page that has text."""
        collection = collection_from_pdf(collection_id, source, include_page_images=include_page_images)
        if not collection.documents:
            raise ValueError(f"no pages found in PDF for knowledge {collection_id}")
        return self.index_knowledge(collection)

    def index_knowledge_from_url(
        self,
        collection_id: str,
        urls: Union[str, Sequence[str]],
        max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
    ) -> str:
        """Fetch the given pages (links are not followed) and index their chunks."""
        self._require_embedder()
        collection = collection_from_urls(collection_id, urls, max_chunk_size=max_chunk_size)
        if not collection.documents:
            raise ValueError(f"no content found at URL for knowledge {collection_id}")
        return self.index_knowledge(collection)

    def get_knowledge(self, collection_id: str) -> Optional[KnowledgeCollection]:
        return self.index.get_by_id(collection_id)

    def delete_knowledge(self, collection_id: str) -> None:
        self.index.delete_by_id(collection_id)
        self.logger.info("Deleted collection %s", collection_id)

    def close(self) -> None:
        self.index.close()

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event], stage: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise RetrievalCancelledError(stage)

    def retrieve_relevant_knowledge(
        self,
        query: str,
        limit: Optional[int] = None,
        allowed_collection_ids: Optional[Sequence[str]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> list[SearchResult]:
        """
        Most relevant documents for ``query``, best first.

        Args:
            query: Free-text query
            limit: Maximum number of results (default: ``rerank_top_k``)
            allowed_collection_ids: Restrict the search to these collections
            cancel_event: Set it to abandon the retrieval between stages

        Raises:
            ConfigurationError: No embedder is configured
            RetrievalError: No query variant could be embedded and searched
            RetrievalCancelledError: ``cancel_event`` was set
        """
        return self.retrieve_relevant_knowledge_outcome(
            query, limit, allowed_collection_ids, cancel_event
        ).value

    def retrieve_relevant_knowledge_outcome(
        self,
        query: str,
        limit: Optional[int] = None,
        allowed_collection_ids: Optional[Sequence[str]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Outcome[list[SearchResult]]:
        """Like ``retrieve_relevant_knowledge``, also reporting degraded stages.

        The reason lists every stage that fell back: query rewriting,
        skipped query variants and a failed rerank.
        """
        embedder = self._require_embedder()
        if limit is None:
            limit = self.config.rerank_top_k
        if limit <= 0 or not query or not query.strip():
            return Outcome.ok([])

        reasons: list[str] = []

        self._check_cancelled(cancel_event, "rewrite")
        rewrite = self.rewriter.rewrite_outcome(query)
        if rewrite.degraded:
            self.logger.info("Query rewriting degraded: %s", rewrite.reason)
            reasons.append(f"rewrite: {rewrite.reason}")
        variants = rewrite.value

        retrieval_limit = limit
        if self.reranker is not None and self.config.retrieval_factor > 1:
            retrieval_limit = limit * self.config.retrieval_factor

        merged: dict[str, SearchResult] = {}
        failed: list[str] = []
        for position, variant in enumerate(variants):
            self._check_cancelled(cancel_event, "search")
            weight = 1.0 if position == 0 else self.config.rewritten_query_weight
            try:
                vectors = embedder.embed_batch([variant])
                if not vectors or not vectors[0]:
                    raise EmbeddingError("Embedder returned no vector")
                results = self.index.search(vectors[0], retrieval_limit, allowed_collection_ids)
            except IndexClosedError:
                raise
            except (EmbeddingError, StoreError) as exc:
                self.logger.warning("Skipping query variant %d: %s", position, exc)
                failed.append(str(exc))
                reasons.append(f"variant {position} skipped: {exc}")
                continue

            for result in results:
                weighted = result.score * weight
                existing = merged.get(result.document.id)
                if existing is None or weighted > existing.score:
                    merged[result.document.id] = SearchResult(document=result.document, score=weighted)

        if len(failed) == len(variants):
            raise RetrievalError("No query variant could be searched", "; ".join(failed))

        ranked = rank_results(merged.values(), len(merged))
        self.logger.debug(
            "Merged %d results from %d variants (%d failed)", len(ranked), len(variants), len(failed)
        )

        self._check_cancelled(cancel_event, "rerank")
        if self.reranker is None or len(ranked) <= limit:
            return self._outcome(ranked[:limit], reasons)

        try:
            reranked = self.reranker.rerank(query, [r.document.text for r in ranked], limit)
        except ContextPipelineError as exc:
            self.logger.warning("Reranking failed, falling back to similarity order: %s", exc)
            reasons.append(f"rerank: {exc}")
            return self._outcome(ranked[:limit], reasons)

        self._check_cancelled(cancel_event, "rerank")
        results = [
            SearchResult(document=ranked[r.index].document, score=r.score)
            for r in reranked
        ]
        return self._outcome(results, reasons)

    @staticmethod
    def _outcome(results: list[SearchResult], reasons: list[str]) -> Outcome[list[SearchResult]]:
        if reasons:
            return Outcome.degrade(results, "; ".join(reasons))
        return Outcome.ok(results)
