"""Tests for knowledge.service: KnowledgeService orchestration."""

import json
import threading

import pytest

from common.exceptions import (
    ConfigurationError,
    EmbeddingError,
    RetrievalCancelledError,
    RetrievalError,
)
from knowledge.config import KnowledgeConfig
from knowledge.memory_index import InMemoryVectorIndex
from knowledge.models import Document, KnowledgeCollection
from knowledge.query_rewriter import NoOpQueryRewriter, QueryRewriter
from knowledge.rerank import BatchLLMReranker, NoOpReranker, PointwiseLLMReranker
from knowledge.service import KnowledgeService, create_vector_index

from conftest import FakeEmbedder, FakeGenerator, make_collection


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

class FixedRewriter(QueryRewriter):
    def __init__(self, *variants):
        super().__init__()
        self.variants = list(variants)

    def _variants(self, query):
        return self.variants


DOCS = {
    "x1": [1.0, 0.0, 0.0],
    "x2": [0.9, 0.1, 0.0],
    "y1": [0.0, 1.0, 0.0],
    "y2": [0.1, 0.9, 0.0],
    "z1": [0.0, 0.0, 1.0],
}

VECTORS = {
    "find x": [1.0, 0.0, 0.0],
    "find y": [0.0, 1.0, 0.0],
    "find z": [0.0, 0.0, 1.0],
}


def build_service(rewriter=None, reranker=None, embedder=None, **config_overrides):
    config = KnowledgeConfig(vector_dimension=3, **config_overrides)
    index = InMemoryVectorIndex(dimension=3)
    index.store(make_collection("kb", DOCS))
    return KnowledgeService(
        config,
        index,
        embedder=embedder or FakeEmbedder(VECTORS),
        rewriter=rewriter,
        reranker=reranker,
    )


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------

class TestRetrieve:
    def test_plain_vector_search(self):
        service = build_service(rerank_enabled=False)
        results = service.retrieve_relevant_knowledge("find x", limit=2)
        assert [r.document.id for r in results] == ["x1", "x2"]
        assert results[0].score == pytest.approx(1.0)

    def test_requires_embedder(self):
        service = KnowledgeService(KnowledgeConfig(), InMemoryVectorIndex())
        with pytest.raises(ConfigurationError):
            service.retrieve_relevant_knowledge("find x", limit=2)

    def test_blank_query_or_zero_limit(self):
        service = build_service()
        assert service.retrieve_relevant_knowledge("   ", limit=3) == []
        assert service.retrieve_relevant_knowledge("find x", limit=0) == []

    def test_variant_results_are_weighted(self):
        service = build_service(rewriter=FixedRewriter("find y"), rerank_enabled=False)
        results = service.retrieve_relevant_knowledge("find x", limit=5)
        scores = {r.document.id: r.score for r in results}
        assert scores["x1"] == pytest.approx(1.0)
        assert scores["y1"] == pytest.approx(0.9)

    def test_weight_is_configurable(self):
        service = build_service(
            rewriter=FixedRewriter("find y"), rerank_enabled=False, rewritten_query_weight=0.5
        )
        scores = {r.document.id: r.score for r in service.retrieve_relevant_knowledge("find x", limit=5)}
        assert scores["y1"] == pytest.approx(0.5)

    def test_merge_keeps_higher_weighted_score(self):
        # x1 scores 1.0 from the original query and 0.9 * 1.0 from the variant
        service = build_service(rewriter=FixedRewriter("find x again"), rerank_enabled=False,
                                embedder=FakeEmbedder({**VECTORS, "find x again": [1.0, 0.0, 0.0]}))
        results = service.retrieve_relevant_knowledge("find x", limit=5)
        ids = [r.document.id for r in results]
        assert ids.count("x1") == 1
        assert results[0].document.id == "x1"
        assert results[0].score == pytest.approx(1.0)

    def test_variant_can_raise_a_document_above_original_score(self):
        service = build_service(rewriter=FixedRewriter("find y"), rerank_enabled=False)
        results = service.retrieve_relevant_knowledge("find x", limit=5)
        y1 = next(r for r in results if r.document.id == "y1")
        # original query gives y1 0.5; the variant gives 0.9 * 1.0
        assert y1.score == pytest.approx(0.9)

    def test_failed_variant_is_skipped(self):
        embedder = FakeEmbedder(VECTORS, failing=["find y"])
        service = build_service(rewriter=FixedRewriter("find y"), embedder=embedder, rerank_enabled=False)
        results = service.retrieve_relevant_knowledge("find x", limit=2)
        assert [r.document.id for r in results] == ["x1", "x2"]

    def test_all_variants_failing_raises(self):
        embedder = FakeEmbedder(VECTORS, failing=["find x", "find y"])
        service = build_service(rewriter=FixedRewriter("find y"), embedder=embedder)
        with pytest.raises(RetrievalError):
            service.retrieve_relevant_knowledge("find x", limit=2)

    def test_each_variant_embedded_separately(self):
        embedder = FakeEmbedder(VECTORS)
        service = build_service(rewriter=FixedRewriter("find y", "find z"), embedder=embedder,
                                rerank_enabled=False)
        service.retrieve_relevant_knowledge("find x", limit=2)
        assert embedder.calls == [["find x"], ["find y"], ["find z"]]

    def test_collection_filter(self):
        service = build_service(rerank_enabled=False)
        service.index.store(make_collection("other", {"o1": [1.0, 0.0, 0.0]}))
        results = service.retrieve_relevant_knowledge("find x", limit=5, allowed_collection_ids=["other"])
        assert [r.document.id for r in results] == ["o1"]


class TestRerankStage:
    def test_reranker_reorders_with_original_query(self):
        reply = json.dumps({"scores": [{"index": 2, "score": 9}, {"index": 1, "score": 2}]})
        generator = FakeGenerator([reply])
        service = build_service(reranker=BatchLLMReranker(generator))
        results = service.retrieve_relevant_knowledge("find x", limit=2)

        assert results[0].document.id == "x2"
        assert results[0].score == pytest.approx(0.9)
        assert "Query: find x" in generator.prompts[0]

    def test_retrieval_factor_widens_search(self):
        generator = FakeGenerator(default="5")
        service = build_service(reranker=PointwiseLLMReranker(generator), retrieval_factor=3)
        results = service.retrieve_relevant_knowledge("find x", limit=1)
        assert len(results) == 1
        # 3 candidates are retrieved for limit 1 and each one is scored
        assert len(generator.prompts) == 3

    def test_reranker_sees_every_merged_candidate(self):
        # 12 documents, each less similar to the query than the one before
        docs = {f"d{i:02d}": [1.0, i * 0.1, 0.0] for i in range(12)}
        index = InMemoryVectorIndex(dimension=3)
        index.store(make_collection("wide", docs))
        reply = json.dumps({
            "scores": [{"index": i, "score": 1} for i in range(1, 12)] + [{"index": 12, "score": 10}]
        })
        generator = FakeGenerator([reply])
        service = KnowledgeService(
            KnowledgeConfig(vector_dimension=3),
            index,
            embedder=FakeEmbedder(VECTORS),
            reranker=BatchLLMReranker(generator),
        )

        results = service.retrieve_relevant_knowledge("find x", limit=4)

        assert "[12]" in generator.prompts[0]
        assert results[0].document.id == "d11"
        assert results[0].score == pytest.approx(1.0)
        assert len(results) == 4

    def test_reranker_failure_falls_back_to_similarity(self):
        service = build_service(reranker=BatchLLMReranker(FakeGenerator(["garbage"])))
        results = service.retrieve_relevant_knowledge("find x", limit=2)
        assert [r.document.id for r in results] == ["x1", "x2"]

    def test_no_rerank_when_results_fit(self):
        generator = FakeGenerator()
        service = build_service(reranker=BatchLLMReranker(generator), retrieval_factor=1)
        results = service.retrieve_relevant_knowledge("find x", limit=5)
        assert len(results) == 5
        assert generator.prompts == []

    def test_disabled_reranking_ignores_reranker(self):
        generator = FakeGenerator()
        service = build_service(reranker=BatchLLMReranker(generator), rerank_enabled=False)
        service.retrieve_relevant_knowledge("find x", limit=2)
        assert generator.prompts == []

    def test_noop_reranker_keeps_similarity_order(self):
        service = build_service(reranker=NoOpReranker())
        results = service.retrieve_relevant_knowledge("find x", limit=2)
        assert [r.document.id for r in results] == ["x1", "x2"]
        assert all(r.score == 1.0 for r in results)


class TestOutcome:
    def test_default_limit_is_rerank_top_k(self):
        service = build_service(rerank_enabled=False, rerank_top_k=2)
        assert len(service.retrieve_relevant_knowledge("find x")) == 2

    def test_clean_retrieval_is_not_degraded(self):
        outcome = build_service(rerank_enabled=False).retrieve_relevant_knowledge_outcome("find x", limit=2)
        assert not outcome.degraded
        assert [r.document.id for r in outcome.value] == ["x1", "x2"]

    def test_skipped_variant_reported(self):
        embedder = FakeEmbedder(VECTORS, failing=["find y"])
        service = build_service(rewriter=FixedRewriter("find y"), embedder=embedder, rerank_enabled=False)
        outcome = service.retrieve_relevant_knowledge_outcome("find x", limit=2)
        assert outcome.degraded
        assert "variant 1 skipped" in outcome.reason
        assert [r.document.id for r in outcome.value] == ["x1", "x2"]

    def test_rerank_failure_reported(self):
        service = build_service(reranker=BatchLLMReranker(FakeGenerator(["garbage"])))
        outcome = service.retrieve_relevant_knowledge_outcome("find x", limit=2)
        assert outcome.degraded
        assert outcome.reason.startswith("rerank:")
        assert [r.document.id for r in outcome.value] == ["x1", "x2"]


class TestCancellation:
    def test_cancelled_before_start(self):
        service = build_service()
        event = threading.Event()
        event.set()
        with pytest.raises(RetrievalCancelledError):
            service.retrieve_relevant_knowledge("find x", limit=2, cancel_event=event)

    def test_cancelled_during_search(self):
        event = threading.Event()

        class CancellingEmbedder(FakeEmbedder):
            def embed_batch(self, texts):
                event.set()
                return super().embed_batch(texts)

        service = build_service(rewriter=FixedRewriter("find y"), embedder=CancellingEmbedder(VECTORS))
        with pytest.raises(RetrievalCancelledError) as exc_info:
            service.retrieve_relevant_knowledge("find x", limit=2, cancel_event=event)
        assert exc_info.value.stage == "search"


# ---------------------------------------------------------------------------
# Indexing
# ---------------------------------------------------------------------------

class TestIndexing:
    def test_index_embeds_missing_vectors(self):
        embedder = FakeEmbedder({"apples": [1.0, 0.0, 0.0], "pears": [0.0, 1.0, 0.0]})
        service = KnowledgeService(KnowledgeConfig(rerank_enabled=False), InMemoryVectorIndex(3), embedder)
        collection = KnowledgeCollection(
            id="fruit",
            documents=[
                Document.from_text("apples"),
                Document.from_text("pears"),
                Document.from_text("kept", embedding=[0.0, 0.0, 1.0]),
            ],
        )
        assert service.index_knowledge(collection) == "fruit"
        assert embedder.calls == [["apples", "pears"]]
        assert collection.documents[0].embedding is None

        results = service.retrieve_relevant_knowledge("apples", limit=1)
        assert results[0].document.text == "apples"

    def test_reindex_is_idempotent(self):
        service = KnowledgeService(KnowledgeConfig(rerank_enabled=False), InMemoryVectorIndex(3),
                                   FakeEmbedder(default=[1.0, 0.0, 0.0]))
        service.index_knowledge_from_map("faq", [{"title": "old answer"}])
        service.index_knowledge_from_map("faq", [{"title": "new answer"}])

        results = service.retrieve_relevant_knowledge("anything", limit=5)
        assert [r.document.text for r in results] == ["new answer"]

    def test_index_from_map(self):
        service = KnowledgeService(KnowledgeConfig(rerank_enabled=False), InMemoryVectorIndex(3),
                                   FakeEmbedder(default=[1.0, 0.0, 0.0]))
        service.index_knowledge_from_map("people", [{"name": "Ada", "role": "engineer"}, {"age": 3}])
        stored = service.get_knowledge("people")
        assert stored.source.type == "map"
        assert len(stored.documents) == 1
        assert stored.documents[0].metadata["role"] == "engineer"

    def test_index_from_empty_map_raises(self):
        service = KnowledgeService(KnowledgeConfig(), InMemoryVectorIndex(3), FakeEmbedder())
        with pytest.raises(ValueError, match="no documents"):
            service.index_knowledge_from_map("empty", [{"count": 1}])

    def test_embedding_failure_propagates(self):
        service = KnowledgeService(KnowledgeConfig(), InMemoryVectorIndex(3), FakeEmbedder(failing=["bad"]))
        with pytest.raises(EmbeddingError):
            service.index_knowledge(KnowledgeCollection(id="k", documents=[Document.from_text("bad")]))

    def test_delete_and_close(self):
        service = build_service()
        service.delete_knowledge("kb")
        assert service.get_knowledge("kb") is None
        service.close()
        assert service.index.closed


class TestConstruction:
    def test_invalid_weight_rejected(self):
        with pytest.raises(ConfigurationError):
            KnowledgeService(KnowledgeConfig(rewritten_query_weight=1.5), InMemoryVectorIndex())

    def test_create_vector_index_memory(self):
        assert isinstance(create_vector_index(KnowledgeConfig()), InMemoryVectorIndex)

    def test_sqlite_backend_needs_dimension(self):
        with pytest.raises(ConfigurationError):
            create_vector_index(KnowledgeConfig(backend="sqlite"))

    def test_from_config_wires_components(self):
        config = KnowledgeConfig(query_rewrite_enabled=True, query_rewrite_strategy="expansion",
                                 use_batch_rerank=False)
        service = KnowledgeService.from_config(config, generator=FakeGenerator(), embedder=FakeEmbedder())
        assert isinstance(service.reranker, PointwiseLLMReranker)
        assert type(service.rewriter).__name__ == "QueryExpansionRewriter"

    def test_from_config_without_generator(self):
        service = KnowledgeService.from_config(KnowledgeConfig(), embedder=FakeEmbedder())
        assert service.reranker is None
        assert isinstance(service.rewriter, NoOpQueryRewriter)
