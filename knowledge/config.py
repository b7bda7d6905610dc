from dataclasses import dataclass
import os
from typing import Optional

from common.exceptions import ConfigurationError

BACKENDS = ("memory", "sqlite", "chroma")


@dataclass
class KnowledgeConfig:
    backend: str = "memory"
    sqlite_path: str = ":memory:"
    chroma_path: str = "data/knowledge"
    chroma_collection: str = "knowledge_documents"
    vector_dimension: Optional[int] = None

    embedding_provider: str = "ollama"
    embedding_model: str = "nomic-embed-text"
    ollama_base_url: str = "http://localhost:11434"

    rerank_enabled: bool = True
    rerank_model: str = "openai/gpt-5-mini"
    rerank_top_k: int = 10
    retrieval_factor: int = 3
    use_batch_rerank: bool = True

    query_rewrite_enabled: bool = False
    query_rewrite_strategy: str = "hyde"
    query_rewrite_model: str = "openai/gpt-5-mini"
    rewritten_query_weight: float = 0.9

    @classmethod
    def from_env(cls) -> "KnowledgeConfig":
        def _int(name: str, default: Optional[int]) -> Optional[int]:
            value = os.environ.get(name)
            return int(value) if value else default

        def _float(name: str, default: float) -> float:
            value = os.environ.get(name)
            return float(value) if value else default

        def _bool(name: str, default: bool) -> bool:
            value = os.environ.get(name)
            if not value:
                return default
            return value.strip().lower() in ("1", "true", "yes", "on")

        return cls(
            backend=os.environ.get("KNOWLEDGE_BACKEND", cls.backend),
            sqlite_path=os.environ.get("KNOWLEDGE_SQLITE_PATH", cls.sqlite_path),
            chroma_path=os.environ.get("KNOWLEDGE_CHROMA_PATH", cls.chroma_path),
            chroma_collection=os.environ.get("KNOWLEDGE_CHROMA_COLLECTION", cls.chroma_collection),
            vector_dimension=_int("KNOWLEDGE_VECTOR_DIMENSION", cls.vector_dimension),
            embedding_provider=os.environ.get("KNOWLEDGE_EMBEDDING_PROVIDER", cls.embedding_provider),
            embedding_model=os.environ.get("KNOWLEDGE_EMBEDDING_MODEL", cls.embedding_model),
            ollama_base_url=os.environ.get("OLLAMA_BASE_URL", cls.ollama_base_url),
            rerank_enabled=_bool("KNOWLEDGE_RERANK_ENABLED", cls.rerank_enabled),
            rerank_model=os.environ.get("KNOWLEDGE_RERANK_MODEL", cls.rerank_model),
            rerank_top_k=_int("KNOWLEDGE_RERANK_TOP_K", cls.rerank_top_k),
            retrieval_factor=_int("KNOWLEDGE_RETRIEVAL_FACTOR", cls.retrieval_factor),
            use_batch_rerank=_bool("KNOWLEDGE_RERANK_BATCH", cls.use_batch_rerank),
            query_rewrite_enabled=_bool("KNOWLEDGE_QUERY_REWRITE_ENABLED", cls.query_rewrite_enabled),
            query_rewrite_strategy=os.environ.get("KNOWLEDGE_QUERY_REWRITE_STRATEGY", cls.query_rewrite_strategy),
            query_rewrite_model=os.environ.get("KNOWLEDGE_QUERY_REWRITE_MODEL", cls.query_rewrite_model),
            rewritten_query_weight=_float("KNOWLEDGE_REWRITTEN_QUERY_WEIGHT", cls.rewritten_query_weight),
        )

    def validate(self) -> None:
        if self.backend not in BACKENDS:
            raise ConfigurationError(f"Unknown knowledge backend '{self.backend}'", f"Expected one of {BACKENDS}")
        if self.backend == "sqlite" and not self.vector_dimension:
            raise ConfigurationError("The sqlite backend requires vector_dimension")
        if self.vector_dimension is not None and self.vector_dimension <= 0:
            raise ConfigurationError("vector_dimension must be positive", str(self.vector_dimension))
        if self.retrieval_factor < 1:
            raise ConfigurationError("retrieval_factor must be at least 1", str(self.retrieval_factor))
        if self.rerank_top_k < 1:
            raise ConfigurationError("rerank_top_k must be at least 1", str(self.rerank_top_k))
        if not 0.0 < self.rewritten_query_weight <= 1.0:
            raise ConfigurationError(
                "rewritten_query_weight must be in (0, 1]", str(self.rewritten_query_weight)
            )
