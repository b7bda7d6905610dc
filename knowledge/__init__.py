"""
Knowledge retrieval component.

Vector indexes (in-memory, SQLite + sqlite-vec, ChromaDB), embedders,
PDF and web page loaders, query rewriting, LLM reranking and the
orchestrating KnowledgeService.
"""

__version__ = "1.0.0"

from .chroma_index import ChromaVectorIndex
from .config import KnowledgeConfig
from .embedder import Embedder, OllamaEmbedder, OpenAIEmbedder, create_embedder
from .map_loader import collection_from_maps, extract_text_from_map
from .memory_index import InMemoryVectorIndex
from .models import (
    Document,
    ImageContent,
    KnowledgeCollection,
    RerankResult,
    SearchResult,
    SourceDescriptor,
    TextContent,
)
from .pdf_loader import collection_from_pdf
from .query_rewriter import (
    HyDERewriter,
    MultiStrategyRewriter,
    NoOpQueryRewriter,
    QueryExpansionRewriter,
    QueryRewriter,
    RewriteStrategy,
    create_query_rewriter,
)
from .rerank import (
    BatchLLMReranker,
    NoOpReranker,
    PointwiseLLMReranker,
    Reranker,
    RerankStrategy,
    create_reranker,
)
from .service import KnowledgeService, create_vector_index
from .sqlite_index import SqliteVectorIndex
from .url_loader import chunk_markdown, collection_from_urls, html_to_markdown
from .vector_index import VectorIndex, cosine_similarity

__all__ = [
    "__version__",
    "ChromaVectorIndex",
    "KnowledgeConfig",
    "Embedder",
    "OllamaEmbedder",
    "OpenAIEmbedder",
    "create_embedder",
    "collection_from_maps",
    "extract_text_from_map",
    "InMemoryVectorIndex",
    "Document",
    "ImageContent",
    "KnowledgeCollection",
    "RerankResult",
    "SearchResult",
    "SourceDescriptor",
    "TextContent",
    "collection_from_pdf",
    "HyDERewriter",
    "MultiStrategyRewriter",
    "NoOpQueryRewriter",
    "QueryExpansionRewriter",
    "QueryRewriter",
    "RewriteStrategy",
    "create_query_rewriter",
    "BatchLLMReranker",
    "NoOpReranker",
    "PointwiseLLMReranker",
    "Reranker",
    "RerankStrategy",
    "create_reranker",
    "KnowledgeService",
    "create_vector_index",
    "SqliteVectorIndex",
    "chunk_markdown",
    "collection_from_urls",
    "html_to_markdown",
    "VectorIndex",
    "cosine_similarity",
]
