"""
Shared building blocks: logging setup, the exception hierarchy and the
degradation-aware ``Outcome`` value.
"""

from .exceptions import (
    ConfigurationError,
    ContextPipelineError,
    DocumentLoadError,
    DuplicateMemoryKeyError,
    EmbeddingError,
    GenerationError,
    IndexClosedError,
    LLMConnectionError,
    LLMResponseError,
    RerankError,
    RetrievalCancelledError,
    RetrievalError,
    StoreError,
    TokenCountError,
    format_error_chain,
    is_retryable,
)
from .logging_config import get_logger, setup_logging
from .outcome import Outcome

__all__ = [
    "ConfigurationError",
    "ContextPipelineError",
    "DocumentLoadError",
    "DuplicateMemoryKeyError",
    "EmbeddingError",
    "GenerationError",
    "IndexClosedError",
    "LLMConnectionError",
    "LLMResponseError",
    "RerankError",
    "RetrievalCancelledError",
    "RetrievalError",
    "StoreError",
    "TokenCountError",
    "format_error_chain",
    "is_retryable",
    "get_logger",
    "setup_logging",
    "Outcome",
]
