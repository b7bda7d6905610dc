"""
Custom Exceptions for the retrieval and context-budgeting core.

Exception Hierarchy:
    ContextPipelineError (base)
    ├── ConfigurationError
    ├── EmbeddingError
    ├── GenerationError
    │   ├── LLMConnectionError
    │   └── LLMResponseError
    ├── TokenCountError
    ├── StoreError
    │   ├── IndexClosedError
    │   └── DuplicateMemoryKeyError
    ├── DocumentLoadError
    ├── RerankError
    └── RetrievalError
        └── RetrievalCancelledError

Configuration errors are fatal and never retried. Partial-capability
failures (one embedding, one rerank call) are caught by the pipeline and
logged; only failures that would produce a wrong answer reach the caller.

Usage:
    from common.exceptions import RetrievalError, DuplicateMemoryKeyError

    try:
        results = service.retrieve_relevant_knowledge("query", limit=5)
    except RetrievalError as e:
        print(f"Retrieval failed: {e}")
"""

from __future__ import annotations

from typing import Optional


# =============================================================================
# BASE EXCEPTION
# =============================================================================


class ContextPipelineError(Exception):
    """
    Base exception for all errors raised by the core.

    Attributes:
        message: Human-readable error description
        details: Additional technical details (optional)
        original_error: The underlying exception, if any
    """

    def __init__(
        self,
        message: str = "A context pipeline error occurred",
        details: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.original_error = original_error
        if details is None and original_error is not None:
            details = str(original_error)
        self.details = details

        full_message = message
        if details:
            full_message = f"{message} | Details: {details}"

        super().__init__(full_message)


class ConfigurationError(ContextPipelineError):
    """Raised when a component is missing required configuration."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[str] = None):
        super().__init__(message, details)


# =============================================================================
# CAPABILITY ERRORS
# =============================================================================


class EmbeddingError(ContextPipelineError):
    """Raised when the embedder cannot produce vectors."""

    def __init__(
        self,
        message: str = "Embedding generation failed",
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message, original_error=original_error)


class GenerationError(ContextPipelineError):
    """
    Base class for language-model failures.

    Attributes:
        model: Model reference the call was made against
        status_code: HTTP status code if available
    """

    def __init__(
        self,
        message: str = "Text generation failed",
        model: Optional[str] = None,
        original_error: Optional[Exception] = None,
        status_code: Optional[int] = None,
    ):
        self.model = model
        self.status_code = status_code
        if model:
            message = f"{message} [{model}]"
        if status_code:
            message = f"{message} (HTTP {status_code})"
        super().__init__(message, original_error=original_error)


class LLMConnectionError(GenerationError):
    """Raised when the model endpoint cannot be reached."""

    def __init__(
        self,
        message: str = "Cannot connect to language model",
        model: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message, model, original_error)


class LLMResponseError(GenerationError):
    """
    Raised when the model returns an empty or unusable reply.

    Attributes:
        response_content: Raw response content if available
    """

    def __init__(
        self,
        message: str = "Invalid model response",
        response_content: Optional[str] = None,
        model: Optional[str] = None,
    ):
        self.response_content = response_content
        super().__init__(message, model)
        if response_content:
            self.details = response_content[:500]


class TokenCountError(ContextPipelineError):
    """Raised when the token counter cannot measure a request."""

    pass


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StoreError(ContextPipelineError):
    """Base class for vector index and memory store failures."""

    pass


class IndexClosedError(StoreError):
    """Raised when an index is used after close()."""

    def __init__(self, backend: str):
        self.backend = backend
        super().__init__(f"{backend} index is closed")


class DuplicateMemoryKeyError(StoreError):
    """
    Raised when a memory is inserted under a key that already exists.

    Overwrites must go through the explicit replace operation.

    Attributes:
        key: The conflicting memory key
    """

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"memory with key '{key}' already exists")


# =============================================================================
# LOADING ERRORS
# =============================================================================


class DocumentLoadError(ContextPipelineError):
    """
    Raised when a PDF or web page cannot be read into a collection.

    Attributes:
        source: Path or URL that failed to load
    """

    def __init__(self, source: str, details: Optional[str] = None, original_error: Optional[Exception] = None):
        self.source = source
        super().__init__(f"Cannot load {source}", details, original_error)


# =============================================================================
# PIPELINE ERRORS
# =============================================================================


class RerankError(ContextPipelineError):
    """Raised when a reranker cannot score a candidate batch."""

    pass


class RetrievalError(ContextPipelineError):
    """Raised when no retrieval path produced an answer."""

    pass


class RetrievalCancelledError(RetrievalError):
    """Raised when the caller cancels an in-flight retrieval."""

    def __init__(self, stage: str):
        self.stage = stage
        super().__init__(f"retrieval cancelled during {stage}")


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """
    Check if an error is potentially recoverable by retrying.

    Connection problems and 5xx responses are retryable; configuration
    errors and duplicate keys never are.
    """
    if isinstance(error, LLMConnectionError):
        return True
    if isinstance(error, GenerationError) and error.status_code in (429, 500, 502, 503, 504):
        return True
    return False


def format_error_chain(error: Exception) -> str:
    """
    Format an exception and its chain for logging.

    Returns a multi-line string showing the error hierarchy.
    """
    lines = []
    current = error
    depth = 0

    while current is not None:
        prefix = "  " * depth + ("└─ " if depth > 0 else "")
        lines.append(f"{prefix}{type(current).__name__}: {current}")

        if getattr(current, "original_error", None):
            current = current.original_error
            depth += 1
        elif current.__cause__:
            current = current.__cause__
            depth += 1
        else:
            break

    return "\n".join(lines)
