from typing import Any, Optional, Protocol, runtime_checkable

import ollama
from openai import OpenAI, OpenAIError

from common.exceptions import ConfigurationError, EmbeddingError
from common.logging_config import get_logger

logger = get_logger(__name__)


@runtime_checkable
class Embedder(Protocol):
    def embed(self, text: str) -> list[float]:
        ...

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        ...


class OllamaEmbedder:
    def __init__(
        self,
        model: str = "nomic-embed-text",
        base_url: str = "http://localhost:11434",
        client: Optional[Any] = None,
    ):
        self.model = model
        self.base_url = base_url
        self._client = client or ollama.Client(host=base_url)
        self._dimensions: Optional[int] = None

    @property
    def dimensions(self) -> Optional[int]:
        return self._dimensions

    def embed(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed ``texts`` in one call; blank entries map to empty vectors."""
        if not texts:
            return []

        non_empty: list[tuple[int, str]] = [
            (i, t) for i, t in enumerate(texts) if t and t.strip()
        ]
        if not non_empty:
            return [[] for _ in texts]

        try:
            input_texts = [t for _, t in non_empty]
            response = self._client.embed(model=self.model, input=input_texts)
            embeddings = response["embeddings"]
        except ollama.ResponseError as e:
            raise EmbeddingError(
                f"Ollama embedding failed for model '{self.model}'", e
            ) from e
        except Exception as e:
            if "Connection" in type(e).__name__ or "refused" in str(e).lower():
                raise EmbeddingError(
                    f"Cannot connect to Ollama at {self.base_url}. "
                    f"Is Ollama running? Start it with: ollama serve",
                    e,
                ) from e
            raise EmbeddingError("Embedding generation failed", e) from e

        if len(embeddings) != len(non_empty):
            raise EmbeddingError(
                f"Ollama returned {len(embeddings)} embeddings for {len(non_empty)} texts"
            )
        if embeddings:
            self._dimensions = len(embeddings[0])

        result: list[list[float]] = [[] for _ in texts]
        for (orig_idx, _), embedding in zip(non_empty, embeddings):
            result[orig_idx] = list(embedding)
        return result

    def health_check(self) -> dict[str, bool | str]:
        result = {
            "healthy": False,
            "ollama_running": False,
            "model_available": False,
            "model": self.model,
            "error": "",
        }

        try:
            models = self._client.list()
            result["ollama_running"] = True

            model_names = [m.model for m in models.models]
            result["model_available"] = any(
                m.startswith(self.model) for m in model_names
            )

            if not result["model_available"]:
                result["error"] = (
                    f"Model '{self.model}' not found. "
                    f"Pull it with: ollama pull {self.model}"
                )
            else:
                result["healthy"] = True

        except Exception as e:
            result["error"] = f"Cannot connect to Ollama: {e}"

        return result


class OpenAIEmbedder:
    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        client: Optional[Any] = None,
        timeout: int = 60,
    ):
        self.model = model
        if client is not None:
            self._client = client
        else:
            if not api_key:
                raise ConfigurationError("OpenAI API key not found", "Set OPENAI_API_KEY or pass a client")
            self._client = OpenAI(api_key=api_key, timeout=timeout)

    def embed(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            response = self._client.embeddings.create(model=self.model, input=texts)
        except OpenAIError as e:
            raise EmbeddingError(f"OpenAI embedding failed for model '{self.model}'", e) from e
        data = sorted(response.data, key=lambda item: item.index)
        if len(data) != len(texts):
            raise EmbeddingError(
                f"OpenAI returned {len(data)} embeddings for {len(texts)} texts"
            )
        logger.debug("Embedded %d texts with %s", len(texts), self.model)
        return [list(item.embedding) for item in data]


def create_embedder(provider: str, model: str, base_url: str = "http://localhost:11434", api_key: Optional[str] = None):
    provider = provider.lower()
    if provider == "ollama":
        return OllamaEmbedder(model=model, base_url=base_url)
    if provider == "openai":
        return OpenAIEmbedder(model=model, api_key=api_key)
    raise ConfigurationError(f"Unknown embedding provider '{provider}'", "Expected 'ollama' or 'openai'")
