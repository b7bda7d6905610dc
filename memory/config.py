from dataclasses import dataclass
import os

from common.exceptions import ConfigurationError


@dataclass
class MemoryConfig:
    embedding_provider: str = "ollama"
    embedding_model: str = "nomic-embed-text"
    ollama_base_url: str = "http://localhost:11434"
    search_limit: int = 5

    @classmethod
    def from_env(cls) -> "MemoryConfig":
        limit = os.environ.get("MEMORY_SEARCH_LIMIT")
        return cls(
            embedding_provider=os.environ.get("MEMORY_EMBEDDING_PROVIDER", cls.embedding_provider),
            embedding_model=os.environ.get("MEMORY_EMBEDDING_MODEL", cls.embedding_model),
            ollama_base_url=os.environ.get("OLLAMA_BASE_URL", cls.ollama_base_url),
            search_limit=int(limit) if limit else cls.search_limit,
        )

    def validate(self) -> None:
        if self.search_limit < 1:
            raise ConfigurationError("search_limit must be at least 1", str(self.search_limit))
