from dataclasses import dataclass
import os

from common.exceptions import ConfigurationError


@dataclass
class GenerationConfig:
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.1:latest"
    openai_api_key: str = ""
    openai_base_url: str = ""
    default_model: str = "openai/gpt-5-mini"
    temperature: float = 0.2
    output_tokens: int = 1024
    timeout: int = 120
    max_retries: int = 3
    retry_delay: float = 1.0

    @classmethod
    def from_env(cls) -> "GenerationConfig":
        def _int(name: str, default: int) -> int:
            value = os.environ.get(name)
            return int(value) if value else default

        def _float(name: str, default: float) -> float:
            value = os.environ.get(name)
            return float(value) if value else default

        return cls(
            ollama_base_url=os.environ.get("OLLAMA_BASE_URL", cls.ollama_base_url),
            ollama_model=os.environ.get("OLLAMA_MODEL", cls.ollama_model),
            openai_api_key=os.environ.get("OPENAI_API_KEY", cls.openai_api_key),
            openai_base_url=os.environ.get("OPENAI_BASE_URL", cls.openai_base_url),
            default_model=os.environ.get("GENERATION_DEFAULT_MODEL", cls.default_model),
            temperature=_float("GENERATION_TEMPERATURE", cls.temperature),
            output_tokens=_int("GENERATION_OUTPUT_TOKENS", cls.output_tokens),
            timeout=_int("GENERATION_TIMEOUT", cls.timeout),
            max_retries=_int("GENERATION_MAX_RETRIES", cls.max_retries),
            retry_delay=_float("GENERATION_RETRY_DELAY", cls.retry_delay),
        )

    def validate(self) -> None:
        if "/" not in self.default_model:
            raise ConfigurationError(
                "default_model must be a 'provider/model' reference",
                self.default_model,
            )
        if self.timeout <= 0:
            raise ConfigurationError("timeout must be positive", str(self.timeout))
        if self.max_retries < 1:
            raise ConfigurationError("max_retries must be at least 1", str(self.max_retries))
