"""Dispatch ``provider/model`` references to the matching TextGenerator."""

from __future__ import annotations

from typing import Any, Optional

from common.exceptions import ConfigurationError
from common.logging_config import get_logger

from .base import TextGenerator

logger = get_logger(__name__)


def split_model_reference(reference: str) -> tuple[str, str]:
    """Split ``"openai/gpt-5-mini"`` into ``("openai", "gpt-5-mini")``."""
    provider, sep, name = reference.partition("/")
    if not sep or not provider or not name:
        raise ConfigurationError(
            "Model reference must look like 'provider/model'", reference
        )
    return provider.lower(), name


class ModelRouter:
    def __init__(self, providers: dict[str, TextGenerator], default_model: str):
        if not providers:
            raise ConfigurationError("ModelRouter needs at least one provider")
        self.providers = {name.lower(): gen for name, gen in providers.items()}
        split_model_reference(default_model)
        self.default_model = default_model

    def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        output_schema: Optional[dict[str, Any]] = None,
    ) -> str:
        provider, name = split_model_reference(model or self.default_model)
        generator = self.providers.get(provider)
        if generator is None:
            raise ConfigurationError(
                f"Unknown model provider '{provider}'",
                f"Known: {sorted(self.providers)}",
            )
        logger.debug("Routing generation to %s/%s", provider, name)
        return generator.generate(prompt, model=name, output_schema=output_schema)
