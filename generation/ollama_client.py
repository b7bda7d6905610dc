from __future__ import annotations

from typing import Any, Optional

from common.exceptions import LLMResponseError
from common.logging_config import get_logger

from .config import GenerationConfig
from .http_client import post_json

logger = get_logger(__name__)


def chat(
    base_url: str,
    model: str,
    user_prompt: str,
    response_schema: Optional[dict[str, Any]] = None,
    system_prompt: Optional[str] = None,
    temperature: float = 0.2,
    output_tokens: int = 512,
    timeout: int = 120,
) -> str:
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": user_prompt})

    payload: dict[str, Any] = {
        "model": model,
        "stream": False,
        "messages": messages,
        "options": {
            "temperature": temperature,
            "num_predict": output_tokens,
        },
    }
    if response_schema:
        payload["format"] = response_schema

    url = f"{base_url.rstrip('/')}/api/chat"
    response = post_json(url, payload, timeout=timeout)
    message = response.get("message", {})
    return message.get("content", "")


class OllamaGenerator:
    """TextGenerator backed by a local Ollama server."""

    def __init__(self, config: Optional[GenerationConfig] = None, system_prompt: Optional[str] = None):
        self.config = config or GenerationConfig()
        self.system_prompt = system_prompt

    def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        output_schema: Optional[dict[str, Any]] = None,
    ) -> str:
        model_name = model or self.config.ollama_model
        logger.debug("Ollama chat with model %s", model_name)
        content = chat(
            base_url=self.config.ollama_base_url,
            model=model_name,
            user_prompt=prompt,
            response_schema=output_schema,
            system_prompt=self.system_prompt,
            temperature=self.config.temperature,
            output_tokens=self.config.output_tokens,
            timeout=self.config.timeout,
        )
        if not content.strip():
            raise LLMResponseError("Empty response from Ollama", content, model_name)
        return content
