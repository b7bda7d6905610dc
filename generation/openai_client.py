"""
OpenAI chat-completions backend for the TextGenerator capability.

Retries rate limits, connection drops and 5xx responses with exponential
backoff; every other API error is raised immediately.
"""

from __future__ import annotations

import time
from typing import Any, Optional

from openai import OpenAI, APIError as OpenAIAPIError, RateLimitError, APIConnectionError as OpenAIConnectionError

from common.exceptions import (
    ConfigurationError,
    GenerationError,
    LLMConnectionError,
    LLMResponseError,
)
from common.logging_config import get_logger

from .config import GenerationConfig

logger = get_logger(__name__)


class OpenAIGenerator:
    """TextGenerator using the OpenAI SDK."""

    def __init__(
        self,
        config: Optional[GenerationConfig] = None,
        client: Optional[Any] = None,
        model: str = "gpt-5-mini",
    ):
        self.config = config or GenerationConfig()
        self.model = model
        if client is not None:
            self.client = client
        else:
            if not self.config.openai_api_key:
                raise ConfigurationError(
                    "OpenAI API key not found",
                    "Set OPENAI_API_KEY or pass a client",
                )
            kwargs: dict[str, Any] = {
                "api_key": self.config.openai_api_key,
                "timeout": self.config.timeout,
            }
            if self.config.openai_base_url:
                kwargs["base_url"] = self.config.openai_base_url
            self.client = OpenAI(**kwargs)

    def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        output_schema: Optional[dict[str, Any]] = None,
    ) -> str:
        model_name = model or self.model
        request: dict[str, Any] = {
            "model": model_name,
            "messages": [{"role": "user", "content": prompt}],
        }
        if output_schema:
            request["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "response", "schema": output_schema},
            }

        response = self._call_with_retry(request)

        choice = response.choices[0]
        content = choice.message.content or ""
        if choice.finish_reason == "content_filter":
            raise LLMResponseError("Response blocked by content filter", content, model_name)
        if not content.strip():
            raise LLMResponseError("Empty response from API", content, model_name)
        return content

    def _call_with_retry(self, request: dict[str, Any]) -> Any:
        """
        Make API call with retry logic.

        Uses exponential backoff for retries.
        """
        model_name = request["model"]
        last_error: Optional[Exception] = None
        delay = self.config.retry_delay

        for attempt in range(self.config.max_retries):
            try:
                logger.debug(f"API call attempt {attempt + 1}/{self.config.max_retries}")
                return self.client.chat.completions.create(**request)

            except RateLimitError as e:
                logger.warning(f"Rate limit hit, waiting {delay}s...")
                last_error = e

            except OpenAIConnectionError as e:
                logger.warning(f"Connection error, retrying in {delay}s...")
                last_error = e

            except OpenAIAPIError as e:
                status_code = getattr(e, "status_code", None)
                if status_code is not None and status_code >= 500:
                    logger.warning(f"Server error ({status_code}), retrying...")
                    last_error = e
                else:
                    raise GenerationError(str(e), model_name, e, status_code) from e

            if attempt < self.config.max_retries - 1:
                time.sleep(delay)
                delay *= 2

        # All retries exhausted
        if isinstance(last_error, OpenAIConnectionError):
            raise LLMConnectionError(model=model_name, original_error=last_error)
        raise GenerationError(
            "Max retries exceeded",
            model_name,
            last_error,
            getattr(last_error, "status_code", None),
        )
