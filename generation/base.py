"""Language-model capability consumed by rewriters, rerankers and the summarizer."""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class TextGenerator(Protocol):
    """Anything that turns a prompt into text.

    ``model`` is an optional ``provider/model`` reference; ``output_schema``
    is a JSON schema the reply should follow when the backend supports
    structured output.
    """

    def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        output_schema: Optional[dict[str, Any]] = None,
    ) -> str:
        ...
