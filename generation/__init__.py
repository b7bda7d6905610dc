"""
Language-model capability.

Thin adapters that turn a prompt into text: Ollama over HTTP, OpenAI via
the SDK, and a router that picks one from a ``provider/model`` reference.
"""

__version__ = "1.0.0"

from .base import TextGenerator
from .config import GenerationConfig
from .ollama_client import OllamaGenerator
from .openai_client import OpenAIGenerator
from .router import ModelRouter, split_model_reference

__all__ = [
    "__version__",
    "TextGenerator",
    "GenerationConfig",
    "OllamaGenerator",
    "OpenAIGenerator",
    "ModelRouter",
    "split_model_reference",
]
