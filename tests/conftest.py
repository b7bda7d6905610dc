"""
Pytest fixtures and fakes shared by the test suite.
"""

from typing import Any, Callable, Optional, Sequence, Union

import pytest

from common.exceptions import EmbeddingError, GenerationError, TokenCountError
from conversation.models import ConversationTurn, RequestContext
from knowledge.models import Document, KnowledgeCollection


class FakeEmbedder:
    """Embeds by table lookup; unknown texts get ``default``."""

    def __init__(
        self,
        vectors: Optional[dict[str, list[float]]] = None,
        default: Optional[list[float]] = None,
        failing: Sequence[str] = (),
    ):
        self.vectors = vectors or {}
        self.default = default if default is not None else [0.0, 0.0, 1.0]
        self.failing = set(failing)
        self.calls: list[list[str]] = []

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        for text in texts:
            if text in self.failing:
                raise EmbeddingError(f"cannot embed {text!r}")
        return [list(self.vectors.get(t, self.default)) for t in texts]


Reply = Union[str, Exception, Callable[[str], str]]


class FakeGenerator:
    """Returns queued replies in order, then ``default``; records prompts."""

    def __init__(self, replies: Sequence[Reply] = (), default: Reply = ""):
        self.replies = list(replies)
        self.default = default
        self.prompts: list[str] = []
        self.calls: list[dict[str, Any]] = []

    def generate(self, prompt: str, model: Optional[str] = None, output_schema: Optional[dict] = None) -> str:
        self.prompts.append(prompt)
        self.calls.append({"prompt": prompt, "model": model, "output_schema": output_schema})
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(prompt)
        return reply


class WordCounter:
    """One token per whitespace-separated word, plus ``extra_tokens``."""

    def __init__(self, fail_for_lengths: Sequence[int] = ()):
        self.fail_for_lengths = set(fail_for_lengths)
        self.calls = 0

    def count_tokens(self, turns: Sequence[ConversationTurn], request: RequestContext) -> int:
        self.calls += 1
        if len(turns) in self.fail_for_lengths:
            raise TokenCountError(f"cannot count {len(turns)} turns")
        total = request.extra_tokens + len(request.message.split()) + len(request.instructions.split())
        return total + sum(len(t.text.split()) for t in turns)


def make_turns(n: int, words: int = 10) -> list[ConversationTurn]:
    return [
        ConversationTurn(
            speaker="user" if i % 2 == 0 else "assistant",
            text=" ".join(f"w{i}" for _ in range(words)),
        )
        for i in range(n)
    ]


def make_collection(collection_id: str, docs: dict[str, list[float]]) -> KnowledgeCollection:
    return KnowledgeCollection(
        id=collection_id,
        documents=[
            Document.from_text(f"text of {doc_id}", id=doc_id, embedding=vector)
            for doc_id, vector in docs.items()
        ],
    )


@pytest.fixture
def generation_error():
    return GenerationError("model unavailable", model="openai/gpt-5-mini")


@pytest.fixture
def axis_collection():
    """A/B/C on the x axis, y axis and negative x axis."""
    return make_collection(
        "axes",
        {"A": [1.0, 0.0, 0.0], "B": [0.0, 1.0, 0.0], "C": [-1.0, 0.0, 0.0]},
    )
