"""LLM-based rerankers for retrieval candidates.

Candidates are plain texts; results carry the candidate's position so the
caller can map scores back to whatever the text came from. Scores are
normalised to [0, 1], ordering is descending and stable on ties.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional, Sequence, Union

from common.exceptions import ConfigurationError, RerankError
from common.logging_config import get_logger
from generation.base import TextGenerator
from generation.json_utils import parse_json_value

from .models import RerankResult
from .prompts import (
    BATCH_RERANK_PROMPT_TEMPLATE,
    BATCH_RERANK_SCHEMA,
    POINTWISE_RERANK_PROMPT_TEMPLATE,
    format_numbered_documents,
)

_NUMBER_RE = re.compile(r"[-+]?\d+(?:\.\d+)?")


class RerankStrategy(str, Enum):
    NONE = "none"
    POINTWISE = "pointwise"
    BATCH = "batch"


def _clamp(score: float) -> float:
    return min(max(float(score), 0.0), 1.0)


def _normalise(raw_score: Any) -> float:
    """Map a 0-10 model score onto [0, 1]."""
    return _clamp(float(raw_score) / 10.0)


def parse_score(text: str) -> float:
    """First number in a model reply, as a 0-10 score normalised to [0, 1]."""
    match = _NUMBER_RE.search(text or "")
    if match is None:
        raise ValueError(f"no score in reply: {text!r}")
    return _normalise(match.group(0))


class Reranker(ABC):
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or get_logger(__name__)

    @abstractmethod
    def _score(self, query: str, candidates: list[str]) -> list[float]:
        """One score in [0, 1] per candidate."""

    def rerank(self, query: str, candidates: Sequence[str], top_k: int) -> list[RerankResult]:
        if top_k <= 0 or not candidates:
            return []
        texts = list(candidates)
        scores = self._score(query, texts)
        results = [
            RerankResult(content=text, score=_clamp(score), index=i)
            for i, (text, score) in enumerate(zip(texts, scores))
        ]
        results.sort(key=lambda r: r.score, reverse=True)
        return results[:top_k]


class NoOpReranker(Reranker):
    """Keeps the input order and truncates."""

    def _score(self, query: str, candidates: list[str]) -> list[float]:
        return [1.0] * len(candidates)


class PointwiseLLMReranker(Reranker):
    """One model call per candidate; a failed call scores the candidate 0."""

    def __init__(
        self,
        generator: TextGenerator,
        model: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(logger)
        self.generator = generator
        self.model = model

    def _score(self, query: str, candidates: list[str]) -> list[float]:
        return [self._score_one(query, text) for text in candidates]

    def _score_one(self, query: str, text: str) -> float:
        prompt = POINTWISE_RERANK_PROMPT_TEMPLATE.format(query=query, document=text)
        try:
            reply = self.generator.generate(prompt, model=self.model)
            return parse_score(reply)
        except Exception as exc:
            self.logger.warning("Relevance scoring failed, using 0: %s", exc)
            return 0.0


class BatchLLMReranker(Reranker):
    """Scores every candidate in a single model call.

    The reply lists ``{"index", "score"}`` pairs with 1-based indices,
    either as a bare array or under a ``scores`` key. Candidates the model
    leaves out score 0. An unusable reply raises RerankError.
    """

    def __init__(
        self,
        generator: TextGenerator,
        model: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(logger)
        self.generator = generator
        self.model = model

    def _score(self, query: str, candidates: list[str]) -> list[float]:
        prompt = BATCH_RERANK_PROMPT_TEMPLATE.format(
            query=query, documents=format_numbered_documents(candidates)
        )
        try:
            reply = self.generator.generate(prompt, model=self.model, output_schema=BATCH_RERANK_SCHEMA)
        except Exception as exc:
            raise RerankError("Batch rerank call failed", original_error=exc) from exc

        entries = self._entries(reply)
        scores = [0.0] * len(candidates)
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            try:
                index = int(entry["index"])
                score = _normalise(entry["score"])
            except (KeyError, TypeError, ValueError):
                continue
            if 1 <= index <= len(candidates):
                scores[index - 1] = score
        return scores

    @staticmethod
    def _entries(reply: str) -> list[Any]:
        data = parse_json_value(reply)
        if isinstance(data, dict):
            data = data.get("scores")
        if not isinstance(data, list):
            raise RerankError("Unparsable batch rerank reply", (reply or "")[:500])
        return data


def create_reranker(
    strategy: Union[RerankStrategy, str],
    generator: Optional[TextGenerator] = None,
    model: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> Reranker:
    try:
        strategy = RerankStrategy(strategy)
    except ValueError as exc:
        raise ConfigurationError(
            f"Unknown rerank strategy '{strategy}'",
            f"Expected one of {[s.value for s in RerankStrategy]}",
        ) from exc

    if strategy is RerankStrategy.NONE:
        return NoOpReranker(logger)
    if generator is None:
        raise ConfigurationError(f"Rerank strategy '{strategy.value}' needs a text generator")
    if strategy is RerankStrategy.POINTWISE:
        return PointwiseLLMReranker(generator, model, logger)
    return BatchLLMReranker(generator, model, logger)
