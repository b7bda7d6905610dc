"""
Query rewriting strategies.

A rewriter turns one query into a list of search variants. The original
query is always the first variant, and a failing language model never
breaks retrieval: the rewriter falls back to the original query alone and
reports why through ``rewrite_outcome``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional, Sequence, Union

from common.exceptions import ConfigurationError, LLMResponseError
from common.logging_config import get_logger
from common.outcome import Outcome
from generation.base import TextGenerator
from generation.json_utils import safe_parse_json

from .prompts import EXPANSION_PROMPT_TEMPLATE, EXPANSION_SCHEMA, HYDE_PROMPT_TEMPLATE


class RewriteStrategy(str, Enum):
    NONE = "none"
    HYDE = "hyde"
    EXPANSION = "expansion"
    MULTI = "multi"


def merge_variants(query: str, variants: Sequence[str]) -> list[str]:
    """Original query first, then each variant not seen before, in order.

    Variants are compared by exact string; blank and non-string entries
    are dropped.
    """
    merged = [query]
    seen = {query}
    for variant in variants:
        if not isinstance(variant, str) or not variant.strip() or variant in seen:
            continue
        seen.add(variant)
        merged.append(variant)
    return merged


class QueryRewriter(ABC):
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or get_logger(__name__)

    @abstractmethod
    def _variants(self, query: str) -> list[str]:
        """Extra search variants for ``query``. May raise."""

    def rewrite_outcome(self, query: str) -> Outcome[list[str]]:
        try:
            variants = self._variants(query)
        except Exception as exc:
            self.logger.warning(
                "%s failed, searching with the original query only: %s",
                type(self).__name__,
                exc,
            )
            return Outcome.degrade([query], f"{type(self).__name__}: {exc}")
        return Outcome.ok(merge_variants(query, variants))

    def rewrite(self, query: str) -> list[str]:
        return self.rewrite_outcome(query).value


class NoOpQueryRewriter(QueryRewriter):
    def _variants(self, query: str) -> list[str]:
        return []


class HyDERewriter(QueryRewriter):
    """Hypothetical document embeddings: search with an imagined answer too."""

    def __init__(
        self,
        generator: TextGenerator,
        model: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(logger)
        self.generator = generator
        self.model = model

    def _variants(self, query: str) -> list[str]:
        prompt = HYDE_PROMPT_TEMPLATE.format(query=query)
        answer = self.generator.generate(prompt, model=self.model)
        return [answer.strip()]


class QueryExpansionRewriter(QueryRewriter):
    """Adds an LLM-reformulated query and a synonym-augmented query."""

    def __init__(
        self,
        generator: TextGenerator,
        model: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(logger)
        self.generator = generator
        self.model = model

    def _variants(self, query: str) -> list[str]:
        prompt = EXPANSION_PROMPT_TEMPLATE.format(query=query)
        raw = self.generator.generate(prompt, model=self.model, output_schema=EXPANSION_SCHEMA)
        data = safe_parse_json(raw)
        if not data:
            raise LLMResponseError("Query expansion reply is not a JSON object", raw, self.model)

        variants: list[str] = []
        expanded = data.get("expanded_query")
        if isinstance(expanded, str) and expanded.strip() and expanded.strip() != query.strip():
            variants.append(expanded.strip())

        synonyms = [s.strip() for s in data.get("synonyms") or [] if isinstance(s, str) and s.strip()]
        if synonyms:
            variants.append(query + " " + " ".join(synonyms))
        return variants


class MultiStrategyRewriter(QueryRewriter):
    """Union of several rewriters, in their order, without duplicates."""

    def __init__(self, rewriters: Sequence[QueryRewriter], logger: Optional[logging.Logger] = None):
        super().__init__(logger)
        self.rewriters = list(rewriters)

    def _variants(self, query: str) -> list[str]:
        return self.rewrite_outcome(query).value[1:]

    def rewrite_outcome(self, query: str) -> Outcome[list[str]]:
        variants: list[str] = []
        reasons: list[str] = []
        for rewriter in self.rewriters:
            outcome = rewriter.rewrite_outcome(query)
            variants.extend(outcome.value)
            if outcome.degraded:
                reasons.append(outcome.reason)
        merged = merge_variants(query, variants)
        if reasons:
            return Outcome.degrade(merged, "; ".join(reasons))
        return Outcome.ok(merged)


def create_query_rewriter(
    strategy: Union[RewriteStrategy, str],
    generator: Optional[TextGenerator] = None,
    model: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> QueryRewriter:
    try:
        strategy = RewriteStrategy(strategy)
    except ValueError as exc:
        raise ConfigurationError(
            f"Unknown query rewrite strategy '{strategy}'",
            f"Expected one of {[s.value for s in RewriteStrategy]}",
        ) from exc

    if strategy is RewriteStrategy.NONE:
        return NoOpQueryRewriter(logger)
    if generator is None:
        raise ConfigurationError(f"Query rewrite strategy '{strategy.value}' needs a text generator")

    if strategy is RewriteStrategy.HYDE:
        return HyDERewriter(generator, model, logger)
    if strategy is RewriteStrategy.EXPANSION:
        return QueryExpansionRewriter(generator, model, logger)
    return MultiStrategyRewriter(
        [HyDERewriter(generator, model, logger), QueryExpansionRewriter(generator, model, logger)],
        logger,
    )
