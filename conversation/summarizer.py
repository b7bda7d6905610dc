"""
Token-budget-aware conversation history compaction.

Given the history and the rest of the next request, decides between:

- pass-through: everything fits, history is returned unchanged
- truncate-only: the oldest turns are dropped until the request fits
- summarized: an older prefix is replaced by one model-written summary
  and the most recent turns are kept verbatim

The kept turns are always a contiguous suffix of the input history and a
summary always covers exactly the turns before that suffix.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from common.exceptions import ContextPipelineError, LLMResponseError, TokenCountError
from common.logging_config import get_logger
from generation.base import TextGenerator
from generation.json_utils import safe_parse_json

from .config import ConversationSummaryConfig
from .models import CompactedHistory, CompactionStrategy, ConversationTurn, RequestContext
from .prompts import SUMMARY_PROMPT_TEMPLATE, SUMMARY_SCHEMA
from .token_counter import TokenCounter, render_turn


class ConversationSummarizer:
    def __init__(
        self,
        generator: TextGenerator,
        counter: TokenCounter,
        config: Optional[ConversationSummaryConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.generator = generator
        self.counter = counter
        self.config = config or ConversationSummaryConfig()
        self.config.validate()
        self.logger = logger or get_logger(__name__)

    def process_conversation_history(
        self,
        history: Sequence[ConversationTurn],
        request: Optional[RequestContext] = None,
    ) -> CompactedHistory:
        """
        Compact ``history`` so the next request fits ``max_tokens``.

        Args:
            history: Turns, oldest first
            request: Instructions, new message and tools of the next request

        Returns:
            CompactedHistory with the kept suffix and an optional summary

        Raises:
            TokenCountError: The request itself could not be measured
        """
        turns = list(history)
        request = request or RequestContext()
        if not turns:
            return CompactedHistory(turns=[], strategy=CompactionStrategy.PASS_THROUGH)

        request_tokens = self.counter.count_tokens(turns, request)
        if request_tokens <= self.config.max_tokens:
            return CompactedHistory(turns=turns, strategy=CompactionStrategy.PASS_THROUGH)

        self.logger.info(
            "Request needs %d tokens, budget is %d; compacting %d turns",
            request_tokens,
            self.config.max_tokens,
            len(turns),
        )

        if len(turns) < self.config.min_conversations_to_summarize:
            return self._truncate(turns, request)

        split_point = self.find_split_point(turns, request)
        if split_point <= 0:
            self.logger.info("No split point fits the budget, truncating instead")
            return self._truncate(turns, request)

        prefix, tail = turns[:split_point], turns[split_point:]
        try:
            summary = self._generate_summary(prefix)
        except ContextPipelineError as exc:
            self.logger.warning("Summary generation failed, truncating instead: %s", exc)
            return self._truncate(turns, request, reason=f"summary generation failed: {exc}")

        self.logger.info("Summarized %d turns, kept %d", len(prefix), len(tail))
        return CompactedHistory(
            summary=summary,
            turns=tail,
            strategy=CompactionStrategy.SUMMARIZED,
        )

    def find_split_point(self, turns: list[ConversationTurn], request: RequestContext) -> int:
        """Index where the verbatim tail starts, or 0 when no tail fits."""
        total = len(turns)
        min_recent = max(
            total // self.config.recent_fraction_divisor,
            self.config.min_conversations_to_summarize,
        )
        max_split = total - min_recent
        if max_split <= 0:
            return 0

        available = self.config.max_tokens - self.config.summary_tokens
        if self.config.split_search == "largest_tail":
            candidates = range(1, max_split + 1)
        else:
            candidates = range(max_split, 0, -1)

        for split_point in candidates:
            try:
                tail_tokens = self.counter.count_tokens(turns[split_point:], request)
            except TokenCountError as exc:
                self.logger.debug("Skipping split point %d: %s", split_point, exc)
                continue
            if tail_tokens <= available:
                return split_point
        return 0

    def _truncate(
        self,
        turns: list[ConversationTurn],
        request: RequestContext,
        reason: Optional[str] = None,
    ) -> CompactedHistory:
        base_tokens = self.counter.count_tokens([], request)
        if self.config.max_tokens - base_tokens <= 0:
            self.logger.warning(
                "Request without history already needs %d of %d tokens; keeping history as is",
                base_tokens,
                self.config.max_tokens,
            )
            return self._unchanged(
                turns, reason, f"request without history needs {base_tokens} tokens"
            )

        for start in range(len(turns)):
            if self.counter.count_tokens(turns[start:], request) <= self.config.max_tokens:
                kept = turns[start:]
                self.logger.info("Truncated history from %d to %d turns", len(turns), len(kept))
                return CompactedHistory(
                    turns=kept,
                    strategy=CompactionStrategy.TRUNCATE_ONLY,
                    degraded_reason=reason,
                )

        # Not even the most recent turn fits; never hand back an empty history.
        self.logger.warning("No suffix of %d turns fits the budget; keeping history as is", len(turns))
        return self._unchanged(turns, reason, "no suffix of the history fits the token budget")

    @staticmethod
    def _unchanged(turns: list[ConversationTurn], reason: Optional[str], cause: str) -> CompactedHistory:
        return CompactedHistory(
            turns=turns,
            strategy=CompactionStrategy.TRUNCATE_ONLY,
            degraded_reason=f"{reason}; {cause}" if reason else cause,
        )

    def _generate_summary(self, turns: list[ConversationTurn]) -> str:
        prompt = SUMMARY_PROMPT_TEMPLATE.format(
            max_tokens=self.config.summary_tokens,
            conversation="\n\n".join(render_turn(t) for t in turns),
        )
        raw = self.generator.generate(
            prompt,
            model=self.config.model_for_summary,
            output_schema=SUMMARY_SCHEMA,
        )
        data = safe_parse_json(raw)
        summary = data.get("summary") if data else raw
        if not isinstance(summary, str) or not summary.strip():
            raise LLMResponseError("Empty conversation summary", raw, self.config.model_for_summary)
        return summary.strip()
