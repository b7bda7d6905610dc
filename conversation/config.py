from dataclasses import dataclass
import os

from common.exceptions import ConfigurationError

SPLIT_SEARCH_DIRECTIONS = ("largest_tail", "smallest_tail")


@dataclass
class ConversationSummaryConfig:
    max_tokens: int = 5000
    summary_tokens: int = 1000
    min_conversations_to_summarize: int = 5
    model_for_summary: str = "openai/gpt-5-mini"
    recent_fraction_divisor: int = 3
    split_search: str = "largest_tail"

    @classmethod
    def from_env(cls) -> "ConversationSummaryConfig":
        def _int(name: str, default: int) -> int:
            value = os.environ.get(name)
            return int(value) if value else default

        return cls(
            max_tokens=_int("CONVERSATION_MAX_TOKENS", cls.max_tokens),
            summary_tokens=_int("CONVERSATION_SUMMARY_TOKENS", cls.summary_tokens),
            min_conversations_to_summarize=_int(
                "CONVERSATION_MIN_TO_SUMMARIZE", cls.min_conversations_to_summarize
            ),
            model_for_summary=os.environ.get("CONVERSATION_SUMMARY_MODEL", cls.model_for_summary),
            recent_fraction_divisor=_int(
                "CONVERSATION_RECENT_FRACTION_DIVISOR", cls.recent_fraction_divisor
            ),
            split_search=os.environ.get("CONVERSATION_SPLIT_SEARCH", cls.split_search),
        )

    def validate(self) -> None:
        if self.max_tokens <= 0:
            raise ConfigurationError("max_tokens must be positive", str(self.max_tokens))
        if not 0 <= self.summary_tokens < self.max_tokens:
            raise ConfigurationError(
                "summary_tokens must be in [0, max_tokens)", str(self.summary_tokens)
            )
        if self.min_conversations_to_summarize < 1:
            raise ConfigurationError(
                "min_conversations_to_summarize must be at least 1",
                str(self.min_conversations_to_summarize),
            )
        if self.recent_fraction_divisor < 1:
            raise ConfigurationError(
                "recent_fraction_divisor must be at least 1", str(self.recent_fraction_divisor)
            )
        if self.split_search not in SPLIT_SEARCH_DIRECTIONS:
            raise ConfigurationError(
                f"Unknown split_search '{self.split_search}'",
                f"Expected one of {SPLIT_SEARCH_DIRECTIONS}",
            )
