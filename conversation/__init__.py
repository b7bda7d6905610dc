"""
Conversation history budgeting: token counting and summarization.
"""

from .config import ConversationSummaryConfig
from .models import (
    CompactedHistory,
    CompactionStrategy,
    ConversationTurn,
    RequestContext,
    TurnAction,
)
from .summarizer import ConversationSummarizer
from .token_counter import TiktokenCounter, TokenCounter, count_tokens

__all__ = [
    "ConversationSummaryConfig",
    "CompactedHistory",
    "CompactionStrategy",
    "ConversationTurn",
    "RequestContext",
    "TurnAction",
    "ConversationSummarizer",
    "TiktokenCounter",
    "TokenCounter",
    "count_tokens",
]
