"""
Token counting for conversation requests.

Uses tiktoken with the cl100k_base encoding as a conservative approximation
for chat models. A request is measured as the rendered instructions, the
new message, the tool definitions and every history turn.

Usage:
    from conversation.token_counter import TiktokenCounter

    counter = TiktokenCounter()
    n = counter.count_tokens(history, RequestContext(message="Hallo"))
"""

from __future__ import annotations

import json
from typing import Protocol, Sequence, runtime_checkable

import tiktoken

from common.exceptions import TokenCountError

from .models import ConversationTurn, RequestContext

# Singleton encoder - initialized once, reused across calls.
_encoder: tiktoken.Encoding | None = None

# Role markers and separators each chat message costs on top of its text
MESSAGE_OVERHEAD_TOKENS = 4


def _get_encoder() -> tiktoken.Encoding:
    """Get or initialize the tiktoken encoder (singleton)."""
    global _encoder
    if _encoder is None:
        _encoder = tiktoken.get_encoding("cl100k_base")
    return _encoder


def count_tokens(text: str) -> int:
    if not text:
        return 0
    return len(_get_encoder().encode(text))


def render_turn(turn: ConversationTurn) -> str:
    lines = [f"{turn.speaker}: {turn.text}"]
    for action in turn.actions:
        lines.append(
            f"[{action.name}] {json.dumps(action.arguments, ensure_ascii=False, default=str)}"
            f" -> {json.dumps(action.result, ensure_ascii=False, default=str)}"
        )
    return "\n".join(lines)


@runtime_checkable
class TokenCounter(Protocol):
    def count_tokens(self, turns: Sequence[ConversationTurn], request: RequestContext) -> int:
        ...


class TiktokenCounter:
    def count_tokens(self, turns: Sequence[ConversationTurn], request: RequestContext) -> int:
        try:
            total = request.extra_tokens
            if request.instructions:
                total += count_tokens(request.instructions) + MESSAGE_OVERHEAD_TOKENS
            if request.message:
                total += count_tokens(request.message) + MESSAGE_OVERHEAD_TOKENS
            if request.tools:
                total += count_tokens(json.dumps(request.tools, ensure_ascii=False, default=str))
            for turn in turns:
                total += count_tokens(render_turn(turn)) + MESSAGE_OVERHEAD_TOKENS
            return total
        except Exception as exc:
            raise TokenCountError("Token counting failed", original_error=exc) from exc
