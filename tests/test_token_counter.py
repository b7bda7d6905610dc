"""Tests for conversation.token_counter."""

from unittest.mock import patch

import pytest

from common.exceptions import TokenCountError
from conversation.models import ConversationTurn, RequestContext, TurnAction
from conversation.token_counter import (
    MESSAGE_OVERHEAD_TOKENS,
    TiktokenCounter,
    TokenCounter,
    count_tokens,
    render_turn,
)


class TestCountTokens:
    def test_empty_string(self):
        assert count_tokens("") == 0

    def test_simple_english(self):
        tokens = count_tokens("Hello world")
        assert tokens >= 2  # At least 2 tokens

    def test_special_characters(self):
        tokens = count_tokens("§ 5 Abs. 2 Nr. 3")
        assert tokens >= 3

    def test_returns_int(self):
        assert isinstance(count_tokens("Test"), int)


class TestRenderTurn:
    def test_plain_turn(self):
        turn = ConversationTurn(speaker="user", text="Hi there")
        assert render_turn(turn) == "user: Hi there"

    def test_actions_rendered_on_own_lines(self):
        turn = ConversationTurn(
            speaker="assistant",
            text="Checking.",
            actions=(TurnAction(name="lookup", arguments={"q": "tea"}, result=["green"]),),
        )
        lines = render_turn(turn).split("\n")
        assert lines[0] == "assistant: Checking."
        assert lines[1] == '[lookup] {"q": "tea"} -> ["green"]'


class TestTiktokenCounter:
    def test_satisfies_protocol(self):
        assert isinstance(TiktokenCounter(), TokenCounter)

    def test_empty_request(self):
        assert TiktokenCounter().count_tokens([], RequestContext()) == 0

    def test_extra_tokens_added(self):
        assert TiktokenCounter().count_tokens([], RequestContext(extra_tokens=42)) == 42

    def test_message_costs_overhead(self):
        request = RequestContext(message="Hello world")
        expected = count_tokens("Hello world") + MESSAGE_OVERHEAD_TOKENS
        assert TiktokenCounter().count_tokens([], request) == expected

    def test_turns_increase_count(self):
        counter = TiktokenCounter()
        request = RequestContext(message="next")
        turns = [ConversationTurn(speaker="user", text="one two three")]
        assert counter.count_tokens(turns, request) > counter.count_tokens([], request)

    def test_tools_counted(self):
        counter = TiktokenCounter()
        tools = [{"name": "search", "description": "Search the knowledge base"}]
        assert counter.count_tokens([], RequestContext(tools=tools)) > 0

    def test_encoder_failure_wrapped(self):
        with patch("conversation.token_counter.count_tokens", side_effect=RuntimeError("boom")):
            with pytest.raises(TokenCountError) as exc_info:
                TiktokenCounter().count_tokens([], RequestContext(message="hi"))
        assert isinstance(exc_info.value.original_error, RuntimeError)
