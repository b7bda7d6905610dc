"""Tests for the generation package: HTTP helper, Ollama, OpenAI and router."""

import io
from unittest.mock import MagicMock, patch
from urllib.error import HTTPError, URLError

import httpx
import pytest
from openai import APIConnectionError, BadRequestError, InternalServerError, RateLimitError

from common.exceptions import (
    ConfigurationError,
    GenerationError,
    LLMConnectionError,
    LLMResponseError,
)
from generation import GenerationConfig, ModelRouter, OllamaGenerator, OpenAIGenerator, TextGenerator
from generation.http_client import post_json
from generation.ollama_client import chat
from generation.router import split_model_reference

from conftest import FakeGenerator


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

OPENAI_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def status_response(code):
    return httpx.Response(code, request=OPENAI_REQUEST)


def completion(content, finish_reason="stop"):
    choice = MagicMock()
    choice.message.content = content
    choice.finish_reason = finish_reason
    response = MagicMock()
    response.choices = [choice]
    return response


@pytest.fixture
def fast_config():
    return GenerationConfig(openai_api_key="sk-test", max_retries=3, retry_delay=0.0)


@pytest.fixture
def openai_client():
    return MagicMock()


# ---------------------------------------------------------------------------
# HTTP helper
# ---------------------------------------------------------------------------

class TestPostJson:
    def _response(self, body):
        response = MagicMock()
        response.read.return_value = body.encode("utf-8")
        response.__enter__.return_value = response
        return response

    def test_parses_json_body(self):
        with patch("generation.http_client.request.urlopen", return_value=self._response('{"ok": true}')):
            assert post_json("http://x/api", {"a": 1}) == {"ok": True}

    def test_http_error(self):
        error = HTTPError("http://x/api", 503, "Unavailable", {}, io.BytesIO(b"overloaded"))
        with patch("generation.http_client.request.urlopen", side_effect=error):
            with pytest.raises(GenerationError) as exc_info:
                post_json("http://x/api", {})
        assert exc_info.value.status_code == 503
        assert "overloaded" in str(exc_info.value)

    def test_unreachable(self):
        with patch("generation.http_client.request.urlopen", side_effect=URLError("refused")):
            with pytest.raises(LLMConnectionError, match="refused"):
                post_json("http://x/api", {})

    def test_non_json_body(self):
        with patch("generation.http_client.request.urlopen", return_value=self._response("<html>")):
            with pytest.raises(LLMResponseError) as exc_info:
                post_json("http://x/api", {})
        assert exc_info.value.response_content == "<html>"


# ---------------------------------------------------------------------------
# Ollama
# ---------------------------------------------------------------------------

class TestOllama:
    def test_chat_payload(self):
        with patch("generation.ollama_client.post_json", return_value={"message": {"content": "hi"}}) as post:
            result = chat(
                "http://localhost:11434/",
                "llama3.1",
                "Hello",
                response_schema={"type": "object"},
                system_prompt="Be brief.",
                temperature=0.0,
                output_tokens=64,
            )
        assert result == "hi"
        url, payload = post.call_args.args
        assert url == "http://localhost:11434/api/chat"
        assert payload["format"] == {"type": "object"}
        assert payload["messages"][0] == {"role": "system", "content": "Be brief."}
        assert payload["options"] == {"temperature": 0.0, "num_predict": 64}
        assert payload["stream"] is False

    def test_chat_without_schema_has_no_format(self):
        with patch("generation.ollama_client.post_json", return_value={"message": {"content": "hi"}}) as post:
            chat("http://localhost:11434", "llama3.1", "Hello")
        payload = post.call_args.args[1]
        assert "format" not in payload
        assert payload["messages"] == [{"role": "user", "content": "Hello"}]

    def test_generator_uses_model_override(self):
        generator = OllamaGenerator(GenerationConfig(ollama_model="default-model"))
        with patch("generation.ollama_client.post_json", return_value={"message": {"content": "ok"}}) as post:
            assert generator.generate("p", model="qwen3") == "ok"
        assert post.call_args.args[1]["model"] == "qwen3"

    def test_empty_reply_raises(self):
        with patch("generation.ollama_client.post_json", return_value={"message": {"content": "  "}}):
            with pytest.raises(LLMResponseError):
                OllamaGenerator().generate("p")

    def test_satisfies_protocol(self):
        assert isinstance(OllamaGenerator(), TextGenerator)


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------

class TestOpenAIGenerator:
    def test_requires_key_without_client(self):
        with pytest.raises(ConfigurationError, match="API key"):
            OpenAIGenerator(GenerationConfig(openai_api_key=""))

    def test_plain_request(self, fast_config, openai_client):
        openai_client.chat.completions.create.return_value = completion("answer")
        generator = OpenAIGenerator(fast_config, client=openai_client)
        assert generator.generate("question") == "answer"
        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-5-mini"
        assert kwargs["messages"] == [{"role": "user", "content": "question"}]
        assert "response_format" not in kwargs

    def test_schema_request(self, fast_config, openai_client):
        openai_client.chat.completions.create.return_value = completion('{"a": 1}')
        schema = {"type": "object"}
        OpenAIGenerator(fast_config, client=openai_client).generate("q", model="gpt-4.1", output_schema=schema)
        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4.1"
        assert kwargs["response_format"]["type"] == "json_schema"
        assert kwargs["response_format"]["json_schema"]["schema"] == schema

    def test_content_filter(self, fast_config, openai_client):
        openai_client.chat.completions.create.return_value = completion("", finish_reason="content_filter")
        with pytest.raises(LLMResponseError, match="content filter"):
            OpenAIGenerator(fast_config, client=openai_client).generate("q")

    def test_empty_reply(self, fast_config, openai_client):
        openai_client.chat.completions.create.return_value = completion(None)
        with pytest.raises(LLMResponseError, match="Empty"):
            OpenAIGenerator(fast_config, client=openai_client).generate("q")

    def test_retries_rate_limit_then_succeeds(self, fast_config, openai_client):
        openai_client.chat.completions.create.side_effect = [
            RateLimitError("slow down", response=status_response(429), body=None),
            completion("ok"),
        ]
        assert OpenAIGenerator(fast_config, client=openai_client).generate("q") == "ok"
        assert openai_client.chat.completions.create.call_count == 2

    def test_server_errors_exhaust_retries(self, fast_config, openai_client):
        openai_client.chat.completions.create.side_effect = InternalServerError(
            "down", response=status_response(500), body=None
        )
        with pytest.raises(GenerationError, match="Max retries exceeded") as exc_info:
            OpenAIGenerator(fast_config, client=openai_client).generate("q")
        assert exc_info.value.status_code == 500
        assert openai_client.chat.completions.create.call_count == 3

    def test_connection_errors_exhaust_retries(self, fast_config, openai_client):
        openai_client.chat.completions.create.side_effect = APIConnectionError(request=OPENAI_REQUEST)
        with pytest.raises(LLMConnectionError):
            OpenAIGenerator(fast_config, client=openai_client).generate("q")
        assert openai_client.chat.completions.create.call_count == 3

    def test_client_error_not_retried(self, fast_config, openai_client):
        openai_client.chat.completions.create.side_effect = BadRequestError(
            "bad", response=status_response(400), body=None
        )
        with pytest.raises(GenerationError) as exc_info:
            OpenAIGenerator(fast_config, client=openai_client).generate("q")
        assert exc_info.value.status_code == 400
        assert openai_client.chat.completions.create.call_count == 1

    def test_backoff_sleeps_between_attempts_only(self, openai_client):
        config = GenerationConfig(openai_api_key="sk-test", max_retries=3, retry_delay=0.5)
        openai_client.chat.completions.create.side_effect = APIConnectionError(request=OPENAI_REQUEST)
        with patch("generation.openai_client.time.sleep") as sleep:
            with pytest.raises(LLMConnectionError):
                OpenAIGenerator(config, client=openai_client).generate("q")
        assert [c.args[0] for c in sleep.call_args_list] == [0.5, 1.0]


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

class TestModelRouter:
    def test_split_reference(self):
        assert split_model_reference("OpenAI/gpt-5-mini") == ("openai", "gpt-5-mini")
        assert split_model_reference("ollama/llama3.1:8b") == ("ollama", "llama3.1:8b")

    @pytest.mark.parametrize("reference", ["gpt-5-mini", "/model", "openai/"])
    def test_split_rejects_malformed(self, reference):
        with pytest.raises(ConfigurationError):
            split_model_reference(reference)

    def test_dispatches_by_provider(self):
        openai, ollama = FakeGenerator(default="from openai"), FakeGenerator(default="from ollama")
        router = ModelRouter({"openai": openai, "ollama": ollama}, default_model="openai/gpt-5-mini")
        assert router.generate("p", model="ollama/llama3.1", output_schema={"type": "object"}) == "from ollama"
        assert ollama.calls[0]["model"] == "llama3.1"
        assert ollama.calls[0]["output_schema"] == {"type": "object"}
        assert openai.calls == []

    def test_uses_default_model(self):
        openai = FakeGenerator(default="x")
        ModelRouter({"openai": openai}, default_model="openai/gpt-5-mini").generate("p")
        assert openai.calls[0]["model"] == "gpt-5-mini"

    def test_unknown_provider(self):
        router = ModelRouter({"openai": FakeGenerator()}, default_model="openai/gpt-5-mini")
        with pytest.raises(ConfigurationError, match="anthropic"):
            router.generate("p", model="anthropic/some-model")

    def test_requires_providers(self):
        with pytest.raises(ConfigurationError):
            ModelRouter({}, default_model="openai/gpt-5-mini")

    def test_satisfies_protocol(self):
        router = ModelRouter({"openai": FakeGenerator()}, default_model="openai/gpt-5-mini")
        assert isinstance(router, TextGenerator)
