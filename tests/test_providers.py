"""Tests for LLM provider clients and tolerant JSON parsing of their output."""
import json

import httpx
import pytest
from tracelayer_core.config import Settings
from tracelayer_core.extraction.parsing import ExtractionParseError, parse_object, safe_json_parse
from tracelayer_core.extraction.providers import (
    AnthropicProvider,
    GeminiProvider,
    OpenAIProvider,
    ProviderError,
    get_provider,
)
from tracelayer_core.models import LLMProviderName


def _transport(responder, seen):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return responder(request)
    return httpx.MockTransport(handler)


class TestProviders:
    """Request shape and response parsing per vendor."""

    def test_openai_request_and_response(self):
        seen = []
        body = {
            "model": "gpt-4o",
            "choices": [{"message": {"content": '{"ok": true}'}}],
            "usage": {"prompt_tokens": 11, "completion_tokens": 3},
        }
        provider = OpenAIProvider("sk-test", transport=_transport(lambda r: httpx.Response(200, json=body), seen))

        result = provider.complete("system", "user", json_mode=True, max_tokens=100)

        assert result.content == '{"ok": true}'
        assert result.input_tokens == 11
        request = seen[0]
        assert str(request.url) == "https://api.openai.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        payload = json.loads(request.content)
        assert payload["response_format"] == {"type": "json_object"}
        assert payload["messages"][0] == {"role": "system", "content": "system"}

    def test_anthropic_request_and_response(self):
        seen = []
        body = {"model": "claude", "content": [{"type": "text", "text": "{}"}], "usage": {"input_tokens": 5}}
        provider = AnthropicProvider("ak-test", transport=_transport(lambda r: httpx.Response(200, json=body), seen))

        result = provider.complete("system", "user")

        assert result.content == "{}"
        assert seen[0].headers["x-api-key"] == "ak-test"
        assert seen[0].headers["anthropic-version"] == "2023-06-01"
        assert json.loads(seen[0].content)["system"] == "system"

    def test_gemini_passes_key_as_query_param(self):
        seen = []
        body = {"candidates": [{"content": {"parts": [{"text": "[]"}]}}]}
        provider = GeminiProvider("g-key", transport=_transport(lambda r: httpx.Response(200, json=body), seen))

        assert provider.complete("system", "user").content == "[]"
        assert seen[0].url.params["key"] == "g-key"
        assert seen[0].url.path.endswith("/models/gemini-2.0-flash:generateContent")

    def test_http_error_raises_provider_error(self):
        provider = OpenAIProvider(
            "sk-test",
            transport=_transport(lambda r: httpx.Response(401, text="invalid key"), []),
        )
        with pytest.raises(ProviderError) as exc_info:
            provider.complete("system", "user")
        assert exc_info.value.status_code == 401
        assert "invalid key" in str(exc_info.value)

    def test_malformed_body_raises_provider_error(self):
        provider = OpenAIProvider(
            "sk-test",
            transport=_transport(lambda r: httpx.Response(200, json={"choices": []}), []),
        )
        with pytest.raises(ProviderError):
            provider.complete("system", "user")

    def test_get_provider_uses_settings(self):
        settings = Settings(openai_model="gpt-test", llm_timeout_seconds=5)
        provider = get_provider(LLMProviderName.OPENAI, "sk", settings=settings)
        assert provider.model == "gpt-test"
        assert provider.timeout == 5

    def test_custom_provider_has_no_client(self):
        with pytest.raises(ProviderError):
            get_provider(LLMProviderName.CUSTOM, "key", settings=Settings())


class TestSafeJsonParse:
    """Direct parse, then fenced block, then outermost span."""

    def test_direct(self):
        assert safe_json_parse('{"a": 1}') == {"a": 1}

    def test_fenced_block(self):
        text = 'Here you go:\n```json\n{"requirements": []}\n```\nDone.'
        assert safe_json_parse(text) == {"requirements": []}

    def test_embedded_span(self):
        assert safe_json_parse('Result: {"a": [1, 2]} end') == {"a": [1, 2]}

    def test_unparseable(self):
        with pytest.raises(ExtractionParseError):
            safe_json_parse("no json here")

    def test_parse_object_requires_object(self):
        with pytest.raises(ExtractionParseError):
            parse_object("[1, 2, 3]")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
