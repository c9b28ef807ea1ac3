"""LLM provider clients used by the extraction agents.

Each provider wraps one vendor's HTTPS completion endpoint with httpx and
returns a standardized LLMResponse. Providers are constructed per run with
the key resolved for that run; the key is never persisted by this module.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from ..config import Settings, get_settings
from ..models import LLMProviderName

logger = logging.getLogger("tracelayer-core.extraction.providers")

TEMPERATURE = 0.3
ANTHROPIC_VERSION = "2023-06-01"


class ProviderError(RuntimeError):
    """Raised when an LLM provider call fails or returns an unusable body."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{provider} error: {message}")
        self.provider = provider
        self.status_code = status_code


@dataclass
class LLMResponse:
    """Standardized response from any LLM provider."""
    content: str
    model: str
    provider: str
    input_tokens: int = 0
    output_tokens: int = 0


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 120.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model or self.default_model
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name (openai, anthropic, gemini)."""
        pass

    @property
    @abstractmethod
    def default_model(self) -> str:
        pass

    @property
    @abstractmethod
    def default_base_url(self) -> str:
        pass

    @abstractmethod
    def _build_request(
        self,
        system_prompt: str,
        user_message: str,
        json_mode: bool,
        max_tokens: int,
    ) -> tuple[str, dict, dict, dict]:
        """Return (path, headers, params, json body) for one completion call."""
        pass

    @abstractmethod
    def _parse_body(self, body: dict) -> LLMResponse:
        pass

    def complete(
        self,
        system_prompt: str,
        user_message: str,
        json_mode: bool = True,
        max_tokens: int = 8192,
    ) -> LLMResponse:
        """Generate a completion.

        Args:
            system_prompt: System/instruction prompt
            user_message: User message/query
            json_mode: Ask the provider for a JSON-only answer where supported
            max_tokens: Maximum tokens in response

        Returns:
            LLMResponse with content and token counts

        Raises:
            ProviderError: On transport failure, non-2xx status or malformed body
        """
        path, headers, params, payload = self._build_request(system_prompt, user_message, json_mode, max_tokens)
        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self._transport) as client:
                response = client.post(path, headers=headers, params=params, json=payload)
        except httpx.RequestError as e:
            raise ProviderError(self.name, f"request failed: {e}") from e

        if response.status_code >= 400:
            raise ProviderError(self.name, response.text[:500], status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise ProviderError(self.name, "response body is not JSON", status_code=response.status_code) from e

        try:
            result = self._parse_body(body)
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(self.name, f"unexpected response shape: {e}", status_code=response.status_code) from e

        logger.debug(f"{self.name} completion: {result.input_tokens} in / {result.output_tokens} out ({result.model})")
        return result


class OpenAIProvider(LLMProvider):
    """Chat Completions API."""

    @property
    def name(self) -> str:
        return "openai"

    @property
    def default_model(self) -> str:
        return "gpt-4o"

    @property
    def default_base_url(self) -> str:
        return "https://api.openai.com/v1"

    def _build_request(self, system_prompt, user_message, json_mode, max_tokens):
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            "temperature": TEMPERATURE,
            "max_tokens": max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        headers = {"Authorization": f"Bearer {self.api_key}"}
        return "/chat/completions", headers, {}, payload

    def _parse_body(self, body: dict) -> LLMResponse:
        usage = body.get("usage") or {}
        return LLMResponse(
            content=body["choices"][0]["message"]["content"],
            model=body.get("model", self.model),
            provider=self.name,
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
        )


class AnthropicProvider(LLMProvider):
    """Messages API."""

    @property
    def name(self) -> str:
        return "anthropic"

    @property
    def default_model(self) -> str:
        return "claude-sonnet-4-20250514"

    @property
    def default_base_url(self) -> str:
        return "https://api.anthropic.com/v1"

    def _build_request(self, system_prompt, user_message, json_mode, max_tokens):
        payload = {
            "model": self.model,
            "max_tokens": max_tokens,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_message}],
        }
        headers = {"x-api-key": self.api_key, "anthropic-version": ANTHROPIC_VERSION}
        return "/messages", headers, {}, payload

    def _parse_body(self, body: dict) -> LLMResponse:
        usage = body.get("usage") or {}
        text = "".join(block.get("text", "") for block in body["content"] if block.get("type", "text") == "text")
        return LLMResponse(
            content=text,
            model=body.get("model", self.model),
            provider=self.name,
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
        )


class GeminiProvider(LLMProvider):
    """generateContent API. System and user prompts are sent as one text part."""

    @property
    def name(self) -> str:
        return "gemini"

    @property
    def default_model(self) -> str:
        return "gemini-2.0-flash"

    @property
    def default_base_url(self) -> str:
        return "https://generativelanguage.googleapis.com/v1beta"

    def _build_request(self, system_prompt, user_message, json_mode, max_tokens):
        generation_config = {"temperature": TEMPERATURE, "maxOutputTokens": max_tokens}
        if json_mode:
            generation_config["responseMimeType"] = "application/json"
        payload = {
            "contents": [{"parts": [{"text": f"{system_prompt}\n\n{user_message}"}]}],
            "generationConfig": generation_config,
        }
        return f"/models/{self.model}:generateContent", {}, {"key": self.api_key}, payload

    def _parse_body(self, body: dict) -> LLMResponse:
        usage = body.get("usageMetadata") or {}
        return LLMResponse(
            content=body["candidates"][0]["content"]["parts"][0]["text"],
            model=self.model,
            provider=self.name,
            input_tokens=usage.get("promptTokenCount", 0),
            output_tokens=usage.get("candidatesTokenCount", 0),
        )


PROVIDERS: dict[LLMProviderName, type[LLMProvider]] = {
    LLMProviderName.OPENAI: OpenAIProvider,
    LLMProviderName.ANTHROPIC: AnthropicProvider,
    LLMProviderName.GEMINI: GeminiProvider,
}


def get_provider(
    name: LLMProviderName,
    api_key: str,
    settings: Optional[Settings] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> LLMProvider:
    """
    Build the provider client for a run.

    Raises:
        ProviderError: If the provider has no client implementation
    """
    name = LLMProviderName(name)
    settings = settings or get_settings()
    provider_cls = PROVIDERS.get(name)
    if provider_cls is None:
        raise ProviderError(name.value, "no client available for this provider")

    model = getattr(settings, f"{name.value}_model", None)
    base_url = getattr(settings, f"{name.value}_base_url", None)
    return provider_cls(
        api_key=api_key,
        model=model,
        base_url=base_url,
        timeout=settings.llm_timeout_seconds,
        transport=transport,
    )
