"""Provider adapters — protocol-level handling for each text-generation provider.

Each adapter translates a GenerationRequest into the provider's HTTP
protocol, sends it, and returns a GenerationResponse. Adapters never raise
on HTTP problems; failures are reported through ``RequestStatus``.

Provider-specific behaviors:
  - OpenAI: standard chat completions
  - DeepSeek: OpenAI-compatible, 120s timeout, "Server Busy" → slow retry
  - OpenAI-compatible: any chat-completions endpoint given by URL
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone

import httpx

from semantic_uq.gateway.types import (
    GenerationRequest,
    GenerationResponse,
    LlmProvider,
    RequestStatus,
)

logger = logging.getLogger(__name__)


class BaseProviderAdapter(ABC):
    """Base class for all provider adapters."""

    provider: LlmProvider

    def __init__(self, api_key: str, **kwargs):
        self.api_key = api_key

    @abstractmethod
    async def send(self, request: GenerationRequest, timeout: float = 60.0) -> GenerationResponse:
        """Send a request to the provider and return a normalized response."""
        ...

    def _base_response(self, request: GenerationRequest) -> GenerationResponse:
        """Create a base response with context from the request."""
        return GenerationResponse(
            request_id=request.request_id,
            provider=self.provider,
            started_at=datetime.now(timezone.utc),
        )


class ChatCompletionsAdapter(BaseProviderAdapter):
    """Shared implementation for OpenAI-style ``/chat/completions`` endpoints."""

    provider = LlmProvider.OPENAI
    default_model = "gpt-4o-mini"
    api_url = "https://api.openai.com/v1/chat/completions"

    def __init__(self, api_key: str, api_url: str = "", **kwargs):
        super().__init__(api_key, **kwargs)
        if api_url:
            self.api_url = api_url

    def build_payload(self, request: GenerationRequest) -> dict:
        return {
            "model": request.model or self.default_model,
            "messages": [m.to_payload() for m in request.messages],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _check_throttled(self, resp: httpx.Response, response: GenerationResponse) -> bool:
        """Mark provider-specific throttling; True if the response was handled."""
        if resp.status_code == 429:
            response.status = RequestStatus.RATE_LIMITED
            response.error_code = "429"
            response.error_message = f"Rate limited by {self.provider.value}"
            return True
        return False

    async def send(self, request: GenerationRequest, timeout: float = 60.0) -> GenerationResponse:
        response = self._base_response(request)
        payload = self.build_payload(request)
        start = time.monotonic()

        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.post(self.api_url, json=payload, headers=self._headers())

            response.latency_ms = int((time.monotonic() - start) * 1000)

            if self._check_throttled(resp, response):
                return response

            resp.raise_for_status()
            data = resp.json()

            choice = data["choices"][0]
            response.content = choice["message"]["content"] or ""
            response.model_version = data.get("model", payload["model"])

            usage = data.get("usage") or {}
            response.input_tokens = usage.get("prompt_tokens", 0)
            response.output_tokens = usage.get("completion_tokens", 0)
            response.total_tokens = response.input_tokens + response.output_tokens

            response.status = RequestStatus.SUCCESS
            response.completed_at = datetime.now(timezone.utc)

        except httpx.TimeoutException:
            response.status = RequestStatus.TIMEOUT
            response.error_message = f"Timeout after {timeout}s"
            response.latency_ms = int((time.monotonic() - start) * 1000)
        except httpx.HTTPStatusError as e:
            response.status = RequestStatus.VENDOR_ERROR
            response.error_code = str(e.response.status_code)
            response.error_message = f"HTTP {e.response.status_code} from {self.provider.value}"
            response.latency_ms = int((time.monotonic() - start) * 1000)
        except httpx.HTTPError as e:
            response.status = RequestStatus.VENDOR_ERROR
            response.error_code = "transport"
            response.error_message = f"{type(e).__name__} talking to {self.provider.value}"
            response.latency_ms = int((time.monotonic() - start) * 1000)
        except (KeyError, IndexError, TypeError, ValueError):
            response.status = RequestStatus.VENDOR_ERROR
            response.error_code = "malformed"
            response.error_message = f"Malformed completion payload from {self.provider.value}"
            response.latency_ms = int((time.monotonic() - start) * 1000)

        return response


class OpenAIAdapter(ChatCompletionsAdapter):
    """OpenAI Chat Completions adapter."""

    provider = LlmProvider.OPENAI


class DeepSeekAdapter(ChatCompletionsAdapter):
    """DeepSeek adapter with Server Busy handling."""

    provider = LlmProvider.DEEPSEEK
    default_model = "deepseek-chat"
    api_url = "https://api.deepseek.com/chat/completions"

    def _check_throttled(self, resp: httpx.Response, response: GenerationResponse) -> bool:
        if super()._check_throttled(resp, response):
            return True

        # DeepSeek "Server Busy" → slow retry
        if resp.status_code == 503:
            body = resp.text.lower()
            if "busy" in body or "server" in body:
                response.status = RequestStatus.RATE_LIMITED
                response.error_code = "503_BUSY"
                response.error_message = "DeepSeek server busy"
                return True
        return False


class OpenAICompatibleAdapter(ChatCompletionsAdapter):
    """Self-hosted or proxied chat-completions endpoint (vLLM, Ollama, LiteLLM)."""

    provider = LlmProvider.OPENAI_COMPATIBLE
    default_model = "default"
    api_url = "http://localhost:8001/v1/chat/completions"


# ---------------------------------------------------------------------------
# Adapter registry
# ---------------------------------------------------------------------------

ADAPTER_REGISTRY: dict[LlmProvider, type[BaseProviderAdapter]] = {
    LlmProvider.OPENAI: OpenAIAdapter,
    LlmProvider.DEEPSEEK: DeepSeekAdapter,
    LlmProvider.OPENAI_COMPATIBLE: OpenAICompatibleAdapter,
}


def get_adapter(provider: LlmProvider, api_key: str, **kwargs) -> BaseProviderAdapter:
    """Factory: get the appropriate adapter for a provider."""
    cls = ADAPTER_REGISTRY.get(provider)
    if cls is None:
        raise ValueError(f"No adapter registered for provider: {provider}")
    return cls(api_key=api_key, **kwargs)
