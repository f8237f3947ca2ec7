"""LLM Gateway — orchestrator integrating all gateway components.

Entry point the analysis pipeline uses to talk to the language model:
  1. Checks the Circuit Breaker
  2. Bounds in-flight requests with a semaphore
  3. Dispatches via the Provider Adapter
  4. Retries with exponential backoff
  5. Normalizes responses

Usage:
    gateway = LlmGateway.from_settings(settings)
    response = await gateway.generate([ChatMessage.user("Hello")], temperature=0.1)
    if response.ok:
        print(response.content)
"""

from __future__ import annotations

import asyncio
import logging

from semantic_uq.core.config import Settings
from semantic_uq.gateway.adapters import BaseProviderAdapter, get_adapter
from semantic_uq.gateway.circuit_breaker import CircuitBreaker, CircuitState
from semantic_uq.gateway.normalizer import normalize_response
from semantic_uq.gateway.types import (
    DEFAULT_PROVIDER_CONFIGS,
    ChatMessage,
    GenerationRequest,
    GenerationResponse,
    LlmProvider,
    ProviderConfig,
    RequestStatus,
)

logger = logging.getLogger(__name__)


class LlmGateway:
    """Main gateway orchestrator.

    Integrates:
      - CircuitBreaker: failure detection and recovery
      - ProviderAdapter: protocol-specific HTTP calls
      - Normalizer: response post-processing
    """

    def __init__(
        self,
        provider: LlmProvider = LlmProvider.OPENAI,
        api_key: str = "",
        model: str = "",
        config: ProviderConfig | None = None,
        max_tokens: int = 512,
        adapter: BaseProviderAdapter | None = None,
        adapter_kwargs: dict | None = None,
    ):
        """
        Args:
            provider: Which provider protocol to speak
            api_key: Provider API key (may be empty for local endpoints)
            model: Model name; empty uses the adapter default
            config: Override the default provider configuration
            max_tokens: Completion budget per request
            adapter: Pre-built adapter (tests, custom providers)
            adapter_kwargs: Extra kwargs for the adapter (e.g. api_url)
        """
        self.provider = provider
        self.model = model
        self.max_tokens = max_tokens
        self.config = config or DEFAULT_PROVIDER_CONFIGS.get(provider, ProviderConfig(provider=provider))
        self.adapter = adapter or get_adapter(provider, api_key, **(adapter_kwargs or {}))
        self.circuit_breaker = CircuitBreaker(self.config)
        self._semaphore = asyncio.Semaphore(self.config.max_concurrent)

    @classmethod
    def from_settings(cls, settings: Settings) -> LlmGateway:
        provider = LlmProvider(settings.llm_provider)
        config = ProviderConfig(
            provider=provider,
            max_concurrent=settings.llm_max_concurrent,
            timeout_seconds=settings.llm_timeout_seconds,
            max_retries=settings.llm_max_retries,
            base_retry_delay=settings.llm_base_retry_delay,
            max_retry_delay=settings.llm_max_retry_delay,
        )
        adapter_kwargs = {"api_url": settings.llm_api_url} if settings.llm_api_url else {}
        return cls(
            provider=provider,
            api_key=settings.llm_api_key,
            model=settings.llm_model,
            config=config,
            max_tokens=settings.llm_max_tokens,
            adapter_kwargs=adapter_kwargs,
        )

    async def generate(
        self,
        messages: list[ChatMessage],
        temperature: float = 0.0,
    ) -> GenerationResponse:
        """Send one chat request and return the normalized response."""
        request = GenerationRequest(
            provider=self.provider,
            model=self.model,
            messages=list(messages),
            temperature=temperature,
            max_tokens=self.max_tokens,
        )
        async with self._semaphore:
            return await self.execute(request)

    async def execute(self, request: GenerationRequest) -> GenerationResponse:
        """Execute a request through circuit breaker, retries and normalization."""
        provider = self.provider
        config = self.config

        if not self.circuit_breaker.allow():
            return GenerationResponse(
                request_id=request.request_id,
                provider=provider,
                status=RequestStatus.CIRCUIT_OPEN,
                error_message=f"Circuit breaker open for {provider.value}",
            )

        last_response: GenerationResponse | None = None

        for attempt in range(config.max_retries + 1):
            try:
                response = await self.adapter.send(request, timeout=config.timeout_seconds)
            except asyncio.CancelledError:
                self.circuit_breaker.release_probe()
                raise
            except Exception as e:
                response = GenerationResponse(
                    request_id=request.request_id,
                    provider=provider,
                    status=RequestStatus.VENDOR_ERROR,
                    error_message=f"{type(e).__name__}: {e}",
                )

            response.retry_count = attempt

            if response.status == RequestStatus.SUCCESS:
                self.circuit_breaker.on_success()
                return normalize_response(response)

            last_response = response
            retry_delay = self.circuit_breaker.on_failure(attempt)
            if retry_delay is None or self.circuit_breaker.state != CircuitState.CLOSED:
                break

            if response.error_code == "503_BUSY":
                retry_delay = max(retry_delay, 5.0)  # Minimum 5s for busy servers

            logger.info(
                "Retrying %s request %s (attempt %d/%d) in %.1fs: %s",
                provider.value,
                request.request_id,
                attempt + 1,
                config.max_retries,
                retry_delay,
                response.status.value,
            )
            await asyncio.sleep(retry_delay)

        if last_response is None:
            last_response = GenerationResponse(
                request_id=request.request_id,
                provider=provider,
                status=RequestStatus.VENDOR_ERROR,
                error_message="Unexpected gateway error",
            )

        logger.warning(
            "Request %s to %s gave up after %d attempts: %s",
            request.request_id,
            provider.value,
            last_response.retry_count + 1,
            last_response.error_message or last_response.status.value,
            extra={"request_id": request.request_id, "provider": provider.value},
        )
        last_response.status = RequestStatus.DEAD_LETTER
        return normalize_response(last_response)

    def get_status(self) -> dict:
        """Get gateway status for health endpoints."""
        return {
            "provider": self.provider.value,
            "model": self.model or getattr(self.adapter, "default_model", ""),
            "max_concurrent": self.config.max_concurrent,
            "circuit": self.circuit_breaker.snapshot(),
        }
