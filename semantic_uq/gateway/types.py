"""Core types and DTOs for the text-generation gateway."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class LlmProvider(str, Enum):
    """Supported text-generation providers."""

    OPENAI = "openai"
    DEEPSEEK = "deepseek"
    OPENAI_COMPATIBLE = "openai_compatible"  # vLLM, Ollama, LiteLLM proxies, ...


class RequestStatus(str, Enum):
    """Outcome of a single generation request."""

    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    VENDOR_ERROR = "vendor_error"
    TIMEOUT = "timeout"
    CIRCUIT_OPEN = "circuit_open"  # Circuit breaker tripped
    DEAD_LETTER = "dead_letter"  # All retries exhausted


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChatMessage:
    """One chat message sent to the model."""

    role: MessageRole
    content: str

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def system(cls, content: str) -> ChatMessage:
        return cls(MessageRole.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> ChatMessage:
        return cls(MessageRole.USER, content)


# ---------------------------------------------------------------------------
# Generation Request — input to the gateway
# ---------------------------------------------------------------------------


@dataclass
class GenerationRequest:
    """A single chat-completion request."""

    request_id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    provider: LlmProvider = LlmProvider.OPENAI
    model: str = ""  # e.g. "gpt-4o-mini", "deepseek-chat"
    messages: list[ChatMessage] = field(default_factory=list)
    temperature: float = 0.0
    max_tokens: int = 512


# ---------------------------------------------------------------------------
# Generation Response — unified DTO
# ---------------------------------------------------------------------------


@dataclass
class GenerationResponse:
    """Normalized response from any provider."""

    request_id: str = ""
    provider: LlmProvider = LlmProvider.OPENAI
    model_version: str = ""
    status: RequestStatus = RequestStatus.SUCCESS

    content: str = ""

    latency_ms: int = 0
    retry_count: int = 0

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    started_at: datetime | None = None
    completed_at: datetime | None = None

    # Error details (if status != SUCCESS)
    error_code: str = ""  # e.g. "429", "503"
    error_message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == RequestStatus.SUCCESS

    def to_dict(self) -> dict:
        """Serialize to JSON-compatible dict for logging/API."""
        return {
            "request_id": self.request_id,
            "provider": self.provider.value,
            "model_version": self.model_version,
            "status": self.status.value,
            "content": self.content,
            "latency_ms": self.latency_ms,
            "retry_count": self.retry_count,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class TextGenerator(Protocol):
    """What the analysis pipeline needs from a language model.

    ``LlmGateway`` implements it; tests plug in scripted fakes.
    """

    async def generate(
        self,
        messages: list[ChatMessage],
        temperature: float = 0.0,
    ) -> GenerationResponse: ...


# ---------------------------------------------------------------------------
# Provider config
# ---------------------------------------------------------------------------


@dataclass
class ProviderConfig:
    """Connection and retry configuration for a provider."""

    provider: LlmProvider
    max_concurrent: int = 8  # Max in-flight requests
    timeout_seconds: float = 60.0
    max_retries: int = 2  # Retries before dead letter
    base_retry_delay: float = 1.0  # Base delay for exponential backoff (seconds)
    max_retry_delay: float = 20.0  # Cap on retry delay


DEFAULT_PROVIDER_CONFIGS: dict[LlmProvider, ProviderConfig] = {
    LlmProvider.OPENAI: ProviderConfig(
        provider=LlmProvider.OPENAI,
        max_concurrent=8,
        timeout_seconds=60,
    ),
    LlmProvider.DEEPSEEK: ProviderConfig(
        provider=LlmProvider.DEEPSEEK,
        max_concurrent=4,
        timeout_seconds=120,  # DeepSeek: increased timeout
        base_retry_delay=2.0,  # Slower retries
    ),
    LlmProvider.OPENAI_COMPATIBLE: ProviderConfig(
        provider=LlmProvider.OPENAI_COMPATIBLE,
        max_concurrent=4,
        timeout_seconds=90,
    ),
}
