"""Tests for the text-generation gateway.

Covers:
  - Gateway types and DTOs
  - Circuit Breaker
  - Provider Adapters (mocked HTTP)
  - Response Normalizer
  - Gateway Orchestrator
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from semantic_uq.core.config import Settings
from semantic_uq.gateway.adapters import (
    ADAPTER_REGISTRY,
    DeepSeekAdapter,
    OpenAIAdapter,
    OpenAICompatibleAdapter,
    get_adapter,
)
from semantic_uq.gateway.circuit_breaker import FAILURE_THRESHOLD, CircuitBreaker, CircuitState
from semantic_uq.gateway.gateway import LlmGateway
from semantic_uq.gateway.normalizer import normalize_response, strip_reasoning
from semantic_uq.gateway.types import (
    DEFAULT_PROVIDER_CONFIGS,
    ChatMessage,
    GenerationRequest,
    GenerationResponse,
    LlmProvider,
    MessageRole,
    ProviderConfig,
    RequestStatus,
)


def _make_httpx_response(status_code: int, json_data: dict | None = None, text: str = "") -> httpx.Response:
    """Create a proper httpx.Response with request set (needed for raise_for_status)."""
    request = httpx.Request("POST", "https://example.com")
    if json_data is not None:
        return httpx.Response(status_code, json=json_data, request=request)
    return httpx.Response(status_code, text=text, request=request)


def _mock_completion(text="Hello world", model="gpt-4o-mini", input_tokens=10, output_tokens=20):
    return _make_httpx_response(
        200,
        json_data={
            "choices": [{"message": {"content": text}, "finish_reason": "stop"}],
            "model": model,
            "usage": {"prompt_tokens": input_tokens, "completion_tokens": output_tokens},
        },
    )


def _patched_client(mock_client_cls, *, return_value=None, side_effect=None) -> AsyncMock:
    mock_client = AsyncMock()
    if side_effect is not None:
        mock_client.post.side_effect = side_effect
    else:
        mock_client.post.return_value = return_value
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=None)
    mock_client_cls.return_value = mock_client
    return mock_client


def _request(**kwargs) -> GenerationRequest:
    return GenerationRequest(messages=[ChatMessage.user("Hello")], **kwargs)


# ==========================================================================
# Test: Gateway Types
# ==========================================================================


class TestGatewayTypes:
    """Test core types and DTOs."""

    def test_generation_request_defaults(self):
        req = GenerationRequest()
        assert req.provider == LlmProvider.OPENAI
        assert req.temperature == 0.0
        assert req.max_tokens == 512
        assert len(req.request_id) == 16

    def test_chat_message_payload(self):
        msg = ChatMessage.system("be strict")
        assert msg.role == MessageRole.SYSTEM
        assert msg.to_payload() == {"role": "system", "content": "be strict"}

    def test_generation_response_to_dict(self):
        resp = GenerationResponse(
            request_id="abc123",
            model_version="gpt-4o-mini",
            content="Hello world",
            latency_ms=150,
            total_tokens=30,
        )
        d = resp.to_dict()
        assert d["request_id"] == "abc123"
        assert d["provider"] == "openai"
        assert d["status"] == "success"
        assert d["latency_ms"] == 150
        assert d["total_tokens"] == 30

    def test_ok_property(self):
        assert GenerationResponse().ok is True
        assert GenerationResponse(status=RequestStatus.TIMEOUT).ok is False

    def test_default_provider_configs(self):
        assert LlmProvider.OPENAI in DEFAULT_PROVIDER_CONFIGS
        assert DEFAULT_PROVIDER_CONFIGS[LlmProvider.DEEPSEEK].timeout_seconds == 120

    def test_request_status_enum(self):
        assert RequestStatus.SUCCESS.value == "success"
        assert RequestStatus.DEAD_LETTER.value == "dead_letter"


# ==========================================================================
# Test: Circuit Breaker
# ==========================================================================


class _Clock:
    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class TestCircuitBreaker:
    """Single-circuit breaker with backoff and one-probe half-open."""

    @pytest.fixture
    def config(self):
        return ProviderConfig(
            provider=LlmProvider.OPENAI,
            max_retries=3,
            base_retry_delay=1.0,
            max_retry_delay=30.0,
        )

    @pytest.fixture
    def clock(self):
        return _Clock()

    @pytest.fixture
    def cb(self, config, clock):
        return CircuitBreaker(config, recovery_timeout=30.0, clock=clock)

    def _trip(self, cb):
        for _ in range(FAILURE_THRESHOLD):
            cb.on_failure(attempt=0)

    def test_initial_state_closed(self, cb):
        assert cb.allow() is True
        assert cb.snapshot()["state"] == "closed"

    def test_success_resets_failures(self, cb):
        cb.on_failure(attempt=0)
        cb.on_failure(attempt=1)
        cb.on_success()
        snap = cb.snapshot()
        assert snap["consecutive_failures"] == 0
        assert snap["total_failures"] == 2
        assert snap["total_successes"] == 1

    def test_opens_after_threshold(self, cb):
        self._trip(cb)
        assert cb.state == CircuitState.OPEN
        assert cb.allow() is False

    def test_half_open_admits_one_probe(self, cb, clock):
        self._trip(cb)
        clock.now += 30.0

        assert cb.allow() is True
        assert cb.state == CircuitState.HALF_OPEN
        assert cb.allow() is False

    def test_probe_success_closes(self, cb, clock):
        self._trip(cb)
        clock.now += 30.0
        cb.allow()
        cb.on_success()
        assert cb.state == CircuitState.CLOSED
        assert cb.allow() is True

    def test_probe_failure_reopens(self, cb, clock):
        self._trip(cb)
        clock.now += 30.0
        cb.allow()
        cb.on_failure(attempt=0)
        assert cb.state == CircuitState.OPEN
        assert cb.allow() is False

        clock.now += 30.0
        assert cb.allow() is True

    def test_released_probe_can_be_reclaimed(self, cb, clock):
        self._trip(cb)
        clock.now += 30.0
        assert cb.allow() is True
        cb.release_probe()
        assert cb.state == CircuitState.HALF_OPEN
        assert cb.allow() is True

    def test_retries_exhausted_returns_none(self, cb):
        assert cb.on_failure(attempt=3) is None

    def test_exponential_backoff(self, cb):
        delays = [cb.backoff(attempt) for attempt in range(3)]
        assert delays[0] < delays[1] < delays[2]
        assert 1.0 <= delays[0] <= 1.5

    def test_backoff_capped_at_max(self, cb):
        assert cb.backoff(attempt=20) == 30.0

    def test_reset(self, cb):
        self._trip(cb)
        cb.reset()
        assert cb.allow() is True
        assert cb.snapshot()["consecutive_failures"] == 0


# ==========================================================================
# Test: Provider Adapters (mocked HTTP)
# ==========================================================================


class TestOpenAIAdapter:
    @pytest.mark.asyncio
    async def test_success(self):
        adapter = OpenAIAdapter(api_key="test-key")

        with patch("semantic_uq.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            mock_client = _patched_client(mock_client_cls, return_value=_mock_completion())
            resp = await adapter.send(_request(temperature=0.1))

        assert resp.status == RequestStatus.SUCCESS
        assert resp.content == "Hello world"
        assert resp.total_tokens == 30
        payload = mock_client.post.call_args.kwargs["json"]
        assert payload["temperature"] == 0.1
        assert payload["messages"] == [{"role": "user", "content": "Hello"}]
        assert mock_client.post.call_args.kwargs["headers"]["Authorization"] == "Bearer test-key"

    @pytest.mark.asyncio
    async def test_rate_limited(self):
        adapter = OpenAIAdapter(api_key="test-key")

        with patch("semantic_uq.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, return_value=_make_httpx_response(429, text="rate limited"))
            resp = await adapter.send(_request())

        assert resp.status == RequestStatus.RATE_LIMITED
        assert resp.error_code == "429"

    @pytest.mark.asyncio
    async def test_timeout(self):
        adapter = OpenAIAdapter(api_key="test-key")

        with patch("semantic_uq.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, side_effect=httpx.TimeoutException("timeout"))
            resp = await adapter.send(_request(), timeout=5.0)

        assert resp.status == RequestStatus.TIMEOUT

    @pytest.mark.asyncio
    async def test_http_error(self):
        adapter = OpenAIAdapter(api_key="test-key")

        with patch("semantic_uq.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, return_value=_make_httpx_response(500, text="boom"))
            resp = await adapter.send(_request())

        assert resp.status == RequestStatus.VENDOR_ERROR
        assert resp.error_code == "500"

    @pytest.mark.asyncio
    async def test_malformed_payload(self):
        adapter = OpenAIAdapter(api_key="test-key")

        with patch("semantic_uq.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, return_value=_make_httpx_response(200, json_data={"choices": []}))
            resp = await adapter.send(_request())

        assert resp.status == RequestStatus.VENDOR_ERROR
        assert resp.error_code == "malformed"


class TestDeepSeekAdapter:
    @pytest.mark.asyncio
    async def test_default_model(self):
        adapter = DeepSeekAdapter(api_key="test-key")

        with patch("semantic_uq.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            mock_client = _patched_client(mock_client_cls, return_value=_mock_completion(model="deepseek-chat"))
            resp = await adapter.send(_request())

        assert resp.status == RequestStatus.SUCCESS
        assert resp.model_version == "deepseek-chat"
        assert mock_client.post.call_args.kwargs["json"]["model"] == "deepseek-chat"

    @pytest.mark.asyncio
    async def test_server_busy_503(self):
        adapter = DeepSeekAdapter(api_key="test-key")

        with patch("semantic_uq.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(
                mock_client_cls,
                return_value=_make_httpx_response(503, text="Server is busy, please retry later"),
            )
            resp = await adapter.send(_request())

        assert resp.status == RequestStatus.RATE_LIMITED
        assert resp.error_code == "503_BUSY"


class TestAdapterRegistry:
    def test_all_providers_registered(self):
        assert set(ADAPTER_REGISTRY) == set(LlmProvider)

    def test_get_adapter_with_url_override(self):
        adapter = get_adapter(LlmProvider.OPENAI_COMPATIBLE, "", api_url="http://vllm:8000/v1/chat/completions")
        assert isinstance(adapter, OpenAICompatibleAdapter)
        assert adapter.api_url == "http://vllm:8000/v1/chat/completions"

    def test_no_auth_header_without_key(self):
        adapter = get_adapter(LlmProvider.OPENAI_COMPATIBLE, "")
        assert "Authorization" not in adapter._headers()


# ==========================================================================
# Test: Response Normalizer
# ==========================================================================


class TestNormalizer:
    def test_strips_reasoning_block(self):
        resp = GenerationResponse(content='<think>hmm, let me see</think>\n {"a": 1} ')
        normalize_response(resp)
        assert resp.content == '{"a": 1}'
        assert resp.completed_at is not None

    def test_fixes_token_total(self):
        resp = GenerationResponse(status=RequestStatus.TIMEOUT, input_tokens=5, output_tokens=7)
        normalize_response(resp)
        assert resp.total_tokens == 12

    def test_idempotent(self):
        resp = GenerationResponse(content="<THINK>x</THINK>answer")
        normalize_response(resp)
        normalize_response(resp)
        assert resp.content == "answer"

    def test_strip_reasoning_empty(self):
        assert strip_reasoning("") == ""


# ==========================================================================
# Test: Gateway Orchestrator
# ==========================================================================


class TestLlmGateway:
    """Test the main gateway orchestrator."""

    @pytest.fixture
    def gateway(self):
        return LlmGateway(
            provider=LlmProvider.OPENAI,
            api_key="test-key",
            config=ProviderConfig(
                provider=LlmProvider.OPENAI,
                max_concurrent=4,
                max_retries=2,
                timeout_seconds=5,
                base_retry_delay=0.0,
                max_retry_delay=0.0,
            ),
        )

    @pytest.mark.asyncio
    async def test_generate_success(self, gateway):
        with patch("semantic_uq.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, return_value=_mock_completion(text="<think>x</think>Hi"))
            resp = await gateway.generate([ChatMessage.user("Hello")], temperature=0.1)

        assert resp.ok
        assert resp.content == "Hi"
        assert resp.retry_count == 0

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, gateway):
        with patch("semantic_uq.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(
                mock_client_cls,
                side_effect=[httpx.TimeoutException("timeout"), _mock_completion()],
            )
            resp = await gateway.generate([ChatMessage.user("Hello")])

        assert resp.ok
        assert resp.retry_count == 1

    @pytest.mark.asyncio
    async def test_gives_up_as_dead_letter(self, gateway):
        with patch("semantic_uq.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            mock_client = _patched_client(mock_client_cls, side_effect=httpx.TimeoutException("timeout"))
            resp = await gateway.generate([ChatMessage.user("Hello")])

        assert resp.status == RequestStatus.DEAD_LETTER
        assert mock_client.post.call_count == 3

    @pytest.mark.asyncio
    async def test_adapter_exception_becomes_vendor_error(self):
        adapter = AsyncMock()
        adapter.send.side_effect = RuntimeError("boom")
        gw = LlmGateway(
            adapter=adapter,
            config=ProviderConfig(provider=LlmProvider.OPENAI, max_retries=0),
        )
        resp = await gw.generate([ChatMessage.user("Hello")])
        assert resp.status == RequestStatus.DEAD_LETTER
        assert "RuntimeError" in resp.error_message

    @pytest.mark.asyncio
    async def test_circuit_open(self, gateway):
        for _ in range(FAILURE_THRESHOLD):
            gateway.circuit_breaker.on_failure(attempt=0)

        resp = await gateway.generate([ChatMessage.user("Hello")])
        assert resp.status == RequestStatus.CIRCUIT_OPEN

    @pytest.mark.asyncio
    async def test_stops_retrying_once_circuit_opens(self):
        adapter = AsyncMock()
        adapter.send.side_effect = RuntimeError("boom")
        config = ProviderConfig(provider=LlmProvider.OPENAI, max_retries=3)
        gw = LlmGateway(adapter=adapter, config=config)
        gw.circuit_breaker = CircuitBreaker(config, failure_threshold=1)

        resp = await gw.generate([ChatMessage.user("Hello")])

        assert resp.status == RequestStatus.DEAD_LETTER
        assert adapter.send.call_count == 1

    @pytest.mark.asyncio
    async def test_cancelled_probe_frees_half_open_slot(self):
        release = asyncio.Event()
        started = asyncio.Event()

        async def send(request, timeout):
            started.set()
            await release.wait()
            return GenerationResponse(provider=LlmProvider.OPENAI, status=RequestStatus.SUCCESS, content="ok")

        adapter = AsyncMock()
        adapter.send.side_effect = send
        config = ProviderConfig(provider=LlmProvider.OPENAI, max_retries=0)
        clock = _Clock()
        gw = LlmGateway(adapter=adapter, config=config)
        gw.circuit_breaker = CircuitBreaker(config, failure_threshold=1, clock=clock)
        gw.circuit_breaker.on_failure(attempt=0)
        clock.now += 60.0

        probe = asyncio.create_task(gw.generate([ChatMessage.user("Hello")]))
        await started.wait()
        probe.cancel()
        with pytest.raises(asyncio.CancelledError):
            await probe

        release.set()
        resp = await gw.generate([ChatMessage.user("Hello")])

        assert resp.status == RequestStatus.SUCCESS
        assert gw.circuit_breaker.state == CircuitState.CLOSED

    def test_from_settings(self):
        s = Settings(
            llm_provider="deepseek",
            llm_api_key="k",
            llm_model="deepseek-reasoner",
            llm_max_concurrent=3,
            llm_max_retries=1,
        )
        gw = LlmGateway.from_settings(s)
        assert isinstance(gw.adapter, DeepSeekAdapter)
        assert gw.model == "deepseek-reasoner"
        assert gw.config.max_concurrent == 3
        assert gw.config.max_retries == 1

    def test_get_status(self, gateway):
        status = gateway.get_status()
        assert status["provider"] == "openai"
        assert status["model"] == "gpt-4o-mini"
        assert status["circuit"]["state"] == "closed"
