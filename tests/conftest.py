import asyncio
import json
import re
from collections.abc import AsyncGenerator, Callable

import pytest
from httpx import ASGITransport, AsyncClient

from semantic_uq.core.config import settings

# Override settings for tests
settings.app_env = "development"
settings.llm_api_key = ""

from semantic_uq.analysis.engine import SemanticEntropyEngine  # noqa: E402
from semantic_uq.analysis.types import EngineConfig  # noqa: E402
from semantic_uq.gateway.types import ChatMessage, GenerationResponse, RequestStatus  # noqa: E402

_PREMISE_PATTERN = re.compile(r"\[Premise\]: (.*?)\n\n\[Hypothesis\]: (.*?)\n\nChoose", re.DOTALL)
_FEATURE_PATTERN = re.compile(r'Text: "(.*?)"\n\nDimensions', re.DOTALL)

DEFAULT_RATINGS = {
    "concreteness": 0.5,
    "technicality": 0.5,
    "emotional_tone": 0.5,
    "certainty": 0.5,
    "complexity": 0.5,
}


def ratings_reply(values: list[float] | dict) -> str:
    if isinstance(values, dict):
        return json.dumps(values)
    keys = list(DEFAULT_RATINGS)
    return json.dumps(dict(zip(keys, values)))


def verdict_reply(relation: str, confidence: float) -> str:
    return json.dumps(
        {
            "relation": relation,
            "confidence": confidence,
            "explanation": "scripted",
            "logical_basis": "scripted",
        }
    )


class FakeGenerator:
    """Scripted TextGenerator that answers by recognizing the prompt type.

    Each script returns reply text, or None to simulate a failed call
    (TIMEOUT status).

    Args:
        features: text -> reply for feature-rating prompts
        entailment: (premise, hypothesis) -> reply for NLI prompts
        consistency: reply for the internal-consistency rubric
        validity: reply for the logical-validity rubric
        delay: seconds each call sleeps before answering
    """

    def __init__(
        self,
        features: Callable[[str], str | None] | None = None,
        entailment: Callable[[str, str], str | None] | None = None,
        consistency: str | None = '{"consistency_score": 0.8}',
        validity: str | None = '{"validity_score": 0.6}',
        delay: float = 0.0,
    ):
        self.features = features or (lambda text: ratings_reply(DEFAULT_RATINGS))
        self.entailment = entailment or (lambda premise, hypothesis: verdict_reply("entailment", 0.9))
        self.consistency = consistency
        self.validity = validity
        self.delay = delay
        self.calls: list[tuple[str, float]] = []

    async def generate(self, messages: list[ChatMessage], temperature: float = 0.0) -> GenerationResponse:
        prompt = messages[-1].content
        if self.delay:
            await asyncio.sleep(self.delay)

        if (match := _PREMISE_PATTERN.search(prompt)) is not None:
            kind = "entailment"
            reply = self.entailment(match.group(1), match.group(2))
        elif (match := _FEATURE_PATTERN.search(prompt)) is not None:
            kind = "features"
            reply = self.features(match.group(1))
        elif "internal consistency" in prompt:
            kind = "consistency"
            reply = self.consistency
        elif "logical validity" in prompt:
            kind = "validity"
            reply = self.validity
        else:
            raise AssertionError(f"unrecognized prompt: {prompt[:60]!r}")

        self.calls.append((kind, temperature))
        if reply is None:
            return GenerationResponse(status=RequestStatus.TIMEOUT, error_message="scripted timeout")
        return GenerationResponse(status=RequestStatus.SUCCESS, content=reply)

    def count(self, kind: str) -> int:
        return sum(1 for k, _ in self.calls if k == kind)


@pytest.fixture
def make_generator() -> type[FakeGenerator]:
    return FakeGenerator


@pytest.fixture
def make_engine() -> Callable[..., SemanticEntropyEngine]:
    def _make(generator, config: EngineConfig | None = None) -> SemanticEntropyEngine:
        return SemanticEntropyEngine(generator, config or EngineConfig())

    return _make


@pytest.fixture
async def client(make_generator) -> AsyncGenerator[AsyncClient, None]:
    from semantic_uq.core.dependencies import get_engine
    from semantic_uq.main import app

    engine = SemanticEntropyEngine(make_generator())
    app.dependency_overrides[get_engine] = lambda: engine
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
