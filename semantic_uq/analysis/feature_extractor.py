"""Semantic Feature Extractor — Pipeline Step 1.

Asks the language model to rate one response on five dimensions:
  - concreteness (abstract → concrete)
  - technicality (general → technical)
  - emotional_tone (negative → positive)
  - certainty (uncertain → certain)
  - complexity (simple → complex)

Falls back to lexical heuristics when the call fails or the reply cannot be
parsed. Extraction never raises.
"""

from __future__ import annotations

import asyncio
import logging

from semantic_uq.analysis.heuristics import HeuristicEstimator, LexicalHeuristicEstimator
from semantic_uq.analysis.json_extraction import FeatureRatings, decode_reply
from semantic_uq.analysis.service import request_text
from semantic_uq.analysis.types import EngineConfig, FeatureSource, Response, SemanticVector
from semantic_uq.core.exceptions import ParseError, ServiceError
from semantic_uq.gateway.types import ChatMessage, TextGenerator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Prompt template
# ---------------------------------------------------------------------------

_FEATURE_PROMPT = """\
Rate the following text on each semantic dimension with a score from 0.0 to 1.0:

Text: "{text}"

Dimensions:
- concreteness: 0.0 = abstract, 1.0 = concrete
- technicality: 0.0 = general, 1.0 = technical
- emotional_tone: 0.0 = negative, 1.0 = positive
- certainty: 0.0 = uncertain, 1.0 = certain
- complexity: 0.0 = simple, 1.0 = complex

Answer ONLY with JSON in this format:
{{"concreteness": 0.0, "technicality": 0.0, "emotional_tone": 0.0, "certainty": 0.0, "complexity": 0.0}}"""


class SemanticFeatureExtractor:
    """Turns responses into SemanticVectors, one model call per response."""

    def __init__(
        self,
        generator: TextGenerator,
        config: EngineConfig | None = None,
        heuristics: HeuristicEstimator | None = None,
    ):
        self.generator = generator
        self.config = config or EngineConfig()
        self.heuristics = heuristics or LexicalHeuristicEstimator()

    async def extract(self, response: Response) -> SemanticVector:
        """Rate one response; heuristic vector on any service or parse failure."""
        messages = [ChatMessage.user(_FEATURE_PROMPT.format(text=response.text))]
        try:
            reply = await request_text(self.generator, messages, self.config.feature_temperature)
            ratings = decode_reply(reply, FeatureRatings)
        except (ServiceError, ParseError) as e:
            logger.warning("Feature extraction fell back to heuristics: %s", e)
            return self.heuristics.semantic_vector(response.text)

        return SemanticVector.from_scores(ratings.model_dump(), source=FeatureSource.MODEL)

    async def extract_all(self, responses: list[Response]) -> list[SemanticVector]:
        """Extract every response concurrently; output order matches input order."""
        slots: list[SemanticVector | None] = [None] * len(responses)
        semaphore = asyncio.Semaphore(self.config.max_concurrent_calls)

        async def _fill(index: int, response: Response) -> None:
            async with semaphore:
                slots[index] = await self.extract(response)

        await asyncio.gather(*(_fill(i, r) for i, r in enumerate(responses)))
        return [vector for vector in slots if vector is not None]
