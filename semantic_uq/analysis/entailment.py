"""Entailment Analyzer — Pipeline Step 2.

Classifies the logical relation between every ordered pair of responses
(natural language inference) and folds the verdicts into an asymmetric
EntailmentMatrix:

    entailment     → confidence
    contradiction  → 1 - confidence
    neutral        → 0.5

A pair whose call fails or whose reply cannot be parsed is scored 0.5 and
reported back to the caller as degraded.
"""

from __future__ import annotations

import asyncio
import logging

from semantic_uq.analysis.json_extraction import EntailmentVerdict, decode_reply
from semantic_uq.analysis.service import request_text
from semantic_uq.analysis.types import (
    EngineConfig,
    EntailmentMatrix,
    EntailmentRelation,
    EntailmentResult,
    Response,
)
from semantic_uq.core.exceptions import ParseError, ServiceError
from semantic_uq.gateway.types import ChatMessage, TextGenerator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# NLI prompt templates
# ---------------------------------------------------------------------------

_NLI_SYSTEM_PROMPT = """\
You are an expert in natural language inference (NLI).

Follow these principles:
1. Strict logical analysis: judge by logical structure, not sentiment or guesswork
2. Context: take implicit premises and common-sense inference into account
3. Weight of evidence: weigh explicit and implicit evidence appropriately
4. Uncertainty: when the case is ambiguous, report a lower confidence

Pay particular attention to:
- partial versus full entailment
- lexical versus logical entailment
- partial versus total negation of the premise
- the logical structure of conditionals and quantified statements"""

_NLI_USER_TEMPLATE = """\
Analyze the logical relation between the two texts below.

[Premise]: {premise}

[Hypothesis]: {hypothesis}

Choose exactly one relation and justify it:
1. entailment: if the premise is true, the hypothesis is necessarily true
2. contradiction: if the premise is true, the hypothesis is necessarily false
3. neutral: the truth of the premise does not decide the hypothesis

Answer ONLY with JSON in this format:
{{
  "relation": "entailment|contradiction|neutral",
  "confidence": 0.0,
  "explanation": "why this relation holds",
  "logical_basis": "the logical grounds"
}}"""

# Accepted relation labels (English plus the Japanese labels some models emit)
_RELATION_LABELS: dict[str, EntailmentRelation] = {
    "entailment": EntailmentRelation.ENTAILMENT,
    "含意": EntailmentRelation.ENTAILMENT,
    "contradiction": EntailmentRelation.CONTRADICTION,
    "矛盾": EntailmentRelation.CONTRADICTION,
    "neutral": EntailmentRelation.NEUTRAL,
    "中立": EntailmentRelation.NEUTRAL,
}

NEUTRAL_SCORE = 0.5


def parse_relation(label: str) -> EntailmentRelation:
    """Map a model-provided label onto the closed relation set."""
    relation = _RELATION_LABELS.get(label.strip().lower())
    if relation is None:
        raise ParseError("unknown entailment relation label")
    return relation


class EntailmentAnalyzer:
    """Pairwise NLI over a response set."""

    def __init__(self, generator: TextGenerator, config: EngineConfig | None = None):
        self.generator = generator
        self.config = config or EngineConfig()

    async def analyze_entailment(self, premise: str, hypothesis: str) -> EntailmentResult:
        """Classify one ordered pair.

        Raises:
            ServiceError: the generation call failed.
            ParseError: no JSON object, or a relation outside the closed set.
        """
        messages = [
            ChatMessage.system(_NLI_SYSTEM_PROMPT),
            ChatMessage.user(_NLI_USER_TEMPLATE.format(premise=premise, hypothesis=hypothesis)),
        ]
        reply = await request_text(self.generator, messages, self.config.entailment_temperature)
        verdict = decode_reply(reply, EntailmentVerdict)

        return EntailmentResult(
            premise_text=premise,
            hypothesis_text=hypothesis,
            relation=parse_relation(verdict.relation),
            confidence=verdict.confidence,
            explanation=verdict.explanation,
            logical_basis=verdict.logical_basis,
        )

    async def analyze_entailments(
        self,
        responses: list[Response],
    ) -> tuple[EntailmentMatrix, list[tuple[int, int]]]:
        """Score every ordered pair i != j concurrently.

        Returns:
            (matrix, degraded_pairs) where degraded_pairs lists the
            (premise, hypothesis) indices that fell back to neutral.
        """
        n = len(responses)
        matrix = EntailmentMatrix(n)
        degraded: list[tuple[int, int]] = []
        semaphore = asyncio.Semaphore(self.config.max_concurrent_calls)

        async def _fill(i: int, j: int) -> None:
            async with semaphore:
                try:
                    result = await self.analyze_entailment(responses[i].text, responses[j].text)
                    score = result.score
                except (ServiceError, ParseError) as e:
                    logger.warning("Entailment (%d -> %d) defaulted to neutral: %s", i, j, e)
                    degraded.append((i, j))
                    score = NEUTRAL_SCORE
            matrix.set(i, j, score)

        pairs = [(i, j) for i in range(n) for j in range(n) if i != j]
        await asyncio.gather(*(_fill(i, j) for i, j in pairs))

        degraded.sort()
        return matrix, degraded
