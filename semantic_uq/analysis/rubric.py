"""Single-response rubric judge (LLM-as-a-Judge).

With only one response there is nothing to cluster, so the model grades the
response against two rubrics instead:
  - internal consistency (contradictions, claim coherence, tone)
  - logical validity against the query (relevance, completeness, reasoning)

Each judgment degrades independently to its schema default (score 0.5).
"""

from __future__ import annotations

import logging

from semantic_uq.analysis.json_extraction import (
    ConsistencyJudgment,
    Fallback,
    M,
    ParseOutcome,
    ValidityJudgment,
    decode_with_fallback,
)
from semantic_uq.analysis.service import request_text
from semantic_uq.analysis.types import EngineConfig
from semantic_uq.core.exceptions import ServiceError
from semantic_uq.gateway.types import ChatMessage, TextGenerator

logger = logging.getLogger(__name__)

_CONSISTENCY_PROMPT = """\
Analyze the internal consistency of the following text:

[Text]: {text}

Score consistency from 0.0 to 1.0 considering:
1. Logical consistency: are there contradictory statements?
2. Claim coherence: do the main claims agree with each other?
3. Evidence: does the evidence given support the claims?
4. Tone: is the tone consistent throughout?

Answer ONLY with JSON in this format:
{{
  "consistency_score": 0.0,
  "logical_issues": ["logical problems found"],
  "contradictions": ["contradictions found"],
  "overall_assessment": "overall verdict"
}}"""

_VALIDITY_PROMPT = """\
Evaluate the logical validity of the answer to the question:

[Question]: {query}
[Answer]: {text}

Score each criterion from 0.0 to 1.0:
1. Relevance: does it answer the question directly?
2. Completeness: does it cover every aspect of the question?
3. Reasoning: is the line of reasoning clear?
4. Evidence: are the claims sufficiently supported?

Answer ONLY with JSON in this format:
{{
  "validity_score": 0.0,
  "relevance": 0.0,
  "completeness": 0.0,
  "reasoning": 0.0,
  "evidence": 0.0
}}"""


class RubricJudge:
    def __init__(self, generator: TextGenerator, config: EngineConfig | None = None):
        self.generator = generator
        self.config = config or EngineConfig()

    async def judge_consistency(self, text: str) -> ParseOutcome[ConsistencyJudgment]:
        return await self._judge(_CONSISTENCY_PROMPT.format(text=text), ConsistencyJudgment)

    async def judge_validity(self, query: str, text: str) -> ParseOutcome[ValidityJudgment]:
        return await self._judge(_VALIDITY_PROMPT.format(query=query, text=text), ValidityJudgment)

    async def _judge(self, prompt: str, schema: type[M]) -> ParseOutcome[M]:
        default = schema()
        try:
            reply = await request_text(self.generator, [ChatMessage.user(prompt)], self.config.rubric_temperature)
        except ServiceError as e:
            logger.warning("%s defaulted: %s", schema.__name__, e)
            return Fallback(default, reason=str(e))

        outcome = decode_with_fallback(reply, schema, default)
        if outcome.is_fallback:
            logger.warning("%s defaulted: %s", schema.__name__, outcome.reason)
        return outcome
