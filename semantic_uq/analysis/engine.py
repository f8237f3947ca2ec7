"""Semantic Entropy Engine — orchestrator for the 6-step pipeline.

Chains the analysis steps in order:
  1. Semantic Feature Extractor     (N calls, heuristic fallback)
  2. Entailment Analyzer            (N·(N-1) calls, neutral fallback)
  3. Similarity Fusion
  4. Cluster Engine
  5. Entropy & Uncertainty Calculator
  6. Confidence Aggregator

Steps 1 and 2 are independent and run concurrently. A single response skips
the pipeline and is graded by rubric instead.

Input:  query + candidate responses
Output: ConfidenceResult
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid

from semantic_uq.analysis.clustering import ClusterEngine
from semantic_uq.analysis.confidence import ConfidenceAggregator
from semantic_uq.analysis.entailment import EntailmentAnalyzer
from semantic_uq.analysis.entropy import EntropyCalculator
from semantic_uq.analysis.feature_extractor import SemanticFeatureExtractor
from semantic_uq.analysis.heuristics import HeuristicEstimator, LexicalHeuristicEstimator
from semantic_uq.analysis.rubric import RubricJudge
from semantic_uq.analysis.similarity import fuse
from semantic_uq.analysis.types import (
    ConfidenceResult,
    DegradationReport,
    EngineConfig,
    FeatureSource,
    Response,
)
from semantic_uq.core.config import Settings
from semantic_uq.core.exceptions import CancellationError, InputError
from semantic_uq.gateway.gateway import LlmGateway
from semantic_uq.gateway.types import TextGenerator

logger = logging.getLogger(__name__)


class SemanticEntropyEngine:
    """Estimates how trustworthy an answer is from agreement among candidates."""

    def __init__(
        self,
        generator: TextGenerator,
        config: EngineConfig | None = None,
        heuristics: HeuristicEstimator | None = None,
    ):
        self.generator = generator
        self.config = config or EngineConfig()
        self.heuristics = heuristics or LexicalHeuristicEstimator()

        self.feature_extractor = SemanticFeatureExtractor(generator, self.config, self.heuristics)
        self.entailment_analyzer = EntailmentAnalyzer(generator, self.config)
        self.cluster_engine = ClusterEngine(self.config)
        self.entropy_calculator = EntropyCalculator()
        self.aggregator = ConfidenceAggregator(self.config)
        self.rubric_judge = RubricJudge(generator, self.config)

    @classmethod
    def from_settings(cls, settings: Settings) -> SemanticEntropyEngine:
        return cls(LlmGateway.from_settings(settings), EngineConfig.from_settings(settings))

    async def calculate_confidence(
        self,
        query: str,
        responses: list[str] | list[Response],
        cancel_event: asyncio.Event | None = None,
    ) -> ConfidenceResult:
        """Run the full analysis for one query and its candidate responses.

        Args:
            query: The question the responses answer.
            responses: Candidate answers, as plain strings or Response objects.
            cancel_event: Optional signal; once set, in-flight calls are
                          cancelled and CancellationError is raised.

        Raises:
            InputError: the response set is empty.
            CancellationError: cancel_event was set before completion.
        """
        if not responses:
            raise InputError("at least one response is required")

        items = [r if isinstance(r, Response) else Response(text=str(r), query=query) for r in responses]

        if cancel_event is None:
            return await self._run(query, items)

        if cancel_event.is_set():
            raise CancellationError("analysis cancelled before start")

        work = asyncio.ensure_future(self._run(query, items))
        watcher = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait({work, watcher}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            watcher.cancel()
            raise

        if work in done:
            watcher.cancel()
            return work.result()

        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        raise CancellationError("analysis cancelled")

    async def _run(self, query: str, responses: list[Response]) -> ConfidenceResult:
        analysis_id = uuid.uuid4().hex[:12]
        started = time.monotonic()

        if len(responses) == 1:
            result = await self._single_response(query, responses[0])
        else:
            result = await self._pipeline(responses)

        logger.info(
            "Analysis %s: %d responses, %d clusters, confidence=%.3f, agreement=%s, degraded=%s (%.2fs)",
            analysis_id,
            len(responses),
            len(result.clusters),
            result.overall_confidence,
            result.agreement_level.value,
            result.degradation.degraded,
            time.monotonic() - started,
            extra={"analysis_id": analysis_id},
        )
        return result

    async def _pipeline(self, responses: list[Response]) -> ConfidenceResult:
        n = len(responses)

        # Steps 1 + 2: independent model calls
        vectors, (entailment, neutral_pairs) = await asyncio.gather(
            self.feature_extractor.extract_all(responses),
            self.entailment_analyzer.analyze_entailments(responses),
        )

        # Step 3
        similarity = fuse(vectors, entailment, self.config)

        # Step 4
        clustering = self.cluster_engine.cluster(responses, vectors, similarity)

        # Step 5
        entropy = self.entropy_calculator.compute_entropy(clustering.clusters, n)

        # Step 6
        result = self.aggregator.aggregate(entropy, clustering.clusters, entailment)
        result.optimal_k = clustering.optimal_k
        result.silhouette_score = clustering.silhouette_score
        result.uncertainty_score = self.entropy_calculator.quantify_uncertainty(clustering.clusters, entailment)
        result.degradation = DegradationReport(
            heuristic_features=[i for i, v in enumerate(vectors) if v.source == FeatureSource.HEURISTIC],
            neutral_entailments=neutral_pairs,
        )

        if result.degradation.degraded:
            logger.warning(
                "Degraded analysis: %d/%d heuristic feature vectors, %d/%d neutral entailment cells",
                len(result.degradation.heuristic_features),
                n,
                len(neutral_pairs),
                n * (n - 1),
            )
        return result

    async def _single_response(self, query: str, response: Response) -> ConfidenceResult:
        consistency, validity = await asyncio.gather(
            self.rubric_judge.judge_consistency(response.text),
            self.rubric_judge.judge_validity(query or response.query, response.text),
        )

        result = self.aggregator.single_response(
            consistency=consistency.value.consistency_score,
            validity=validity.value.validity_score,
            factors=self.heuristics.single_response_factors(response.text),
        )
        result.degradation = DegradationReport(
            default_judgments=[
                name
                for name, outcome in (("consistency", consistency), ("validity", validity))
                if outcome.is_fallback
            ],
        )
        return result
