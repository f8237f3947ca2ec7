"""Confidence Aggregator — Pipeline Step 6.

Maps entropy to a bounded confidence (high entropy = low confidence) and
attaches the interpretation layer: consistency, agreement bucket, named
uncertainty factors and reliability metrics.
"""

from __future__ import annotations

import math

import numpy as np

from semantic_uq.analysis.entropy import mean_centroid_distance
from semantic_uq.analysis.types import (
    AgreementLevel,
    Cluster,
    ConfidenceResult,
    EngineConfig,
    EntailmentMatrix,
    EntropyResult,
    ReliabilityMetrics,
    UncertaintyFactor,
)

# Uncertainty factor thresholds
HIGH_DIVERSITY_CLUSTERS = 4  # more than this many clusters
UNIFORM_WEIGHT_VARIANCE = 0.05
LOW_ENTAILMENT = 0.3
AMBIGUOUS_COHESION = 0.5


class ConfidenceAggregator:
    def __init__(self, config: EngineConfig | None = None):
        self.config = config or EngineConfig()

    def confidence_from_entropy(self, von_neumann: float, semantic: float) -> float:
        normalizer = self.config.entropy_normalizer
        composite = self.config.von_neumann_weight * min(von_neumann / normalizer, 1.0)
        composite += self.config.semantic_entropy_weight * min(semantic / normalizer, 1.0)
        return self.clamp(1.0 - composite)

    def clamp(self, confidence: float) -> float:
        return max(self.config.min_confidence, min(self.config.max_confidence, confidence))

    def aggregate(
        self,
        entropy: EntropyResult,
        clusters: list[Cluster],
        entailment: EntailmentMatrix,
    ) -> ConfidenceResult:
        """Build the multi-response ConfidenceResult."""
        confidence = self.confidence_from_entropy(entropy.von_neumann_entropy, entropy.semantic_entropy)
        return ConfidenceResult(
            overall_confidence=confidence,
            semantic_entropy=entropy.semantic_entropy,
            von_neumann_entropy=entropy.von_neumann_entropy,
            clusters=list(clusters),
            consistency_score=consistency_score(clusters),
            agreement_level=agreement_level(confidence, len(clusters)),
            uncertainty_factors=uncertainty_factors(clusters, entailment),
            reliability_metrics=reliability_metrics(clusters, entailment),
            entropy=entropy,
        )

    def single_response(
        self,
        consistency: float,
        validity: float,
        factors: list[UncertaintyFactor],
    ) -> ConfidenceResult:
        """ConfidenceResult for a lone response judged by rubric."""
        confidence = self.clamp((consistency + validity) / 2.0)
        return ConfidenceResult(
            overall_confidence=confidence,
            consistency_score=consistency,
            agreement_level=agreement_level(confidence, 1),
            uncertainty_factors=list(factors),
            reliability_metrics=ReliabilityMetrics(calibration_score=validity),
        )


def consistency_score(clusters: list[Cluster]) -> float:
    """Weight of the largest cluster."""
    return max((c.weight for c in clusters), default=0.0)


def agreement_level(confidence: float, cluster_count: int) -> AgreementLevel:
    if confidence >= 0.9 and cluster_count <= 2:
        return AgreementLevel.HIGH
    if confidence >= 0.7 and cluster_count <= 3:
        return AgreementLevel.MODERATE
    if confidence >= 0.5:
        return AgreementLevel.LOW
    return AgreementLevel.DISAGREEMENT


def uncertainty_factors(clusters: list[Cluster], entailment: EntailmentMatrix) -> list[UncertaintyFactor]:
    factors: list[UncertaintyFactor] = []

    if len(clusters) > HIGH_DIVERSITY_CLUSTERS:
        factors.append(UncertaintyFactor.HIGH_RESPONSE_DIVERSITY)

    if len(clusters) >= 2 and float(np.var([c.weight for c in clusters])) < UNIFORM_WEIGHT_VARIANCE:
        factors.append(UncertaintyFactor.UNIFORM_DISTRIBUTION)

    if entailment.size >= 2 and entailment.off_diagonal_mean() < LOW_ENTAILMENT:
        factors.append(UncertaintyFactor.LOW_LOGICAL_CONSISTENCY)

    if any(c.similarity_score < AMBIGUOUS_COHESION for c in clusters):
        factors.append(UncertaintyFactor.AMBIGUOUS_CLUSTERING)

    return factors


def reliability_metrics(clusters: list[Cluster], entailment: EntailmentMatrix) -> ReliabilityMetrics:
    cohesion = float(np.mean([c.similarity_score for c in clusters])) if clusters else 0.0
    distribution_entropy = -sum(c.weight * math.log(c.weight) for c in clusters if c.weight > 0)

    if entailment.size >= 2:
        calibration = max(0.0, 1.0 - entailment.mean_asymmetry())
    else:
        calibration = 1.0

    return ReliabilityMetrics(
        inter_cluster_distance=mean_centroid_distance(clusters),
        intra_cluster_cohesion=cohesion,
        distribution_entropy=distribution_entropy,
        calibration_score=calibration,
    )
