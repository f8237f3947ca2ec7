"""Entropy & Uncertainty Calculator — Pipeline Step 5.

Turns the cluster distribution into entropy measures:
  - von Neumann entropy: Shannon entropy of the normalized cluster weights
    (the density matrix of the cluster mixture is diagonal)
  - semantic entropy: weights inflated by inter-cluster diversity and
    intra-cluster looseness, then corrected by a penalty for clusters whose
    centroids sit close together
  - breakdown per cluster, epistemic/aleatoric decomposition, a 95%
    interval on the total uncertainty, and information gain
"""

from __future__ import annotations

import math

import numpy as np

from semantic_uq.analysis.similarity import euclidean_distance
from semantic_uq.analysis.types import (
    Cluster,
    ClusterEntropy,
    EntailmentMatrix,
    EntropyBreakdown,
    EntropyResult,
    UncertaintyMetrics,
)

_LOG_EPSILON = 1e-10
_Z_95 = 1.96
_CONTRADICTION_THRESHOLD = 0.3


class EntropyCalculator:
    """Stateless entropy computations over a list of clusters."""

    def von_neumann_entropy(self, clusters: list[Cluster]) -> float:
        if len(clusters) <= 1:
            return 0.0
        weights = _normalized([c.weight for c in clusters])
        return float(-sum(w * math.log(w) for w in weights if w > 0))

    def semantic_entropy(self, clusters: list[Cluster]) -> float:
        if not clusters:
            return 0.0

        base = [c.weight * (1.0 + self._diversity(i, clusters)) for i, c in enumerate(clusters)]
        adjusted = _normalized(base)

        entropy = 0.0
        for weight, cluster in zip(adjusted, clusters):
            if weight <= 0:
                continue
            a = weight * (1.0 + (1.0 - cluster.similarity_score))
            entropy -= a * math.log(a + _LOG_EPSILON)

        entropy *= 1.0 + self._distance_penalty(clusters)
        # a single loose cluster can push the sum below zero
        return max(0.0, entropy)

    def compute_entropy(self, clusters: list[Cluster], sample_size: int) -> EntropyResult:
        """Full entropy analysis of *clusters* drawn from *sample_size* responses."""
        von_neumann = self.von_neumann_entropy(clusters)
        semantic = self.semantic_entropy(clusters)

        max_entropy = math.log(len(clusters)) if len(clusters) > 1 else 0.0
        normalized = (von_neumann + semantic) / (2 * max_entropy) if max_entropy > 0 else 0.0

        return EntropyResult(
            von_neumann_entropy=von_neumann,
            semantic_entropy=semantic,
            normalized_entropy=normalized,
            breakdown=self.breakdown(clusters, von_neumann),
            uncertainty=self.uncertainty_metrics(clusters, von_neumann, semantic, sample_size),
        )

    def breakdown(self, clusters: list[Cluster], total_entropy: float) -> EntropyBreakdown:
        contributions: list[ClusterEntropy] = []
        dominant = ""
        max_weight = 0.0
        for cluster in clusters:
            local = -cluster.weight * math.log(cluster.weight) if cluster.weight > 0 else 0.0
            contributions.append(
                ClusterEntropy(
                    cluster_id=cluster.cluster_id,
                    weight=cluster.weight,
                    contribution=local / max(total_entropy, _LOG_EPSILON),
                    local_entropy=local,
                )
            )
            if cluster.weight > max_weight:
                max_weight = cluster.weight
                dominant = cluster.cluster_id

        return EntropyBreakdown(
            cluster_contributions=contributions,
            dominant_cluster=dominant,
            entropy_distribution=[c.contribution for c in contributions],
            information_content=sum(c.local_entropy for c in contributions),
        )

    def uncertainty_metrics(
        self,
        clusters: list[Cluster],
        von_neumann: float,
        semantic: float,
        sample_size: int,
    ) -> UncertaintyMetrics:
        # epistemic: spread of cluster cohesion
        if clusters:
            epistemic = min(1.0, 2.0 * float(np.var([c.similarity_score for c in clusters])))
        else:
            epistemic = 0.0

        # aleatoric: how close the distribution is to uniform
        if len(clusters) > 1:
            aleatoric = von_neumann / math.log(len(clusters))
        else:
            aleatoric = 0.0

        total = epistemic + aleatoric
        margin = _Z_95 * total / math.sqrt(max(sample_size, 1))

        return UncertaintyMetrics(
            epistemic_uncertainty=epistemic,
            aleatoric_uncertainty=aleatoric,
            total_uncertainty=total,
            confidence_interval=(max(0.0, total - margin), min(1.0, total + margin)),
            information_gain=max(0.0, math.log(2.0) - (von_neumann + semantic) / 2.0),
        )

    def quantify_uncertainty(self, clusters: list[Cluster], entailment: EntailmentMatrix) -> float:
        """Normalized cluster entropy inflated by an entailment penalty, in [0, 1].

        No clusters is maximal uncertainty; a single cluster is none.
        """
        if not clusters:
            return 1.0
        if len(clusters) == 1:
            return 0.0

        entropy = -sum(c.weight * math.log(c.weight) for c in clusters if c.weight > 0)
        normalized = entropy / max(math.log(len(clusters)), _LOG_EPSILON)
        score = normalized * (1.0 + entailment_penalty(entailment))
        return max(0.0, min(1.0, score))

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    @staticmethod
    def _diversity(index: int, clusters: list[Cluster]) -> float:
        """Mean centroid distance from cluster *index* to every other cluster."""
        if len(clusters) <= 1:
            return 0.0
        target = clusters[index].semantic_vector
        distances = [
            _centroid_distance(target, other.semantic_vector) for i, other in enumerate(clusters) if i != index
        ]
        return float(np.mean(distances))

    @staticmethod
    def _distance_penalty(clusters: list[Cluster]) -> float:
        """Larger when cluster centroids are close together."""
        if len(clusters) < 2:
            return 0.0
        return max(0.0, 1.0 - mean_centroid_distance(clusters))


def entailment_penalty(entailment: EntailmentMatrix) -> float:
    """Mean of directional asymmetry and mutual-low-entailment contradiction."""
    n = entailment.size
    if n < 2:
        return 0.0
    asymmetry = 0.0
    contradiction = 0.0
    pairs = 0
    for i in range(n):
        for j in range(n):
            if i == j:
                continue
            forward = entailment.get(i, j)
            backward = entailment.get(j, i)
            asymmetry += abs(forward - backward)
            if forward < _CONTRADICTION_THRESHOLD and backward < _CONTRADICTION_THRESHOLD:
                contradiction += 0.5
            pairs += 1
    return (asymmetry / pairs + contradiction / pairs) / 2.0


def mean_centroid_distance(clusters: list[Cluster]) -> float:
    """Mean Euclidean distance over unordered pairs of cluster mean vectors."""
    distances = [
        _centroid_distance(clusters[i].semantic_vector, clusters[j].semantic_vector)
        for i in range(len(clusters))
        for j in range(i + 1, len(clusters))
    ]
    if not distances:
        return 0.0
    return float(np.mean(distances))


def _centroid_distance(a: tuple[float, ...], b: tuple[float, ...]) -> float:
    if len(a) != len(b):
        return 1.0
    return euclidean_distance(a, b)


def _normalized(values: list[float]) -> list[float]:
    total = sum(values)
    if total <= 0:
        return list(values)
    return [v / total for v in values]
