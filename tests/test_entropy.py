"""Tests for the entropy & uncertainty calculator (pipeline step 5)."""

import math

import pytest

from semantic_uq.analysis.entropy import EntropyCalculator, entailment_penalty, mean_centroid_distance
from semantic_uq.analysis.types import Cluster, EntailmentMatrix


def _cluster(index: int, weight: float, similarity: float = 1.0, vector=(0.5, 0.5, 0.5, 0.5, 0.5)) -> Cluster:
    return Cluster(
        cluster_id=f"cluster_{index}",
        members=(f"r{index}",),
        prototype=f"r{index}",
        weight=weight,
        similarity_score=similarity,
        semantic_vector=tuple(vector),
    )


@pytest.fixture
def calc():
    return EntropyCalculator()


class TestVonNeumann:
    def test_empty_and_single(self, calc):
        assert calc.von_neumann_entropy([]) == 0.0
        assert calc.von_neumann_entropy([_cluster(1, 1.0)]) == 0.0

    def test_uniform_two(self, calc):
        assert calc.von_neumann_entropy([_cluster(1, 0.5), _cluster(2, 0.5)]) == pytest.approx(math.log(2))

    def test_weights_are_renormalized(self, calc):
        assert calc.von_neumann_entropy([_cluster(1, 2.0), _cluster(2, 2.0)]) == pytest.approx(math.log(2))

    def test_skewed_is_lower(self, calc):
        skewed = calc.von_neumann_entropy([_cluster(1, 0.9), _cluster(2, 0.1)])
        assert 0.0 < skewed < math.log(2)


class TestSemanticEntropy:
    def test_empty(self, calc):
        assert calc.semantic_entropy([]) == 0.0

    def test_single_tight_cluster_is_zero(self, calc):
        assert calc.semantic_entropy([_cluster(1, 1.0, similarity=1.0)]) == pytest.approx(0.0, abs=1e-8)

    def test_single_loose_cluster_is_clamped(self, calc):
        assert calc.semantic_entropy([_cluster(1, 1.0, similarity=0.2)]) == 0.0

    def test_two_identical_centroids(self, calc):
        # diversity 0, penalty 1 → 2·ln 2
        clusters = [_cluster(1, 0.5), _cluster(2, 0.5)]
        assert calc.semantic_entropy(clusters) == pytest.approx(2 * math.log(2), rel=1e-6)

    def test_distant_centroids_remove_penalty(self, calc):
        clusters = [
            _cluster(1, 0.5, vector=(1.0, 1.0, 0.0, 0.0, 0.0)),
            _cluster(2, 0.5, vector=(0.0, 0.0, 1.0, 1.0, 0.0)),
        ]
        # distance 2 ≥ 1 → no penalty, equal weights
        assert calc.semantic_entropy(clusters) == pytest.approx(math.log(2), rel=1e-6)

    def test_never_negative(self, calc):
        clusters = [_cluster(1, 0.95, similarity=0.1), _cluster(2, 0.05, similarity=0.1)]
        assert calc.semantic_entropy(clusters) >= 0.0


class TestComputeEntropy:
    def test_single_cluster(self, calc):
        result = calc.compute_entropy([_cluster(1, 1.0)], sample_size=5)
        assert result.von_neumann_entropy == 0.0
        assert result.normalized_entropy == 0.0
        assert result.uncertainty.aleatoric_uncertainty == 0.0
        assert result.uncertainty.information_gain == pytest.approx(math.log(2))
        assert result.breakdown.dominant_cluster == "cluster_1"

    def test_breakdown(self, calc):
        clusters = [_cluster(1, 0.75), _cluster(2, 0.25)]
        result = calc.compute_entropy(clusters, sample_size=4)
        breakdown = result.breakdown

        assert breakdown.dominant_cluster == "cluster_1"
        locals_ = [c.local_entropy for c in breakdown.cluster_contributions]
        assert locals_ == pytest.approx([-0.75 * math.log(0.75), -0.25 * math.log(0.25)])
        assert sum(breakdown.entropy_distribution) == pytest.approx(1.0)
        assert breakdown.information_content == pytest.approx(result.von_neumann_entropy)

    def test_normalized_entropy(self, calc):
        clusters = [_cluster(1, 0.5), _cluster(2, 0.5)]
        result = calc.compute_entropy(clusters, sample_size=2)
        expected = (result.von_neumann_entropy + result.semantic_entropy) / (2 * math.log(2))
        assert result.normalized_entropy == pytest.approx(expected)

    def test_uncertainty_decomposition(self, calc):
        clusters = [_cluster(1, 0.5, similarity=0.9), _cluster(2, 0.5, similarity=0.5)]
        result = calc.compute_entropy(clusters, sample_size=4)
        u = result.uncertainty

        # variance of [0.9, 0.5] is 0.04
        assert u.epistemic_uncertainty == pytest.approx(0.08)
        assert u.aleatoric_uncertainty == pytest.approx(1.0)
        assert u.total_uncertainty == pytest.approx(1.08)
        margin = 1.96 * 1.08 / 2
        assert u.confidence_interval == pytest.approx((1.08 - margin, 1.0))

    def test_interval_bounds_clamped(self, calc):
        result = calc.compute_entropy([_cluster(1, 0.5), _cluster(2, 0.5)], sample_size=1)
        low, high = result.uncertainty.confidence_interval
        assert 0.0 <= low <= high <= 1.0


class TestQuantifyUncertainty:
    def test_no_clusters_is_maximal(self, calc):
        assert calc.quantify_uncertainty([], EntailmentMatrix(0)) == 1.0

    def test_single_cluster_is_zero(self, calc):
        assert calc.quantify_uncertainty([_cluster(1, 1.0)], EntailmentMatrix(3)) == 0.0

    def test_consistent_entailment_no_penalty(self, calc):
        entailment = EntailmentMatrix.from_rows([[1.0, 0.5], [0.5, 1.0]])
        score = calc.quantify_uncertainty([_cluster(1, 0.75), _cluster(2, 0.25)], entailment)
        expected = -(0.75 * math.log(0.75) + 0.25 * math.log(0.25)) / math.log(2)
        assert score == pytest.approx(expected)

    def test_clamped_to_one(self, calc):
        entailment = EntailmentMatrix.from_rows([[1.0, 0.1], [0.1, 1.0]])
        assert calc.quantify_uncertainty([_cluster(1, 0.5), _cluster(2, 0.5)], entailment) == 1.0


class TestHelpers:
    def test_entailment_penalty(self):
        assert entailment_penalty(EntailmentMatrix(1)) == 0.0
        # asymmetry 0.6, no mutual contradiction
        assert entailment_penalty(EntailmentMatrix.from_rows([[1.0, 0.9], [0.3, 1.0]])) == pytest.approx(0.3)
        # symmetric, mutually low → contradiction 0.5
        assert entailment_penalty(EntailmentMatrix.from_rows([[1.0, 0.1], [0.1, 1.0]])) == pytest.approx(0.25)

    def test_mean_centroid_distance(self):
        clusters = [_cluster(1, 0.5, vector=(0.0, 0.0)), _cluster(2, 0.5, vector=(0.3, 0.4))]
        assert mean_centroid_distance(clusters) == pytest.approx(0.5)
        assert mean_centroid_distance(clusters[:1]) == 0.0
