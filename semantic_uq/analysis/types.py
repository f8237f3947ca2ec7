"""Core types and DTOs for the semantic uncertainty pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from semantic_uq.core.config import Settings


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EntailmentRelation(str, Enum):
    """NLI relation between a premise and a hypothesis."""

    ENTAILMENT = "entailment"  # premise → hypothesis
    CONTRADICTION = "contradiction"  # premise → ¬hypothesis
    NEUTRAL = "neutral"  # independent


class AgreementLevel(str, Enum):
    """Coarse agreement bucket derived from confidence and cluster count."""

    HIGH = "high_agreement"
    MODERATE = "moderate_agreement"
    LOW = "low_agreement"
    DISAGREEMENT = "disagreement"


class UncertaintyFactor(str, Enum):
    """Named reasons why an answer set is less trustworthy."""

    HIGH_RESPONSE_DIVERSITY = "high_response_diversity"
    UNIFORM_DISTRIBUTION = "uniform_distribution"
    LOW_LOGICAL_CONSISTENCY = "low_logical_consistency"
    AMBIGUOUS_CLUSTERING = "ambiguous_clustering"
    # Single-response heuristics
    HEDGING_LANGUAGE = "hedging_language"
    INSUFFICIENT_DETAIL = "insufficient_detail"
    INTERNAL_CONTRADICTIONS = "internal_contradictions"


class FeatureSource(str, Enum):
    """Where a semantic vector came from."""

    MODEL = "model"  # rated by the language model
    HEURISTIC = "heuristic"  # lexical fallback


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

FEATURE_DIMENSIONS: tuple[str, ...] = (
    "concreteness",
    "technicality",
    "emotional_tone",
    "certainty",
    "complexity",
)


@dataclass(frozen=True)
class Response:
    """One candidate answer and the query it answers."""

    text: str
    query: str = ""


def _clamp01(value: float) -> float:
    if math.isnan(value):
        return 0.5
    return max(0.0, min(1.0, float(value)))


@dataclass(frozen=True)
class SemanticVector:
    """Fixed-length descriptor of a response, every component in [0, 1]."""

    values: tuple[float, ...]
    source: FeatureSource = field(default=FeatureSource.MODEL, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", tuple(_clamp01(v) for v in self.values))

    @classmethod
    def from_scores(cls, scores: dict[str, float], source: FeatureSource = FeatureSource.MODEL) -> SemanticVector:
        return cls(tuple(scores.get(dim, 0.5) for dim in FEATURE_DIMENSIONS), source=source)

    def __len__(self) -> int:
        return len(self.values)

    def __getitem__(self, index: int) -> float:
        return self.values[index]

    def as_array(self) -> np.ndarray:
        return np.asarray(self.values, dtype=np.float64)

    def as_dict(self) -> dict[str, float]:
        if len(self.values) != len(FEATURE_DIMENSIONS):
            return {f"dim_{i}": v for i, v in enumerate(self.values)}
        return dict(zip(FEATURE_DIMENSIONS, self.values))


# ---------------------------------------------------------------------------
# Pairwise matrices
# ---------------------------------------------------------------------------


class DenseMatrix:
    """Small owned N×N float matrix with explicit get/set.

    Rows are "from" and columns are "to": ``get(i, j)`` is the score of
    response *i* relative to response *j*. Symmetry is never assumed; use
    ``is_symmetric()`` when it matters.
    """

    fixed_diagonal: float | None = None

    def __init__(self, size: int, fill: float = 0.0):
        if size < 0:
            raise ValueError("matrix size must be non-negative")
        self._data = np.full((size, size), float(fill), dtype=np.float64)
        if self.fixed_diagonal is not None and size:
            np.fill_diagonal(self._data, self.fixed_diagonal)

    @classmethod
    def from_rows(cls, rows: list[list[float]]) -> DenseMatrix:
        matrix = cls(len(rows))
        for i, row in enumerate(rows):
            if len(row) != len(rows):
                raise ValueError("matrix rows must form a square")
            for j, value in enumerate(row):
                if i == j and cls.fixed_diagonal is not None:
                    continue
                matrix.set(i, j, value)
        return matrix

    @property
    def size(self) -> int:
        return self._data.shape[0]

    def __len__(self) -> int:
        return self.size

    def get(self, i: int, j: int) -> float:
        return float(self._data[i, j])

    def set(self, i: int, j: int, value: float) -> None:
        if i == j and self.fixed_diagonal is not None:
            raise ValueError(f"diagonal of {type(self).__name__} is fixed at {self.fixed_diagonal}")
        self._data[i, j] = float(value)

    def off_diagonal_mean(self) -> float:
        n = self.size
        if n < 2:
            return 0.0
        total = float(self._data.sum() - np.trace(self._data))
        return total / (n * (n - 1))

    def min_off_diagonal(self) -> float:
        n = self.size
        if n < 2:
            return 1.0
        mask = ~np.eye(n, dtype=bool)
        return float(self._data[mask].min())

    def mean_asymmetry(self) -> float:
        """Mean |m[i][j] - m[j][i]| over ordered off-diagonal pairs."""
        n = self.size
        if n < 2:
            return 0.0
        diff = np.abs(self._data - self._data.T)
        return float(diff.sum()) / (n * (n - 1))

    def is_symmetric(self, tol: float = 1e-9) -> bool:
        return bool(np.allclose(self._data, self._data.T, atol=tol))

    def as_array(self) -> np.ndarray:
        return self._data.copy()

    def to_list(self) -> list[list[float]]:
        return self._data.tolist()


class EntailmentMatrix(DenseMatrix):
    """Ordered-pair entailment scores in [0, 1]; self-entailment is 1.0."""

    fixed_diagonal = 1.0


class SimilarityMatrix(DenseMatrix):
    """Fused pairwise similarity; self-similarity is 1.0, may be asymmetric."""

    fixed_diagonal = 1.0


# ---------------------------------------------------------------------------
# Entailment
# ---------------------------------------------------------------------------


@dataclass
class EntailmentResult:
    """NLI verdict for one ordered (premise, hypothesis) pair."""

    premise_text: str
    hypothesis_text: str
    relation: EntailmentRelation
    confidence: float
    explanation: str = ""
    logical_basis: str = ""

    @property
    def score(self) -> float:
        """Entailment strength used in the matrix."""
        if self.relation == EntailmentRelation.ENTAILMENT:
            return self.confidence
        if self.relation == EntailmentRelation.CONTRADICTION:
            return 1.0 - self.confidence
        return 0.5


# ---------------------------------------------------------------------------
# Clusters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Cluster:
    """A group of semantically equivalent responses."""

    cluster_id: str
    members: tuple[str, ...]
    prototype: str
    weight: float
    similarity_score: float
    semantic_vector: tuple[float, ...]

    @property
    def size(self) -> int:
        return len(self.members)

    def to_dict(self) -> dict:
        return {
            "id": self.cluster_id,
            "responses": list(self.members),
            "prototype": self.prototype,
            "similarity_score": self.similarity_score,
            "weight": self.weight,
            "semantic_vector": list(self.semantic_vector),
        }


@dataclass
class ClusteringResult:
    """Clusters plus the model-selection diagnostics that produced them."""

    clusters: list[Cluster] = field(default_factory=list)
    optimal_k: int = 0
    silhouette_score: float = 0.0
    assignments: list[int] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Entropy
# ---------------------------------------------------------------------------


@dataclass
class ClusterEntropy:
    cluster_id: str
    weight: float
    contribution: float
    local_entropy: float


@dataclass
class EntropyBreakdown:
    cluster_contributions: list[ClusterEntropy] = field(default_factory=list)
    dominant_cluster: str = ""
    entropy_distribution: list[float] = field(default_factory=list)
    information_content: float = 0.0


@dataclass
class UncertaintyMetrics:
    epistemic_uncertainty: float = 0.0  # limited evidence / knowledge
    aleatoric_uncertainty: float = 0.0  # inherent randomness
    total_uncertainty: float = 0.0
    confidence_interval: tuple[float, float] = (0.0, 0.0)
    information_gain: float = 0.0


@dataclass
class EntropyResult:
    von_neumann_entropy: float = 0.0
    semantic_entropy: float = 0.0
    normalized_entropy: float = 0.0
    breakdown: EntropyBreakdown = field(default_factory=EntropyBreakdown)
    uncertainty: UncertaintyMetrics = field(default_factory=UncertaintyMetrics)

    def to_dict(self) -> dict:
        return {
            "von_neumann_entropy": self.von_neumann_entropy,
            "semantic_entropy": self.semantic_entropy,
            "normalized_entropy": self.normalized_entropy,
            "entropy_breakdown": {
                "cluster_contributions": [
                    {
                        "cluster_id": c.cluster_id,
                        "weight": c.weight,
                        "contribution": c.contribution,
                        "local_entropy": c.local_entropy,
                    }
                    for c in self.breakdown.cluster_contributions
                ],
                "dominant_cluster": self.breakdown.dominant_cluster,
                "entropy_distribution": list(self.breakdown.entropy_distribution),
                "information_content": self.breakdown.information_content,
            },
            "uncertainty_metrics": {
                "epistemic_uncertainty": self.uncertainty.epistemic_uncertainty,
                "aleatoric_uncertainty": self.uncertainty.aleatoric_uncertainty,
                "total_uncertainty": self.uncertainty.total_uncertainty,
                "confidence_interval": list(self.uncertainty.confidence_interval),
                "information_gain": self.uncertainty.information_gain,
            },
        }


# ---------------------------------------------------------------------------
# Final result
# ---------------------------------------------------------------------------


@dataclass
class ReliabilityMetrics:
    inter_cluster_distance: float = 0.0
    intra_cluster_cohesion: float = 0.0
    distribution_entropy: float = 0.0
    calibration_score: float = 0.0


@dataclass
class DegradationReport:
    """Which parts of the analysis ran on fallback defaults."""

    heuristic_features: list[int] = field(default_factory=list)  # response indices
    neutral_entailments: list[tuple[int, int]] = field(default_factory=list)  # (premise, hypothesis)
    default_judgments: list[str] = field(default_factory=list)  # single-response rubric names

    @property
    def degraded(self) -> bool:
        return bool(self.heuristic_features or self.neutral_entailments or self.default_judgments)


@dataclass
class ConfidenceResult:
    """Terminal output of the engine."""

    overall_confidence: float
    semantic_entropy: float = 0.0
    von_neumann_entropy: float = 0.0
    clusters: list[Cluster] = field(default_factory=list)
    consistency_score: float = 0.0
    agreement_level: AgreementLevel = AgreementLevel.DISAGREEMENT
    uncertainty_factors: list[UncertaintyFactor] = field(default_factory=list)
    reliability_metrics: ReliabilityMetrics = field(default_factory=ReliabilityMetrics)

    entropy: EntropyResult | None = None
    optimal_k: int = 0
    silhouette_score: float = 0.0
    uncertainty_score: float = 0.0
    degradation: DegradationReport = field(default_factory=DegradationReport)

    def to_dict(self) -> dict:
        return {
            "overall_confidence": self.overall_confidence,
            "semantic_entropy": self.semantic_entropy,
            "von_neumann_entropy": self.von_neumann_entropy,
            "clusters": [c.to_dict() for c in self.clusters],
            "consistency_score": self.consistency_score,
            "agreement_level": self.agreement_level.value,
            "uncertainty_factors": [f.value for f in self.uncertainty_factors],
            "reliability_metrics": {
                "inter_cluster_distance": self.reliability_metrics.inter_cluster_distance,
                "intra_cluster_cohesion": self.reliability_metrics.intra_cluster_cohesion,
                "distribution_entropy": self.reliability_metrics.distribution_entropy,
                "calibration_score": self.reliability_metrics.calibration_score,
            },
            "entropy": self.entropy.to_dict() if self.entropy else None,
            "optimal_k": self.optimal_k,
            "silhouette_score": self.silhouette_score,
            "uncertainty_score": self.uncertainty_score,
            "degradation": {
                "heuristic_features": list(self.degradation.heuristic_features),
                "neutral_entailments": [list(p) for p in self.degradation.neutral_entailments],
                "default_judgments": list(self.degradation.default_judgments),
            },
        }


# ---------------------------------------------------------------------------
# Tunables
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineConfig:
    """Blend weights, thresholds and sampling temperatures for one engine."""

    feature_temperature: float = 0.1
    entailment_temperature: float = 0.1
    rubric_temperature: float = 0.1

    cosine_weight: float = 0.6
    entailment_weight: float = 0.4

    von_neumann_weight: float = 0.6
    semantic_entropy_weight: float = 0.4
    entropy_normalizer: float = math.log(10)
    min_confidence: float = 0.1
    max_confidence: float = 0.99

    max_clusters: int = 5
    max_relocation_iterations: int = 10
    min_cluster_weight: float = 0.1
    equivalence_threshold: float = 0.85
    structureless_cohesion: float = 0.75  # mean similarity that collapses a partition with no silhouette gain

    max_concurrent_calls: int = 8

    @classmethod
    def from_settings(cls, settings: Settings) -> EngineConfig:
        return cls(
            feature_temperature=settings.feature_temperature,
            entailment_temperature=settings.entailment_temperature,
            rubric_temperature=settings.rubric_temperature,
            cosine_weight=settings.cosine_weight,
            entailment_weight=settings.entailment_weight,
            von_neumann_weight=settings.von_neumann_weight,
            semantic_entropy_weight=settings.semantic_entropy_weight,
            max_clusters=settings.max_clusters,
            max_relocation_iterations=settings.max_relocation_iterations,
            min_cluster_weight=settings.min_cluster_weight,
            equivalence_threshold=settings.equivalence_threshold,
            structureless_cohesion=settings.structureless_cohesion,
            max_concurrent_calls=settings.llm_max_concurrent,
        )
