"""Confidence analysis request/response schemas."""

from pydantic import BaseModel, Field


class ConfidenceRequest(BaseModel):
    query: str = ""
    responses: list[str] = Field(..., min_length=1, max_length=20)


class ClusterOut(BaseModel):
    id: str
    responses: list[str]
    prototype: str
    similarity_score: float
    weight: float
    semantic_vector: list[float]


class ReliabilityMetricsOut(BaseModel):
    inter_cluster_distance: float
    intra_cluster_cohesion: float
    distribution_entropy: float
    calibration_score: float


class DegradationOut(BaseModel):
    """Indices of responses/pairs and rubric names that used fallback defaults."""

    heuristic_features: list[int] = []
    neutral_entailments: list[list[int]] = []
    default_judgments: list[str] = []


class ConfidenceResponse(BaseModel):
    overall_confidence: float
    semantic_entropy: float
    von_neumann_entropy: float
    clusters: list[ClusterOut]
    consistency_score: float
    agreement_level: str
    uncertainty_factors: list[str]
    reliability_metrics: ReliabilityMetricsOut
    entropy: dict | None = None
    optimal_k: int
    silhouette_score: float
    uncertainty_score: float
    degradation: DegradationOut
