"""Similarity Fusion — Pipeline Step 3.

Blends the cosine similarity of two semantic vectors with the directed
entailment score of the pair:

    similarity[i][j] = w_cos * cosine(v_i, v_j) + w_ent * entailment[i][j]

The entailment half is directional, so the fused matrix is not symmetric in
general. The diagonal is fixed at 1.0.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from semantic_uq.analysis.types import EngineConfig, EntailmentMatrix, SemanticVector, SimilarityMatrix


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Cosine of two vectors; 0.0 for mismatched lengths or a zero vector."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape or va.size == 0:
        return 0.0
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def euclidean_distance(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    return float(np.linalg.norm(va - vb))


def fuse(
    vectors: list[SemanticVector],
    entailment: EntailmentMatrix,
    config: EngineConfig | None = None,
) -> SimilarityMatrix:
    """Build the fused similarity matrix for *vectors*."""
    config = config or EngineConfig()
    n = len(vectors)
    if entailment.size != n:
        raise ValueError(f"entailment matrix is {entailment.size}x{entailment.size}, expected {n}x{n}")

    matrix = SimilarityMatrix(n)
    for i in range(n):
        for j in range(n):
            if i == j:
                continue
            cosine = cosine_similarity(vectors[i].values, vectors[j].values)
            matrix.set(i, j, config.cosine_weight * cosine + config.entailment_weight * entailment.get(i, j))
    return matrix
