"""Cluster Engine — Pipeline Step 4.

Groups responses into semantically equivalent clusters over the fused
similarity matrix:

  1. Equivalence shortcut: when every pair is at least
     ``equivalence_threshold`` similar, all responses form one cluster.
  2. For k in [2, min(N, max_clusters)]: relocation from a round-robin start,
     scored by the silhouette coefficient (distance = 1 - similarity).
  3. The best-scoring k is materialized (prototype, weight, cohesion, mean
     vector), clusters lighter than ``min_cluster_weight`` are folded into the
     largest one, and the result is sorted by weight.
"""

from __future__ import annotations

import logging

import numpy as np

from semantic_uq.analysis.similarity import cosine_similarity
from semantic_uq.analysis.types import (
    Cluster,
    ClusteringResult,
    EngineConfig,
    Response,
    SemanticVector,
    SimilarityMatrix,
)

logger = logging.getLogger(__name__)


class ClusterEngine:
    """Relocation clustering with silhouette-based selection of k."""

    def __init__(self, config: EngineConfig | None = None):
        self.config = config or EngineConfig()

    def cluster(
        self,
        responses: list[Response],
        vectors: list[SemanticVector],
        similarity: SimilarityMatrix,
    ) -> ClusteringResult:
        n = len(responses)
        if len(vectors) != n or similarity.size != n:
            raise ValueError("responses, vectors and similarity matrix must have the same length")

        if n == 0:
            return ClusteringResult()

        if n == 1:
            groups = [[0]]
            return ClusteringResult(
                clusters=self._materialize(groups, responses, vectors),
                optimal_k=1,
                silhouette_score=0.0,
                assignments=[0],
            )

        sim = similarity.as_array()

        if similarity.min_off_diagonal() >= self.config.equivalence_threshold:
            logger.debug("All %d responses above equivalence threshold, single cluster", n)
            groups = [list(range(n))]
            best_k, best_score = 1, 0.0
        else:
            groups, best_k, best_score = self._select_partition(sim)
            # No split separates anything; a uniformly similar set is one meaning
            if best_score <= 0.0 and similarity.off_diagonal_mean() >= self.config.structureless_cohesion:
                logger.debug("No silhouette gain for %d cohesive responses, single cluster", n)
                groups = [list(range(n))]
                best_k, best_score = 1, 0.0

        groups = self._merge_small(groups, n)
        groups.sort(key=lambda g: (-len(g), g[0]))

        assignments = [0] * n
        for cluster_index, members in enumerate(groups):
            for m in members:
                assignments[m] = cluster_index

        clusters = self._materialize(groups, responses, vectors)
        logger.debug(
            "Clustered %d responses: k=%d silhouette=%.3f final=%d",
            n,
            best_k,
            best_score,
            len(clusters),
        )
        return ClusteringResult(
            clusters=clusters,
            optimal_k=best_k,
            silhouette_score=best_score,
            assignments=assignments,
        )

    # -----------------------------------------------------------------------
    # Model selection
    # -----------------------------------------------------------------------

    def _select_partition(self, sim: np.ndarray) -> tuple[list[list[int]], int, float]:
        n = sim.shape[0]
        max_k = min(n, self.config.max_clusters)

        best_groups: list[list[int]] = [list(range(n))]
        best_k = 1
        best_score = -np.inf
        for k in range(2, max_k + 1):
            assignment = self.relocate(sim, k)
            score = silhouette_score(sim, assignment)
            # strict: ties keep the smaller k
            if score > best_score:
                best_score = score
                best_k = k
                best_groups = _groups_from_assignment(assignment)

        if best_score == -np.inf:
            best_score = 0.0
        return best_groups, best_k, float(best_score)

    def relocate(self, sim: np.ndarray, k: int) -> list[int]:
        """Assign each of N responses to one of k clusters.

        Starts from round-robin buckets and moves a response to the cluster
        with the highest mean similarity to that cluster's other members,
        only on strict improvement. A sole member never leaves, so no
        cluster is emptied.
        """
        n = sim.shape[0]
        if n <= k:
            return list(range(n))

        assignment = [i % k for i in range(n)]
        counts = [0] * k
        for c in assignment:
            counts[c] += 1

        for _ in range(self.config.max_relocation_iterations):
            moved = False
            for i in range(n):
                current = assignment[i]
                if counts[current] == 1:
                    continue

                best_cluster = current
                best_affinity = _mean_affinity(sim, i, assignment, current)
                for c in range(k):
                    if c == current:
                        continue
                    affinity = _mean_affinity(sim, i, assignment, c)
                    if affinity > best_affinity:
                        best_cluster = c
                        best_affinity = affinity

                if best_cluster != current:
                    assignment[i] = best_cluster
                    counts[current] -= 1
                    counts[best_cluster] += 1
                    moved = True
            if not moved:
                break

        return assignment

    # -----------------------------------------------------------------------
    # Post-processing
    # -----------------------------------------------------------------------

    def _merge_small(self, groups: list[list[int]], n: int) -> list[list[int]]:
        """Fold clusters lighter than min_cluster_weight into the largest one."""
        if len(groups) <= 1:
            return [sorted(g) for g in groups]

        ordered = sorted(groups, key=lambda g: (-len(g), min(g)))
        target = list(ordered[0])
        kept: list[list[int]] = []
        for group in ordered[1:]:
            if len(group) / n < self.config.min_cluster_weight:
                logger.debug("Merging cluster of %d into largest cluster", len(group))
                target.extend(group)
            else:
                kept.append(list(group))
        return [sorted(target)] + [sorted(g) for g in kept]

    def _materialize(
        self,
        groups: list[list[int]],
        responses: list[Response],
        vectors: list[SemanticVector],
    ) -> list[Cluster]:
        n = len(responses)
        clusters: list[Cluster] = []
        for index, members in enumerate(groups):
            member_vectors = [vectors[m].as_array() for m in members]
            mean_vector = np.mean(member_vectors, axis=0)

            prototype_index = members[0]
            best = -np.inf
            for m, v in zip(members, member_vectors):
                score = cosine_similarity(v, mean_vector)
                if score > best:
                    best = score
                    prototype_index = m

            clusters.append(
                Cluster(
                    cluster_id=f"cluster_{index + 1}",
                    members=tuple(responses[m].text for m in members),
                    prototype=responses[prototype_index].text,
                    weight=len(members) / n,
                    similarity_score=intra_cluster_similarity(member_vectors),
                    semantic_vector=tuple(float(x) for x in mean_vector),
                )
            )
        return clusters


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _groups_from_assignment(assignment: list[int]) -> list[list[int]]:
    groups: dict[int, list[int]] = {}
    for i, c in enumerate(assignment):
        groups.setdefault(c, []).append(i)
    return [groups[c] for c in sorted(groups)]


def _mean_affinity(sim: np.ndarray, i: int, assignment: list[int], cluster: int) -> float:
    """Mean similarity of response i to the other current members of *cluster*."""
    others = [j for j, c in enumerate(assignment) if c == cluster and j != i]
    if not others:
        return -np.inf
    return float(np.mean(sim[i, others]))


def intra_cluster_similarity(member_vectors: list[np.ndarray]) -> float:
    """Mean pairwise cosine among members; 1.0 for a singleton."""
    if len(member_vectors) < 2:
        return 1.0
    scores = [
        cosine_similarity(member_vectors[a], member_vectors[b])
        for a in range(len(member_vectors))
        for b in range(a + 1, len(member_vectors))
    ]
    return max(0.0, min(1.0, float(np.mean(scores))))


def silhouette_score(sim: np.ndarray, assignment: list[int]) -> float:
    """Mean silhouette coefficient with distance = 1 - similarity.

    Singleton members and points with a = b = 0 contribute 0.
    """
    n = sim.shape[0]
    if n == 0:
        return 0.0
    dist = 1.0 - sim
    groups = _groups_from_assignment(assignment)
    by_label = {assignment[g[0]]: g for g in groups}

    total = 0.0
    for i in range(n):
        own = [j for j in by_label[assignment[i]] if j != i]
        if not own:
            continue
        a = float(np.mean(dist[i, own]))
        others = [float(np.mean(dist[i, g])) for label, g in by_label.items() if label != assignment[i]]
        if not others:
            continue
        b = min(others)
        denom = max(a, b)
        if denom == 0.0:
            continue
        total += (b - a) / denom
    return total / n
