"""
K-Means Clustering Algorithm Implementation.

K-Means is ideal for:
- Fast clustering when the number of clusters is known or can be estimated
- Spherical, evenly-sized clusters
- Document clustering of well-separated topics

Seeding strategies:
- farthest_point (default): first centroid drawn from a seeded generator,
  each next one the point farthest from every centroid chosen so far
- kmeans++: probabilistic D^2 sampling
- random: k distinct points drawn uniformly
"""

import logging
import time
import warnings
from typing import Any, Callable, Dict, Optional, Sequence

import numpy as np

from adaptive_clustering.core.base_clustering import (
    BaseClusteringAlgorithm,
    ClusteringConfig,
    ClusteringResult,
)
from adaptive_clustering.core.metrics import point_to_centroid_distances, resolve_metric
from adaptive_clustering.utils.error_handling import ConfigurationError, ConvergenceWarning

logger = logging.getLogger(__name__)


def farthest_point_seeds(
    vectors: np.ndarray,
    k: int,
    rng: np.random.Generator,
    metric: str = "euclidean",
) -> np.ndarray:
    """Indices of k seeds chosen by max-min distance."""
    chosen = [int(rng.integers(len(vectors)))]
    min_dist = point_to_centroid_distances(vectors, vectors[chosen], metric)[:, 0]

    while len(chosen) < k:
        candidate = int(np.argmax(min_dist))
        chosen.append(candidate)
        new_dist = point_to_centroid_distances(vectors, vectors[[candidate]], metric)[:, 0]
        min_dist = np.minimum(min_dist, new_dist)

    return np.array(chosen)


def kmeans_plus_plus_seeds(
    vectors: np.ndarray,
    k: int,
    rng: np.random.Generator,
    metric: str = "euclidean",
) -> np.ndarray:
    """Indices of k seeds chosen by D^2 sampling."""
    chosen = [int(rng.integers(len(vectors)))]
    min_dist = point_to_centroid_distances(vectors, vectors[chosen], metric)[:, 0]

    while len(chosen) < k:
        weights = min_dist ** 2
        total = weights.sum()
        if total > 0:
            candidate = int(rng.choice(len(vectors), p=weights / total))
        else:
            remaining = np.setdiff1d(np.arange(len(vectors)), chosen)
            candidate = int(rng.choice(remaining))
        chosen.append(candidate)
        new_dist = point_to_centroid_distances(vectors, vectors[[candidate]], metric)[:, 0]
        min_dist = np.minimum(min_dist, new_dist)

    return np.array(chosen)


def random_seeds(
    vectors: np.ndarray,
    k: int,
    rng: np.random.Generator,
    metric: str = "euclidean",
) -> np.ndarray:
    """Indices of k seeds with pairwise distinct values, drawn uniformly."""
    _, first_index = np.unique(vectors, axis=0, return_index=True)
    return rng.choice(np.sort(first_index), size=k, replace=False)


SEEDING_STRATEGIES: Dict[str, Callable[..., np.ndarray]] = {
    "farthest_point": farthest_point_seeds,
    "kmeans++": kmeans_plus_plus_seeds,
    "random": random_seeds,
}


class KMeansAlgorithm(BaseClusteringAlgorithm):
    """
    K-Means clustering implementation (Lloyd iterations).

    Best for: Document clustering with a known or estimated k
    Strengths: Fast, deterministic for a fixed seed, simple
    Weaknesses: Requires k as input, assumes spherical clusters, sensitive to outliers
    """

    def __init__(self, config: ClusteringConfig):
        """
        Initialize K-Means algorithm.

        Args:
            config: Clustering configuration
        """
        super().__init__(config)

        # Extract K-Means-specific parameters
        self.n_clusters = config.params.get("n_clusters", 8)
        self.initialization = config.params.get("initialization", "farthest_point")
        self.max_iter = config.params.get("max_iter", 200)
        self.tol = config.params.get("tol", 1e-4)
        self.random_state = config.params.get("random_state", 42)
        self.metric = resolve_metric(config.params.get("metric", "euclidean")).value

        if self.initialization not in SEEDING_STRATEGIES:
            raise ConfigurationError(
                f"Unknown K-Means initialization '{self.initialization}'. "
                f"Supported: {list(SEEDING_STRATEGIES)}",
                details={"initialization": self.initialization},
            )
        if self.max_iter < 1:
            raise ConfigurationError(f"max_iter must be >= 1, got {self.max_iter}")

        logger.debug(
            f"Initialized K-Means: n_clusters={self.n_clusters}, "
            f"initialization={self.initialization}, max_iter={self.max_iter}"
        )

    def cluster(
        self,
        vectors: np.ndarray,
        document_ids: Optional[Sequence[str]] = None,
        target_k: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ClusteringResult:
        """
        Perform K-Means clustering.

        Args:
            vectors: Feature vectors (N x D)
            document_ids: Identifier of each row
            target_k: Number of clusters (defaults to n_clusters)
            metadata: Optional per-vector metadata ("terms" for keywords)

        Returns:
            ClusteringResult with at most k clusters
        """
        start_time = time.perf_counter()
        vectors, document_ids = self._prepare_input(vectors, document_ids)
        k = self._resolve_k(target_k, self.n_clusters)

        degenerate = self._degenerate_result(vectors, document_ids, metadata, k, start_time)
        if degenerate is not None:
            return degenerate

        logger.info(f"Starting K-Means clustering on {len(vectors)} vectors (k={k})")

        centroids, labels, iterations, converged = self.fit_centroids(vectors, k)

        if not converged:
            message = (
                f"K-Means did not converge within {self.max_iter} iterations "
                f"(tol={self.tol})"
            )
            logger.warning(message)
            warnings.warn(message, ConvergenceWarning)

        distances = point_to_centroid_distances(vectors, centroids, self.metric)
        assigned = distances[np.arange(len(vectors)), labels]
        extra_metrics = {
            "inertia": float(np.sum(assigned ** 2)),
            "iterations": float(iterations),
        }

        result = self._build_result(
            vectors, labels, document_ids, metadata, start_time,
            extra_metrics=extra_metrics,
            iterations=iterations,
            converged=converged,
        )

        logger.info(
            f"K-Means created {result.n_clusters} clusters in {iterations} iterations "
            f"(converged={converged})"
        )
        return result

    def fit_centroids(self, vectors: np.ndarray, k: int):
        """
        Run Lloyd iterations from the configured seeding.

        Returns:
            (centroids, labels, iterations, converged)
        """
        rng = np.random.default_rng(self.random_state)
        seeds = SEEDING_STRATEGIES[self.initialization](vectors, k, rng, self.metric)
        centroids = vectors[seeds].astype(float)

        converged = False
        iterations = 0
        for iterations in range(1, self.max_iter + 1):
            labels = np.argmin(point_to_centroid_distances(vectors, centroids, self.metric), axis=1)

            new_centroids = centroids.copy()
            for j in range(k):
                members = labels == j
                # Empty clusters keep their previous centroid
                if np.any(members):
                    new_centroids[j] = vectors[members].mean(axis=0)

            shift = float(np.max(np.linalg.norm(new_centroids - centroids, axis=1)))
            centroids = new_centroids
            if shift < self.tol:
                converged = True
                break

        labels = np.argmin(point_to_centroid_distances(vectors, centroids, self.metric), axis=1)
        return centroids, labels, iterations, converged
