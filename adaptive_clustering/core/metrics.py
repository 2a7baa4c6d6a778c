"""
Metric Library.

Distance and similarity functions over feature vectors:
- euclidean, manhattan: true metrics (triangle inequality holds)
- cosine: 1 - cosine similarity; a zero vector is at distance 1 from everything
- domain_weighted: cosine distance scaled by a fixed multiplier (> 1) so weak
  matches between short technical texts are penalized harder

domain_weighted is symmetric but NOT a metric: the triangle inequality can
fail, so callers relying on metric-space pruning must not assume it.

Pairwise matrices are returned as one contiguous (n, n) numpy buffer.
"""

from typing import Union

import numpy as np
from sklearn.metrics import pairwise_distances as sk_pairwise_distances

from adaptive_clustering.schemas.data_models import DistanceMetric
from adaptive_clustering.utils.error_handling import ConfigurationError

DEFAULT_DOMAIN_WEIGHT = 1.2

MetricLike = Union[str, DistanceMetric]


def resolve_metric(metric: MetricLike) -> DistanceMetric:
    """Map a metric name to DistanceMetric, raising ConfigurationError when unknown."""
    if isinstance(metric, DistanceMetric):
        return metric
    try:
        return DistanceMetric(str(metric).lower())
    except ValueError:
        raise ConfigurationError(
            f"Unsupported distance metric '{metric}'. "
            f"Supported: {[m.value for m in DistanceMetric]}",
            details={"metric": metric},
        )


def l2_normalize(vector: np.ndarray) -> np.ndarray:
    """Unit-length copy of a vector. Zero vectors are returned unchanged."""
    norm = np.linalg.norm(vector)
    if norm == 0.0:
        return vector
    return vector / norm


def normalize_rows(vectors: np.ndarray) -> np.ndarray:
    """Row-wise L2 normalization that leaves zero rows untouched."""
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    norms[norms == 0.0] = 1.0
    return vectors / norms


def cosine_similarity(v1: np.ndarray, v2: np.ndarray) -> float:
    """Cosine similarity; 0 when either vector is zero."""
    n1 = np.linalg.norm(v1)
    n2 = np.linalg.norm(v2)
    if n1 == 0.0 or n2 == 0.0:
        return 0.0
    return float(np.dot(v1, v2) / (n1 * n2))


def distance(
    v1: np.ndarray,
    v2: np.ndarray,
    metric: MetricLike = DistanceMetric.EUCLIDEAN,
    domain_weight: float = DEFAULT_DOMAIN_WEIGHT,
) -> float:
    """
    Distance between two vectors.

    Args:
        v1: First vector
        v2: Second vector
        metric: euclidean, cosine, manhattan or domain_weighted
        domain_weight: Multiplier of the domain_weighted variant

    Returns:
        Non-negative distance
    """
    metric = resolve_metric(metric)
    v1 = np.asarray(v1, dtype=float)
    v2 = np.asarray(v2, dtype=float)

    if metric == DistanceMetric.EUCLIDEAN:
        return float(np.linalg.norm(v1 - v2))
    if metric == DistanceMetric.MANHATTAN:
        return float(np.sum(np.abs(v1 - v2)))

    n1 = np.linalg.norm(v1)
    n2 = np.linalg.norm(v2)
    if n1 == 0.0 or n2 == 0.0:
        cosine_distance = 1.0
    else:
        cosine_distance = max(0.0, 1.0 - float(np.dot(v1, v2) / (n1 * n2)))

    if metric == DistanceMetric.COSINE:
        return cosine_distance
    return cosine_distance * domain_weight


def pairwise_distances(
    vectors: np.ndarray,
    metric: MetricLike = DistanceMetric.EUCLIDEAN,
    domain_weight: float = DEFAULT_DOMAIN_WEIGHT,
) -> np.ndarray:
    """
    Full (n, n) distance matrix in a single contiguous buffer.

    Matches distance() element-wise, including the zero-vector rule for
    cosine-based metrics. The diagonal is exactly zero.
    """
    metric = resolve_metric(metric)
    vectors = np.asarray(vectors, dtype=float)
    n = len(vectors)
    if n == 0:
        return np.zeros((0, 0))

    if metric in (DistanceMetric.EUCLIDEAN, DistanceMetric.MANHATTAN):
        matrix = sk_pairwise_distances(vectors, metric=metric.value)
    else:
        matrix = 1.0 - pairwise_similarities(vectors)
        np.clip(matrix, 0.0, None, out=matrix)
        zero_rows = np.linalg.norm(vectors, axis=1) == 0.0
        matrix[zero_rows, :] = 1.0
        matrix[:, zero_rows] = 1.0
        if metric == DistanceMetric.DOMAIN_WEIGHTED:
            matrix *= domain_weight

    matrix = np.ascontiguousarray(matrix)
    np.fill_diagonal(matrix, 0.0)
    return matrix


def pairwise_similarities(vectors: np.ndarray) -> np.ndarray:
    """(n, n) cosine similarity matrix; rows of zero vectors are all zero."""
    unit = normalize_rows(np.asarray(vectors, dtype=float))
    return unit @ unit.T


def point_to_centroid_distances(
    vectors: np.ndarray,
    centroids: np.ndarray,
    metric: MetricLike = DistanceMetric.EUCLIDEAN,
    domain_weight: float = DEFAULT_DOMAIN_WEIGHT,
) -> np.ndarray:
    """(n, k) distances from every point to every centroid."""
    metric = resolve_metric(metric)
    if metric in (DistanceMetric.EUCLIDEAN, DistanceMetric.MANHATTAN):
        return sk_pairwise_distances(vectors, centroids, metric=metric.value)

    unit_points = normalize_rows(np.asarray(vectors, dtype=float))
    unit_centroids = normalize_rows(np.asarray(centroids, dtype=float))
    matrix = np.clip(1.0 - unit_points @ unit_centroids.T, 0.0, None)
    matrix[np.linalg.norm(vectors, axis=1) == 0.0, :] = 1.0
    matrix[:, np.linalg.norm(centroids, axis=1) == 0.0] = 1.0
    if metric == DistanceMetric.DOMAIN_WEIGHTED:
        matrix *= domain_weight
    return matrix
