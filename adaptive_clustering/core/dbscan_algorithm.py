"""
DBSCAN Clustering Algorithm Implementation.

DBSCAN is ideal for:
- Noisy corpora where some documents belong to no topic
- Irregular, non-spherical cluster shapes
- Unknown number of clusters

Default metric is domain_weighted, which is not a true metric (the
triangle inequality can fail), so neighborhoods are read from the full
distance matrix and never pruned with metric-space tricks.
"""

import logging
import time
from collections import deque
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from adaptive_clustering.core.base_clustering import (
    NOISE_LABEL,
    BaseClusteringAlgorithm,
    ClusteringConfig,
    ClusteringResult,
)
from adaptive_clustering.core.metrics import (
    DEFAULT_DOMAIN_WEIGHT,
    pairwise_distances,
    point_to_centroid_distances,
    resolve_metric,
)
from adaptive_clustering.utils.error_handling import ConfigurationError

logger = logging.getLogger(__name__)


class DBSCANAlgorithm(BaseClusteringAlgorithm):
    """
    Density-based clustering with a reserved noise cluster.

    Best for: Noisy data, arbitrary shapes
    Strengths: No k required, explicit outliers
    Weaknesses: Sensitive to eps, struggles with varying densities
    """

    def __init__(self, config: ClusteringConfig):
        """
        Initialize DBSCAN algorithm.

        Args:
            config: Clustering configuration
        """
        super().__init__(config)

        self.eps = config.params.get("eps", 0.3)
        self.min_pts = config.params.get("min_pts", 5)
        self.metric = resolve_metric(config.params.get("metric", "domain_weighted"))
        self.min_cluster_size = config.params.get("min_cluster_size", 1)
        self.domain_weight = config.params.get("domain_weight", DEFAULT_DOMAIN_WEIGHT)

        if self.eps <= 0:
            raise ConfigurationError(f"eps must be > 0, got {self.eps}", details={"eps": self.eps})
        if self.min_pts < 1:
            raise ConfigurationError(
                f"min_pts must be >= 1, got {self.min_pts}", details={"min_pts": self.min_pts}
            )

        logger.debug(
            f"Initialized DBSCAN: eps={self.eps}, min_pts={self.min_pts}, "
            f"metric={self.metric.value}"
        )

    def cluster(
        self,
        vectors: np.ndarray,
        document_ids: Optional[Sequence[str]] = None,
        target_k: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ClusteringResult:
        """
        Perform DBSCAN clustering. target_k is ignored.

        Returns:
            ClusteringResult whose unreached documents sit in the "noise" cluster
        """
        start_time = time.perf_counter()
        vectors, document_ids = self._prepare_input(vectors, document_ids)

        degenerate = self._degenerate_result(vectors, document_ids, metadata, None, start_time)
        if degenerate is not None:
            return degenerate

        logger.info(f"Starting DBSCAN clustering on {len(vectors)} vectors")

        distances = pairwise_distances(vectors, self.metric, self.domain_weight)
        neighborhoods = self.region_query(distances)
        is_core = np.array([len(n) >= self.min_pts for n in neighborhoods])

        labels = self.expand_clusters(neighborhoods, is_core)
        labels = self._drop_small_clusters(labels)

        cluster_metadata = self._cluster_metadata(vectors, labels, is_core)
        noise_count = int(np.sum(labels == NOISE_LABEL))

        result = self._build_result(
            vectors, labels, document_ids, metadata, start_time,
            cluster_metadata=cluster_metadata,
            extra_metrics={
                "noise_ratio": noise_count / len(vectors),
                "core_points": float(np.sum(is_core)),
            },
        )

        logger.info(
            f"DBSCAN found {result.n_clusters} clusters, {noise_count} noise points"
        )
        return result

    def region_query(self, distances: np.ndarray) -> List[np.ndarray]:
        """eps-neighborhood of every point, excluding the point itself."""
        within = distances <= self.eps
        np.fill_diagonal(within, False)
        return [np.flatnonzero(row) for row in within]

    @staticmethod
    def expand_clusters(neighborhoods: List[np.ndarray], is_core: np.ndarray) -> np.ndarray:
        """
        Breadth-first expansion from every unassigned core point.

        Border points join the first cluster that reaches them; points no
        cluster reaches stay labeled as noise.
        """
        labels = np.full(len(neighborhoods), NOISE_LABEL, dtype=int)
        cluster_id = 0

        for seed in range(len(neighborhoods)):
            if labels[seed] != NOISE_LABEL or not is_core[seed]:
                continue

            labels[seed] = cluster_id
            queue = deque([seed])
            while queue:
                point = queue.popleft()
                for neighbor in neighborhoods[point]:
                    if labels[neighbor] != NOISE_LABEL:
                        continue
                    labels[neighbor] = cluster_id
                    if is_core[neighbor]:
                        queue.append(neighbor)

            cluster_id += 1

        return labels

    def _drop_small_clusters(self, labels: np.ndarray) -> np.ndarray:
        """Move clusters below min_cluster_size to noise and relabel densely."""
        labels = labels.copy()
        if self.min_cluster_size > 1:
            for label in np.unique(labels[labels != NOISE_LABEL]):
                members = labels == label
                if members.sum() < self.min_cluster_size:
                    labels[members] = NOISE_LABEL

        relabeled = np.full_like(labels, NOISE_LABEL)
        for new_label, label in enumerate(np.unique(labels[labels != NOISE_LABEL])):
            relabeled[labels == label] = new_label
        return relabeled

    def _cluster_metadata(
        self,
        vectors: np.ndarray,
        labels: np.ndarray,
        is_core: np.ndarray,
    ) -> Dict[int, Dict[str, Any]]:
        metadata = {}
        for label in np.unique(labels[labels != NOISE_LABEL]):
            members = labels == label
            centroid = vectors[members].mean(axis=0, keepdims=True)
            spread = point_to_centroid_distances(
                vectors[members], centroid, self.metric, self.domain_weight
            )
            core_count = int(np.sum(is_core & members))
            metadata[int(label)] = {
                "core_points": core_count,
                "border_points": int(members.sum()) - core_count,
                "density": float(1.0 / (1.0 + spread.mean())),
            }
        return metadata
