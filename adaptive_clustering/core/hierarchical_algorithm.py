"""
Agglomerative Hierarchical Clustering Algorithm Implementation.

Hierarchical clustering is ideal for:
- Building cluster trees (dendrograms) over small corpora
- When the cluster hierarchy itself is of interest
- Mixed or irregular shapes where k is known

Merges are driven by Lance-Williams updates of a dense distance matrix.
Ward and centroid linkage operate on squared euclidean distances; the
reported merge distance is always in the original units.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from adaptive_clustering.core.base_clustering import (
    BaseClusteringAlgorithm,
    ClusteringConfig,
    ClusteringResult,
    size_uniformity,
)
from adaptive_clustering.core.metrics import pairwise_distances, resolve_metric
from adaptive_clustering.schemas.data_models import DistanceMetric, LinkageMethod
from adaptive_clustering.utils.error_handling import ConfigurationError

logger = logging.getLogger(__name__)

SQUARED_LINKAGES = (LinkageMethod.WARD, LinkageMethod.CENTROID)


def lance_williams(
    linkage: LinkageMethod,
    d_ik: np.ndarray,
    d_jk: np.ndarray,
    d_ij: float,
    n_i: int,
    n_j: int,
    n_k: np.ndarray,
) -> np.ndarray:
    """Distance from the merged cluster (i + j) to every other cluster k."""
    if linkage == LinkageMethod.SINGLE:
        return np.minimum(d_ik, d_jk)
    if linkage == LinkageMethod.COMPLETE:
        return np.maximum(d_ik, d_jk)
    if linkage == LinkageMethod.AVERAGE:
        return (n_i * d_ik + n_j * d_jk) / (n_i + n_j)
    if linkage == LinkageMethod.CENTROID:
        n = n_i + n_j
        return (n_i * d_ik + n_j * d_jk) / n - (n_i * n_j * d_ij) / (n * n)

    # Ward
    total = n_i + n_j + n_k
    return ((n_i + n_k) * d_ik + (n_j + n_k) * d_jk - n_k * d_ij) / total


class HierarchicalAlgorithm(BaseClusteringAlgorithm):
    """
    Agglomerative hierarchical clustering implementation.

    Best for: Small corpora, hierarchical topic structure
    Strengths: Builds a full tree, flexible linkage criteria
    Weaknesses: O(n^3) time, O(n^2) memory, not scalable
    """

    def __init__(self, config: ClusteringConfig):
        """
        Initialize hierarchical algorithm.

        Args:
            config: Clustering configuration
        """
        super().__init__(config)

        self.n_clusters = config.params.get("n_clusters", 2)
        self.metric = resolve_metric(config.params.get("metric", "euclidean"))

        linkage = config.params.get("linkage", "ward")
        try:
            self.linkage = LinkageMethod(linkage)
        except ValueError:
            raise ConfigurationError(
                f"Unknown linkage '{linkage}'. Supported: {[m.value for m in LinkageMethod]}",
                details={"linkage": linkage},
            )

        if self.linkage in SQUARED_LINKAGES and self.metric != DistanceMetric.EUCLIDEAN:
            raise ConfigurationError(
                f"{self.linkage.value} linkage requires the euclidean metric, "
                f"got {self.metric.value}"
            )

        logger.debug(
            f"Initialized Hierarchical: n_clusters={self.n_clusters}, "
            f"linkage={self.linkage.value}, metric={self.metric.value}"
        )

    def cluster(
        self,
        vectors: np.ndarray,
        document_ids: Optional[Sequence[str]] = None,
        target_k: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ClusteringResult:
        """
        Build the merge tree and cut it into exactly k groups.

        Returns:
            ClusteringResult with the tree available on result.tree
        """
        start_time = time.perf_counter()
        vectors, document_ids = self._prepare_input(vectors, document_ids)
        k = self._resolve_k(target_k, self.n_clusters)

        degenerate = self._degenerate_result(vectors, document_ids, metadata, k, start_time)
        if degenerate is not None:
            return degenerate

        logger.info(
            f"Starting hierarchical clustering on {len(vectors)} vectors "
            f"(k={k}, linkage={self.linkage.value})"
        )

        tree = self.build_tree(vectors)
        groups = self.cut_tree(tree, k)

        labels = np.empty(len(vectors), dtype=int)
        cluster_metadata = {}
        for label, node_id in enumerate(groups):
            node = tree[node_id]
            labels[node["members"]] = label
            cluster_metadata[label] = {
                "node_id": node_id,
                "merge_distance": node["merge_distance"],
                "level": node["level"],
            }

        root = tree[-1]
        result = self._build_result(
            vectors, labels, document_ids, metadata, start_time,
            cluster_metadata=cluster_metadata,
            extra_metrics={
                "max_merge_distance": root["merge_distance"],
                "tree_depth": float(root["level"]),
                "cluster_balance": size_uniformity(np.bincount(labels)),
            },
            iterations=len(vectors) - 1,
        )
        result.tree = [
            {**node, "members": [document_ids[i] for i in node["members"]]}
            for node in tree
        ]

        logger.info(
            f"Hierarchical clustering created {result.n_clusters} clusters "
            f"(max merge distance {root['merge_distance']:.4f})"
        )
        return result

    def build_tree(self, vectors: np.ndarray) -> List[Dict[str, Any]]:
        """
        Merge the closest pair of active clusters until one remains.

        Returns:
            Nodes indexed by id; leaves are 0..n-1 and the root is last
        """
        n = len(vectors)
        squared = self.linkage in SQUARED_LINKAGES

        dist = pairwise_distances(vectors, self.metric)
        if squared:
            dist = dist ** 2
        np.fill_diagonal(dist, np.inf)

        tree = [
            {"id": i, "children": [], "merge_distance": 0.0, "level": 0, "size": 1, "members": [i]}
            for i in range(n)
        ]
        # slot -> tree node currently held in that row of the matrix
        slot_node = list(range(n))
        sizes = np.ones(n, dtype=int)
        active = np.ones(n, dtype=bool)

        for _ in range(n - 1):
            i, j = self._closest_pair(dist)
            d_ij = float(dist[i, j])

            node_i = tree[slot_node[i]]
            node_j = tree[slot_node[j]]
            merge_distance = float(np.sqrt(max(d_ij, 0.0))) if squared else d_ij
            node = {
                "id": len(tree),
                "children": [node_i["id"], node_j["id"]],
                "merge_distance": merge_distance,
                "level": max(node_i["level"], node_j["level"]) + 1,
                "size": node_i["size"] + node_j["size"],
                "members": sorted(node_i["members"] + node_j["members"]),
            }
            tree.append(node)

            # Row i becomes the merged cluster, row j is retired
            others = active.copy()
            others[[i, j]] = False
            updated = lance_williams(
                self.linkage,
                dist[i, others], dist[j, others], d_ij,
                int(sizes[i]), int(sizes[j]), sizes[others],
            )
            dist[i, others] = updated
            dist[others, i] = updated
            dist[j, :] = np.inf
            dist[:, j] = np.inf

            sizes[i] += sizes[j]
            active[j] = False
            slot_node[i] = node["id"]

        return tree

    @staticmethod
    def _closest_pair(dist: np.ndarray) -> Tuple[int, int]:
        flat = int(np.argmin(dist))
        i, j = divmod(flat, dist.shape[1])
        return (i, j) if i < j else (j, i)

    @staticmethod
    def cut_tree(tree: List[Dict[str, Any]], k: int) -> List[int]:
        """
        Node ids of exactly k groups.

        Starting from the root, the internal node with the largest merge
        distance is repeatedly replaced by its children.
        """
        groups = [tree[-1]["id"]]
        while len(groups) < k:
            splittable = [g for g in groups if tree[g]["children"]]
            if not splittable:
                break
            target = max(splittable, key=lambda g: (tree[g]["merge_distance"], g))
            groups.remove(target)
            groups.extend(tree[target]["children"])
        return sorted(groups, key=lambda g: tree[g]["members"][0])
