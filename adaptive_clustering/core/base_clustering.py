"""
Base Clustering Algorithm Interface.

Defines the contract for all clustering algorithms of the engine:

    algorithm = SomeAlgorithm(ClusteringConfig(name, params))
    result = algorithm.cluster(vectors, document_ids, target_k, metadata)

Shared behavior lives here: degenerate corpora (empty, single document,
fewer distinct points than k), cluster construction from labels,
keywords, per-cluster quality and scikit-learn quality metrics.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from adaptive_clustering.core.metrics import pairwise_similarities
from adaptive_clustering.utils.error_handling import ConfigurationError

logger = logging.getLogger(__name__)

NOISE_CLUSTER_ID = "noise"
NOISE_LABEL = -1


def size_uniformity(sizes: Sequence[int]) -> float:
    """1 / (1 + variance / mean) of cluster sizes; 1.0 for equal sizes, 0.0 when empty."""
    if len(sizes) == 0:
        return 0.0
    sizes = np.asarray(sizes, dtype=float)
    mean = float(sizes.mean())
    if mean == 0.0:
        return 0.0
    return float(1.0 / (1.0 + float(sizes.var()) / mean))


def top_keywords(
    terms: Optional[Sequence[Sequence[str]]],
    member_idx: Sequence[int],
    n_keywords: int = 5,
) -> List[str]:
    """Most frequent member terms longer than 2 characters."""
    if not terms:
        return []
    counts = Counter(
        term
        for i in member_idx
        for term in terms[i]
        if len(term) > 2
    )
    return [term for term, _ in counts.most_common(n_keywords)]


def intra_cluster_similarity(members: np.ndarray) -> float:
    """Average pairwise cosine similarity inside a cluster (1.0 for singletons)."""
    m = len(members)
    if m < 2:
        return 1.0
    similarities = pairwise_similarities(members)
    upper = similarities[np.triu_indices(m, k=1)]
    return float(np.mean(upper))


@dataclass
class ClusteringConfig:
    """Configuration for clustering algorithms."""

    algorithm_name: str
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Cluster:
    """A group of documents produced by one algorithm run."""

    id: str
    member_document_ids: List[str]
    centroid: np.ndarray
    quality_score: float = 0.0
    keywords: List[str] = field(default_factory=list)
    is_noise: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.member_document_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "member_document_ids": list(self.member_document_ids),
            "size": self.size,
            "quality_score": self.quality_score,
            "keywords": list(self.keywords),
            "is_noise": self.is_noise,
            "metadata": self.metadata,
        }


class ClusteringResult:
    """Results from one algorithm run (an AlgorithmResult)."""

    def __init__(
        self,
        algorithm_name: str,
        clusters: List[Cluster],
        cluster_labels: np.ndarray,
        quality_metrics: Dict[str, float],
        quality_score: float = 0.0,
        confidence: float = 0.0,
        execution_time_ms: float = 0.0,
        iterations: int = 0,
        converged: bool = True,
        tree: Optional[List[Dict[str, Any]]] = None,
    ):
        self.algorithm_name = algorithm_name
        self.clusters = clusters
        self.cluster_labels = cluster_labels
        self.quality_metrics = quality_metrics
        self.quality_score = quality_score
        self.confidence = confidence
        self.execution_time_ms = execution_time_ms
        self.iterations = iterations
        self.converged = converged
        self.tree = tree

    @property
    def labels(self) -> np.ndarray:
        """Alias for cluster_labels."""
        return self.cluster_labels

    @property
    def n_clusters(self) -> int:
        """Number of non-noise clusters."""
        return sum(1 for c in self.clusters if not c.is_noise)

    @property
    def outlier_count(self) -> int:
        return sum(c.size for c in self.clusters if c.is_noise)

    @property
    def noise_cluster(self) -> Optional[Cluster]:
        return next((c for c in self.clusters if c.is_noise), None)

    @property
    def cluster_centroids(self) -> Dict[str, np.ndarray]:
        """Centroids keyed by cluster id."""
        return {c.id: c.centroid for c in self.clusters}

    def assignments(self) -> Dict[str, str]:
        """Document id -> cluster id (noise included)."""
        return {
            doc_id: cluster.id
            for cluster in self.clusters
            for doc_id in cluster.member_document_ids
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = {
            "algorithm": self.algorithm_name,
            "n_clusters": self.n_clusters,
            "outlier_count": self.outlier_count,
            "quality_score": self.quality_score,
            "confidence": self.confidence,
            "execution_time_ms": self.execution_time_ms,
            "iterations": self.iterations,
            "converged": self.converged,
            "quality_metrics": self.quality_metrics,
            "total_items": len(self.cluster_labels),
            "clusters": [c.to_dict() for c in self.clusters],
        }
        if self.tree is not None:
            data["tree"] = self.tree
        return data


class BaseClusteringAlgorithm(ABC):
    """
    Abstract base class for clustering algorithms.

    All algorithms (K-Means, DBSCAN, Hierarchical, GMM, Hybrid) inherit from
    this class and implement the cluster() method.
    """

    def __init__(self, config: ClusteringConfig):
        """
        Initialize clustering algorithm.

        Args:
            config: Clustering configuration
        """
        self.config = config
        self.name = config.algorithm_name
        self.n_keywords = config.params.get("n_keywords", 5)

    @abstractmethod
    def cluster(
        self,
        vectors: np.ndarray,
        document_ids: Optional[Sequence[str]] = None,
        target_k: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ClusteringResult:
        """
        Perform clustering on vectors.

        Args:
            vectors: Feature vectors (N x D)
            document_ids: Identifier of each row (defaults to row indices)
            target_k: Requested number of clusters, where the algorithm uses one
            metadata: Optional per-vector metadata; "terms" holds each
                document's normalized terms for keyword extraction

        Returns:
            ClusteringResult with clusters, labels and metrics
        """
        pass

    # -------------------------------------------------------------------------
    # Input handling
    # -------------------------------------------------------------------------

    @staticmethod
    def _prepare_input(
        vectors: np.ndarray,
        document_ids: Optional[Sequence[str]],
    ) -> Tuple[np.ndarray, List[str]]:
        vectors = np.asarray(vectors, dtype=float)
        if vectors.ndim == 1:
            vectors = vectors.reshape(0, 0) if vectors.size == 0 else vectors.reshape(1, -1)

        if document_ids is None:
            document_ids = [str(i) for i in range(len(vectors))]
        document_ids = list(document_ids)

        if len(document_ids) != len(vectors):
            raise ConfigurationError(
                f"Got {len(document_ids)} document ids for {len(vectors)} vectors"
            )
        return vectors, document_ids

    def _resolve_k(self, target_k: Optional[int], default: int) -> int:
        """Requested k, or the configured default, validated to be >= 1."""
        k = target_k if target_k is not None else default
        if k is None or int(k) < 1:
            raise ConfigurationError(
                f"{self.name}: number of clusters must be >= 1, got {k}",
                details={"n_clusters": k},
            )
        return int(k)

    @staticmethod
    def _distinct_labels(vectors: np.ndarray) -> Tuple[int, np.ndarray]:
        """Number of distinct rows and the label of each row's distinct value."""
        _, first_index, inverse = np.unique(
            vectors, axis=0, return_index=True, return_inverse=True
        )
        inverse = np.asarray(inverse).reshape(-1)
        # Relabel in order of first appearance so label 0 is the first row.
        order = np.argsort(np.argsort(first_index))
        return len(first_index), order[inverse]

    def _degenerate_result(
        self,
        vectors: np.ndarray,
        document_ids: List[str],
        metadata: Optional[Dict[str, Any]],
        k: Optional[int],
        start_time: float,
    ) -> Optional[ClusteringResult]:
        """
        Result for corpora too small to cluster, else None.

        Empty corpus -> no clusters. One document -> one cluster of size 1.
        Fewer distinct points than k (or a single distinct point when the
        algorithm has no k) -> one cluster per distinct point.
        """
        n = len(vectors)
        if n == 0:
            logger.info(f"{self.name}: empty corpus, returning no clusters")
            return ClusteringResult(
                algorithm_name=self.name,
                clusters=[],
                cluster_labels=np.zeros(0, dtype=int),
                quality_metrics={},
                execution_time_ms=(time.perf_counter() - start_time) * 1000,
            )

        if n == 1:
            labels = np.zeros(1, dtype=int)
        else:
            n_distinct, labels = self._distinct_labels(vectors)
            limit = k if k is not None else 1
            if n_distinct > limit:
                return None
            if k is not None and n_distinct < k:
                logger.warning(
                    f"Reducing n_clusters from {k} to {n_distinct} due to small dataset size"
                )

        return self._build_result(
            vectors, labels, document_ids, metadata, start_time,
            confidence=1.0,
        )

    # -------------------------------------------------------------------------
    # Result construction
    # -------------------------------------------------------------------------

    def _build_result(
        self,
        vectors: np.ndarray,
        labels: np.ndarray,
        document_ids: List[str],
        metadata: Optional[Dict[str, Any]],
        start_time: float,
        cluster_metadata: Optional[Dict[int, Dict[str, Any]]] = None,
        extra_metrics: Optional[Dict[str, float]] = None,
        iterations: int = 0,
        converged: bool = True,
        confidence: Optional[float] = None,
    ) -> ClusteringResult:
        """Turn a label array into Clusters plus quality metrics."""
        labels = np.asarray(labels, dtype=int)
        cluster_metadata = cluster_metadata or {}
        terms = (metadata or {}).get("terms")

        clusters = []
        unique_labels = [int(label) for label in np.unique(labels) if label != NOISE_LABEL]
        for index, label in enumerate(unique_labels):
            member_idx = np.flatnonzero(labels == label)
            members = vectors[member_idx]
            clusters.append(Cluster(
                id=f"{self.name}_{index}",
                member_document_ids=[document_ids[i] for i in member_idx],
                centroid=members.mean(axis=0),
                quality_score=self._intra_cluster_similarity(members),
                keywords=self._extract_keywords(terms, member_idx),
                metadata=cluster_metadata.get(label, {}),
            ))

        noise_idx = np.flatnonzero(labels == NOISE_LABEL)
        if len(noise_idx) > 0:
            clusters.append(Cluster(
                id=NOISE_CLUSTER_ID,
                member_document_ids=[document_ids[i] for i in noise_idx],
                centroid=vectors[noise_idx].mean(axis=0),
                quality_score=0.0,
                keywords=self._extract_keywords(terms, noise_idx),
                is_noise=True,
                metadata=cluster_metadata.get(NOISE_LABEL, {}),
            ))

        quality_metrics = self._calculate_quality_metrics(vectors, labels)
        if extra_metrics:
            quality_metrics.update(extra_metrics)

        quality_score = self._overall_quality(clusters)
        if confidence is None:
            confidence = self._confidence(quality_score, quality_metrics, len(noise_idx), len(labels))

        return ClusteringResult(
            algorithm_name=self.name,
            clusters=clusters,
            cluster_labels=labels,
            quality_metrics=quality_metrics,
            quality_score=quality_score,
            confidence=confidence,
            execution_time_ms=(time.perf_counter() - start_time) * 1000,
            iterations=iterations,
            converged=converged,
        )

    @staticmethod
    def _intra_cluster_similarity(members: np.ndarray) -> float:
        return intra_cluster_similarity(members)

    def _extract_keywords(
        self,
        terms: Optional[Sequence[Sequence[str]]],
        member_idx: np.ndarray,
    ) -> List[str]:
        return top_keywords(terms, member_idx, self.n_keywords)

    @staticmethod
    def _overall_quality(clusters: List[Cluster]) -> float:
        """Size-weighted mean cluster quality over non-noise clusters."""
        real = [c for c in clusters if not c.is_noise]
        total = sum(c.size for c in real)
        if total == 0:
            return 0.0
        return float(sum(c.quality_score * c.size for c in real) / total)

    @staticmethod
    def _confidence(
        quality_score: float,
        quality_metrics: Dict[str, float],
        noise_count: int,
        total: int,
    ) -> float:
        """Blend of cluster quality and silhouette, discounted by the noise share."""
        silhouette = quality_metrics.get("silhouette_score")
        base = quality_score if silhouette is None else 0.5 * quality_score + 0.5 * max(0.0, silhouette)
        if total > 0:
            base *= 1.0 - noise_count / total
        return float(min(1.0, max(0.0, base)))

    def _calculate_quality_metrics(
        self,
        vectors: np.ndarray,
        labels: np.ndarray,
    ) -> Dict[str, float]:
        """
        Calculate clustering quality metrics.

        Args:
            vectors: Input vectors
            labels: Cluster labels (-1 for noise)

        Returns:
            Dictionary of quality metrics
        """
        from sklearn.metrics import silhouette_score, davies_bouldin_score

        metrics = {}

        # Filter out noise (-1 labels) for metrics calculation
        non_noise_mask = labels != NOISE_LABEL
        n_labels = len(np.unique(labels[non_noise_mask]))

        if 1 < n_labels < np.sum(non_noise_mask):
            try:
                # Silhouette score (higher is better, range: -1 to 1)
                metrics["silhouette_score"] = float(silhouette_score(
                    vectors[non_noise_mask],
                    labels[non_noise_mask],
                ))
            except ValueError as e:
                logger.debug(f"Silhouette score unavailable: {e}")

            try:
                # Davies-Bouldin Index (lower is better)
                metrics["davies_bouldin_index"] = float(davies_bouldin_score(
                    vectors[non_noise_mask],
                    labels[non_noise_mask],
                ))
            except ValueError as e:
                logger.debug(f"Davies-Bouldin index unavailable: {e}")

        return metrics
