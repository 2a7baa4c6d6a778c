"""
Clustering Engine - Registry and execution of clustering algorithms.

Maps every ClusterAlgorithm member to its implementation, fills in the
configured defaults, validates parameters and runs the algorithm. Also
hosts the silhouette-based search for k.
"""

import logging
from typing import Any, Dict, Optional, Sequence, Union

import numpy as np

from adaptive_clustering.config.settings_loader import Settings
from adaptive_clustering.core.base_clustering import (
    BaseClusteringAlgorithm,
    ClusteringConfig,
    ClusteringResult,
)
from adaptive_clustering.core.dbscan_algorithm import DBSCANAlgorithm
from adaptive_clustering.core.gmm_algorithm import INITIALIZATIONS, GMMAlgorithm
from adaptive_clustering.core.hierarchical_algorithm import HierarchicalAlgorithm
from adaptive_clustering.core.hybrid_algorithm import COMPONENT_ALGORITHMS, HybridAlgorithm
from adaptive_clustering.core.kmeans_algorithm import SEEDING_STRATEGIES, KMeansAlgorithm
from adaptive_clustering.core.metrics import resolve_metric
from adaptive_clustering.schemas.data_models import (
    ClusterAlgorithm,
    DistanceMetric,
    FusionMethod,
    LinkageMethod,
)
from adaptive_clustering.utils.error_handling import ConfigurationError, InvalidAlgorithmError

logger = logging.getLogger(__name__)


class ClusteringEngine:
    """
    Main clustering engine that dispatches to the registered algorithms.

    Provides a unified interface for all clustering operations regardless
    of the underlying algorithm.
    """

    # Registry of available algorithms
    ALGORITHMS = {
        ClusterAlgorithm.KMEANS: KMeansAlgorithm,
        ClusterAlgorithm.DBSCAN: DBSCANAlgorithm,
        ClusterAlgorithm.HIERARCHICAL: HierarchicalAlgorithm,
        ClusterAlgorithm.GMM: GMMAlgorithm,
        ClusterAlgorithm.HYBRID: HybridAlgorithm,
    }

    def __init__(self, settings: Optional[Settings] = None):
        """
        Initialize clustering engine.

        Args:
            settings: Engine settings supplying algorithm defaults
        """
        self.settings = settings or Settings()
        logger.debug("Initialized ClusteringEngine")

    @classmethod
    def resolve_algorithm(cls, algorithm: Union[str, ClusterAlgorithm]) -> ClusterAlgorithm:
        """
        Map an algorithm key to its enum member.

        Raises:
            InvalidAlgorithmError: If the key is not registered
        """
        try:
            resolved = ClusterAlgorithm(str(getattr(algorithm, "value", algorithm)).lower())
        except ValueError:
            resolved = None

        if resolved is None or resolved not in cls.ALGORITHMS:
            raise InvalidAlgorithmError(
                f"Unsupported algorithm '{algorithm}'. "
                f"Supported: {[a.value for a in cls.ALGORITHMS]}",
                details={"algorithm": str(algorithm)},
            )
        return resolved

    def default_params(self, algorithm: Union[str, ClusterAlgorithm]) -> Dict[str, Any]:
        """Configured defaults for an algorithm."""
        algorithm = self.resolve_algorithm(algorithm)
        algos = self.settings.algorithms

        if algorithm == ClusterAlgorithm.KMEANS:
            return algos.kmeans.model_dump()
        if algorithm == ClusterAlgorithm.DBSCAN:
            return {**algos.dbscan.model_dump(), "domain_weight": self.settings.metrics.domain_weight}
        if algorithm == ClusterAlgorithm.HIERARCHICAL:
            return algos.hierarchical.model_dump()
        if algorithm == ClusterAlgorithm.GMM:
            return algos.gmm.model_dump()

        fusion = self.settings.fusion
        return {
            "component_algorithms": list(fusion.component_algorithms),
            "fusion_method": fusion.method,
        }

    def create_algorithm(
        self,
        algorithm: Union[str, ClusterAlgorithm],
        algorithm_params: Optional[Dict[str, Any]] = None,
    ) -> BaseClusteringAlgorithm:
        """
        Instantiate an algorithm with defaults overlaid by algorithm_params.

        Raises:
            InvalidAlgorithmError: Unknown algorithm key
            ConfigurationError: Invalid parameters
        """
        algorithm = self.resolve_algorithm(algorithm)
        params = {**self.default_params(algorithm), **(algorithm_params or {})}

        if algorithm == ClusterAlgorithm.HYBRID:
            supplied = params.get("component_params", {})
            params["component_params"] = {
                name: {**self.default_params(name), **supplied.get(name, {})}
                for name in params.get("component_algorithms", [])
                if name in COMPONENT_ALGORITHMS
            }

        errors = self.validate_clustering_config(algorithm.value, params)
        if errors:
            raise ConfigurationError(
                f"Invalid {algorithm.value} configuration: {errors}",
                details={"errors": errors},
            )

        config = ClusteringConfig(algorithm_name=algorithm.value, params=params)
        if algorithm == ClusterAlgorithm.HYBRID:
            return HybridAlgorithm(config, self.settings.fusion)
        return self.ALGORITHMS[algorithm](config)

    def cluster(
        self,
        vectors: np.ndarray,
        algorithm: Union[str, ClusterAlgorithm],
        algorithm_params: Optional[Dict[str, Any]] = None,
        document_ids: Optional[Sequence[str]] = None,
        target_k: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ClusteringResult:
        """
        Perform clustering using the specified algorithm.

        Args:
            vectors: Feature vectors (N x D)
            algorithm: Algorithm key (kmeans/dbscan/hierarchical/gmm/hybrid)
            algorithm_params: Algorithm-specific parameters
            document_ids: Identifier of each row
            target_k: Requested number of clusters
            metadata: Optional per-vector metadata

        Returns:
            ClusteringResult with clusters and metrics

        Raises:
            InvalidAlgorithmError: If algorithm is not supported
        """
        clusterer = self.create_algorithm(algorithm, algorithm_params)

        logger.info(f"Starting {clusterer.name} clustering on {len(vectors)} vectors")
        result = clusterer.cluster(vectors, document_ids, target_k=target_k, metadata=metadata)

        logger.info(
            f"{clusterer.name} clustering complete: {result.n_clusters} clusters, "
            f"{result.outlier_count} outliers, quality={result.quality_score:.3f}"
        )
        return result

    def estimate_optimal_k(
        self,
        vectors: np.ndarray,
        min_k: int = 2,
        max_k: Optional[int] = None,
    ) -> int:
        """
        Estimate the number of clusters by maximizing the silhouette score.

        Tries k = min_k .. min(max_k, n // 2) with K-Means.

        Args:
            vectors: Feature vectors (N x D)
            min_k: Smallest k to try
            max_k: Largest k to try (defaults to selector.max_silhouette_k)

        Returns:
            Estimated optimal k
        """
        from sklearn.metrics import silhouette_score

        vectors = np.asarray(vectors, dtype=float)
        n = len(vectors)
        max_k = max_k if max_k is not None else self.settings.selector.max_silhouette_k
        max_k = min(max_k, n // 2)

        if max_k < min_k:
            fallback = max(1, min(min_k, n))
            logger.info(f"Too few vectors ({n}) for a silhouette search, using k={fallback}")
            return fallback

        kmeans = self.create_algorithm(ClusterAlgorithm.KMEANS)
        best_k, best_score = min_k, -np.inf
        for k in range(min_k, max_k + 1):
            _, labels, _, _ = kmeans.fit_centroids(vectors, k)
            n_labels = len(np.unique(labels))
            if n_labels < 2 or n_labels >= n:
                continue
            score = float(silhouette_score(vectors, labels))
            if score > best_score:
                best_k, best_score = k, score

        logger.info(
            f"Estimated optimal k={best_k} (silhouette={best_score:.3f}, "
            f"tried k={min_k} to {max_k})"
        )
        return best_k

    def validate_clustering_config(
        self,
        algorithm: str,
        params: Dict[str, Any],
    ) -> Dict[str, str]:
        """
        Validate clustering configuration.

        Args:
            algorithm: Algorithm name
            params: Algorithm parameters

        Returns:
            Dictionary of validation errors (empty if valid)
        """
        errors = {}

        if algorithm not in [a.value for a in self.ALGORITHMS]:
            errors["algorithm"] = f"Unsupported algorithm '{algorithm}'"
            return errors

        if "metric" in params:
            try:
                resolve_metric(params["metric"])
            except ConfigurationError:
                errors["metric"] = f"Unknown metric '{params['metric']}'"

        # Algorithm-specific validation
        if algorithm == "kmeans":
            if params.get("n_clusters") is not None and params["n_clusters"] < 1:
                errors["n_clusters"] = "Must be >= 1"
            if params.get("initialization", "farthest_point") not in SEEDING_STRATEGIES:
                errors["initialization"] = f"Must be one of {list(SEEDING_STRATEGIES)}"
            if params.get("max_iter", 1) < 1:
                errors["max_iter"] = "Must be >= 1"
            if params.get("tol", 1e-4) <= 0:
                errors["tol"] = "Must be > 0"

        elif algorithm == "dbscan":
            if params.get("eps", 0.3) <= 0:
                errors["eps"] = "Must be > 0"
            if params.get("min_pts", 5) < 1:
                errors["min_pts"] = "Must be >= 1"
            if params.get("min_cluster_size", 1) < 1:
                errors["min_cluster_size"] = "Must be >= 1"

        elif algorithm == "hierarchical":
            linkage = params.get("linkage", "ward")
            if linkage not in [m.value for m in LinkageMethod]:
                errors["linkage"] = f"Must be one of {[m.value for m in LinkageMethod]}"
            elif (
                linkage in (LinkageMethod.WARD.value, LinkageMethod.CENTROID.value)
                and params.get("metric", "euclidean") != DistanceMetric.EUCLIDEAN.value
            ):
                errors["metric"] = f"{linkage} linkage requires euclidean"
            if params.get("n_clusters") is not None and params["n_clusters"] < 1:
                errors["n_clusters"] = "Must be >= 1"

        elif algorithm == "gmm":
            if params.get("n_components") is not None and params["n_components"] < 1:
                errors["n_components"] = "Must be >= 1"
            if params.get("init", "kmeans") not in INITIALIZATIONS:
                errors["init"] = f"Must be one of {list(INITIALIZATIONS)}"
            if params.get("covariance_type", "spherical") != "spherical":
                errors["covariance_type"] = "Only spherical is supported"
            if params.get("reg_covar", 1e-6) <= 0:
                errors["reg_covar"] = "Must be > 0"

        elif algorithm == "hybrid":
            components = params.get("component_algorithms", [])
            unknown = [c for c in components if c not in COMPONENT_ALGORITHMS]
            if not components or unknown:
                errors["component_algorithms"] = f"Must be a non-empty subset of {list(COMPONENT_ALGORITHMS)}"
            if params.get("fusion_method", "adaptive") not in [m.value for m in FusionMethod]:
                errors["fusion_method"] = f"Must be one of {[m.value for m in FusionMethod]}"

        return errors
