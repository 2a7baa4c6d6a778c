"""
Hybrid Clustering Algorithm.

Runs several component algorithms over the same vectors and fuses their
results through the FusionEngine. Component failures are tolerated as long
as at least one component succeeds.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Type

import numpy as np

from adaptive_clustering.config.settings_loader import FusionSettings
from adaptive_clustering.core.base_clustering import (
    NOISE_LABEL,
    BaseClusteringAlgorithm,
    ClusteringConfig,
    ClusteringResult,
)
from adaptive_clustering.core.dbscan_algorithm import DBSCANAlgorithm
from adaptive_clustering.core.fusion_engine import FusionEngine, HybridCluster
from adaptive_clustering.core.gmm_algorithm import GMMAlgorithm
from adaptive_clustering.core.hierarchical_algorithm import HierarchicalAlgorithm
from adaptive_clustering.core.kmeans_algorithm import KMeansAlgorithm
from adaptive_clustering.utils.error_handling import (
    ClusteringFailedError,
    ConfigurationError,
)

logger = logging.getLogger(__name__)

COMPONENT_ALGORITHMS: Dict[str, Type[BaseClusteringAlgorithm]] = {
    "kmeans": KMeansAlgorithm,
    "dbscan": DBSCANAlgorithm,
    "hierarchical": HierarchicalAlgorithm,
    "gmm": GMMAlgorithm,
}


class HybridAlgorithm(BaseClusteringAlgorithm):
    """
    Multi-algorithm clustering with consensus fusion.

    Params:
        component_algorithms: Algorithm keys to run (default kmeans, dbscan)
        component_params: Per-algorithm parameter dicts
        n_clusters: k handed to the k-based components
        fusion_method: ensemble, cascade, weighted or adaptive

    Pass metadata["characteristics"] to let adaptive fusion and the
    confidence estimate see the data characteristics.
    """

    def __init__(self, config: ClusteringConfig, fusion_settings: Optional[FusionSettings] = None):
        """
        Initialize hybrid algorithm.

        Args:
            config: Clustering configuration
            fusion_settings: Fusion thresholds (defaults to FusionSettings())
        """
        super().__init__(config)

        fusion_settings = fusion_settings or FusionSettings()
        self.component_algorithms = list(
            config.params.get("component_algorithms", fusion_settings.component_algorithms)
        )
        self.component_params = config.params.get("component_params", {})
        self.n_clusters = config.params.get("n_clusters")
        self.fusion_method = config.params.get("fusion_method", fusion_settings.method)
        self.fusion_engine = FusionEngine(fusion_settings)

        unknown = [a for a in self.component_algorithms if a not in COMPONENT_ALGORITHMS]
        if unknown or not self.component_algorithms:
            raise ConfigurationError(
                f"Invalid hybrid components {self.component_algorithms}. "
                f"Supported: {list(COMPONENT_ALGORITHMS)}",
                details={"component_algorithms": self.component_algorithms},
            )

        self.component_results: List[ClusteringResult] = []
        self.hybrid_clusters: List[HybridCluster] = []
        self.failed_components: List[str] = []

    def cluster(
        self,
        vectors: np.ndarray,
        document_ids: Optional[Sequence[str]] = None,
        target_k: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ClusteringResult:
        """
        Run every component, then fuse.

        Returns:
            ClusteringResult whose clusters mirror hybrid_clusters

        Raises:
            ClusteringFailedError: Every component failed
        """
        start_time = time.perf_counter()
        vectors, document_ids = self._prepare_input(vectors, document_ids)
        k = target_k if target_k is not None else self.n_clusters
        characteristics = (metadata or {}).get("characteristics")

        self.component_results = []
        self.hybrid_clusters = []
        self.failed_components = []

        degenerate = self._degenerate_result(vectors, document_ids, metadata, None, start_time)
        if degenerate is not None:
            return degenerate

        logger.info(
            f"Starting hybrid clustering on {len(vectors)} vectors "
            f"with components {self.component_algorithms}"
        )

        for name in self.component_algorithms:
            algorithm = COMPONENT_ALGORITHMS[name](ClusteringConfig(
                algorithm_name=name,
                params=dict(self.component_params.get(name, {})),
            ))
            try:
                self.component_results.append(
                    algorithm.cluster(vectors, document_ids, target_k=k, metadata=metadata)
                )
            except ConfigurationError:
                raise
            except Exception as e:
                logger.warning(f"Hybrid component {name} failed: {e}")
                self.failed_components.append(name)

        if not self.component_results:
            raise ClusteringFailedError(
                "All hybrid components failed",
                details={"components": self.failed_components},
            )

        self.hybrid_clusters = self.fusion_engine.fuse(
            self.component_results,
            method=self.fusion_method,
            characteristics=characteristics,
            document_ids=document_ids,
            vectors=vectors,
        )

        return self._to_result(vectors, document_ids, metadata, characteristics, start_time)

    def _to_result(
        self,
        vectors: np.ndarray,
        document_ids: List[str],
        metadata: Optional[Dict[str, Any]],
        characteristics,
        start_time: float,
    ) -> ClusteringResult:
        """Express the fused clusters as a regular ClusteringResult."""
        position = {doc_id: i for i, doc_id in enumerate(document_ids)}
        labels = np.full(len(document_ids), NOISE_LABEL, dtype=int)
        real = [c for c in self.hybrid_clusters if not c.is_noise]
        for label, hybrid in enumerate(real):
            labels[[position[d] for d in hybrid.member_document_ids]] = label

        cluster_metadata = {
            label: {
                "source_algorithm": hybrid.source_algorithm,
                "confidence": hybrid.confidence,
                "provenance": hybrid.provenance,
            }
            for label, hybrid in enumerate(real)
        }

        result = self._build_result(
            vectors, labels, document_ids, metadata, start_time,
            cluster_metadata=cluster_metadata,
            extra_metrics={
                "fusion_quality": self.fusion_engine.evaluate_algorithm_quality(
                    self.hybrid_clusters, characteristics
                ),
                "components_succeeded": float(len(self.component_results)),
            },
            converged=all(r.converged for r in self.component_results),
            confidence=self.fusion_engine.estimate_confidence(self.hybrid_clusters, characteristics),
        )

        # Keep the fused cluster ids
        for cluster, hybrid in zip(result.clusters, real):
            cluster.id = hybrid.id
        result.iterations = sum(r.iterations for r in self.component_results)

        logger.info(
            f"Hybrid clustering created {result.n_clusters} clusters from "
            f"{len(self.component_results)} components"
        )
        return result
