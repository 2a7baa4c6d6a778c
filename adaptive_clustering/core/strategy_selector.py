"""
Strategy Selector.

Table-driven choice of a primary clustering algorithm, two ranked
fallbacks and tuned starting parameters for each, from DataCharacteristics.

Scoring (each algorithm capped at 1.0):
- kmeans: small corpora, low dimensionality, spherical shape, clustered data
- dbscan: noisy corpora, irregular or mixed shapes, dense text, < 5000 docs
- hierarchical: small corpora, high domain complexity, mixed shapes
- gmm: high complexity, spherical or elongated shapes, moderate size
- hybrid: high complexity, mixed shapes and distributions, large corpora
"""

import logging
from typing import Any, Dict, List, Optional

import numpy as np

from adaptive_clustering.config.settings_loader import Settings
from adaptive_clustering.core.clustering_engine import ClusteringEngine
from adaptive_clustering.schemas.data_models import (
    ClusterAlgorithm,
    ClusteringStrategy,
    ClusterShape,
    DataCharacteristics,
    DistributionType,
    DomainComplexity,
    ExpectedPerformance,
)

logger = logging.getLogger(__name__)

BASE_PERFORMANCE = {
    ClusterAlgorithm.KMEANS: {"accuracy": 0.8, "speed": 0.9, "scalability": 0.8, "interpretability": 0.7},
    ClusterAlgorithm.DBSCAN: {"accuracy": 0.7, "speed": 0.6, "scalability": 0.5, "interpretability": 0.6},
    ClusterAlgorithm.HIERARCHICAL: {"accuracy": 0.8, "speed": 0.4, "scalability": 0.3, "interpretability": 0.9},
    ClusterAlgorithm.GMM: {"accuracy": 0.8, "speed": 0.5, "scalability": 0.4, "interpretability": 0.6},
    ClusterAlgorithm.HYBRID: {"accuracy": 0.9, "speed": 0.6, "scalability": 0.7, "interpretability": 0.7},
}

# (upper bound, adjustment) pairs; the last entry applies above every bound
SIZE_ADJUSTMENTS = [
    (100, {"accuracy": 0.1, "speed": 0.2, "scalability": 0.1, "interpretability": 0.1}),
    (1000, {"accuracy": 0.0, "speed": 0.0, "scalability": 0.0, "interpretability": 0.0}),
    (10000, {"accuracy": -0.1, "speed": -0.2, "scalability": -0.1, "interpretability": -0.1}),
    (None, {"accuracy": -0.2, "speed": -0.4, "scalability": -0.3, "interpretability": -0.2}),
]

DIMENSION_ADJUSTMENTS = [
    (100, {"accuracy": 0.1, "speed": 0.2, "scalability": 0.1, "interpretability": 0.1}),
    (500, {"accuracy": 0.0, "speed": 0.0, "scalability": 0.0, "interpretability": 0.0}),
    (1000, {"accuracy": -0.1, "speed": -0.3, "scalability": -0.2, "interpretability": -0.1}),
    (None, {"accuracy": -0.2, "speed": -0.5, "scalability": -0.4, "interpretability": -0.2}),
]


def _adjustment(table, value: float) -> Dict[str, float]:
    for bound, adjustment in table:
        if bound is None or value < bound:
            return adjustment
    return table[-1][1]


class StrategySelector:
    """Chooses the algorithm, fallbacks and parameters for a corpus."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        engine: Optional[ClusteringEngine] = None,
    ):
        self.settings = settings or Settings()
        self.engine = engine or ClusteringEngine(self.settings)

    def select_strategy(
        self,
        characteristics: DataCharacteristics,
        target_k: Optional[int] = None,
        vectors: Optional[np.ndarray] = None,
    ) -> ClusteringStrategy:
        """
        Build a ClusteringStrategy.

        Args:
            characteristics: Output of the CharacteristicsAnalyzer
            target_k: Requested number of clusters (estimated when None)
            vectors: Feature vectors, used by the silhouette k search

        Returns:
            Strategy with primary, two fallbacks and per-algorithm parameters
        """
        scores = self.calculate_algorithm_scores(characteristics)

        # Stable sort keeps enumeration order for ties
        ranked = sorted(ClusterAlgorithm, key=lambda a: -scores[a])
        primary, fallbacks = ranked[0], ranked[1:3]

        k = target_k if target_k is not None else self.estimate_k(characteristics, vectors)

        strategy = ClusteringStrategy(
            primary_algorithm=primary,
            fallback_algorithms=fallbacks,
            parameters=self.optimize_parameters(characteristics, primary, k),
            fallback_parameters={
                a.value: self.optimize_parameters(characteristics, a, k) for a in fallbacks
            },
            expected_performance=self.expected_performance(characteristics, primary),
            algorithm_scores={a.value: scores[a] for a in ClusterAlgorithm},
        )

        logger.info(
            f"Selected {primary.value} (score {scores[primary]:.2f}), "
            f"fallbacks {[a.value for a in fallbacks]}, k={k}"
        )
        return strategy

    def calculate_algorithm_scores(
        self,
        c: DataCharacteristics,
    ) -> Dict[ClusterAlgorithm, float]:
        """Suitability score of every algorithm, capped at 1.0."""
        kmeans = 0.0
        kmeans += 0.3 if c.size < 1000 else 0.2 if c.size < 10000 else 0.1
        kmeans += 0.2 if c.dimensionality < 100 else 0.1 if c.dimensionality < 500 else 0.0
        kmeans += {ClusterShape.SPHERICAL: 0.3, ClusterShape.ELONGATED: 0.2}.get(c.cluster_shape, 0.1)
        kmeans += {DistributionType.CLUSTERED: 0.2, DistributionType.UNIFORM: 0.1}.get(c.distribution, 0.0)

        dbscan = 0.0
        dbscan += 0.3 if c.noise_level > 0.3 else 0.2 if c.noise_level > 0.1 else 0.0
        dbscan += {ClusterShape.IRREGULAR: 0.3, ClusterShape.MIXED: 0.2}.get(c.cluster_shape, 0.0)
        dbscan += 0.2 if c.density > 0.5 else 0.0
        dbscan += 0.2 if c.size < 5000 else 0.0

        hierarchical = 0.0
        hierarchical += 0.4 if c.size < 500 else 0.2 if c.size < 2000 else 0.0
        hierarchical += 0.3 if c.domain_complexity == DomainComplexity.HIGH else 0.0
        hierarchical += 0.2 if c.cluster_shape == ClusterShape.MIXED else 0.0
        hierarchical += 0.1 if c.dimensionality < 200 else 0.0

        gmm = 0.0
        gmm += 0.3 if c.domain_complexity == DomainComplexity.HIGH else 0.0
        gmm += {ClusterShape.SPHERICAL: 0.3, ClusterShape.ELONGATED: 0.2}.get(c.cluster_shape, 0.0)
        gmm += 0.2 if c.size < 3000 else 0.0
        gmm += 0.2 if c.dimensionality < 300 else 0.0

        hybrid = 0.0
        hybrid += 0.3 if c.domain_complexity == DomainComplexity.HIGH else 0.0
        hybrid += 0.2 if c.cluster_shape == ClusterShape.MIXED else 0.0
        hybrid += 0.2 if c.distribution == DistributionType.MIXED else 0.0
        hybrid += 0.2 if c.size > 5000 else 0.0
        hybrid += 0.1 if c.dimensionality > 500 else 0.0

        raw = {
            ClusterAlgorithm.KMEANS: kmeans,
            ClusterAlgorithm.DBSCAN: dbscan,
            ClusterAlgorithm.HIERARCHICAL: hierarchical,
            ClusterAlgorithm.GMM: gmm,
            ClusterAlgorithm.HYBRID: hybrid,
        }
        # Rounded so float noise never breaks a tie
        return {a: round(min(1.0, s), 6) for a, s in raw.items()}

    @staticmethod
    def estimate_k_heuristic(size: int) -> int:
        """Step function of corpus size, never above size."""
        if size < 100:
            k = max(2, size // 20)
        elif size < 1000:
            k = max(3, size // 100)
        elif size < 10000:
            k = max(5, size // 1000)
        else:
            k = max(8, size // 5000)
        return max(1, min(k, size))

    def estimate_k(
        self,
        characteristics: DataCharacteristics,
        vectors: Optional[np.ndarray] = None,
    ) -> int:
        if self.settings.selector.k_selection == "silhouette" and vectors is not None:
            return self.engine.estimate_optimal_k(vectors)
        return self.estimate_k_heuristic(characteristics.size)

    def optimize_parameters(
        self,
        c: DataCharacteristics,
        algorithm: ClusterAlgorithm,
        k: int,
    ) -> Dict[str, Any]:
        """Starting hyperparameters of one algorithm."""
        if algorithm == ClusterAlgorithm.KMEANS:
            return {
                "n_clusters": k,
                "initialization": self.settings.algorithms.kmeans.initialization,
                "max_iter": max(10, min(200, c.size // 10)),
            }
        if algorithm == ClusterAlgorithm.DBSCAN:
            return {
                "eps": 0.1 + c.noise_level * 0.3,
                "min_pts": max(3, int(np.floor(c.size * 0.01))),
                "metric": self.settings.algorithms.dbscan.metric,
            }
        if algorithm == ClusterAlgorithm.HIERARCHICAL:
            return {"linkage": "ward", "metric": "euclidean", "n_clusters": k}
        if algorithm == ClusterAlgorithm.GMM:
            return {"n_components": k, "covariance_type": "spherical", "max_iter": 100}

        components: List[str] = list(self.settings.fusion.component_algorithms)
        return {
            "component_algorithms": components,
            "n_clusters": k,
            "fusion_method": self.settings.fusion.method,
            "component_params": {
                name: self.optimize_parameters(c, ClusterAlgorithm(name), k)
                for name in components
            },
        }

    @staticmethod
    def expected_performance(
        c: DataCharacteristics,
        algorithm: ClusterAlgorithm,
    ) -> ExpectedPerformance:
        """Base profile scaled by size and dimensionality adjustments."""
        base = BASE_PERFORMANCE[algorithm]
        size_adj = _adjustment(SIZE_ADJUSTMENTS, c.size)
        dim_adj = _adjustment(DIMENSION_ADJUSTMENTS, c.dimensionality)

        def scaled(metric: str) -> float:
            return base[metric] * (1 + size_adj[metric]) * (1 + dim_adj[metric])

        return ExpectedPerformance(
            accuracy=min(1.0, scaled("accuracy")),
            speed=min(1.0, max(0.1, scaled("speed"))),
            scalability=min(1.0, max(0.1, scaled("scalability"))),
            interpretability=min(1.0, scaled("interpretability")),
        )
