"""
Core clustering module.

Exports:
- ClusteringEngine: Algorithm registry and factory
- BaseClusteringAlgorithm: Base class for algorithms
- ClusteringResult, Cluster: Result containers
- ClusteringConfig: Configuration container
- Individual algorithm implementations
- CharacteristicsAnalyzer, StrategySelector, PerformancePredictor
- FusionEngine, HybridCluster: Cluster fusion
"""

from adaptive_clustering.core.metrics import distance, pairwise_distances, resolve_metric
from adaptive_clustering.core.base_clustering import (
    BaseClusteringAlgorithm,
    Cluster,
    ClusteringResult,
    ClusteringConfig,
)
from adaptive_clustering.core.kmeans_algorithm import KMeansAlgorithm
from adaptive_clustering.core.dbscan_algorithm import DBSCANAlgorithm
from adaptive_clustering.core.hierarchical_algorithm import HierarchicalAlgorithm
from adaptive_clustering.core.gmm_algorithm import GMMAlgorithm
from adaptive_clustering.core.fusion_engine import FusionEngine, HybridCluster
from adaptive_clustering.core.hybrid_algorithm import HybridAlgorithm
from adaptive_clustering.core.clustering_engine import ClusteringEngine
from adaptive_clustering.core.characteristics_analyzer import CharacteristicsAnalyzer
from adaptive_clustering.core.strategy_selector import StrategySelector
from adaptive_clustering.core.performance_predictor import PerformancePredictor

__all__ = [
    "distance",
    "pairwise_distances",
    "resolve_metric",
    "ClusteringEngine",
    "BaseClusteringAlgorithm",
    "Cluster",
    "ClusteringResult",
    "ClusteringConfig",
    "KMeansAlgorithm",
    "DBSCANAlgorithm",
    "HierarchicalAlgorithm",
    "GMMAlgorithm",
    "HybridAlgorithm",
    "FusionEngine",
    "HybridCluster",
    "CharacteristicsAnalyzer",
    "StrategySelector",
    "PerformancePredictor",
]
