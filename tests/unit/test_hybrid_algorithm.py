"""
Unit tests for the Hybrid clustering algorithm.
"""

import pytest

from adaptive_clustering.core.base_clustering import ClusteringConfig
from adaptive_clustering.core.dbscan_algorithm import DBSCANAlgorithm
from adaptive_clustering.core.hybrid_algorithm import HybridAlgorithm
from adaptive_clustering.core.kmeans_algorithm import KMeansAlgorithm
from adaptive_clustering.utils.error_handling import (
    ClusteringFailedError,
    ConfigurationError,
    NumericalError,
)

DBSCAN_PARAMS = {"eps": 0.6, "min_pts": 3, "metric": "euclidean"}


def hybrid(**params):
    params.setdefault("component_params", {"dbscan": DBSCAN_PARAMS})
    return HybridAlgorithm(ClusteringConfig(algorithm_name="hybrid", params=params))


def failing_cluster(self, *args, **kwargs):
    raise NumericalError(f"{self.name} hit a singular covariance")


@pytest.mark.unit
class TestHybridAlgorithm:
    """Test suite for multi-algorithm clustering with fusion."""

    def test_defaults_from_fusion_settings(self):
        clusterer = HybridAlgorithm(ClusteringConfig(algorithm_name="hybrid"))
        assert clusterer.component_algorithms == ["kmeans", "dbscan"]
        assert clusterer.fusion_method == "adaptive"

    @pytest.mark.parametrize("method", ["ensemble", "cascade", "weighted"])
    def test_components_agree(self, clustered_vectors, method):
        vectors, true_labels = clustered_vectors
        clusterer = hybrid(fusion_method=method)

        result = clusterer.cluster(vectors, target_k=3)

        assert result.n_clusters == 3
        assert len(clusterer.component_results) == 2
        assert clusterer.failed_components == []
        for label in range(3):
            assert len(set(true_labels[result.labels == label])) == 1

    def test_result_mirrors_hybrid_clusters(self, clustered_vectors, clustered_ids):
        vectors, _ = clustered_vectors
        clusterer = hybrid(fusion_method="ensemble")

        result = clusterer.cluster(vectors, clustered_ids, target_k=3)

        real = [c for c in clusterer.hybrid_clusters if not c.is_noise]
        assert [c.id for c in result.clusters] == [h.id for h in real]
        for cluster, fused in zip(result.clusters, real):
            assert sorted(cluster.member_document_ids) == sorted(fused.member_document_ids)
            assert cluster.metadata["source_algorithm"] == fused.source_algorithm
        assert result.quality_metrics["components_succeeded"] == 2.0
        assert 0.0 < result.confidence <= 1.0

    def test_failing_component_is_tolerated(self, clustered_vectors, monkeypatch):
        vectors, _ = clustered_vectors
        monkeypatch.setattr(DBSCANAlgorithm, "cluster", failing_cluster)
        clusterer = hybrid(fusion_method="ensemble")

        result = clusterer.cluster(vectors, target_k=3)

        assert clusterer.failed_components == ["dbscan"]
        assert result.n_clusters == 3

    def test_crashing_component_is_dropped(self, clustered_vectors, monkeypatch):
        vectors, _ = clustered_vectors

        def crashing_cluster(self, *args, **kwargs):
            raise RuntimeError("dbscan crashed")

        monkeypatch.setattr(DBSCANAlgorithm, "cluster", crashing_cluster)
        clusterer = hybrid(fusion_method="ensemble")

        result = clusterer.cluster(vectors, target_k=3)

        assert clusterer.failed_components == ["dbscan"]
        assert [r.algorithm_name for r in clusterer.component_results] == ["kmeans"]
        assert result.n_clusters == 3

    def test_component_configuration_error_propagates(self, clustered_vectors, monkeypatch):
        vectors, _ = clustered_vectors

        def misconfigured(self, *args, **kwargs):
            raise ConfigurationError("bad eps")

        monkeypatch.setattr(DBSCANAlgorithm, "cluster", misconfigured)

        with pytest.raises(ConfigurationError):
            hybrid().cluster(vectors, target_k=3)

    def test_all_components_failing_raises(self, clustered_vectors, monkeypatch):
        vectors, _ = clustered_vectors
        monkeypatch.setattr(DBSCANAlgorithm, "cluster", failing_cluster)
        monkeypatch.setattr(KMeansAlgorithm, "cluster", failing_cluster)

        clusterer = hybrid()
        with pytest.raises(ClusteringFailedError):
            clusterer.cluster(vectors, target_k=3)
        assert clusterer.failed_components == ["kmeans", "dbscan"]

    def test_component_params_reach_components(self, clustered_vectors):
        vectors, _ = clustered_vectors
        clusterer = hybrid(
            component_algorithms=["hierarchical", "gmm"],
            component_params={"hierarchical": {"linkage": "average"}},
            fusion_method="cascade",
        )
        result = clusterer.cluster(vectors, target_k=3)
        assert [r.algorithm_name for r in clusterer.component_results] == ["hierarchical", "gmm"]
        assert result.n_clusters == 3

    @pytest.mark.parametrize("components", [[], ["bogus"], ["hybrid"]])
    def test_invalid_components(self, components):
        with pytest.raises(ConfigurationError):
            hybrid(component_algorithms=components)
