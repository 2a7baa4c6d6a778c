"""
Unit tests for the shared clustering behavior.

Tests degenerate corpora (empty, single document, duplicates), result
construction, keywords and size uniformity across every algorithm.
"""

import numpy as np
import pytest

from adaptive_clustering.core.base_clustering import (
    NOISE_CLUSTER_ID,
    ClusteringConfig,
    size_uniformity,
    top_keywords,
)
from adaptive_clustering.core.dbscan_algorithm import DBSCANAlgorithm
from adaptive_clustering.core.gmm_algorithm import GMMAlgorithm
from adaptive_clustering.core.hierarchical_algorithm import HierarchicalAlgorithm
from adaptive_clustering.core.hybrid_algorithm import HybridAlgorithm
from adaptive_clustering.core.kmeans_algorithm import KMeansAlgorithm
from adaptive_clustering.utils.error_handling import ConfigurationError

ALGORITHMS = [
    ("kmeans", KMeansAlgorithm),
    ("dbscan", DBSCANAlgorithm),
    ("hierarchical", HierarchicalAlgorithm),
    ("gmm", GMMAlgorithm),
    ("hybrid", HybridAlgorithm),
]


def build(name, cls, **params):
    return cls(ClusteringConfig(algorithm_name=name, params=params))


@pytest.mark.unit
class TestDegenerateCorpora:
    """Every algorithm handles corpora too small to cluster."""

    @pytest.mark.parametrize("name,cls", ALGORITHMS)
    def test_empty_corpus(self, name, cls):
        result = build(name, cls).cluster(np.zeros((0, 4)), [], target_k=2)
        assert result.clusters == []
        assert len(result.labels) == 0
        assert result.n_clusters == 0

    @pytest.mark.parametrize("name,cls", ALGORITHMS)
    def test_single_document(self, name, cls):
        result = build(name, cls).cluster(np.ones((1, 4)), ["only"], target_k=3)
        assert result.n_clusters == 1
        assert result.clusters[0].member_document_ids == ["only"]
        assert result.clusters[0].size == 1

    @pytest.mark.parametrize("name,cls", [a for a in ALGORITHMS if a[0] in ("kmeans", "hierarchical", "gmm")])
    def test_fewer_distinct_points_than_k(self, name, cls):
        vectors = np.array([[1.0, 0.0]] * 3 + [[0.0, 1.0]] * 2)
        ids = ["a", "b", "c", "d", "e"]

        result = build(name, cls).cluster(vectors, ids, target_k=4)

        assert result.n_clusters == 2
        groups = sorted(sorted(c.member_document_ids) for c in result.clusters)
        assert groups == [["a", "b", "c"], ["d", "e"]]

    @pytest.mark.parametrize("name,cls", [a for a in ALGORITHMS if a[0] in ("dbscan", "hybrid")])
    def test_identical_points_without_k(self, name, cls):
        result = build(name, cls).cluster(np.ones((4, 3)), ["a", "b", "c", "d"])
        assert result.n_clusters == 1
        assert result.clusters[0].size == 4

    def test_mismatched_ids_raise(self):
        with pytest.raises(ConfigurationError):
            build("kmeans", KMeansAlgorithm).cluster(np.ones((3, 2)), ["a", "b"])

    def test_invalid_k_raises(self):
        with pytest.raises(ConfigurationError):
            build("kmeans", KMeansAlgorithm).cluster(np.ones((3, 2)), target_k=0)

    def test_default_ids_are_row_indices(self, clustered_vectors):
        vectors, _ = clustered_vectors
        result = build("kmeans", KMeansAlgorithm, n_clusters=3).cluster(vectors)
        assert set(result.assignments()) == {str(i) for i in range(len(vectors))}


@pytest.mark.unit
class TestResultConstruction:
    """Test suite for clusters built from labels."""

    def test_every_document_in_exactly_one_cluster(self, clustered_vectors, clustered_ids):
        vectors, _ = clustered_vectors
        result = build("kmeans", KMeansAlgorithm).cluster(vectors, clustered_ids, target_k=3)

        members = [d for c in result.clusters for d in c.member_document_ids]
        assert sorted(members) == sorted(clustered_ids)

    def test_cluster_ids_and_centroids(self, clustered_vectors, clustered_ids):
        vectors, _ = clustered_vectors
        result = build("kmeans", KMeansAlgorithm).cluster(vectors, clustered_ids, target_k=3)

        assert [c.id for c in result.clusters] == ["kmeans_0", "kmeans_1", "kmeans_2"]
        for cluster in result.clusters:
            rows = [clustered_ids.index(d) for d in cluster.member_document_ids]
            np.testing.assert_allclose(cluster.centroid, vectors[rows].mean(axis=0))
            assert 0.0 < cluster.quality_score <= 1.0

    def test_confidence_and_quality_bounds(self, clustered_vectors):
        vectors, _ = clustered_vectors
        result = build("kmeans", KMeansAlgorithm).cluster(vectors, target_k=3)
        assert 0.0 <= result.confidence <= 1.0
        assert result.quality_score > 0.9
        assert result.quality_metrics["silhouette_score"] > 0.6
        assert "davies_bouldin_index" in result.quality_metrics

    def test_keywords_from_terms(self):
        vectors = np.array([[1.0, 0.0], [1.0, 0.1], [0.0, 1.0], [0.1, 1.0]])
        terms = [["ledg", "network"], ["ledg", "protocol"], ["cluster"], ["cluster", "adapt"]]

        result = build("kmeans", KMeansAlgorithm).cluster(
            vectors, ["a", "b", "c", "d"], target_k=2, metadata={"terms": terms}
        )

        by_first = {c.member_document_ids[0]: c for c in result.clusters}
        assert by_first["a"].keywords[0] == "ledg"
        assert by_first["c"].keywords[0] == "cluster"

    def test_noise_cluster_reserved_id(self):
        vectors = np.array([[0.0, 0.0], [0.0, 0.1], [0.1, 0.0], [10.0, 10.0]])
        result = build("dbscan", DBSCANAlgorithm, eps=0.5, min_pts=2, metric="euclidean").cluster(vectors)

        assert result.noise_cluster is not None
        assert result.noise_cluster.id == NOISE_CLUSTER_ID
        assert result.noise_cluster.member_document_ids == ["3"]
        assert result.outlier_count == 1
        assert result.n_clusters == 1

    def test_to_dict(self, clustered_vectors):
        vectors, _ = clustered_vectors
        data = build("kmeans", KMeansAlgorithm).cluster(vectors, target_k=3).to_dict()
        assert data["algorithm"] == "kmeans"
        assert data["n_clusters"] == 3
        assert data["total_items"] == len(vectors)
        assert "tree" not in data


@pytest.mark.unit
class TestHelpers:
    """Test suite for module-level helpers."""

    def test_size_uniformity(self):
        assert size_uniformity([5, 5, 5]) == 1.0
        assert size_uniformity([1, 3]) == pytest.approx(1.0 / 1.5)
        assert size_uniformity([]) == 0.0

    def test_top_keywords(self):
        terms = [["ab", "ledg", "ledg"], ["network", "ledg"], ["other"]]
        assert top_keywords(terms, [0, 1], n_keywords=2) == ["ledg", "network"]
        assert top_keywords(None, [0]) == []
