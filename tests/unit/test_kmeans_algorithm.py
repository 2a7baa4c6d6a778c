"""
Unit tests for K-Means clustering algorithm.

Tests the KMeansAlgorithm class including:
- Basic clustering functionality
- Seeding strategies
- Convergence reporting
- Quality metrics
"""

import numpy as np
import pytest

from adaptive_clustering.core.base_clustering import ClusteringConfig
from adaptive_clustering.core.kmeans_algorithm import (
    SEEDING_STRATEGIES,
    KMeansAlgorithm,
    farthest_point_seeds,
    random_seeds,
)
from adaptive_clustering.utils.error_handling import ConfigurationError, ConvergenceWarning


@pytest.mark.unit
class TestKMeansAlgorithm:
    """Test suite for K-Means clustering algorithm."""

    def test_init(self):
        """Test K-Means algorithm initialization."""
        config = ClusteringConfig(algorithm_name="kmeans", params={"n_clusters": 10})

        clusterer = KMeansAlgorithm(config)
        assert clusterer.config == config
        assert clusterer.n_clusters == 10
        assert clusterer.initialization == "farthest_point"

    def test_cluster_basic(self, clustered_vectors):
        """Test basic clustering on vectors with clear structure."""
        vectors, true_labels = clustered_vectors

        clusterer = KMeansAlgorithm(ClusteringConfig(algorithm_name="kmeans", params={"n_clusters": 3}))
        result = clusterer.cluster(vectors)

        assert result.n_clusters == 3
        assert result.outlier_count == 0
        assert result.converged
        # Each found cluster holds exactly one true cluster
        for label in range(3):
            assert len(set(true_labels[result.labels == label])) == 1

    def test_target_k_overrides_n_clusters(self, clustered_vectors):
        vectors, _ = clustered_vectors
        clusterer = KMeansAlgorithm(ClusteringConfig(algorithm_name="kmeans", params={"n_clusters": 5}))
        assert clusterer.cluster(vectors, target_k=3).n_clusters == 3

    @pytest.mark.parametrize("initialization", list(SEEDING_STRATEGIES))
    def test_every_seeding_strategy(self, clustered_vectors, initialization):
        vectors, _ = clustered_vectors
        clusterer = KMeansAlgorithm(ClusteringConfig(
            algorithm_name="kmeans",
            params={"n_clusters": 3, "initialization": initialization},
        ))
        result = clusterer.cluster(vectors)
        assert 1 <= result.n_clusters <= 3
        assert sum(c.size for c in result.clusters) == len(vectors)

    def test_unknown_initialization(self):
        with pytest.raises(ConfigurationError):
            KMeansAlgorithm(ClusteringConfig(algorithm_name="kmeans", params={"initialization": "bogus"}))

    def test_deterministic_for_fixed_seed(self, clustered_vectors):
        vectors, _ = clustered_vectors
        params = {"n_clusters": 3, "initialization": "kmeans++", "random_state": 7}
        first = KMeansAlgorithm(ClusteringConfig("kmeans", dict(params))).cluster(vectors)
        second = KMeansAlgorithm(ClusteringConfig("kmeans", dict(params))).cluster(vectors)
        np.testing.assert_array_equal(first.labels, second.labels)

    def test_non_convergence_warns(self, clustered_vectors):
        vectors, _ = clustered_vectors
        clusterer = KMeansAlgorithm(ClusteringConfig("kmeans", {"n_clusters": 3, "max_iter": 1}))

        with pytest.warns(ConvergenceWarning):
            result = clusterer.cluster(vectors)

        assert not result.converged
        assert result.iterations == 1

    def test_quality_metrics(self, clustered_vectors):
        vectors, _ = clustered_vectors
        result = KMeansAlgorithm(ClusteringConfig("kmeans", {"n_clusters": 3})).cluster(vectors)

        metrics = result.quality_metrics
        assert metrics["inertia"] > 0.0
        assert metrics["iterations"] >= 1
        assert "silhouette_score" in metrics

    def test_cosine_metric(self, clustered_vectors):
        vectors, _ = clustered_vectors
        result = KMeansAlgorithm(ClusteringConfig("kmeans", {"n_clusters": 3, "metric": "cosine"})).cluster(vectors)
        assert result.n_clusters == 3


@pytest.mark.unit
class TestSeeding:
    """Test suite for seeding strategies."""

    def test_farthest_point_spreads_seeds(self, clustered_vectors):
        vectors, true_labels = clustered_vectors
        seeds = farthest_point_seeds(vectors, 3, np.random.default_rng(0))
        assert len(set(true_labels[seeds])) == 3

    def test_random_seeds_are_distinct_values(self):
        vectors = np.array([[0.0, 0.0]] * 5 + [[1.0, 1.0]] * 5)
        seeds = random_seeds(vectors, 2, np.random.default_rng(0))
        assert len({tuple(vectors[s]) for s in seeds}) == 2

    def test_fit_centroids_shapes(self):
        vectors = np.array([[0.0], [0.1], [0.2], [10.0]])
        clusterer = KMeansAlgorithm(ClusteringConfig("kmeans", {"n_clusters": 3}))
        centroids, labels, _, _ = clusterer.fit_centroids(vectors, 3)
        assert centroids.shape == (3, 1)
        assert np.all(np.isfinite(centroids))
        assert len(labels) == 4
