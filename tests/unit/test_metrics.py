"""
Unit tests for the Metric Library.
"""

import numpy as np
import pytest

from adaptive_clustering.core.metrics import (
    cosine_similarity,
    distance,
    l2_normalize,
    pairwise_distances,
    pairwise_similarities,
    point_to_centroid_distances,
    resolve_metric,
)
from adaptive_clustering.schemas.data_models import DistanceMetric
from adaptive_clustering.utils.error_handling import ConfigurationError


@pytest.mark.unit
class TestDistance:
    """Test suite for single-pair distances."""

    def test_euclidean(self):
        assert distance([0, 0], [3, 4], "euclidean") == pytest.approx(5.0)

    def test_manhattan(self):
        assert distance([0, 0], [3, 4], DistanceMetric.MANHATTAN) == pytest.approx(7.0)

    def test_cosine(self):
        assert distance([1, 0], [0, 1], "cosine") == pytest.approx(1.0)
        assert distance([1, 1], [2, 2], "cosine") == pytest.approx(0.0, abs=1e-12)

    def test_cosine_with_zero_vector(self):
        assert distance([0, 0], [1, 2], "cosine") == 1.0

    def test_domain_weighted_scales_cosine(self):
        cos = distance([1, 0], [1, 1], "cosine")
        assert distance([1, 0], [1, 1], "domain_weighted") == pytest.approx(cos * 1.2)
        assert distance([1, 0], [1, 1], "domain_weighted", domain_weight=2.0) == pytest.approx(cos * 2.0)

    def test_symmetry(self):
        rng = np.random.default_rng(0)
        a, b = rng.normal(size=5), rng.normal(size=5)
        for metric in DistanceMetric:
            assert distance(a, b, metric) == pytest.approx(distance(b, a, metric))

    def test_euclidean_triangle_inequality(self):
        rng = np.random.default_rng(1)
        a, b, c = rng.normal(size=(3, 8))
        for metric in ("euclidean", "manhattan"):
            assert distance(a, c, metric) <= distance(a, b, metric) + distance(b, c, metric) + 1e-12

    def test_unknown_metric_raises(self):
        with pytest.raises(ConfigurationError):
            resolve_metric("chebyshev")

    def test_resolve_metric_is_case_insensitive(self):
        assert resolve_metric("Cosine") == DistanceMetric.COSINE


@pytest.mark.unit
class TestPairwise:
    """Test suite for matrix forms."""

    @pytest.mark.parametrize("metric", [m.value for m in DistanceMetric])
    def test_matches_single_pair_distance(self, metric):
        rng = np.random.default_rng(2)
        vectors = rng.normal(size=(6, 4))

        matrix = pairwise_distances(vectors, metric)

        assert matrix.shape == (6, 6)
        assert matrix.flags["C_CONTIGUOUS"]
        np.testing.assert_allclose(np.diag(matrix), 0.0)
        np.testing.assert_allclose(matrix, matrix.T, atol=1e-12)
        for i in range(6):
            for j in range(6):
                if i != j:
                    assert matrix[i, j] == pytest.approx(distance(vectors[i], vectors[j], metric), abs=1e-9)

    def test_zero_rows_for_cosine(self):
        vectors = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])
        matrix = pairwise_distances(vectors, "cosine")
        assert matrix[0, 1] == 1.0
        assert matrix[2, 0] == 1.0
        assert matrix[0, 0] == 0.0

    def test_empty_input(self):
        assert pairwise_distances(np.zeros((0, 3))).shape == (0, 0)

    def test_similarities_of_zero_rows(self):
        sims = pairwise_similarities(np.array([[0.0, 0.0], [1.0, 0.0]]))
        np.testing.assert_array_equal(sims[0], [0.0, 0.0])
        assert sims[1, 1] == pytest.approx(1.0)

    def test_point_to_centroid_shape(self):
        rng = np.random.default_rng(3)
        result = point_to_centroid_distances(rng.normal(size=(5, 3)), rng.normal(size=(2, 3)), "cosine")
        assert result.shape == (5, 2)
        assert np.all(result >= 0.0)


@pytest.mark.unit
class TestVectorHelpers:
    """Test suite for normalization helpers."""

    def test_l2_normalize(self):
        np.testing.assert_allclose(l2_normalize(np.array([3.0, 4.0])), [0.6, 0.8])

    def test_l2_normalize_zero(self):
        np.testing.assert_array_equal(l2_normalize(np.zeros(3)), np.zeros(3))

    def test_cosine_similarity_zero(self):
        assert cosine_similarity(np.zeros(2), np.ones(2)) == 0.0
