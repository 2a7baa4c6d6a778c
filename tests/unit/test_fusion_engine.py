"""
Unit tests for the Fusion Engine.

Tests ensemble, cascade and weighted fusion, adaptive method resolution,
completeness of the fused partition and post-processing (small-cluster
merging, low-confidence flags).
"""

import numpy as np
import pytest

from adaptive_clustering.config.settings_loader import FusionSettings
from adaptive_clustering.core.base_clustering import NOISE_CLUSTER_ID, Cluster, ClusteringResult
from adaptive_clustering.core.fusion_engine import (
    FusionEngine,
    HybridCluster,
    centroid_similarity,
    member_jaccard,
)
from adaptive_clustering.schemas.data_models import (
    ClusterShape,
    DataCharacteristics,
    DistributionType,
    DomainComplexity,
    FusionMethod,
)
from adaptive_clustering.utils.error_handling import ConfigurationError, FusionError

POSITIONS = {
    "a": [1.0, 0.0], "b": [1.0, 0.1], "c": [0.9, 0.0],
    "d": [0.0, 1.0], "e": [0.1, 1.0], "f": [0.0, 0.9], "g": [0.1, 0.9],
    "h": [1.0, 1.0], "i": [0.9, 1.0],
}


def make_result(name, groups, quality=0.8, confidence=0.8, noise=None):
    clusters = [
        Cluster(
            id=f"{name}_{i}",
            member_document_ids=list(members),
            centroid=np.mean([POSITIONS[d] for d in members], axis=0),
            quality_score=quality,
        )
        for i, members in enumerate(groups)
    ]
    if noise:
        clusters.append(Cluster(
            id=NOISE_CLUSTER_ID,
            member_document_ids=list(noise),
            centroid=np.mean([POSITIONS[d] for d in noise], axis=0),
            is_noise=True,
        ))
    return ClusteringResult(
        algorithm_name=name,
        clusters=clusters,
        cluster_labels=np.zeros(sum(len(g) for g in groups) + len(noise or [])),
        quality_metrics={},
        quality_score=quality,
        confidence=confidence,
    )


def characteristics(size=100, complexity=DomainComplexity.MEDIUM):
    return DataCharacteristics(
        size=size,
        dimensionality=50,
        density=80.0,
        noise_level=0.3,
        cluster_shape=ClusterShape.SPHERICAL,
        distribution=DistributionType.CLUSTERED,
        domain_complexity=complexity,
        avg_text_similarity=0.4,
    )


def groups_of(clusters):
    return sorted(sorted(c.member_document_ids) for c in clusters if not c.is_noise)


@pytest.fixture
def engine():
    return FusionEngine(FusionSettings(min_cluster_size=1))


@pytest.fixture
def strong_result():
    return make_result("kmeans", [["a", "b", "c"], ["d", "e", "f"]], quality=0.9, confidence=0.9)


@pytest.fixture
def weak_result():
    return make_result("dbscan", [["a", "b"], ["c", "d", "e", "f", "g"]], quality=0.5, confidence=0.3)


@pytest.mark.unit
class TestFusionMethods:
    """Test suite for the individual fusion methods."""

    def test_ensemble_follows_heavier_vote(self, engine, strong_result, weak_result):
        clusters = engine.fuse([strong_result, weak_result], method="ensemble")

        assert groups_of(clusters) == [["a", "b", "c"], ["d", "e", "f"], ["g"]]
        assert [c.id for c in clusters] == ["ensemble_0", "ensemble_1", "ensemble_2"]
        assert all(c.source_algorithm == "kmeans" for c in clusters[:2])
        assert clusters[0].confidence == pytest.approx(0.9 / 1.2)
        assert clusters[0].provenance["source_cluster"] == "kmeans_0"

    def test_ensemble_places_documents_only_one_algorithm_saw(self, engine, strong_result, weak_result):
        clusters = engine.fuse([strong_result, weak_result], method=FusionMethod.ENSEMBLE)

        assignments = {d: c.id for c in clusters for d in c.member_document_ids}
        assert set(assignments) == set("abcdefg")
        assert clusters[-1].source_algorithm == "dbscan"
        assert clusters[-1].member_document_ids == ["g"]

    def test_cascade_absorbs_unassigned_documents(self, engine, strong_result, weak_result):
        clusters = engine.fuse([weak_result, strong_result], method="cascade")

        assert groups_of(clusters) == [["a", "b", "c"], ["d", "e", "f", "g"]]
        absorbed = {c.provenance["source_cluster"]: c.provenance["absorbed"] for c in clusters}
        assert absorbed == {"kmeans_0": 0, "kmeans_1": 1}
        assert all(c.source_algorithm == "kmeans" for c in clusters)

    def test_cascade_ignores_unmatched_secondary_clusters(self, engine, strong_result):
        stray = make_result("gmm", [["h", "i"]], quality=0.2)

        clusters = engine.fuse([strong_result, stray], method="cascade")

        assert groups_of(clusters) == [["a", "b", "c"], ["d", "e", "f"]]
        noise = clusters[-1]
        assert noise.is_noise
        assert noise.member_document_ids == ["h", "i"]

    def test_weighted_scores_against_anchors(self, engine, strong_result, weak_result):
        clusters = engine.fuse([strong_result, weak_result], method="weighted")

        assert groups_of(clusters) == [["a", "b", "c"], ["d", "e", "f", "g"]]
        assert clusters[0].provenance["anchor_cluster"] == "kmeans_0"
        weights = clusters[0].provenance["weights"]
        assert weights["kmeans_0"] == pytest.approx(0.75)
        assert weights["dbscan_1"] == pytest.approx(0.25)

    def test_weighted_without_anchors_sends_everything_to_noise(self, engine):
        all_noise = make_result("dbscan", [], confidence=1.0, noise=["a", "b"])
        clusters = engine.fuse([all_noise], method="weighted")
        assert len(clusters) == 1
        assert clusters[0].is_noise
        assert clusters[0].member_document_ids == ["a", "b"]

    @pytest.mark.parametrize("method", ["ensemble", "cascade", "weighted"])
    def test_partition_is_complete(self, engine, strong_result, weak_result, method):
        document_ids = list("abcdefghi")
        clusters = engine.fuse([strong_result, weak_result], method=method, document_ids=document_ids)

        members = [d for c in clusters for d in c.member_document_ids]
        assert sorted(members) == document_ids
        noise = [c for c in clusters if c.is_noise]
        assert len(noise) == 1
        assert noise[0].id == NOISE_CLUSTER_ID
        assert noise[0].member_document_ids == ["h", "i"]

    def test_centroids_from_vectors(self, engine, strong_result):
        document_ids = list("abcdef")
        vectors = np.array([POSITIONS[d] for d in document_ids]) * 2.0

        clusters = engine.fuse([strong_result], method="ensemble",
                               document_ids=document_ids, vectors=vectors)

        np.testing.assert_allclose(clusters[0].centroid, vectors[:3].mean(axis=0))

    def test_vector_count_mismatch(self, engine, strong_result):
        with pytest.raises(FusionError):
            engine.fuse([strong_result], document_ids=list("abc"), vectors=np.zeros((2, 2)))

    def test_empty_results_raise(self, engine):
        with pytest.raises(FusionError):
            engine.fuse([])

    def test_no_documents(self, engine):
        assert engine.fuse([make_result("kmeans", [])]) == []

    def test_unknown_method(self, engine, strong_result):
        with pytest.raises(ConfigurationError):
            engine.fuse([strong_result], method="majority")


@pytest.mark.unit
class TestMethodResolution:
    """Test suite for adaptive fusion resolution."""

    def test_explicit_methods_pass_through(self, engine):
        assert engine.resolve_method("cascade") == FusionMethod.CASCADE

    def test_default_is_adaptive_weighted(self, engine):
        assert engine.resolve_method(None) == FusionMethod.WEIGHTED

    def test_high_complexity_uses_ensemble(self, engine):
        chars = characteristics(complexity=DomainComplexity.HIGH)
        assert engine.resolve_method("adaptive", chars) == FusionMethod.ENSEMBLE

    def test_large_corpus_uses_cascade(self, engine):
        assert engine.resolve_method("adaptive", characteristics(size=6000)) == FusionMethod.CASCADE

    def test_otherwise_weighted(self, engine):
        assert engine.resolve_method("adaptive", characteristics(size=4999)) == FusionMethod.WEIGHTED


@pytest.mark.unit
class TestPostProcessing:
    """Test suite for merging and confidence flags."""

    def test_small_clusters_merge_into_larger(self):
        engine = FusionEngine(FusionSettings(min_cluster_size=3))
        lone = make_result("kmeans", [["a", "b", "c", "d"], ["e"]], confidence=0.9)

        clusters = engine.fuse([lone], method="ensemble")

        assert len(clusters) == 1
        assert sorted(clusters[0].member_document_ids) == list("abcde")
        assert clusters[0].provenance["merged_small"] == ["ensemble_1"]

    def test_low_confidence_flagged_not_dropped(self):
        engine = FusionEngine(FusionSettings(min_cluster_size=1, confidence_threshold=0.6))
        shaky = make_result("kmeans", [["a", "b"], ["d", "e"]], confidence=0.5)

        clusters = engine.fuse([shaky], method="cascade")

        assert len(clusters) == 2
        assert all(c.provenance["low_confidence"] for c in clusters)

    def test_confident_clusters_not_flagged(self, engine, strong_result):
        clusters = engine.fuse([strong_result], method="cascade")
        assert not any(c.provenance["low_confidence"] for c in clusters)

    def test_merge_similar_clusters(self, engine):
        clusters = [
            HybridCluster("x", ["a", "b", "c"], np.array([1.0, 0.0]), "kmeans", 0.8),
            HybridCluster("y", ["d", "e"], np.array([0.0, 1.0]), "kmeans", 0.6),
            HybridCluster("z", ["a", "b"], np.array([1.0, 0.0]), "dbscan", 0.4),
            HybridCluster(NOISE_CLUSTER_ID, ["h"], np.zeros(2), "fusion", 0.0, is_noise=True),
        ]

        merged = engine.merge_similar_clusters(clusters, threshold=0.5)

        assert [c.id for c in merged] == ["x", "y", NOISE_CLUSTER_ID]
        assert merged[0].provenance["merged_from"] == ["x", "z"]
        assert merged[0].confidence == pytest.approx((3 * 0.8 + 2 * 0.4) / 5)

    def test_merge_by_centroid_similarity(self, engine):
        clusters = [
            HybridCluster("x", ["a"], np.array([1.0, 0.0]), "kmeans", 1.0),
            HybridCluster("y", ["b"], np.array([0.9, 0.1]), "kmeans", 1.0),
        ]
        merged = engine.merge_similar_clusters(clusters, 0.7, similarity=centroid_similarity)
        assert len(merged) == 1
        assert merged[0].member_document_ids == ["a", "b"]

    def test_evaluate_algorithm_quality(self, engine):
        three_even = make_result("kmeans", [["a", "b"], ["c", "d"], ["e", "f"]])
        assert engine.evaluate_algorithm_quality(three_even.clusters) == pytest.approx(1.0)
        assert engine.evaluate_algorithm_quality([]) == 0.0

    def test_estimate_confidence(self):
        low = characteristics(size=100, complexity=DomainComplexity.LOW)
        high = characteristics(size=20000, complexity=DomainComplexity.HIGH)
        dummy = [object()]
        assert FusionEngine.estimate_confidence(dummy, low) == pytest.approx(0.9)
        assert FusionEngine.estimate_confidence(dummy, high) == pytest.approx(0.5)
        assert FusionEngine.estimate_confidence([], low) == 0.0


@pytest.mark.unit
class TestSimilarities:
    """Test suite for cluster similarity helpers."""

    def test_member_jaccard(self):
        a = HybridCluster("a", ["x", "y"], np.ones(2), "kmeans", 1.0)
        b = HybridCluster("b", ["y", "z"], np.ones(2), "kmeans", 1.0)
        assert member_jaccard(a, b) == pytest.approx(1 / 3)

    def test_member_jaccard_empty(self):
        empty = HybridCluster("a", [], np.ones(2), "kmeans", 1.0)
        assert member_jaccard(empty, empty) == 0.0

    def test_centroid_similarity(self):
        a = HybridCluster("a", ["x"], np.array([1.0, 0.0]), "kmeans", 1.0)
        b = HybridCluster("b", ["y"], np.array([0.0, 2.0]), "kmeans", 1.0)
        assert centroid_similarity(a, b) == pytest.approx(0.0)
        assert centroid_similarity(a, a) == pytest.approx(1.0)
