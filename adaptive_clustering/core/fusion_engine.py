"""
Fusion Engine - Combines several algorithm results into one partition.

Fusion methods:
- ensemble: confidence-weighted voting per document
- cascade: best-quality result as the base, absorbing unassigned documents
  from matching clusters of the other results
- weighted: anchors from the heaviest algorithm, documents scored by the
  weighted Jaccard agreement of their clusters with each anchor
- adaptive: ensemble for high domain complexity, cascade for large corpora,
  weighted otherwise

Every fused partition covers the full input document set: documents no
algorithm placed end up in a "noise" hybrid cluster.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from adaptive_clustering.config.settings_loader import FusionSettings
from adaptive_clustering.core.base_clustering import (
    NOISE_CLUSTER_ID,
    Cluster,
    ClusteringResult,
    size_uniformity,
)
from adaptive_clustering.core.metrics import cosine_similarity
from adaptive_clustering.schemas.data_models import (
    DataCharacteristics,
    DomainComplexity,
    FusionMethod,
)
from adaptive_clustering.utils.error_handling import ConfigurationError, FusionError

logger = logging.getLogger(__name__)


@dataclass
class HybridCluster:
    """Cluster of a fused result, with the algorithm and evidence behind it."""

    id: str
    member_document_ids: List[str]
    centroid: np.ndarray
    source_algorithm: str
    confidence: float
    provenance: Dict[str, Any] = field(default_factory=dict)
    is_noise: bool = False

    @property
    def size(self) -> int:
        return len(self.member_document_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "member_document_ids": list(self.member_document_ids),
            "size": self.size,
            "source_algorithm": self.source_algorithm,
            "confidence": self.confidence,
            "provenance": self.provenance,
            "is_noise": self.is_noise,
        }


ClusterLike = Union[Cluster, HybridCluster]


def member_jaccard(a: ClusterLike, b: ClusterLike) -> float:
    """Jaccard index of two clusters' member sets."""
    members_a = set(a.member_document_ids)
    members_b = set(b.member_document_ids)
    union = members_a | members_b
    if not union:
        return 0.0
    return len(members_a & members_b) / len(union)


def centroid_similarity(a: ClusterLike, b: ClusterLike) -> float:
    """Cosine similarity of two clusters' centroids."""
    return cosine_similarity(a.centroid, b.centroid)


class FusionEngine:
    """
    Fuses AlgorithmResults (ClusteringResult objects) into HybridClusters.

    Stateless between calls; thresholds come from FusionSettings.
    """

    def __init__(self, settings: Optional[FusionSettings] = None):
        """
        Initialize fusion engine.

        Args:
            settings: Fusion thresholds and default method
        """
        self.settings = settings or FusionSettings()
        logger.debug(f"Initialized FusionEngine (method={self.settings.method})")

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def fuse(
        self,
        results: Sequence[ClusteringResult],
        method: Optional[Union[str, FusionMethod]] = None,
        characteristics: Optional[DataCharacteristics] = None,
        document_ids: Optional[Sequence[str]] = None,
        vectors: Optional[np.ndarray] = None,
    ) -> List[HybridCluster]:
        """
        Fuse several algorithm results over the same documents.

        Args:
            results: Results of the algorithms that ran successfully
            method: Fusion method (defaults to settings.method)
            characteristics: Data characteristics, used by adaptive fusion
            document_ids: Full input id set (defaults to the union of members)
            vectors: Vectors aligned with document_ids, used for centroids

        Returns:
            HybridClusters whose members cover document_ids exactly once

        Raises:
            ConfigurationError: Unknown fusion method
            FusionError: No results, or the fused partition is inconsistent
        """
        if not results:
            raise FusionError("Cannot fuse an empty list of results")

        if document_ids is None:
            document_ids = list(dict.fromkeys(
                doc_id
                for result in results
                for cluster in result.clusters
                for doc_id in cluster.member_document_ids
            ))
        document_ids = list(document_ids)
        if not document_ids:
            return []

        resolved = self.resolve_method(method, characteristics)
        index = {doc_id: i for i, doc_id in enumerate(document_ids)}
        if vectors is not None and len(vectors) != len(document_ids):
            raise FusionError(
                f"Got {len(vectors)} vectors for {len(document_ids)} documents"
            )

        logger.info(
            f"Fusing {len(results)} results with method={resolved.value} "
            f"over {len(document_ids)} documents"
        )

        if resolved == FusionMethod.ENSEMBLE:
            clusters = self._fuse_ensemble(results)
        elif resolved == FusionMethod.CASCADE:
            clusters = self._fuse_cascade(results)
        else:
            clusters = self._fuse_weighted(results)

        if vectors is not None:
            for cluster in clusters:
                cluster.centroid = self._member_centroid(cluster, vectors, index)

        clusters = self._merge_small_clusters(clusters, vectors, index)
        self._flag_low_confidence(clusters)
        clusters = self._add_noise_cluster(clusters, document_ids, resolved, vectors, index, results)

        self._assert_complete(clusters, document_ids)

        logger.info(
            f"Fusion ({resolved.value}) produced "
            f"{sum(1 for c in clusters if not c.is_noise)} clusters"
        )
        return clusters

    def resolve_method(
        self,
        method: Optional[Union[str, FusionMethod]],
        characteristics: Optional[DataCharacteristics] = None,
    ) -> FusionMethod:
        """Concrete fusion method; adaptive is resolved from the characteristics."""
        method = method or self.settings.method
        try:
            method = FusionMethod(method)
        except ValueError:
            raise ConfigurationError(
                f"Unknown fusion method '{method}'. Supported: {[m.value for m in FusionMethod]}",
                details={"method": method},
            )

        if method != FusionMethod.ADAPTIVE:
            return method
        if characteristics is None:
            return FusionMethod.WEIGHTED
        if characteristics.domain_complexity == DomainComplexity.HIGH:
            return FusionMethod.ENSEMBLE
        if characteristics.size > 5000:
            return FusionMethod.CASCADE
        return FusionMethod.WEIGHTED

    def merge_similar_clusters(
        self,
        clusters: Sequence[HybridCluster],
        threshold: float,
        similarity: Callable[[ClusterLike, ClusterLike], float] = member_jaccard,
    ) -> List[HybridCluster]:
        """
        Greedily merge every later cluster more similar than threshold into the
        first unmerged one.

        Noise clusters are passed through untouched.
        """
        real = [c for c in clusters if not c.is_noise]
        noise = [c for c in clusters if c.is_noise]

        merged = []
        used = set()
        for i, current in enumerate(real):
            if i in used:
                continue
            used.add(i)
            group = [current]
            for j in range(i + 1, len(real)):
                if j not in used and similarity(current, real[j]) > threshold:
                    group.append(real[j])
                    used.add(j)
            merged.append(self._combine(group) if len(group) > 1 else current)

        if len(merged) < len(real):
            logger.info(f"Merged {len(real)} clusters into {len(merged)}")
        return merged + noise

    def evaluate_algorithm_quality(
        self,
        clusters: Sequence[ClusterLike],
        characteristics: Optional[DataCharacteristics] = None,
    ) -> float:
        """
        Mean of size uniformity and closeness of the cluster count to a
        size-dependent target (3, 5 or 8).
        """
        real = [c for c in clusters if not c.is_noise]
        if not real:
            return 0.0

        sizes = [c.size for c in real]
        size = characteristics.size if characteristics is not None else sum(sizes)
        target = 3 if size < 1000 else 5 if size < 10000 else 8
        count_score = 1.0 / (1.0 + abs(len(real) - target))
        return (size_uniformity(sizes) + count_score) / 2.0

    @staticmethod
    def estimate_confidence(
        clusters: Sequence[ClusterLike],
        characteristics: Optional[DataCharacteristics] = None,
    ) -> float:
        """Prior confidence of a fused result given the data characteristics."""
        if not clusters:
            return 0.0

        confidence = 0.7
        if characteristics is not None:
            if characteristics.domain_complexity == DomainComplexity.LOW:
                confidence += 0.1
            elif characteristics.domain_complexity == DomainComplexity.HIGH:
                confidence -= 0.1
            if characteristics.size < 1000:
                confidence += 0.1
            elif characteristics.size > 10000:
                confidence -= 0.1

        return max(0.1, min(1.0, confidence))

    # -------------------------------------------------------------------------
    # Fusion methods
    # -------------------------------------------------------------------------

    @staticmethod
    def _vote_weights(results: Sequence[ClusteringResult]) -> List[float]:
        weights = [max(0.0, r.confidence) for r in results]
        if sum(weights) == 0.0:
            weights = [1.0] * len(results)
        return weights

    def _fuse_ensemble(self, results: Sequence[ClusteringResult]) -> List[HybridCluster]:
        weights = self._vote_weights(results)
        total_weight = sum(weights)

        votes: Dict[str, Dict[Tuple[int, str], float]] = defaultdict(lambda: defaultdict(float))
        for r_index, (result, weight) in enumerate(zip(results, weights)):
            for cluster in result.clusters:
                if cluster.is_noise:
                    continue
                for doc_id in cluster.member_document_ids:
                    votes[doc_id][(r_index, cluster.id)] += weight

        groups: Dict[Tuple[int, str], List[str]] = defaultdict(list)
        agreement: Dict[Tuple[int, str], List[float]] = defaultdict(list)
        for doc_id, doc_votes in votes.items():
            # Highest vote wins; ties go to the higher-quality algorithm, then input order
            winner = max(
                doc_votes,
                key=lambda key: (doc_votes[key], results[key[0]].quality_score, -key[0]),
            )
            groups[winner].append(doc_id)
            agreement[winner].append(doc_votes[winner] / total_weight)

        clusters = []
        for i, (key, members) in enumerate(groups.items()):
            r_index, cluster_id = key
            source = results[r_index]
            clusters.append(HybridCluster(
                id=f"ensemble_{i}",
                member_document_ids=members,
                centroid=self._source_cluster(source, cluster_id).centroid.copy(),
                source_algorithm=source.algorithm_name,
                confidence=float(np.mean(agreement[key])),
                provenance={
                    "method": FusionMethod.ENSEMBLE.value,
                    "source_cluster": cluster_id,
                },
            ))
        return clusters

    def _fuse_cascade(self, results: Sequence[ClusteringResult]) -> List[HybridCluster]:
        order = sorted(range(len(results)), key=lambda i: -results[i].quality_score)
        base = results[order[0]]

        clusters = [
            HybridCluster(
                id=f"cascade_{i}",
                member_document_ids=list(cluster.member_document_ids),
                centroid=cluster.centroid.copy(),
                source_algorithm=base.algorithm_name,
                confidence=base.confidence,
                provenance={
                    "method": FusionMethod.CASCADE.value,
                    "source_cluster": cluster.id,
                    "absorbed": 0,
                },
            )
            for i, cluster in enumerate(c for c in base.clusters if not c.is_noise)
        ]
        assigned = {doc_id for c in clusters for doc_id in c.member_document_ids}

        for r_index in order[1:]:
            for secondary in results[r_index].clusters:
                if secondary.is_noise or not clusters:
                    continue
                best = max(clusters, key=lambda c: member_jaccard(secondary, c))
                if member_jaccard(secondary, best) <= self.settings.jaccard_threshold:
                    continue
                new_members = [d for d in secondary.member_document_ids if d not in assigned]
                best.member_document_ids.extend(new_members)
                best.provenance["absorbed"] += len(new_members)
                assigned.update(new_members)

        return clusters

    def _fuse_weighted(self, results: Sequence[ClusteringResult]) -> List[HybridCluster]:
        weights = self._vote_weights(results)
        total = sum(weights)
        weights = [w / total for w in weights]

        heaviest = max(
            range(len(results)),
            key=lambda i: (weights[i], results[i].quality_score, -i),
        )
        anchors = [c for c in results[heaviest].clusters if not c.is_noise]
        if not anchors:
            return []

        # Per result: document -> its cluster, and each cluster's Jaccard with each anchor
        overlap = []
        for result in results:
            doc_cluster = {}
            anchor_scores = {}
            for cluster in result.clusters:
                if cluster.is_noise:
                    continue
                anchor_scores[cluster.id] = [member_jaccard(cluster, a) for a in anchors]
                for doc_id in cluster.member_document_ids:
                    doc_cluster[doc_id] = cluster.id
            overlap.append((doc_cluster, anchor_scores))

        documents = list(dict.fromkeys(
            doc_id for doc_cluster, _ in overlap for doc_id in doc_cluster
        ))
        members: List[List[str]] = [[] for _ in anchors]
        scores: List[List[float]] = [[] for _ in anchors]
        for doc_id in documents:
            totals = np.zeros(len(anchors))
            for weight, (doc_cluster, anchor_scores) in zip(weights, overlap):
                cluster_id = doc_cluster.get(doc_id)
                if cluster_id is not None:
                    totals += weight * np.asarray(anchor_scores[cluster_id])
            best = int(np.argmax(totals))
            if totals[best] > 0.0:
                members[best].append(doc_id)
                scores[best].append(float(totals[best]))

        clusters = []
        for a_index, anchor in enumerate(anchors):
            if not members[a_index]:
                continue
            clusters.append(HybridCluster(
                id=f"weighted_{a_index}",
                member_document_ids=members[a_index],
                centroid=self._blend_centroid(anchor, results, weights),
                source_algorithm=results[heaviest].algorithm_name,
                confidence=float(np.mean(scores[a_index])),
                provenance={
                    "method": FusionMethod.WEIGHTED.value,
                    "anchor_cluster": anchor.id,
                    "weights": {
                        f"{r.algorithm_name}_{i}": w for i, (r, w) in enumerate(zip(results, weights))
                    },
                },
            ))
        return clusters

    @staticmethod
    def _blend_centroid(
        anchor: Cluster,
        results: Sequence[ClusteringResult],
        weights: Sequence[float],
    ) -> np.ndarray:
        """Weight-averaged centroid of each result's best-matching cluster."""
        blended = np.zeros_like(anchor.centroid, dtype=float)
        total = 0.0
        for result, weight in zip(results, weights):
            candidates = [c for c in result.clusters if not c.is_noise]
            if not candidates:
                continue
            match = max(candidates, key=lambda c: member_jaccard(c, anchor))
            if member_jaccard(match, anchor) > 0.0:
                blended += weight * match.centroid
                total += weight
        return blended / total if total > 0 else anchor.centroid.copy()

    # -------------------------------------------------------------------------
    # Post-processing
    # -------------------------------------------------------------------------

    def _merge_small_clusters(
        self,
        clusters: List[HybridCluster],
        vectors: Optional[np.ndarray],
        index: Dict[str, int],
    ) -> List[HybridCluster]:
        """Fold clusters below min_cluster_size into the nearest larger cluster."""
        min_size = self.settings.min_cluster_size
        large = [c for c in clusters if c.size >= min_size]
        small = [c for c in clusters if c.size < min_size]
        if not small or not large:
            return clusters

        for cluster in small:
            target = max(
                large,
                key=lambda c: (member_jaccard(cluster, c), centroid_similarity(cluster, c)),
            )
            combined = self._combine([target, cluster])
            combined.provenance["merged_small"] = target.provenance.get("merged_small", []) + [cluster.id]
            if vectors is not None:
                combined.centroid = self._member_centroid(combined, vectors, index)
            large[large.index(target)] = combined

        logger.info(f"Merged {len(small)} clusters smaller than {min_size} into larger ones")
        return large

    def _flag_low_confidence(self, clusters: List[HybridCluster]) -> None:
        threshold = self.settings.confidence_threshold
        for cluster in clusters:
            cluster.provenance["low_confidence"] = cluster.confidence < threshold

    @staticmethod
    def _add_noise_cluster(
        clusters: List[HybridCluster],
        document_ids: List[str],
        method: FusionMethod,
        vectors: Optional[np.ndarray],
        index: Dict[str, int],
        results: Sequence[ClusteringResult],
    ) -> List[HybridCluster]:
        assigned = {doc_id for c in clusters for doc_id in c.member_document_ids}
        unassigned = [d for d in document_ids if d not in assigned]
        if not unassigned:
            return clusters

        if vectors is not None:
            centroid = vectors[[index[d] for d in unassigned]].mean(axis=0)
        else:
            dimension = next(
                (len(c.centroid) for r in results for c in r.clusters), 0
            )
            centroid = np.zeros(dimension)

        clusters.append(HybridCluster(
            id=NOISE_CLUSTER_ID,
            member_document_ids=unassigned,
            centroid=centroid,
            source_algorithm="fusion",
            confidence=0.0,
            provenance={"method": method.value, "reason": "unassigned by every algorithm"},
            is_noise=True,
        ))
        return clusters

    @staticmethod
    def _assert_complete(clusters: Sequence[HybridCluster], document_ids: Sequence[str]) -> None:
        members = [doc_id for c in clusters for doc_id in c.member_document_ids]
        if len(members) != len(set(members)) or set(members) != set(document_ids):
            raise FusionError(
                "Fused clusters do not partition the input documents",
                details={"expected": len(set(document_ids)), "assigned": len(members)},
            )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _source_cluster(result: ClusteringResult, cluster_id: str) -> Cluster:
        return next(c for c in result.clusters if c.id == cluster_id)

    @staticmethod
    def _member_centroid(
        cluster: HybridCluster,
        vectors: np.ndarray,
        index: Dict[str, int],
    ) -> np.ndarray:
        return vectors[[index[d] for d in cluster.member_document_ids]].mean(axis=0)

    @staticmethod
    def _combine(group: Sequence[HybridCluster]) -> HybridCluster:
        """Union of clusters; centroid and confidence are size-weighted means."""
        sizes = np.array([c.size for c in group], dtype=float)
        total = sizes.sum() if sizes.sum() > 0 else 1.0
        first = group[0]
        return HybridCluster(
            id=first.id,
            member_document_ids=[d for c in group for d in c.member_document_ids],
            centroid=np.sum([c.centroid * s for c, s in zip(group, sizes)], axis=0) / total,
            source_algorithm=first.source_algorithm,
            confidence=float(np.dot(sizes, [c.confidence for c in group]) / total),
            provenance={**first.provenance, "merged_from": [c.id for c in group]},
        )
