"""
Characteristics Analyzer.

Summarizes a vectorized corpus into DataCharacteristics: size, vocabulary,
text density, noise, and the shape and spread of its pairwise similarity
distribution. Large corpora are measured on a seeded sample of pairs.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from adaptive_clustering.config.settings_loader import AnalyzerSettings
from adaptive_clustering.core.metrics import normalize_rows, pairwise_similarities
from adaptive_clustering.schemas.data_models import (
    ClusterShape,
    DataCharacteristics,
    DistributionType,
    Document,
    DomainComplexity,
)
from adaptive_clustering.text.text_processor import TextProcessor

logger = logging.getLogger(__name__)


class CharacteristicsAnalyzer:
    """Read-only analysis of a corpus; never mutates its inputs."""

    def __init__(
        self,
        settings: Optional[AnalyzerSettings] = None,
        text_processor: Optional[TextProcessor] = None,
    ):
        self.settings = settings or AnalyzerSettings()
        self.processor = text_processor or TextProcessor()

    def analyze(
        self,
        vectors: np.ndarray,
        documents: Optional[Sequence[Document]] = None,
        terms: Optional[Sequence[Sequence[str]]] = None,
    ) -> DataCharacteristics:
        """
        Compute dataset characteristics.

        Args:
            vectors: Feature vectors (N x D)
            documents: Source documents, needed for the text-derived statistics
            terms: Normalized terms per document (computed from documents if None)

        Returns:
            DataCharacteristics
        """
        vectors = np.asarray(vectors, dtype=float)
        size = len(vectors)

        if size == 0:
            return DataCharacteristics(
                size=0,
                dimensionality=0,
                density=0.0,
                noise_level=0.0,
                cluster_shape=ClusterShape.MIXED,
                distribution=DistributionType.SPARSE,
                domain_complexity=DomainComplexity.LOW,
                avg_text_similarity=0.0,
            )

        if documents is not None and terms is None:
            terms = [self.processor.analyze(doc.text) for doc in documents]

        if documents is not None:
            dimensionality = len({t for doc_terms in terms for t in doc_terms})
            density = float(np.mean([len(doc.text) for doc in documents]))
            noise_level = float(np.mean([
                self.processor.low_information_ratio(doc.text) for doc in documents
            ]))
            keyword_count, unique_domains = self._domain_statistics(terms)
        else:
            dimensionality = vectors.shape[1]
            density = float(np.mean(vectors != 0.0))
            noise_level = float(np.mean(~np.any(vectors, axis=1)))
            keyword_count, unique_domains = 0, 0

        similarities = self._sample_similarities(vectors, terms)
        mean = float(np.mean(similarities)) if len(similarities) else 0.0
        variance = float(np.var(similarities)) if len(similarities) else 0.0

        characteristics = DataCharacteristics(
            size=size,
            dimensionality=dimensionality,
            density=density,
            noise_level=min(1.0, max(0.0, noise_level)),
            cluster_shape=self.classify_shape(mean),
            distribution=self.classify_distribution(mean, variance),
            domain_complexity=self.classify_complexity(keyword_count, unique_domains),
            avg_text_similarity=mean,
            similarity_variance=variance,
            sampled_pairs=len(similarities),
            domain_keyword_count=keyword_count,
            unique_domains=unique_domains,
        )

        logger.info(
            f"Analyzed {size} documents: shape={characteristics.cluster_shape.value}, "
            f"distribution={characteristics.distribution.value}, "
            f"complexity={characteristics.domain_complexity.value}, "
            f"noise={characteristics.noise_level:.3f}"
        )
        return characteristics

    # -------------------------------------------------------------------------
    # Classification rules
    # -------------------------------------------------------------------------

    @staticmethod
    def classify_shape(mean_similarity: float) -> ClusterShape:
        if mean_similarity > 0.7:
            return ClusterShape.SPHERICAL
        if mean_similarity > 0.4:
            return ClusterShape.ELONGATED
        if mean_similarity > 0.2:
            return ClusterShape.IRREGULAR
        return ClusterShape.MIXED

    @staticmethod
    def classify_distribution(mean_similarity: float, variance: float) -> DistributionType:
        if variance < 0.1:
            return DistributionType.UNIFORM
        if variance > 0.3:
            return DistributionType.CLUSTERED
        if mean_similarity < 0.3:
            return DistributionType.SPARSE
        return DistributionType.MIXED

    @staticmethod
    def classify_complexity(keyword_count: int, unique_domains: int) -> DomainComplexity:
        if keyword_count < 50 and unique_domains < 3:
            return DomainComplexity.LOW
        if keyword_count < 150 and unique_domains < 5:
            return DomainComplexity.MEDIUM
        return DomainComplexity.HIGH

    # -------------------------------------------------------------------------
    # Measurements
    # -------------------------------------------------------------------------

    def _domain_statistics(self, terms: Sequence[Sequence[str]]) -> Tuple[int, int]:
        """Total domain keyword hits and number of distinct domains hit."""
        total = 0
        domains = set()
        for doc_terms in terms:
            hits = self.processor.extract_domain_keywords(terms=doc_terms)
            total += sum(len(found) for found in hits.values())
            domains.update(hits)
        return total, len(domains)

    def sample_pairs(self, size: int) -> List[Tuple[int, int]]:
        """All pairs for small corpora, else a seeded random sample."""
        if size < 2:
            return []
        if size <= self.settings.sample_threshold:
            return [(i, j) for i in range(size) for j in range(i + 1, size)]

        rng = np.random.default_rng(self.settings.random_state)
        first = rng.integers(0, size, self.settings.max_sample_pairs)
        offset = rng.integers(1, size, self.settings.max_sample_pairs)
        second = (first + offset) % size
        return list(zip(first.tolist(), second.tolist()))

    def _sample_similarities(
        self,
        vectors: np.ndarray,
        terms: Optional[Sequence[Sequence[str]]],
    ) -> np.ndarray:
        pairs = self.sample_pairs(len(vectors))
        if not pairs:
            return np.zeros(0)

        if terms is not None:
            return np.array([
                self.processor.term_similarity(terms[i], terms[j]) for i, j in pairs
            ])

        if len(vectors) <= self.settings.sample_threshold:
            matrix = pairwise_similarities(vectors)
            rows, cols = zip(*pairs)
            return matrix[list(rows), list(cols)]

        unit = normalize_rows(vectors)
        rows, cols = (np.array(side) for side in zip(*pairs))
        return np.einsum("ij,ij->i", unit[rows], unit[cols])
