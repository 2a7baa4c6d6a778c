"""
Vectorizer.

Text -> fixed-dimension feature vectors. Two variants:

- "tf": technical-weight term frequency accumulated into D slots owned by
  the EmbeddingTable (terms beyond the first D distinct ones are truncated,
  a known information loss).
- "hybrid": blend of four L2-normalized channels
      0.1 term frequency
      0.4 sum of per-term pseudo-embeddings
      0.3 context window (0.7 token + 0.3 mean of its +/-3 neighbors)
      0.2 semantic groups (terms with edit-distance similarity > 0.7)
  re-normalized after blending.

Every returned vector has unit norm, or is all zeros for text without terms.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from rapidfuzz.distance import Levenshtein

from adaptive_clustering.config.settings_loader import VectorizerSettings
from adaptive_clustering.core.metrics import l2_normalize
from adaptive_clustering.schemas.data_models import Document, TextMetadata
from adaptive_clustering.text.embedding_table import EmbeddingTable
from adaptive_clustering.text.text_processor import TextProcessor
from adaptive_clustering.utils.error_handling import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeatureVector:
    """Vectorized document."""

    document_id: str
    values: np.ndarray
    metadata: TextMetadata = field(default_factory=TextMetadata)
    terms: Tuple[str, ...] = ()

    @property
    def dimension(self) -> int:
        return int(self.values.shape[0])

    @property
    def is_zero(self) -> bool:
        return not np.any(self.values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "values": self.values.tolist(),
            "metadata": self.metadata.model_dump(),
        }


class Vectorizer:
    """
    Converts text into FeatureVectors using a caller-owned EmbeddingTable.

    The table is passed in, never created here, so repeated runs (and
    parallel batches) see the same term embeddings.
    """

    def __init__(
        self,
        embedding_table: EmbeddingTable,
        settings: Optional[VectorizerSettings] = None,
        text_processor: Optional[TextProcessor] = None,
    ):
        """
        Initialize vectorizer.

        Args:
            embedding_table: Shared term embedding table
            settings: Channel weights and window parameters
            text_processor: Normalization pipeline (created if None)
        """
        self.settings = settings or VectorizerSettings(dimension=embedding_table.dimension)
        if self.settings.dimension != embedding_table.dimension:
            raise ConfigurationError(
                f"Vectorizer dimension {self.settings.dimension} does not match "
                f"embedding table dimension {embedding_table.dimension}"
            )

        self.table = embedding_table
        self.dimension = embedding_table.dimension
        self.processor = text_processor or TextProcessor(self.settings.min_stem_length)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def vectorize(
        self,
        text: str,
        document_id: str = "",
        mode: Optional[str] = None,
    ) -> FeatureVector:
        """
        Vectorize one text.

        Args:
            text: Raw text
            document_id: Identifier carried on the result
            mode: "tf" or "hybrid" (defaults to settings)

        Returns:
            FeatureVector of dimension D
        """
        mode = mode or self.settings.mode
        terms = self.processor.analyze(text)

        if mode == "tf":
            values = self.tf_vector(terms)
        elif mode == "hybrid":
            values = self.hybrid_vector(terms)
        else:
            raise ConfigurationError(f"Unknown vectorizer mode '{mode}'")

        return FeatureVector(
            document_id=document_id,
            values=values,
            metadata=self.processor.metadata_for(terms),
            terms=tuple(terms),
        )

    def vectorize_documents(
        self,
        documents: Sequence[Document],
        mode: Optional[str] = None,
    ) -> List[FeatureVector]:
        """Vectorize a corpus, preserving input order."""
        vectors = [self.vectorize(doc.text, doc.id, mode) for doc in documents]
        logger.debug(f"Vectorized {len(vectors)} documents (mode={mode or self.settings.mode})")
        return vectors

    def warm_table(self, documents: Sequence[Document]) -> None:
        """Register every term of the corpus in document order."""
        for doc in documents:
            self.table.warm(self.processor.analyze(doc.text))

    @staticmethod
    def to_matrix(vectors: Sequence[FeatureVector], dimension: int = 0) -> np.ndarray:
        """Stack feature vectors into an (n, D) array."""
        if not vectors:
            return np.zeros((0, dimension))
        return np.vstack([v.values for v in vectors])

    # -------------------------------------------------------------------------
    # Channels
    # -------------------------------------------------------------------------

    def tf_vector(self, terms: Sequence[str]) -> np.ndarray:
        """Weighted term frequency in the table's D slots."""
        vector = np.zeros(self.dimension)
        for term in terms:
            slot = self.table.slot(term)
            if slot is not None:
                vector[slot] += self.processor.term_weight(term)
        return l2_normalize(vector)

    def embedding_vector(self, terms: Sequence[str]) -> np.ndarray:
        """Sum of the terms' pseudo-embeddings."""
        vector = np.zeros(self.dimension)
        for term in terms:
            vector += self.table.get(term)
        return l2_normalize(vector)

    def contextual_vector(self, terms: Sequence[str]) -> np.ndarray:
        """Each token blended with the mean of its window neighbors."""
        window = self.settings.context_window
        self_weight = self.settings.context_self_weight
        vector = np.zeros(self.dimension)

        for i, term in enumerate(terms):
            neighbors = [
                terms[j]
                for j in range(max(0, i - window), min(len(terms), i + window + 1))
                if j != i
            ]
            context = np.zeros(self.dimension)
            if neighbors:
                context = np.mean([self.table.get(n) for n in neighbors], axis=0)
            vector += self.table.get(term) * self_weight + context * (1.0 - self_weight)

        return l2_normalize(vector)

    def semantic_groups(self, terms: Sequence[str]) -> List[List[str]]:
        """
        Greedy grouping of distinct terms by normalized Levenshtein similarity.

        The first unprocessed term seeds a group and pulls in every later
        unprocessed term more similar than the threshold.
        """
        threshold = self.settings.semantic_threshold
        unique_terms = list(dict.fromkeys(terms))
        processed = set()
        groups = []

        for term in unique_terms:
            if term in processed:
                continue
            group = [term]
            processed.add(term)
            for other in unique_terms:
                if other in processed:
                    continue
                if Levenshtein.normalized_similarity(term, other) > threshold:
                    group.append(other)
                    processed.add(other)
            groups.append(group)

        return groups

    def semantic_vector(self, terms: Sequence[str]) -> np.ndarray:
        """Sum of the semantic groups' mean embeddings."""
        vector = np.zeros(self.dimension)
        for group in self.semantic_groups(terms):
            vector += np.mean([self.table.get(t) for t in group], axis=0)
        return l2_normalize(vector)

    def hybrid_vector(self, terms: Sequence[str]) -> np.ndarray:
        """Weighted blend of the four channels, re-normalized."""
        if not terms:
            return np.zeros(self.dimension)

        s = self.settings
        blended = (
            s.tf_weight * self.tf_vector(terms)
            + s.embedding_weight * self.embedding_vector(terms)
            + s.context_weight * self.contextual_vector(terms)
            + s.semantic_weight * self.semantic_vector(terms)
        )
        return l2_normalize(blended)
