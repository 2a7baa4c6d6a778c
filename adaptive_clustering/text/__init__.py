"""
Text module: normalization and vectorization.

Exports:
- TextProcessor: Rule-based term normalization
- EmbeddingTable: Caller-owned term embedding store
- Vectorizer, FeatureVector: Text -> feature vectors
"""

from adaptive_clustering.text.text_processor import TextProcessor
from adaptive_clustering.text.embedding_table import EmbeddingTable
from adaptive_clustering.text.vectorizer import FeatureVector, Vectorizer

__all__ = [
    "TextProcessor",
    "EmbeddingTable",
    "FeatureVector",
    "Vectorizer",
]
