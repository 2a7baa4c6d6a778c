"""
Adaptive document clustering engine.

    table = EmbeddingTable(dimension=100)
    orchestrator = AdaptiveClusteringOrchestrator(table)
    result = orchestrator.run([{"id": "a", "text": "..."}, ...], target_k=3)
"""

from adaptive_clustering.schemas.data_models import ClusterAlgorithm, Document, FusionMethod
from adaptive_clustering.text import EmbeddingTable, Vectorizer
from adaptive_clustering.core.orchestrator import AdaptiveClusteringOrchestrator, ClusteringRunResult
from adaptive_clustering.core.batch_processor import BatchProcessor
from adaptive_clustering.storage.result_cache import InMemoryResultCache, StaticDocumentSource

__version__ = "1.0.0"

__all__ = [
    "AdaptiveClusteringOrchestrator",
    "BatchProcessor",
    "ClusterAlgorithm",
    "ClusteringRunResult",
    "Document",
    "EmbeddingTable",
    "FusionMethod",
    "InMemoryResultCache",
    "StaticDocumentSource",
    "Vectorizer",
]
