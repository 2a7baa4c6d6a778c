"""
Adaptive Clustering Orchestrator

Single synchronous pipeline per run:
  vectorize -> analyze -> select -> predict -> execute (with fallbacks)
  -> measure -> bundle

Features:
- Fallback chain: the primary algorithm, then each ranked fallback; when
  all fail the run degrades to a single all-in-one cluster flagged
  low_confidence instead of raising
- Optional forced algorithm and optional result cache
- Per-run correlation id bound into every log event
- Batch path (run_batched) for corpora larger than one chunk
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np

from adaptive_clustering.config.settings_loader import ConfigManager, Settings
from adaptive_clustering.core.base_clustering import (
    Cluster,
    ClusteringResult,
    size_uniformity,
)
from adaptive_clustering.core.characteristics_analyzer import CharacteristicsAnalyzer
from adaptive_clustering.core.clustering_engine import ClusteringEngine
from adaptive_clustering.core.fusion_engine import FusionEngine, HybridCluster
from adaptive_clustering.core.hybrid_algorithm import HybridAlgorithm
from adaptive_clustering.core.performance_predictor import PerformancePredictor
from adaptive_clustering.core.strategy_selector import StrategySelector
from adaptive_clustering.schemas.data_models import (
    ActualPerformance,
    ClusterAlgorithm,
    ClusteringStrategy,
    DataCharacteristics,
    Document,
    PerformancePrediction,
    PerformanceReport,
)
from adaptive_clustering.storage.result_cache import (
    DocumentSource,
    ResultCache,
    corpus_fingerprint,
)
from adaptive_clustering.text.embedding_table import EmbeddingTable
from adaptive_clustering.text.vectorizer import FeatureVector, Vectorizer
from adaptive_clustering.utils.advanced_logging import (
    LogContext,
    MetricsLogger,
    PerformanceLogger,
    configure_logging,
    get_logger,
    timed,
)
from adaptive_clustering.utils.error_handling import (
    ConfigurationError,
    ErrorTracker,
)


@dataclass
class ClusteringRunResult:
    """Everything a run produced."""

    clusters: List[Cluster]
    strategy: Optional[ClusteringStrategy]
    characteristics: DataCharacteristics
    performance: PerformanceReport
    algorithm_results: List[ClusteringResult] = field(default_factory=list)
    hybrid_clusters: List[HybridCluster] = field(default_factory=list)
    run_id: str = ""

    @property
    def cluster_count(self) -> int:
        return sum(1 for c in self.clusters if not c.is_noise)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "clusters": [c.to_dict() for c in self.clusters],
            "strategy": self.strategy.model_dump(mode="json") if self.strategy else None,
            "characteristics": self.characteristics.model_dump(mode="json"),
            "performance": self.performance.model_dump(mode="json"),
            "algorithm_results": [r.to_dict() for r in self.algorithm_results],
            "hybrid_clusters": [c.to_dict() for c in self.hybrid_clusters],
        }


@dataclass
class CorpusVectors:
    """Vectorized corpus: feature vectors, their matrix and their terms."""

    documents: List[Document]
    features: List[FeatureVector]
    matrix: np.ndarray

    @property
    def document_ids(self) -> List[str]:
        return [doc.id for doc in self.documents]

    @property
    def terms(self) -> List[List[str]]:
        return [list(f.terms) for f in self.features]


@dataclass
class ExecutionOutcome:
    """Result of running the fallback chain on one corpus (or batch)."""

    result: ClusteringResult
    algorithm_results: List[ClusteringResult] = field(default_factory=list)
    hybrid_clusters: List[HybridCluster] = field(default_factory=list)
    executed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    convergence_warnings: List[str] = field(default_factory=list)
    low_confidence: bool = False
    fusion_method: Optional[str] = None


DocumentLike = Union[Document, Mapping[str, Any]]


class AdaptiveClusteringOrchestrator:
    """
    Main entry point: documents in, ClusteringRunResult out.

    The EmbeddingTable is owned by the caller and shared across runs so
    repeated runs over overlapping vocabularies see the same embeddings.
    """

    def __init__(
        self,
        embedding_table: EmbeddingTable,
        settings: Optional[Settings] = None,
        result_cache: Optional[ResultCache] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            embedding_table: Caller-owned term embedding table
            settings: Engine settings (defaults when None)
            result_cache: Optional cache consulted before and filled after a run
        """
        self.settings = settings or Settings()
        self.embedding_table = embedding_table
        self.result_cache = result_cache

        self.vectorizer = Vectorizer(embedding_table, self.settings.vectorizer)
        self.analyzer = CharacteristicsAnalyzer(self.settings.analyzer, self.vectorizer.processor)
        self.engine = ClusteringEngine(self.settings)
        self.selector = StrategySelector(self.settings, self.engine)
        self.predictor = PerformancePredictor()
        self.fusion_engine = FusionEngine(self.settings.fusion)
        self.metrics_logger = MetricsLogger()
        self.error_tracker = ErrorTracker()

    @classmethod
    def from_config(
        cls,
        config_path: Optional[str] = None,
        result_cache: Optional[ResultCache] = None,
    ) -> "AdaptiveClusteringOrchestrator":
        """
        Build an orchestrator from the YAML configuration.

        Loads settings through ConfigManager, configures structured logging
        from the logging section and creates a fresh EmbeddingTable sized
        and seeded from the vectorizer section.

        Args:
            config_path: Configuration file (default locations when None)
            result_cache: Optional result cache

        Returns:
            Ready orchestrator
        """
        settings = ConfigManager.load_config(config_path)

        configure_logging(
            log_level=settings.logging.level,
            log_format=settings.logging.format,
            log_file=settings.logging.file,
            service_name=settings.logging.service_name,
        )

        table = EmbeddingTable(
            dimension=settings.vectorizer.dimension,
            seed=settings.vectorizer.embedding_seed,
        )
        get_logger(__name__).info(
            "orchestrator_configured",
            dimension=table.dimension,
            chunk_size=settings.batch.chunk_size,
        )
        return cls(table, settings, result_cache)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run(
        self,
        documents: Sequence[DocumentLike],
        target_k: Optional[int] = None,
        force_algorithm: Optional[Union[str, ClusterAlgorithm]] = None,
    ) -> ClusteringRunResult:
        """
        Cluster a corpus end to end.

        Args:
            documents: Ordered {id, text} documents
            target_k: Requested number of clusters (estimated when None)
            force_algorithm: Skip selection and run this algorithm only

        Returns:
            ClusteringRunResult (clusters == [] for an empty corpus)

        Raises:
            ConfigurationError: Unknown forced algorithm or invalid target_k
        """
        documents = self._coerce_documents(documents)
        forced = self._validate_request(target_k, force_algorithm)
        run_id = uuid.uuid4().hex

        with LogContext.correlation_context(run_id):
            logger = get_logger(__name__)

            cache_key = self._cache_key(documents, target_k, forced)
            if self.result_cache is not None:
                cached = self.result_cache.get(cache_key)
                if cached is not None:
                    logger.info("run_cache_hit", documents=len(documents))
                    return cached

            memory_before = self.metrics_logger.memory_mb()
            self.error_tracker.reset()

            with PerformanceLogger("clustering_run", logger, item_count=len(documents)) as perf:
                if not documents:
                    logger.info("empty_corpus")
                    run_result = self._empty_run(run_id)
                else:
                    corpus = self.vectorize(documents)
                    characteristics, strategy, prediction = self.plan(corpus, target_k)
                    outcome = self.execute(corpus, characteristics, strategy, target_k, forced)

                    run_result = ClusteringRunResult(
                        clusters=outcome.result.clusters,
                        strategy=strategy,
                        characteristics=characteristics,
                        performance=PerformanceReport(predicted=prediction),
                        algorithm_results=outcome.algorithm_results,
                        hybrid_clusters=outcome.hybrid_clusters,
                        run_id=run_id,
                    )
                    run_result.performance.actual = self.measure(
                        run_result.clusters, outcome, quality_score=outcome.result.quality_score
                    )

            actual = run_result.performance.actual
            actual.execution_time_ms = perf.elapsed_ms
            actual.memory_delta_mb = self.metrics_logger.memory_mb() - memory_before
            self.metrics_logger.log_cpu_memory(context="run_completed")

            logger.info(
                "run_completed",
                clusters=actual.cluster_count,
                algorithms=actual.algorithms_executed,
                failed=actual.failed_algorithms,
                low_confidence=actual.low_confidence,
                duration_ms=round(actual.execution_time_ms, 1),
            )

            if self.result_cache is not None:
                self.result_cache.set(cache_key, run_result)

        return run_result

    def run_from_source(
        self,
        source: DocumentSource,
        target_k: Optional[int] = None,
        force_algorithm: Optional[Union[str, ClusterAlgorithm]] = None,
    ) -> ClusteringRunResult:
        """Run over every document a DocumentSource yields."""
        return self.run(list(source.iter_documents()), target_k, force_algorithm)

    def run_batched(
        self,
        documents: Sequence[DocumentLike],
        target_k: Optional[int] = None,
        force_algorithm: Optional[Union[str, ClusterAlgorithm]] = None,
    ) -> ClusteringRunResult:
        """Cluster in chunks of batch.chunk_size and merge across chunks."""
        from adaptive_clustering.core.batch_processor import BatchProcessor

        return BatchProcessor(self).run(documents, target_k, force_algorithm)

    # -------------------------------------------------------------------------
    # Pipeline stages
    # -------------------------------------------------------------------------

    def vectorize(self, documents: Sequence[Document]) -> CorpusVectors:
        """Vectorize documents into a matrix aligned with their order."""
        logger = get_logger(__name__)
        with PerformanceLogger("vectorize", logger, log_level="debug", item_count=len(documents)):
            features = self.vectorizer.vectorize_documents(documents)
            matrix = Vectorizer.to_matrix(features, self.vectorizer.dimension)
        return CorpusVectors(documents=list(documents), features=features, matrix=matrix)

    @timed(operation="plan_strategy", log_level="debug")
    def plan(self, corpus: CorpusVectors, target_k: Optional[int] = None):
        """
        Analyze the corpus, select a strategy and predict its cost.

        Returns:
            (characteristics, strategy, prediction)
        """
        characteristics = self.analyzer.analyze(corpus.matrix, corpus.documents, corpus.terms)
        strategy = self.selector.select_strategy(characteristics, target_k, corpus.matrix)
        prediction: PerformancePrediction = self.predictor.predict(characteristics, strategy)
        return characteristics, strategy, prediction

    def execute(
        self,
        corpus: CorpusVectors,
        characteristics: DataCharacteristics,
        strategy: ClusteringStrategy,
        target_k: Optional[int] = None,
        forced: Optional[ClusterAlgorithm] = None,
    ) -> ExecutionOutcome:
        """
        Run the primary algorithm, then each fallback until one succeeds.

        Configuration errors propagate; any other failure moves on to the
        next algorithm. When every algorithm fails the corpus degrades to
        one low-confidence cluster.
        """
        logger = get_logger(__name__)
        order = [forced] if forced is not None else strategy.execution_order
        metadata = {"terms": corpus.terms, "characteristics": characteristics}
        failed: List[str] = []

        for algorithm in order:
            params = self._parameters_for(strategy, characteristics, algorithm, target_k, corpus)
            clusterer = self.engine.create_algorithm(algorithm, params)

            try:
                with PerformanceLogger(
                    "execute_algorithm", logger, algorithm=algorithm.value,
                    item_count=len(corpus.documents),
                ):
                    result = clusterer.cluster(
                        corpus.matrix, corpus.document_ids, target_k=target_k, metadata=metadata
                    )
            except ConfigurationError:
                raise
            except Exception as e:
                self.error_tracker.record(e, source=algorithm.value)
                failed.append(algorithm.value)
                logger.warning(
                    "algorithm_failed",
                    algorithm=algorithm.value,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                continue

            return self._outcome(clusterer, result, characteristics, failed)

        logger.error("all_algorithms_failed", attempted=[a.value for a in order])
        return ExecutionOutcome(
            result=self._degraded_result(corpus),
            failed=failed,
            low_confidence=True,
        )

    def measure(
        self,
        clusters: Sequence[Union[Cluster, HybridCluster]],
        outcome: ExecutionOutcome,
        quality_score: float = 0.0,
        batch_count: int = 1,
    ) -> ActualPerformance:
        """Actual performance of the final clusters (noise excluded)."""
        sizes = [c.size for c in clusters if not c.is_noise]
        return ActualPerformance(
            cluster_count=len(sizes),
            average_cluster_size=float(np.mean(sizes)) if sizes else 0.0,
            uniformity=size_uniformity(sizes),
            quality_score=quality_score,
            algorithms_executed=outcome.executed,
            failed_algorithms=outcome.failed,
            converged=not outcome.convergence_warnings,
            convergence_warnings=outcome.convergence_warnings,
            low_confidence=outcome.low_confidence,
            fusion_method=outcome.fusion_method,
            batch_count=batch_count,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _coerce_documents(documents: Sequence[DocumentLike]) -> List[Document]:
        return [d if isinstance(d, Document) else Document(**d) for d in documents]

    def _validate_request(
        self,
        target_k: Optional[int],
        force_algorithm: Optional[Union[str, ClusterAlgorithm]],
    ) -> Optional[ClusterAlgorithm]:
        if target_k is not None and target_k < 1:
            raise ConfigurationError(f"target_k must be >= 1, got {target_k}")
        if force_algorithm is None:
            return None
        return self.engine.resolve_algorithm(force_algorithm)

    @staticmethod
    def _cache_key(
        documents: Sequence[Document],
        target_k: Optional[int],
        forced: Optional[ClusterAlgorithm],
    ) -> str:
        suffix = forced.value if forced is not None else "auto"
        return f"{corpus_fingerprint(documents, target_k)}:{suffix}"

    def _parameters_for(
        self,
        strategy: ClusteringStrategy,
        characteristics: DataCharacteristics,
        algorithm: ClusterAlgorithm,
        target_k: Optional[int],
        corpus: CorpusVectors,
    ) -> Dict[str, Any]:
        if algorithm in strategy.execution_order:
            return strategy.parameters_for(algorithm)
        k = target_k if target_k is not None else self.selector.estimate_k(characteristics, corpus.matrix)
        return self.selector.optimize_parameters(characteristics, algorithm, k)

    def _outcome(
        self,
        clusterer,
        result: ClusteringResult,
        characteristics: DataCharacteristics,
        failed: List[str],
    ) -> ExecutionOutcome:
        outcome = ExecutionOutcome(result=result, failed=failed)

        if isinstance(clusterer, HybridAlgorithm):
            outcome.algorithm_results = list(clusterer.component_results) + [result]
            outcome.hybrid_clusters = list(clusterer.hybrid_clusters)
            outcome.executed = [r.algorithm_name for r in clusterer.component_results] + [result.algorithm_name]
            outcome.failed = failed + list(clusterer.failed_components)
            if clusterer.component_results:
                outcome.fusion_method = self.fusion_engine.resolve_method(
                    clusterer.fusion_method, characteristics
                ).value
        else:
            outcome.algorithm_results = [result]
            outcome.executed = [result.algorithm_name]

        outcome.convergence_warnings = [
            f"{r.algorithm_name} reached its iteration cap before converging"
            for r in outcome.algorithm_results
            if not r.converged
        ]
        return outcome

    @staticmethod
    def _degraded_result(corpus: CorpusVectors) -> ClusteringResult:
        """One cluster holding every document, used when every algorithm failed."""
        cluster = Cluster(
            id="all",
            member_document_ids=corpus.document_ids,
            centroid=corpus.matrix.mean(axis=0),
            quality_score=0.0,
            metadata={"degraded": True},
        )
        return ClusteringResult(
            algorithm_name="degraded",
            clusters=[cluster],
            cluster_labels=np.zeros(len(corpus.documents), dtype=int),
            quality_metrics={},
            confidence=0.0,
        )

    def _empty_run(self, run_id: str) -> ClusteringRunResult:
        return ClusteringRunResult(
            clusters=[],
            strategy=None,
            characteristics=self.analyzer.analyze(np.zeros((0, self.vectorizer.dimension))),
            performance=PerformanceReport(actual=ActualPerformance(batch_count=0)),
            run_id=run_id,
        )
