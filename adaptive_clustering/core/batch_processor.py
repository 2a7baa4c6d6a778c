"""
Batch Processor

Clusters corpora larger than one chunk:
1. Warm the embedding table with every term of the corpus, then freeze it
   so all chunks share one vocabulary
2. Analyze the whole corpus once and select one strategy for every chunk
3. Execute the strategy (with its fallbacks) on each chunk, optionally in
   a thread pool
4. Merge clusters across chunks whose centroids are more similar than
   batch.merge_threshold; noise from every chunk is gathered into one
   noise cluster
5. With a target_k, keep merging the closest pair of clusters until at
   most target_k remain

The whole corpus is vectorized up front, so peak memory grows with the
corpus; chunking bounds the cost of each clustering pass, not the
feature matrix.
"""

import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Union

import numpy as np

from adaptive_clustering.core.base_clustering import (
    NOISE_CLUSTER_ID,
    Cluster,
    intra_cluster_similarity,
    top_keywords,
)
from adaptive_clustering.core.fusion_engine import FusionEngine, HybridCluster, centroid_similarity
from adaptive_clustering.core.orchestrator import (
    AdaptiveClusteringOrchestrator,
    ClusteringRunResult,
    CorpusVectors,
    DocumentLike,
    ExecutionOutcome,
)
from adaptive_clustering.schemas.data_models import ClusterAlgorithm, PerformanceReport
from adaptive_clustering.utils.advanced_logging import (
    BatchLogger,
    LogContext,
    PerformanceLogger,
    get_logger,
)


class BatchProcessor:
    """Chunked execution on top of an AdaptiveClusteringOrchestrator."""

    def __init__(self, orchestrator: AdaptiveClusteringOrchestrator):
        self.orchestrator = orchestrator
        self.settings = orchestrator.settings.batch

    def split(self, count: int) -> List[slice]:
        """Consecutive chunk_size slices covering range(count)."""
        size = self.settings.chunk_size
        return [slice(start, min(start + size, count)) for start in range(0, count, size)]

    def run(
        self,
        documents: Sequence[DocumentLike],
        target_k: Optional[int] = None,
        force_algorithm: Optional[Union[str, ClusterAlgorithm]] = None,
    ) -> ClusteringRunResult:
        """
        Cluster documents chunk by chunk and merge the chunk clusters.

        A corpus that fits in one chunk is handed to orchestrator.run().

        Args:
            documents: Ordered {id, text} documents
            target_k: Requested number of clusters; applied to each chunk and
                then as a cap on the merged result
            force_algorithm: Skip selection and run this algorithm on every chunk

        Returns:
            ClusteringRunResult covering every document exactly once
        """
        orchestrator = self.orchestrator
        documents = orchestrator._coerce_documents(documents)
        if len(documents) <= self.settings.chunk_size:
            return orchestrator.run(documents, target_k, force_algorithm)

        forced = orchestrator._validate_request(target_k, force_algorithm)
        run_id = uuid.uuid4().hex

        with LogContext.correlation_context(run_id):
            logger = get_logger(__name__)
            memory_before = orchestrator.metrics_logger.memory_mb()
            orchestrator.error_tracker.reset()

            table = orchestrator.embedding_table
            was_frozen = table.frozen
            orchestrator.vectorizer.warm_table(documents)
            table.freeze()

            try:
                with PerformanceLogger("batched_run", logger, item_count=len(documents)) as perf:
                    corpus = orchestrator.vectorize(documents)
                    characteristics, strategy, prediction = orchestrator.plan(corpus, target_k)

                    chunks = self.split(len(documents))
                    logger.info(
                        "batched_run_started",
                        documents=len(documents),
                        batches=len(chunks),
                        workers=self.settings.max_workers,
                    )

                    progress = BatchLogger(len(documents), "cluster_batches", self.settings.chunk_size, logger)

                    def process(chunk: slice) -> ExecutionOutcome:
                        sub = CorpusVectors(
                            documents=corpus.documents[chunk],
                            features=corpus.features[chunk],
                            matrix=corpus.matrix[chunk],
                        )
                        return orchestrator.execute(sub, characteristics, strategy, target_k, forced)

                    outcomes: List[ExecutionOutcome] = []
                    if self.settings.max_workers > 1:
                        with ThreadPoolExecutor(max_workers=self.settings.max_workers) as executor:
                            futures = [executor.submit(process, chunk) for chunk in chunks]
                            for chunk, future in zip(chunks, futures):
                                outcomes.append(future.result())
                                progress.update(chunk.stop - chunk.start)
                    else:
                        for chunk in chunks:
                            outcomes.append(process(chunk))
                            progress.update(chunk.stop - chunk.start)
                    progress.complete()

                    merged = self.merge_batches(outcomes)
                    if target_k is not None:
                        merged = self.cap_clusters(merged, target_k)
                    clusters = self.to_clusters(merged, corpus)
            finally:
                if not was_frozen:
                    table.unfreeze()

            combined = self._combine_outcomes(outcomes)
            run_result = ClusteringRunResult(
                clusters=clusters,
                strategy=strategy,
                characteristics=characteristics,
                performance=PerformanceReport(predicted=prediction),
                algorithm_results=combined.algorithm_results,
                hybrid_clusters=merged,
                run_id=run_id,
            )

            real = [c for c in clusters if not c.is_noise]
            total = sum(c.size for c in real)
            quality = sum(c.quality_score * c.size for c in real) / total if total else 0.0

            actual = orchestrator.measure(clusters, combined, quality_score=quality, batch_count=len(chunks))
            actual.execution_time_ms = perf.elapsed_ms
            actual.memory_delta_mb = orchestrator.metrics_logger.memory_mb() - memory_before
            run_result.performance.actual = actual

            logger.info(
                "batched_run_completed",
                batches=len(chunks),
                clusters=actual.cluster_count,
                failed=actual.failed_algorithms,
                duration_ms=round(actual.execution_time_ms, 1),
            )

        return run_result

    # -------------------------------------------------------------------------
    # Cross-batch merging
    # -------------------------------------------------------------------------

    def merge_batches(self, outcomes: Sequence[ExecutionOutcome]) -> List[HybridCluster]:
        """Prefix cluster ids with their batch, pool noise, merge by centroid similarity."""
        candidates: List[HybridCluster] = []
        noise_members: List[str] = []
        noise_centroids = []

        for batch_index, outcome in enumerate(outcomes):
            result = outcome.result
            for cluster in result.clusters:
                if cluster.is_noise:
                    noise_members.extend(cluster.member_document_ids)
                    noise_centroids.append(cluster.centroid * cluster.size)
                    continue
                candidates.append(HybridCluster(
                    id=f"batch{batch_index}_{cluster.id}",
                    member_document_ids=list(cluster.member_document_ids),
                    centroid=cluster.centroid,
                    source_algorithm=result.algorithm_name,
                    confidence=cluster.quality_score,
                    provenance={"batch": batch_index, "low_confidence": outcome.low_confidence},
                ))

        merged = self.orchestrator.fusion_engine.merge_similar_clusters(
            candidates,
            threshold=self.settings.merge_threshold,
            similarity=centroid_similarity,
        )

        if noise_members:
            merged.append(HybridCluster(
                id=NOISE_CLUSTER_ID,
                member_document_ids=noise_members,
                centroid=np.sum(noise_centroids, axis=0) / len(noise_members),
                source_algorithm="batch",
                confidence=0.0,
                is_noise=True,
            ))

        get_logger(__name__).debug(
            "batches_merged", candidates=len(candidates), merged=len(merged), noise=len(noise_members)
        )
        return merged

    def cap_clusters(self, merged: Sequence[HybridCluster], target_k: int) -> List[HybridCluster]:
        """
        Merge the most centroid-similar pair until at most target_k clusters remain.

        Noise is not counted and is passed through untouched.
        """
        real = [c for c in merged if not c.is_noise]
        noise = [c for c in merged if c.is_noise]
        before = len(real)

        while len(real) > target_k:
            best = None
            for i in range(len(real)):
                for j in range(i + 1, len(real)):
                    score = centroid_similarity(real[i], real[j])
                    if best is None or score > best[0]:
                        best = (score, i, j)

            _, i, j = best
            a, b = real[i], real[j]
            combined = FusionEngine._combine([a, b])
            combined.provenance["merged_from"] = (
                a.provenance.get("merged_from", [a.id]) + b.provenance.get("merged_from", [b.id])
            )
            real[i] = combined
            del real[j]

        if len(real) < before:
            get_logger(__name__).info("clusters_capped", before=before, after=len(real), target_k=target_k)
        return real + noise

    def to_clusters(self, merged: Sequence[HybridCluster], corpus: CorpusVectors) -> List[Cluster]:
        """Rebuild Clusters with centroids, quality and keywords over the whole corpus."""
        position = {doc_id: i for i, doc_id in enumerate(corpus.document_ids)}
        terms = corpus.terms

        clusters = []
        for index, hybrid in enumerate(c for c in merged if not c.is_noise):
            member_idx = [position[d] for d in hybrid.member_document_ids]
            members = corpus.matrix[member_idx]
            clusters.append(Cluster(
                id=f"batch_{index}",
                member_document_ids=list(hybrid.member_document_ids),
                centroid=members.mean(axis=0),
                quality_score=intra_cluster_similarity(members),
                keywords=top_keywords(terms, member_idx),
                metadata={"merged_from": hybrid.provenance.get("merged_from", [hybrid.id])},
            ))

        for hybrid in merged:
            if hybrid.is_noise:
                member_idx = [position[d] for d in hybrid.member_document_ids]
                clusters.append(Cluster(
                    id=NOISE_CLUSTER_ID,
                    member_document_ids=list(hybrid.member_document_ids),
                    centroid=corpus.matrix[member_idx].mean(axis=0),
                    keywords=top_keywords(terms, member_idx),
                    is_noise=True,
                ))
        return clusters

    @staticmethod
    def _combine_outcomes(outcomes: Sequence[ExecutionOutcome]) -> ExecutionOutcome:
        """Fold per-batch outcomes into one for performance reporting."""
        first = outcomes[0]
        combined = ExecutionOutcome(result=first.result, fusion_method=first.fusion_method)
        for outcome in outcomes:
            combined.algorithm_results.extend(outcome.algorithm_results)
            combined.convergence_warnings.extend(outcome.convergence_warnings)
            combined.low_confidence = combined.low_confidence or outcome.low_confidence
            for name in outcome.executed:
                if name not in combined.executed:
                    combined.executed.append(name)
            for name in outcome.failed:
                if name not in combined.failed:
                    combined.failed.append(name)
        return combined
