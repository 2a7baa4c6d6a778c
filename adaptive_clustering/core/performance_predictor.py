"""
Performance Predictor.

Rough time, memory and accuracy estimates for a strategy before it runs.
The numbers are informational: they are logged and reported next to the
measured performance, never used to make decisions.
"""

import logging

from adaptive_clustering.schemas.data_models import (
    ClusterAlgorithm,
    ClusteringStrategy,
    DataCharacteristics,
    DomainComplexity,
    PerformancePrediction,
)

logger = logging.getLogger(__name__)

BASE_TIME_MS = {
    ClusterAlgorithm.KMEANS: 100.0,
    ClusterAlgorithm.DBSCAN: 200.0,
    ClusterAlgorithm.HIERARCHICAL: 500.0,
    ClusterAlgorithm.GMM: 300.0,
    ClusterAlgorithm.HYBRID: 400.0,
}

BASE_MEMORY_MB = {
    ClusterAlgorithm.KMEANS: 50.0,
    ClusterAlgorithm.DBSCAN: 80.0,
    ClusterAlgorithm.HIERARCHICAL: 120.0,
    ClusterAlgorithm.GMM: 100.0,
    ClusterAlgorithm.HYBRID: 150.0,
}

BASE_ACCURACY = {
    ClusterAlgorithm.KMEANS: 0.8,
    ClusterAlgorithm.DBSCAN: 0.7,
    ClusterAlgorithm.HIERARCHICAL: 0.8,
    ClusterAlgorithm.GMM: 0.8,
    ClusterAlgorithm.HYBRID: 0.9,
}


class PerformancePredictor:
    """Closed-form cost model per algorithm."""

    def predict(
        self,
        characteristics: DataCharacteristics,
        strategy: ClusteringStrategy,
    ) -> PerformancePrediction:
        """
        Estimate the cost of running the strategy's primary algorithm.

        time   = base_ms * (size / 1000)^1.5 * (dim / 100)^1.2
        memory = base_mb * (size / 1000) * (dim / 100)
        accuracy = clamp(base - 0.3 * noise (+0.1 if complexity is high), 0.1, 1)
        """
        algorithm = strategy.primary_algorithm
        size_ratio = characteristics.size / 1000.0
        dim_ratio = characteristics.dimensionality / 100.0

        estimated_time = BASE_TIME_MS[algorithm] * size_ratio ** 1.5 * dim_ratio ** 1.2
        estimated_memory = BASE_MEMORY_MB[algorithm] * size_ratio * dim_ratio

        accuracy = BASE_ACCURACY[algorithm] - characteristics.noise_level * 0.3
        if characteristics.domain_complexity == DomainComplexity.HIGH:
            accuracy += 0.1

        prediction = PerformancePrediction(
            algorithm=algorithm,
            estimated_time_ms=estimated_time,
            estimated_memory_mb=estimated_memory,
            estimated_accuracy=max(0.1, min(1.0, accuracy)),
        )

        logger.debug(
            f"Predicted {algorithm.value}: {estimated_time:.1f} ms, "
            f"{estimated_memory:.1f} MB, accuracy {prediction.estimated_accuracy:.2f}"
        )
        return prediction
