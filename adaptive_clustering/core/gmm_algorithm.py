"""
Gaussian Mixture Model Clustering (Expectation-Maximization).

GMM is ideal for:
- Overlapping topics where soft membership matters
- Roughly spherical clusters of different spreads
- Model selection through BIC / AIC

Each component is an isotropic Gaussian whose scalar variance is the mean
of its covariance diagonal (trace / d). Likelihoods are evaluated in
log-space so high-dimensional vectors never underflow.
"""

import logging
import time
import warnings
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from adaptive_clustering.core.base_clustering import (
    BaseClusteringAlgorithm,
    ClusteringConfig,
    ClusteringResult,
    size_uniformity,
)
from adaptive_clustering.core.kmeans_algorithm import (
    KMeansAlgorithm,
    kmeans_plus_plus_seeds,
    random_seeds,
)
from adaptive_clustering.utils.error_handling import (
    ConfigurationError,
    ConvergenceWarning,
    NumericalError,
)

logger = logging.getLogger(__name__)

INITIALIZATIONS = ("kmeans", "kmeans++", "random")


def logsumexp(values: np.ndarray, axis: int = 1) -> np.ndarray:
    """Numerically stable log(sum(exp(values))) along an axis."""
    peak = np.max(values, axis=axis, keepdims=True)
    peak = np.where(np.isfinite(peak), peak, 0.0)
    summed = np.log(np.sum(np.exp(values - peak), axis=axis, keepdims=True)) + peak
    return np.squeeze(summed, axis=axis)


class GMMAlgorithm(BaseClusteringAlgorithm):
    """
    Gaussian mixture clustering with hard assignment by max responsibility.

    Best for: Overlapping clusters, probabilistic membership
    Strengths: Soft assignments, likelihood-based model comparison
    Weaknesses: Requires k, sensitive to initialization
    """

    def __init__(self, config: ClusteringConfig):
        """
        Initialize GMM algorithm.

        Args:
            config: Clustering configuration
        """
        super().__init__(config)

        self.n_components = config.params.get("n_components", config.params.get("n_clusters", 2))
        self.init = config.params.get("init", "kmeans")
        self.covariance_type = config.params.get("covariance_type", "spherical")
        self.max_iter = config.params.get("max_iter", 100)
        self.tol = config.params.get("tol", 1e-4)
        self.reg_covar = config.params.get("reg_covar", 1e-6)
        self.random_state = config.params.get("random_state", 42)

        if self.init not in INITIALIZATIONS:
            raise ConfigurationError(
                f"Unknown GMM initialization '{self.init}'. Supported: {list(INITIALIZATIONS)}",
                details={"init": self.init},
            )
        if self.covariance_type != "spherical":
            raise ConfigurationError(
                f"Only spherical covariance is supported, got '{self.covariance_type}'",
                details={"covariance_type": self.covariance_type},
            )
        if self.reg_covar <= 0:
            raise ConfigurationError(f"reg_covar must be > 0, got {self.reg_covar}")

        logger.debug(
            f"Initialized GMM: n_components={self.n_components}, init={self.init}, "
            f"max_iter={self.max_iter}"
        )

    def cluster(
        self,
        vectors: np.ndarray,
        document_ids: Optional[Sequence[str]] = None,
        target_k: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ClusteringResult:
        """
        Fit the mixture by EM and assign each document to its most likely component.

        Returns:
            ClusteringResult; clusters carry weight and variance metadata
        """
        start_time = time.perf_counter()
        vectors, document_ids = self._prepare_input(vectors, document_ids)
        k = self._resolve_k(target_k, self.n_components)

        degenerate = self._degenerate_result(vectors, document_ids, metadata, k, start_time)
        if degenerate is not None:
            return degenerate

        logger.info(f"Starting GMM clustering on {len(vectors)} vectors (k={k})")

        means, variances, weights = self._initialize(vectors, k)
        log_likelihood = -np.inf
        converged = False
        iterations = 0

        for iterations in range(1, self.max_iter + 1):
            responsibilities, new_log_likelihood = self.e_step(vectors, means, variances, weights)
            means, variances, weights = self.m_step(vectors, responsibilities)

            improvement = new_log_likelihood - log_likelihood
            log_likelihood = new_log_likelihood
            if abs(improvement) < self.tol:
                converged = True
                break

        if not converged:
            message = f"GMM did not converge within {self.max_iter} iterations (tol={self.tol})"
            logger.warning(message)
            warnings.warn(message, ConvergenceWarning)

        responsibilities, log_likelihood = self.e_step(vectors, means, variances, weights)
        labels = np.argmax(responsibilities, axis=1)

        # Components that won no document do not become clusters; keep their
        # metadata keyed by label so surviving clusters still line up.
        cluster_metadata = {
            int(c): {"weight": float(weights[c]), "variance": float(variances[c])}
            for c in np.unique(labels)
        }

        n, d = vectors.shape
        n_params = k * d + k + (k - 1)
        extra_metrics = {
            "log_likelihood": float(log_likelihood),
            "bic": float(-2.0 * log_likelihood + n_params * np.log(n)),
            "aic": float(-2.0 * log_likelihood + 2.0 * n_params),
            "cluster_balance": size_uniformity(np.bincount(labels, minlength=k)),
        }

        result = self._build_result(
            vectors, labels, document_ids, metadata, start_time,
            cluster_metadata=cluster_metadata,
            extra_metrics=extra_metrics,
            iterations=iterations,
            converged=converged,
        )

        logger.info(
            f"GMM created {result.n_clusters} clusters in {iterations} iterations "
            f"(log-likelihood={log_likelihood:.2f})"
        )
        return result

    def _initialize(self, vectors: np.ndarray, k: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Initial means, variances and weights."""
        if self.init == "kmeans":
            kmeans = KMeansAlgorithm(ClusteringConfig(
                algorithm_name="kmeans",
                params={"n_clusters": k, "random_state": self.random_state, "max_iter": 50},
            ))
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", ConvergenceWarning)
                _, labels, _, _ = kmeans.fit_centroids(vectors, k)

            responsibilities = np.zeros((len(vectors), k))
            responsibilities[np.arange(len(vectors)), labels] = 1.0
            return self.m_step(vectors, responsibilities)

        rng = np.random.default_rng(self.random_state)
        seeding = kmeans_plus_plus_seeds if self.init == "kmeans++" else random_seeds
        means = vectors[seeding(vectors, k, rng)].astype(float)

        d = vectors.shape[1]
        spread = float(np.mean(np.sum((vectors - vectors.mean(axis=0)) ** 2, axis=1))) / d
        variances = np.full(k, spread + self.reg_covar)
        weights = np.full(k, 1.0 / k)
        return means, variances, weights

    @staticmethod
    def e_step(
        vectors: np.ndarray,
        means: np.ndarray,
        variances: np.ndarray,
        weights: np.ndarray,
    ) -> Tuple[np.ndarray, float]:
        """
        Responsibilities and total log-likelihood.

        log N(x | mu, var I) = -0.5 * (d * log(2 pi var) + |x - mu|^2 / var)
        """
        d = vectors.shape[1]
        sq_dist = (
            np.sum(vectors ** 2, axis=1)[:, None]
            - 2.0 * vectors @ means.T
            + np.sum(means ** 2, axis=1)[None, :]
        )
        np.clip(sq_dist, 0.0, None, out=sq_dist)

        with np.errstate(divide="ignore"):
            log_weights = np.log(weights)
        log_prob = -0.5 * (d * np.log(2.0 * np.pi * variances)[None, :] + sq_dist / variances[None, :])
        weighted = log_prob + log_weights[None, :]

        log_norm = logsumexp(weighted, axis=1)
        responsibilities = np.exp(weighted - log_norm[:, None])
        return responsibilities, float(np.sum(log_norm))

    def m_step(
        self,
        vectors: np.ndarray,
        responsibilities: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Re-estimate means, variances and weights from responsibilities."""
        n, d = vectors.shape
        nk = responsibilities.sum(axis=0) + 10 * np.finfo(float).eps

        means = (responsibilities.T @ vectors) / nk[:, None]

        sq_dist = (
            np.sum(vectors ** 2, axis=1)[:, None]
            - 2.0 * vectors @ means.T
            + np.sum(means ** 2, axis=1)[None, :]
        )
        np.clip(sq_dist, 0.0, None, out=sq_dist)
        # trace(cov_k + reg I) / d
        variances = np.sum(responsibilities * sq_dist, axis=0) / (nk * d) + self.reg_covar

        weights = nk / n
        total = weights.sum()
        if not np.isfinite(total) or total <= 0.0:
            raise NumericalError(
                "GMM mixture weights cannot be normalized",
                details={"weight_sum": float(total)},
            )
        weights /= total

        return means, variances, weights
