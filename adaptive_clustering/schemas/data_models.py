"""
data_models.py

Pydantic data models for the adaptive clustering engine.
Defines the input document schema, the dataset characteristics, the
strategy chosen for a run and the performance reports attached to results.

Schema Design:
- Input: ordered {id, text} documents
- Internal: immutable characteristics and strategy records
- Output: predicted and actual performance, serializable with model_dump()
"""

from typing import List, Dict, Any, Optional
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# ENUMS
# =============================================================================


class ClusterAlgorithm(str, Enum):
    """Closed set of clustering algorithms the engine can run."""

    KMEANS = "kmeans"
    DBSCAN = "dbscan"
    HIERARCHICAL = "hierarchical"
    GMM = "gmm"
    HYBRID = "hybrid"


class DistanceMetric(str, Enum):
    """Supported distance metrics."""

    EUCLIDEAN = "euclidean"
    COSINE = "cosine"
    MANHATTAN = "manhattan"
    DOMAIN_WEIGHTED = "domain_weighted"


class ClusterShape(str, Enum):
    """Shape of the similarity structure."""

    SPHERICAL = "spherical"
    ELONGATED = "elongated"
    IRREGULAR = "irregular"
    MIXED = "mixed"


class DistributionType(str, Enum):
    """Spread of pairwise similarities."""

    UNIFORM = "uniform"
    CLUSTERED = "clustered"
    SPARSE = "sparse"
    MIXED = "mixed"


class DomainComplexity(str, Enum):
    """Breadth of domain vocabulary in the corpus."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FusionMethod(str, Enum):
    """Ways of combining several algorithm results."""

    ENSEMBLE = "ensemble"
    CASCADE = "cascade"
    WEIGHTED = "weighted"
    ADAPTIVE = "adaptive"


class LinkageMethod(str, Enum):
    """Hierarchical linkage criteria."""

    SINGLE = "single"
    COMPLETE = "complete"
    AVERAGE = "average"
    WARD = "ward"
    CENTROID = "centroid"


# =============================================================================
# INPUT MODELS
# =============================================================================


class Document(BaseModel):
    """A document to cluster. Immutable; owned by the caller."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique document identifier")
    text: str = Field(default="", description="Text fields concatenated for analysis")

    @classmethod
    def from_fields(cls, id: str, *fields: Optional[str]) -> "Document":
        """Build a document by joining the non-empty text fields with spaces."""
        return cls(id=id, text=" ".join(f for f in fields if f))


class TextMetadata(BaseModel):
    """Token statistics of one document."""

    token_count: int = Field(default=0, ge=0, description="Normalized tokens kept")
    unique_token_count: int = Field(default=0, ge=0, description="Distinct normalized tokens")
    avg_token_length: float = Field(default=0.0, ge=0.0, description="Mean token length in characters")


# =============================================================================
# ANALYSIS MODELS
# =============================================================================


class DataCharacteristics(BaseModel):
    """Dataset-level statistics of a vectorized corpus. Never mutated."""

    model_config = ConfigDict(frozen=True)

    size: int = Field(..., ge=0, description="Number of documents")
    dimensionality: int = Field(..., ge=0, description="Distinct normalized terms across the corpus")
    density: float = Field(..., ge=0.0, description="Average raw-text length")
    noise_level: float = Field(..., ge=0.0, le=1.0, description="Average low-information token ratio")
    cluster_shape: ClusterShape
    distribution: DistributionType
    domain_complexity: DomainComplexity
    avg_text_similarity: float = Field(..., description="Mean pairwise similarity")
    similarity_variance: float = Field(default=0.0, ge=0.0, description="Variance of pairwise similarity")
    sampled_pairs: int = Field(default=0, ge=0, description="Pairs the similarity statistics were computed on")
    domain_keyword_count: int = Field(default=0, ge=0, description="Total domain keyword hits")
    unique_domains: int = Field(default=0, ge=0, description="Domains with at least one hit")


class ExpectedPerformance(BaseModel):
    """Selector's expectation of an algorithm on this data."""

    accuracy: float = Field(..., ge=0.0, le=1.0)
    speed: float = Field(..., ge=0.0, le=1.0)
    scalability: float = Field(..., ge=0.0, le=1.0)
    interpretability: float = Field(..., ge=0.0, le=1.0)


class ClusteringStrategy(BaseModel):
    """Primary algorithm, ordered fallbacks and starting hyperparameters."""

    primary_algorithm: ClusterAlgorithm
    fallback_algorithms: List[ClusterAlgorithm] = Field(default_factory=list)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    fallback_parameters: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict, description="Derived parameters per fallback algorithm"
    )
    expected_performance: ExpectedPerformance
    algorithm_scores: Dict[str, float] = Field(default_factory=dict)

    @property
    def execution_order(self) -> List[ClusterAlgorithm]:
        """Primary followed by the fallbacks."""
        return [self.primary_algorithm] + list(self.fallback_algorithms)

    def parameters_for(self, algorithm: ClusterAlgorithm) -> Dict[str, Any]:
        """Parameters to run the given algorithm with."""
        if algorithm == self.primary_algorithm:
            return dict(self.parameters)
        return dict(self.fallback_parameters.get(algorithm.value, {}))


# =============================================================================
# PERFORMANCE MODELS
# =============================================================================


class PerformancePrediction(BaseModel):
    """Estimates made before execution. Informational only."""

    algorithm: ClusterAlgorithm
    estimated_time_ms: float = Field(..., ge=0.0)
    estimated_memory_mb: float = Field(..., ge=0.0)
    estimated_accuracy: float = Field(..., ge=0.0, le=1.0)


class ActualPerformance(BaseModel):
    """Measurements taken after execution."""

    cluster_count: int = Field(default=0, ge=0)
    average_cluster_size: float = Field(default=0.0, ge=0.0)
    uniformity: float = Field(default=0.0, description="1 / (1 + size variance / mean size), clamped to [0, 1]")
    quality_score: float = Field(default=0.0)
    execution_time_ms: float = Field(default=0.0, ge=0.0)
    memory_delta_mb: float = Field(default=0.0)
    algorithms_executed: List[str] = Field(default_factory=list)
    failed_algorithms: List[str] = Field(default_factory=list)
    converged: bool = Field(default=True, description="False when an iteration cap was reached")
    convergence_warnings: List[str] = Field(default_factory=list)
    low_confidence: bool = Field(default=False, description="True when every algorithm failed")
    fusion_method: Optional[str] = None
    batch_count: int = Field(default=1, ge=0)

    @field_validator("uniformity")
    @classmethod
    def clamp_uniformity(cls, v: float) -> float:
        return min(1.0, max(0.0, v))


class PerformanceReport(BaseModel):
    """Predicted and actual performance of a run."""

    predicted: Optional[PerformancePrediction] = None
    actual: ActualPerformance = Field(default_factory=ActualPerformance)
