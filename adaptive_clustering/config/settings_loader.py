"""
settings_loader.py

Configuration management for the adaptive clustering engine.
Loads and validates settings from YAML configuration with environment variable substitution.

Features:
- YAML configuration loading with validation
- Environment variable substitution (${VAR_NAME} syntax)
- Singleton pattern for global settings access
- Type-safe configuration with Pydantic models
- Built-in defaults when no configuration file is present
"""

import os
import re
import yaml
import logging
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pathlib import Path

from adaptive_clustering.utils.error_handling import ConfigurationError

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models (Pydantic)
# =============================================================================

class VectorizerSettings(BaseModel):
    """Text vectorization settings."""
    dimension: int = Field(default=100, ge=2, description="Feature vector dimension D")
    mode: str = Field(default="hybrid", description="Vector variant (tf or hybrid)")
    tf_weight: float = Field(default=0.1, ge=0.0, le=1.0, description="Term-frequency channel weight")
    embedding_weight: float = Field(default=0.4, ge=0.0, le=1.0, description="Pseudo-embedding channel weight")
    context_weight: float = Field(default=0.3, ge=0.0, le=1.0, description="Context-window channel weight")
    semantic_weight: float = Field(default=0.2, ge=0.0, le=1.0, description="Semantic-group channel weight")
    context_window: int = Field(default=3, ge=1, description="Tokens on each side of the context window")
    context_self_weight: float = Field(default=0.7, ge=0.0, le=1.0, description="Weight of a token against its context")
    semantic_threshold: float = Field(default=0.7, ge=0.0, le=1.0, description="Edit-distance similarity for semantic groups")
    embedding_seed: int = Field(default=42, description="Seed of the term embedding table")
    min_stem_length: int = Field(default=3, ge=2, description="Shortest stem left after suffix stripping")

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v: str) -> str:
        if v not in ("tf", "hybrid"):
            raise ValueError(f"mode must be 'tf' or 'hybrid', got '{v}'")
        return v


class MetricSettings(BaseModel):
    """Distance metric settings."""
    domain_weight: float = Field(default=1.2, gt=1.0, description="Multiplier of the domain-weighted cosine distance")


class AnalyzerSettings(BaseModel):
    """Characteristics analyzer settings."""
    sample_threshold: int = Field(default=200, ge=2, description="Corpus size above which pairs are sampled")
    max_sample_pairs: int = Field(default=2000, ge=1, description="Number of sampled pairs for large corpora")
    random_state: int = Field(default=42, description="Sampling seed")


class KMeansSettings(BaseModel):
    """K-Means clustering algorithm settings."""
    initialization: str = Field(default="farthest_point", description="Seeding (farthest_point, kmeans++, random)")
    max_iter: int = Field(default=200, ge=1, description="Maximum iterations")
    tol: float = Field(default=1e-4, gt=0.0, description="Centroid displacement tolerance")
    random_state: int = Field(default=42, description="Random seed")

    @field_validator("initialization")
    @classmethod
    def validate_initialization(cls, v: str) -> str:
        if v not in ("farthest_point", "kmeans++", "random"):
            raise ValueError(f"Unknown K-Means initialization '{v}'")
        return v


class DBSCANSettings(BaseModel):
    """DBSCAN clustering algorithm settings."""
    eps: float = Field(default=0.3, gt=0.0, description="Neighborhood radius")
    min_pts: int = Field(default=5, ge=1, description="Neighbors required for a core point")
    metric: str = Field(default="domain_weighted", description="Distance metric")
    min_cluster_size: int = Field(default=1, ge=1, description="Clusters below this size become noise")


class HierarchicalSettings(BaseModel):
    """Hierarchical clustering algorithm settings."""
    linkage: str = Field(default="ward", description="Linkage method (single, complete, average, ward, centroid)")
    metric: str = Field(default="euclidean", description="Distance metric")

    @field_validator("linkage")
    @classmethod
    def validate_linkage(cls, v: str) -> str:
        if v not in ("single", "complete", "average", "ward", "centroid"):
            raise ValueError(f"Unknown linkage '{v}'")
        return v


class GMMSettings(BaseModel):
    """Gaussian mixture settings."""
    init: str = Field(default="kmeans", description="Mean initialization (kmeans, kmeans++, random)")
    max_iter: int = Field(default=100, ge=1, description="Maximum EM iterations")
    tol: float = Field(default=1e-4, gt=0.0, description="Log-likelihood improvement tolerance")
    reg_covar: float = Field(default=1e-6, gt=0.0, description="Diagonal covariance regularizer")
    random_state: int = Field(default=42, description="Random seed")

    @field_validator("init")
    @classmethod
    def validate_init(cls, v: str) -> str:
        if v not in ("kmeans", "kmeans++", "random"):
            raise ValueError(f"Unknown GMM initialization '{v}'")
        return v


class ClusteringAlgorithmsSettings(BaseModel):
    """Algorithm-specific defaults."""
    kmeans: KMeansSettings = Field(default_factory=KMeansSettings)
    dbscan: DBSCANSettings = Field(default_factory=DBSCANSettings)
    hierarchical: HierarchicalSettings = Field(default_factory=HierarchicalSettings)
    gmm: GMMSettings = Field(default_factory=GMMSettings)


class SelectorSettings(BaseModel):
    """Strategy selection settings."""
    k_selection: str = Field(default="heuristic", description="How k is estimated (heuristic or silhouette)")
    max_silhouette_k: int = Field(default=10, ge=2, description="Largest k tried by the silhouette search")

    @field_validator("k_selection")
    @classmethod
    def validate_k_selection(cls, v: str) -> str:
        if v not in ("heuristic", "silhouette"):
            raise ValueError(f"k_selection must be 'heuristic' or 'silhouette', got '{v}'")
        return v


class FusionSettings(BaseModel):
    """Fusion engine settings."""
    method: str = Field(default="adaptive", description="Fusion method (ensemble, cascade, weighted, adaptive)")
    jaccard_threshold: float = Field(default=0.3, ge=0.0, le=1.0, description="Member Jaccard needed to merge in cascade")
    min_cluster_size: int = Field(default=3, ge=1, description="Fused clusters below this size are merged away")
    confidence_threshold: float = Field(default=0.6, ge=0.0, le=1.0, description="Clusters below this confidence are flagged")
    component_algorithms: List[str] = Field(
        default_factory=lambda: ["kmeans", "dbscan"],
        description="Algorithms run by the hybrid strategy",
    )

    @field_validator("method")
    @classmethod
    def validate_method(cls, v: str) -> str:
        if v not in ("ensemble", "cascade", "weighted", "adaptive"):
            raise ValueError(f"Unknown fusion method '{v}'")
        return v


class BatchSettings(BaseModel):
    """Batch processing configuration."""
    chunk_size: int = Field(default=1000, ge=1, description="Documents per batch")
    merge_threshold: float = Field(default=0.7, ge=0.0, le=1.0, description="Centroid similarity for cross-batch merges")
    max_workers: int = Field(default=1, ge=1, description="Parallel batch workers")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format (json or text)")
    file: Optional[str] = Field(default=None, description="Optional log file path")
    service_name: str = Field(default="adaptive-clustering", description="Service name added to every event")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level '{v}'")
        return v


class Settings(BaseModel):
    """Root configuration model."""
    vectorizer: VectorizerSettings = Field(default_factory=VectorizerSettings)
    metrics: MetricSettings = Field(default_factory=MetricSettings)
    analyzer: AnalyzerSettings = Field(default_factory=AnalyzerSettings)
    algorithms: ClusteringAlgorithmsSettings = Field(default_factory=ClusteringAlgorithmsSettings)
    selector: SelectorSettings = Field(default_factory=SelectorSettings)
    fusion: FusionSettings = Field(default_factory=FusionSettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode="after")
    def validate_channel_weights(self) -> "Settings":
        v = self.vectorizer
        total = v.tf_weight + v.embedding_weight + v.context_weight + v.semantic_weight
        if total <= 0:
            raise ValueError("At least one vectorizer channel weight must be positive")
        return self


# =============================================================================
# Configuration Manager (Singleton)
# =============================================================================

class ConfigManager:
    """
    Singleton configuration manager that loads and caches settings.

    Features:
    - Loads YAML configuration from file
    - Substitutes environment variables using ${VAR_NAME} syntax
    - Validates configuration using Pydantic models
    - Provides global access to settings
    """

    _instance: Optional['ConfigManager'] = None
    _settings: Optional[Settings] = None

    def __new__(cls):
        """Ensure singleton pattern."""
        if cls._instance is None:
            cls._instance = super(ConfigManager, cls).__new__(cls)
        return cls._instance

    @classmethod
    def load_config(cls, config_path: Optional[str] = None) -> Settings:
        """
        Load configuration from YAML file with environment variable substitution.

        Args:
            config_path: Path to configuration file. If None, the default
                locations are searched and built-in defaults are used when
                none exists.

        Returns:
            Settings object with validated configuration

        Raises:
            FileNotFoundError: If an explicit configuration file is missing
            ConfigurationError: If configuration is invalid
        """
        if cls._settings is not None:
            return cls._settings

        if config_path is None:
            possible_paths = [
                Path(os.getenv("CONFIG_PATH", "config/settings.yaml")),
                Path("config/settings.yaml"),
            ]

            config_path_obj = None
            for path in possible_paths:
                if path.exists():
                    config_path_obj = path
                    break

            if config_path_obj is None:
                logger.info("No configuration file found, using built-in defaults")
                raw_config: Dict[str, Any] = {}
            else:
                raw_config = cls._read_yaml(config_path_obj)
        else:
            config_path_obj = Path(config_path)
            if not config_path_obj.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_path}")
            raw_config = cls._read_yaml(config_path_obj)

        config_dict = cls._apply_env_overrides(cls._substitute_env_vars(raw_config))

        try:
            cls._settings = Settings(**config_dict)
            logger.info("Configuration loaded and validated successfully")
            return cls._settings
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise ConfigurationError(f"Invalid configuration: {e}", details={"errors": e.errors()})

    @classmethod
    def _read_yaml(cls, path: Path) -> Dict[str, Any]:
        logger.info(f"Loading configuration from: {path}")
        try:
            with open(path, 'r') as f:
                return yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to load YAML configuration: {e}")
            raise ConfigurationError(f"Invalid YAML configuration: {e}")

    @classmethod
    def get_settings(cls) -> Settings:
        """
        Get cached settings. Loads from default path if not already loaded.

        Returns:
            Settings object
        """
        if cls._settings is None:
            cls.load_config()
        return cls._settings

    @classmethod
    def _substitute_env_vars(cls, config: Any) -> Any:
        """
        Recursively substitute environment variables in configuration.

        Supports ${VAR_NAME} and ${VAR_NAME:default_value} syntax.

        Args:
            config: Configuration dictionary or value

        Returns:
            Configuration with substituted values
        """
        if isinstance(config, dict):
            return {k: cls._substitute_env_vars(v) for k, v in config.items()}
        elif isinstance(config, list):
            return [cls._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            # Match ${VAR_NAME} or ${VAR_NAME:default}
            pattern = r'\$\{([^}:]+)(?::([^}]*))?\}'

            def replace_var(match):
                var_name = match.group(1)
                default_value = match.group(2) if match.group(2) is not None else ""
                return os.getenv(var_name, default_value)

            return re.sub(pattern, replace_var, config)
        else:
            return config

    @classmethod
    def _apply_env_overrides(cls, config: Dict[str, Any]) -> Dict[str, Any]:
        """LOG_LEVEL always wins over the file."""
        log_level = os.getenv("LOG_LEVEL")
        if log_level:
            logging_section = dict(config.get("logging") or {})
            logging_section["level"] = log_level.upper()
            config = {**config, "logging": logging_section}
        return config

    @classmethod
    def reload_config(cls, config_path: Optional[str] = None) -> Settings:
        """
        Reload configuration from file.

        Args:
            config_path: Path to configuration file

        Returns:
            Reloaded Settings object
        """
        cls._settings = None
        return cls.load_config(config_path)


# =============================================================================
# Convenience Functions
# =============================================================================

def get_settings() -> Settings:
    """
    Get application settings (convenience function).

    Returns:
        Settings object
    """
    return ConfigManager.get_settings()
