"""
Pytest configuration and shared fixtures for the adaptive clustering tests.

This module provides:
- Two-topic document corpora
- Seeded vectors with known cluster structure
- Embedding table, vectorizer and settings fixtures
- Orchestrator fixtures
"""

import logging
import os
from typing import List

import numpy as np
import pytest
import structlog

from adaptive_clustering.config.settings_loader import ConfigManager, Settings
from adaptive_clustering.core.orchestrator import AdaptiveClusteringOrchestrator
from adaptive_clustering.schemas.data_models import Document
from adaptive_clustering.text.embedding_table import EmbeddingTable
from adaptive_clustering.text.text_processor import TextProcessor
from adaptive_clustering.text.vectorizer import Vectorizer

# Set test environment variables
os.environ["TESTING"] = "true"

DIMENSION = 100

CLUSTERING_TEXTS = [
    "Adaptive clustering algorithm groups documents by similarity quickly",
    "Adaptive clustering algorithm groups documents by similarity reliably",
    "Adaptive clustering algorithm groups documents by similarity efficiently",
    "Adaptive clustering algorithm groups documents by similarity accurately",
    "Adaptive clustering algorithm groups documents by similarity robustly",
    "Adaptive clustering algorithm groups documents by similarity incrementally",
]

LEDGER_TEXTS = [
    "Distributed ledger consensus protocol secures blockchain network today",
    "Distributed ledger consensus protocol secures blockchain network globally",
    "Distributed ledger consensus protocol secures blockchain network rapidly",
    "Distributed ledger consensus protocol secures blockchain network openly",
    "Distributed ledger consensus protocol secures blockchain network fairly",
    "Distributed ledger consensus protocol secures blockchain network safely",
]


# =============================================================================
# Test Data Generators
# =============================================================================

@pytest.fixture
def two_topic_documents() -> List[Document]:
    """Six clustering documents (c0..c5) followed by six ledger documents (l0..l5)."""
    docs = [Document(id=f"c{i}", text=text) for i, text in enumerate(CLUSTERING_TEXTS)]
    docs += [Document(id=f"l{i}", text=text) for i, text in enumerate(LEDGER_TEXTS)]
    return docs


@pytest.fixture
def interleaved_documents(two_topic_documents) -> List[Document]:
    """Two-topic corpus alternating c0, l0, c1, l1, ..."""
    clustering = two_topic_documents[:6]
    ledger = two_topic_documents[6:]
    return [doc for pair in zip(clustering, ledger) for doc in pair]


@pytest.fixture
def clustered_vectors():
    """
    Generate vectors with clear cluster structure.

    Creates 3 distinct clusters of 20 points around the first three axes.
    """
    rng = np.random.default_rng(42)
    n_per_cluster = 20
    dim = 16

    vectors = []
    labels = []
    for cluster in range(3):
        center = np.zeros(dim)
        center[cluster] = 1.0
        vectors.append(center + rng.normal(scale=0.05, size=(n_per_cluster, dim)))
        labels.extend([cluster] * n_per_cluster)

    return np.vstack(vectors), np.array(labels)


@pytest.fixture
def clustered_ids(clustered_vectors) -> List[str]:
    vectors, _ = clustered_vectors
    return [f"doc_{i:03d}" for i in range(len(vectors))]


# =============================================================================
# Component Fixtures
# =============================================================================

@pytest.fixture
def settings() -> Settings:
    """Built-in default settings."""
    return Settings()


@pytest.fixture
def embedding_table() -> EmbeddingTable:
    return EmbeddingTable(dimension=DIMENSION, seed=42)


@pytest.fixture
def text_processor() -> TextProcessor:
    return TextProcessor()


@pytest.fixture
def vectorizer(embedding_table) -> Vectorizer:
    return Vectorizer(embedding_table)


@pytest.fixture
def orchestrator(embedding_table, settings) -> AdaptiveClusteringOrchestrator:
    return AdaptiveClusteringOrchestrator(embedding_table, settings)


@pytest.fixture(autouse=True)
def reset_config_manager():
    """Every test starts without cached settings."""
    ConfigManager._settings = None
    yield
    ConfigManager._settings = None


# =============================================================================
# Helpers
# =============================================================================

@pytest.fixture
def purity():
    """Share of clustered documents whose cluster majority topic (first id letter) matches their own."""
    return topic_purity


def topic_purity(clusters, topic_of=lambda doc_id: doc_id[0]) -> float:
    total = 0
    agreeing = 0
    for cluster in clusters:
        if cluster.is_noise:
            continue
        topics = [topic_of(d) for d in cluster.member_document_ids]
        majority = max(set(topics), key=topics.count)
        agreeing += topics.count(majority)
        total += len(topics)
    return agreeing / total if total else 0.0


@pytest.fixture
def restore_logging():
    """Undo configure_logging side effects on the root logger and structlog."""
    root_handlers = list(logging.root.handlers)
    root_level = logging.root.level
    yield
    for handler in logging.root.handlers[:]:
        if handler not in root_handlers:
            logging.root.removeHandler(handler)
            handler.close()
    logging.root.setLevel(root_level)
    structlog.reset_defaults()
