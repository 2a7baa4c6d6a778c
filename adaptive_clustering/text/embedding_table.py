"""
Embedding Table.

Caller-owned store of per-term pseudo-embeddings and term-frequency slots.

Each term's embedding is drawn uniformly from [-1, 1] by a generator seeded
with the table seed and a stable hash of the term, so two tables built with
the same seed agree on every term regardless of the order terms are seen.
TF slots are handed out first-come: the first D distinct terms get a slot
and later terms are truncated from the TF channel.

Writes go through a single lock. Call freeze() after a warm-up pass to make
the table read-only while batches are vectorized in parallel.
"""

import hashlib
import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import numpy as np

from adaptive_clustering.utils.error_handling import ConfigurationError

logger = logging.getLogger(__name__)


class EmbeddingTable:
    """Persistent term -> vector mapping shared by every Vectorizer call."""

    def __init__(self, dimension: int = 100, seed: int = 42):
        """
        Initialize an empty table.

        Args:
            dimension: Length of every embedding and of the TF channel
            seed: Seed mixed into every term's generator
        """
        if dimension < 2:
            raise ConfigurationError(f"dimension must be >= 2, got {dimension}")

        self.dimension = dimension
        self.seed = seed
        self._vectors: Dict[str, np.ndarray] = {}
        self._slots: Dict[str, int] = {}
        self._lock = threading.Lock()
        self._frozen = False

    def _generate(self, term: str) -> np.ndarray:
        digest = hashlib.blake2b(term.encode("utf-8"), digest_size=8).digest()
        term_seed = int.from_bytes(digest, "little")
        rng = np.random.default_rng([self.seed, term_seed])
        vector = rng.uniform(-1.0, 1.0, self.dimension)
        vector.setflags(write=False)
        return vector

    def get(self, term: str) -> np.ndarray:
        """
        Embedding of a term, creating and storing it on first use.

        A frozen table still answers for unknown terms (the vector is
        deterministic) but does not store them.
        """
        vector = self._vectors.get(term)
        if vector is not None:
            return vector

        vector = self._generate(term)
        if self._frozen:
            return vector

        with self._lock:
            return self._vectors.setdefault(term, vector)

    def slot(self, term: str) -> Optional[int]:
        """TF slot of a term, or None once all D slots are taken."""
        slot = self._slots.get(term)
        if slot is not None or self._frozen:
            return slot

        with self._lock:
            if term in self._slots:
                return self._slots[term]
            if len(self._slots) >= self.dimension:
                return None
            self._slots[term] = len(self._slots)
            return self._slots[term]

    def warm(self, terms: Iterable[str]) -> None:
        """Register terms in order so slots and vectors exist before a parallel run."""
        for term in terms:
            self.get(term)
            self.slot(term)

    def freeze(self) -> None:
        """Make the table read-only."""
        self._frozen = True
        logger.debug(f"Embedding table frozen with {len(self._vectors)} terms")

    def unfreeze(self) -> None:
        """Allow writes again (build phase)."""
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def vocabulary(self) -> List[str]:
        """Terms holding a TF slot, in slot order."""
        return sorted(self._slots, key=self._slots.__getitem__)

    def __len__(self) -> int:
        return len(self._vectors)

    def __contains__(self, term: object) -> bool:
        return term in self._vectors

    def save(self, path: Union[str, Path]) -> None:
        """Write the table to an .npz archive."""
        terms = list(self._vectors)
        vectors = (
            np.stack([self._vectors[t] for t in terms])
            if terms else np.zeros((0, self.dimension))
        )
        np.savez_compressed(
            path,
            dimension=np.array(self.dimension),
            seed=np.array(self.seed),
            terms=np.array(terms, dtype=str),
            vectors=vectors,
            slot_terms=np.array(self.vocabulary, dtype=str),
        )
        logger.info(f"Saved embedding table with {len(terms)} terms to {path}")

    @classmethod
    def load(cls, path: Union[str, Path]) -> "EmbeddingTable":
        """Read a table written by save()."""
        with np.load(path) as archive:
            table = cls(dimension=int(archive["dimension"]), seed=int(archive["seed"]))
            for term, vector in zip(archive["terms"].tolist(), archive["vectors"]):
                vector = np.array(vector, dtype=float)
                vector.setflags(write=False)
                table._vectors[term] = vector
            for index, term in enumerate(archive["slot_terms"].tolist()):
                table._slots[term] = index
        return table
