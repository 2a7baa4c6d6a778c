"""
Result Cache

Collaborator contracts at the edge of the engine:
- DocumentSource: anything that can yield documents to cluster
- ResultCache: key -> run result store consulted by the orchestrator

Plus corpus_fingerprint() for cache keys and an in-process reference
cache with TTL expiry and a capacity bound (oldest entry evicted first).
"""

import hashlib
import threading
import time
from collections import OrderedDict
from typing import Any, Iterable, Iterator, Optional, Protocol, Sequence, runtime_checkable

from adaptive_clustering.schemas.data_models import Document
from adaptive_clustering.utils.advanced_logging import get_logger


logger = get_logger(__name__)


# =============================================================================
# Protocols
# =============================================================================


@runtime_checkable
class DocumentSource(Protocol):
    """Supplies the documents of a run."""

    def iter_documents(self) -> Iterator[Document]:
        ...


@runtime_checkable
class ResultCache(Protocol):
    """Stores finished run results by key."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, bundle: Any) -> None:
        ...


# =============================================================================
# Fingerprinting
# =============================================================================


def corpus_fingerprint(documents: Iterable[Document], target_k: Optional[int] = None) -> str:
    """
    SHA-256 over document ids, texts and the requested k.

    Fields are length-prefixed so ("ab", "c") and ("a", "bc") differ.
    """
    digest = hashlib.sha256()
    for doc in documents:
        for value in (doc.id, doc.text):
            encoded = value.encode("utf-8")
            digest.update(len(encoded).to_bytes(8, "big"))
            digest.update(encoded)
    digest.update(f"k={target_k}".encode("utf-8"))
    return digest.hexdigest()


# =============================================================================
# In-memory implementation
# =============================================================================


class InMemoryResultCache:
    """
    Thread-safe LRU-style cache with per-entry TTL.

    Args:
        ttl_seconds: Entry lifetime (None keeps entries until evicted)
        max_entries: Capacity; the least recently written entry goes first
    """

    def __init__(self, ttl_seconds: Optional[float] = 3600.0, max_entries: int = 128):
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None

            stored_at, bundle = entry
            if self.ttl_seconds is not None and time.monotonic() - stored_at > self.ttl_seconds:
                del self._entries[key]
                self.misses += 1
                logger.debug("cache_entry_expired", key=key[:12])
                return None

            self.hits += 1
            return bundle

    def set(self, key: str, bundle: Any) -> None:
        with self._lock:
            self._entries[key] = (time.monotonic(), bundle)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("cache_entry_evicted", key=evicted[:12])

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict[str, Any]:
        return {
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "max_entries": self.max_entries,
        }


class StaticDocumentSource:
    """DocumentSource over an in-memory sequence."""

    def __init__(self, documents: Sequence[Document]):
        self._documents = list(documents)

    def iter_documents(self) -> Iterator[Document]:
        return iter(self._documents)
