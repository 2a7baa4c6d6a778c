"""
Unit tests for the result cache and document source contracts.
"""

import pytest

from adaptive_clustering.schemas.data_models import Document
from adaptive_clustering.storage import result_cache
from adaptive_clustering.storage.result_cache import (
    DocumentSource,
    InMemoryResultCache,
    ResultCache,
    StaticDocumentSource,
    corpus_fingerprint,
)


DOCS = [Document(id="a", text="distributed ledger"), Document(id="b", text="clustering engine")]


@pytest.mark.unit
class TestCorpusFingerprint:
    """Test cache key derivation."""

    def test_stable(self):
        assert corpus_fingerprint(DOCS, 2) == corpus_fingerprint(list(DOCS), 2)
        assert len(corpus_fingerprint(DOCS)) == 64

    def test_order_sensitive(self):
        assert corpus_fingerprint(DOCS) != corpus_fingerprint(list(reversed(DOCS)))

    def test_k_sensitive(self):
        assert corpus_fingerprint(DOCS, None) != corpus_fingerprint(DOCS, 2)
        assert corpus_fingerprint(DOCS, 2) != corpus_fingerprint(DOCS, 3)

    def test_field_boundaries(self):
        left = [Document(id="ab", text="c")]
        right = [Document(id="a", text="bc")]
        assert corpus_fingerprint(left) != corpus_fingerprint(right)


@pytest.mark.unit
class TestInMemoryResultCache:
    """Test the in-process cache."""

    def test_protocol(self):
        assert isinstance(InMemoryResultCache(), ResultCache)

    def test_get_set_and_stats(self):
        cache = InMemoryResultCache()

        assert cache.get("missing") is None
        cache.set("key", {"clusters": []})

        assert cache.get("key") == {"clusters": []}
        assert len(cache) == 1
        assert cache.stats() == {"entries": 1, "hits": 1, "misses": 1, "max_entries": 128}

    def test_ttl_expiry(self, monkeypatch):
        now = [100.0]
        monkeypatch.setattr(result_cache.time, "monotonic", lambda: now[0])
        cache = InMemoryResultCache(ttl_seconds=10.0)

        cache.set("key", "bundle")
        now[0] = 105.0
        assert cache.get("key") == "bundle"

        now[0] = 111.0
        assert cache.get("key") is None
        assert len(cache) == 0
        assert cache.misses == 1

    def test_no_ttl(self, monkeypatch):
        now = [0.0]
        monkeypatch.setattr(result_cache.time, "monotonic", lambda: now[0])
        cache = InMemoryResultCache(ttl_seconds=None)

        cache.set("key", "bundle")
        now[0] = 1e9
        assert cache.get("key") == "bundle"

    def test_oldest_entry_evicted(self):
        cache = InMemoryResultCache(max_entries=2)

        cache.set("first", 1)
        cache.set("second", 2)
        cache.set("first", 10)
        cache.set("third", 3)

        assert cache.get("second") is None
        assert cache.get("first") == 10
        assert cache.get("third") == 3

    def test_clear(self):
        cache = InMemoryResultCache()
        cache.set("key", 1)
        cache.clear()
        assert len(cache) == 0

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            InMemoryResultCache(max_entries=0)


@pytest.mark.unit
class TestStaticDocumentSource:
    """Test the in-memory document source."""

    def test_iter_documents(self):
        source = StaticDocumentSource(DOCS)

        assert isinstance(source, DocumentSource)
        assert list(source.iter_documents()) == DOCS
        assert list(source.iter_documents()) == DOCS

    def test_copies_input(self):
        docs = list(DOCS)
        source = StaticDocumentSource(docs)
        docs.clear()
        assert len(list(source.iter_documents())) == 2
