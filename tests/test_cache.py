"""Unit tests for the per-run document cache."""
import pytest

from ragpipe.rag.cache import DocumentCache
from ragpipe.rag.models import Embedding


def make_embedding(id: str) -> Embedding:
    return Embedding(id=id, content="text", metadata={}, vector=(1.0, 0.0))


@pytest.mark.unit
class TestDocumentCache:
    def test_put_get_has(self):
        cache = DocumentCache()
        embedding = make_embedding("doc_0")

        assert cache.has("doc_0") is False
        cache.put("doc_0", embedding)

        assert cache.has("doc_0") is True
        assert cache.get("doc_0") is embedding
        assert len(cache) == 1

    def test_missing_entry(self):
        cache = DocumentCache()
        assert cache.get("nope") is None
        assert cache.misses == 1

    def test_hit_and_miss_counters(self):
        cache = DocumentCache()
        cache.put("a", make_embedding("a"))
        cache.get("a")
        cache.get("a")
        cache.get("b")
        assert (cache.hits, cache.misses) == (2, 1)

    def test_clear(self):
        cache = DocumentCache()
        cache.put("a", make_embedding("a"))
        cache.clear()
        assert cache.has("a") is False
        assert len(cache) == 0

    def test_context_manager_clears_on_exit(self):
        with DocumentCache() as cache:
            cache.put("a", make_embedding("a"))
            assert cache.has("a")
        assert len(cache) == 0
