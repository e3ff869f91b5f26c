"""Per-run document cache that skips redundant embedding calls.

The cache is owned by one ingestion run and passed explicitly to the
pipeline. Use it as a context manager to clear it when the run ends, so
hits never leak from one corpus into another.
"""
import threading
from typing import Dict, Optional

import structlog

from ragpipe.rag.models import Embedding

logger = structlog.get_logger()


class DocumentCache:
    """Chunk id -> embedding lookup. Purely an optimisation."""

    def __init__(self):
        self._entries: Dict[str, Embedding] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def has(self, id: str) -> bool:
        with self._lock:
            return id in self._entries

    def get(self, id: str) -> Optional[Embedding]:
        with self._lock:
            embedding = self._entries.get(id)
            if embedding is None:
                self.misses += 1
            else:
                self.hits += 1

        logger.debug("document_cache_lookup", id=id, hit=embedding is not None)
        return embedding

    def put(self, id: str, embedding: Embedding) -> None:
        with self._lock:
            self._entries[id] = embedding

    def clear(self) -> None:
        with self._lock:
            size = len(self._entries)
            self._entries.clear()
            self.hits = 0
            self.misses = 0

        logger.info("document_cache_cleared", entries=size)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __enter__(self) -> "DocumentCache":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.clear()
