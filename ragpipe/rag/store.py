"""Namespaced vector index for semantic search.

Handles:
- Dimension validation on insert and search
- Per-namespace capacity limits
- Exact cosine-similarity k-nearest-neighbour search
- JSON persistence that round-trips search results exactly

Search is an exact O(n) scan over a cached float64 matrix, which is fast
enough for the ``MAX_ELEMENTS`` ceiling (tens of thousands per namespace).
"""
import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import structlog

from ragpipe import config
from ragpipe.errors import (
    CapacityExceededError,
    ConfigurationError,
    DimensionMismatchError,
    UnknownNamespaceError,
)
from ragpipe.rag.models import SearchResult

logger = structlog.get_logger()

FORMAT_VERSION = 1


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 if either has zero magnitude."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0:
        return 0.0
    return float(np.dot(a, b) / norm)


@dataclass(frozen=True)
class IndexEntry:
    id: str
    vector: np.ndarray
    metadata: Dict[str, Any]


class _Namespace:
    """Entries of one namespace, kept in insertion order."""

    def __init__(self):
        self.entries: Dict[str, IndexEntry] = {}
        self._matrix: Optional[np.ndarray] = None
        self._norms: Optional[np.ndarray] = None

    def invalidate(self) -> None:
        self._matrix = None
        self._norms = None

    def snapshot(self):
        """Return (entries, matrix, norms) consistent with each other."""
        entries = list(self.entries.values())
        if self._matrix is None:
            if entries:
                self._matrix = np.vstack([entry.vector for entry in entries])
            else:
                self._matrix = np.empty((0, 0), dtype=np.float64)
            self._norms = np.linalg.norm(self._matrix, axis=1) if entries else np.empty(0)
        return entries, self._matrix, self._norms


class VectorIndex:
    """In-memory vector index partitioned into namespaces."""

    def __init__(self, dim: Optional[int] = None, max_elements: Optional[int] = None):
        """Initialize the vector index.

        Args:
            dim: Vector dimension shared by every entry (default from config)
            max_elements: Maximum entries per namespace (default from config)

        Raises:
            ConfigurationError: If dim or max_elements is not positive
        """
        self.dim = config.EMBEDDING_DIM if dim is None else dim
        self.max_elements = config.MAX_ELEMENTS if max_elements is None else max_elements

        if self.dim <= 0:
            raise ConfigurationError(f"Dimension must be positive, got {self.dim}")
        if self.max_elements <= 0:
            raise ConfigurationError(
                f"max_elements must be positive, got {self.max_elements}"
            )

        self._namespaces: Dict[str, _Namespace] = {}
        self._lock = threading.Lock()

        logger.info(
            "vector_index_initialized",
            dimension=self.dim,
            max_elements=self.max_elements,
        )

    def _to_vector(self, vector: Sequence[float]) -> np.ndarray:
        array = np.array(vector, dtype=np.float64).reshape(-1)
        if array.shape[0] != self.dim:
            raise DimensionMismatchError(self.dim, array.shape[0])
        array.setflags(write=False)
        return array

    def insert(
        self,
        namespace: str,
        id: str,
        vector: Sequence[float],
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Store or overwrite the entry keyed by (namespace, id).

        Overwriting keeps the entry's original insertion position and never
        counts against capacity.

        Raises:
            DimensionMismatchError: If len(vector) != dim
            CapacityExceededError: If the namespace is full and id is new
        """
        array = self._to_vector(vector)
        entry = IndexEntry(id=id, vector=array, metadata=dict(metadata or {}))

        with self._lock:
            space = self._namespaces.get(namespace)
            if space is None:
                space = self._namespaces[namespace] = _Namespace()

            if id not in space.entries and len(space.entries) >= self.max_elements:
                raise CapacityExceededError(namespace, self.max_elements)

            space.entries[id] = entry
            space.invalidate()
            count = len(space.entries)

        logger.debug("vector_inserted", namespace=namespace, id=id, count=count)

    def delete(self, namespace: str, id: str) -> bool:
        """Remove an entry. No-op if absent.

        Returns:
            True if an entry was removed
        """
        with self._lock:
            space = self._namespaces.get(namespace)
            if space is None or id not in space.entries:
                return False
            del space.entries[id]
            space.invalidate()

        logger.debug("vector_deleted", namespace=namespace, id=id)
        return True

    def search(
        self, namespace: str, query_vector: Sequence[float], k: Optional[int] = None
    ) -> List[SearchResult]:
        """Find the k entries most similar to the query vector.

        Results are ordered by descending cosine similarity; ties keep
        insertion order (earlier wins).

        Args:
            namespace: Namespace to search
            query_vector: Query vector of length dim
            k: Maximum number of results (default from config)

        Returns:
            At most min(k, count(namespace)) SearchResult objects

        Raises:
            UnknownNamespaceError: If the namespace was never populated
            DimensionMismatchError: If len(query_vector) != dim
            ValueError: If k is negative
        """
        k = config.RETRIEVAL_TOP_K if k is None else k
        if k < 0:
            raise ValueError(f"k must not be negative, got {k}")

        query = self._to_vector(query_vector)

        with self._lock:
            space = self._namespaces.get(namespace)
            if space is None:
                raise UnknownNamespaceError(namespace)
            entries, matrix, norms = space.snapshot()

        if not entries or k == 0:
            return []

        query_norm = np.linalg.norm(query)
        denominators = norms * query_norm
        dots = matrix @ query
        similarities = np.divide(
            dots,
            denominators,
            out=np.zeros_like(dots),
            where=denominators != 0,
        )

        order = np.argsort(-similarities, kind="stable")[:k]
        results = [
            SearchResult(
                id=entries[i].id,
                similarity=float(similarities[i]),
                metadata=dict(entries[i].metadata),
            )
            for i in order
        ]

        logger.debug(
            "vector_search_completed",
            namespace=namespace,
            top_k=k,
            results_found=len(results),
        )

        return results

    def get(self, namespace: str, id: str) -> Optional[IndexEntry]:
        with self._lock:
            space = self._namespaces.get(namespace)
            return space.entries.get(id) if space else None

    def count(self, namespace: str) -> int:
        with self._lock:
            space = self._namespaces.get(namespace)
            return len(space.entries) if space else 0

    def namespaces(self) -> List[str]:
        with self._lock:
            return list(self._namespaces)

    def clear(self, namespace: Optional[str] = None) -> None:
        """Drop one namespace, or every namespace when none is given."""
        with self._lock:
            if namespace is None:
                self._namespaces.clear()
            else:
                self._namespaces.pop(namespace, None)

        logger.info("vector_index_cleared", namespace=namespace)

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the index.

        Returns:
            Dictionary with index statistics
        """
        with self._lock:
            counts = {name: len(space.entries) for name, space in self._namespaces.items()}

        return {
            "dimension": self.dim,
            "max_elements": self.max_elements,
            "namespace_count": len(counts),
            "vector_count": sum(counts.values()),
            "namespaces": counts,
        }

    def save(self, path: Path) -> None:
        """Persist the index as JSON, one record per (namespace, id).

        Raises:
            RuntimeError: If the file cannot be written
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with self._lock:
            payload = {
                "version": FORMAT_VERSION,
                "dim": self.dim,
                "max_elements": self.max_elements,
                "namespaces": {
                    name: [
                        {
                            "id": entry.id,
                            "vector": entry.vector.tolist(),
                            "metadata": entry.metadata,
                        }
                        for entry in space.entries.values()
                    ]
                    for name, space in self._namespaces.items()
                },
            }

        try:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(payload, f)
        except (OSError, TypeError, ValueError) as e:
            raise RuntimeError(f"Failed to save vector index: {e}") from e

        logger.info(
            "vector_index_saved",
            path=str(path),
            vector_count=sum(len(records) for records in payload["namespaces"].values()),
        )

    @classmethod
    def load(cls, path: Path) -> "VectorIndex":
        """Load an index previously written by ``save``.

        Raises:
            FileNotFoundError: If the file doesn't exist
            RuntimeError: If the file cannot be parsed
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Index not found: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise RuntimeError(f"Failed to load vector index: {e}") from e

        index = cls(dim=payload["dim"], max_elements=payload["max_elements"])
        for name, records in payload["namespaces"].items():
            space = index._namespaces[name] = _Namespace()
            for record in records:
                space.entries[record["id"]] = IndexEntry(
                    id=record["id"],
                    vector=index._to_vector(record["vector"]),
                    metadata=record["metadata"],
                )

        logger.info(
            "vector_index_loaded",
            path=str(path),
            dimension=index.dim,
            vector_count=index.get_stats()["vector_count"],
        )

        return index
