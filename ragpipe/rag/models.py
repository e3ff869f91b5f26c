"""Data model shared by the pipeline components."""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Document:
    """A loaded source document. Immutable once created."""

    id: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Chunk:
    """A bounded slice of one document, the unit of embedding and retrieval."""

    id: str
    document_id: str
    chunk_index: int
    content: str
    char_start: int
    char_end: int
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Embedding:
    """A chunk together with its vector."""

    id: str
    content: str
    metadata: Dict[str, Any]
    vector: Tuple[float, ...]
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class SearchResult:
    """A single nearest-neighbour hit."""

    id: str
    similarity: float
    metadata: Dict[str, Any]

    @property
    def content(self) -> str:
        return self.metadata.get("content", "")


class ChunkStatus(str, Enum):
    """Outcome of ingesting one chunk."""

    INDEXED = "indexed"
    CACHED = "cached"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class IngestProgress:
    """Progress event yielded once per chunk during ingestion."""

    processed: int
    total: int
    chunk_id: str
    document_id: str
    status: ChunkStatus

    @property
    def percent(self) -> float:
        return (self.processed / self.total) * 100 if self.total else 100.0


@dataclass
class IngestStats:
    """Counters for one ingestion run."""

    documents_processed: int = 0
    documents_failed: int = 0
    chunks_created: int = 0
    chunks_indexed: int = 0
    chunks_cached: int = 0
    chunks_skipped: int = 0
    chunks_failed: int = 0
    embeddings_generated: int = 0

    def to_dict(self) -> Dict[str, int]:
        return dict(self.__dict__)


@dataclass(frozen=True)
class Answer:
    """A generated answer and the sources it was grounded on."""

    question: str
    text: str
    sources: List[SearchResult]
    used_context: bool


class EvaluationState(str, Enum):
    """Per-question evaluation lifecycle."""

    PENDING = "PENDING"
    ANSWERED = "ANSWERED"
    JUDGED = "JUDGED"
    PASS = "PASS"
    FAIL = "FAIL"


@dataclass(frozen=True)
class EvaluationCase:
    question: str
    expected_answer: str


@dataclass(frozen=True)
class EvaluationRecord:
    """Outcome of one evaluated question. Never mutated after creation."""

    question: str
    generated_answer: str
    expected_answer: str
    passed: bool
    verdict: Optional[str] = None
    error: Optional[str] = None

    @property
    def state(self) -> EvaluationState:
        return EvaluationState.PASS if self.passed else EvaluationState.FAIL


@dataclass(frozen=True)
class EvaluationReport:
    """Ordered evaluation records with aggregate counts."""

    records: List[EvaluationRecord]

    @property
    def total(self) -> int:
        return len(self.records)

    @property
    def passed(self) -> int:
        return sum(1 for record in self.records if record.passed)

    @property
    def failed(self) -> int:
        return self.total - self.passed

    @property
    def pass_rate(self) -> float:
        return self.passed / self.total if self.total else 0.0
