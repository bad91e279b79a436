# docrag/domain/models.py

from dataclasses import dataclass, field
from datetime import datetime
from typing import List
import numpy as np


def make_record_id(source: str, sequence: int) -> str:
    return f"{source}::chunk_{sequence}"


@dataclass(frozen=True)
class Segment:
    """
    A contiguous slice of normalized source text, the unit of retrieval.
    """
    source: str
    sequence: int
    text: str

    @property
    def segment_id(self) -> str:
        return make_record_id(self.source, self.sequence)


@dataclass
class IndexedRecord:
    """
    A segment paired with its embedding. Owned by a single VectorIndex.
    """
    record_id: str
    source: str
    chunk: int
    text: str
    embedding: np.ndarray = field(repr=False)

    @classmethod
    def from_segment(cls, segment: Segment, embedding: np.ndarray) -> "IndexedRecord":
        return cls(
            record_id=segment.segment_id,
            source=segment.source,
            chunk=segment.sequence,
            text=segment.text,
            embedding=np.asarray(embedding, dtype=np.float64),
        )


@dataclass(frozen=True)
class CollectionMetadata:
    """
    How a collection was produced. `count` is not stored here; it is always
    derived from the records themselves.
    """
    created_at: datetime
    source: str
    embed_model: str
    chunk_size: int
    chunk_overlap: int


@dataclass
class ScoredMatch:
    """
    A record ranked against a query. Never persisted.
    """
    record: IndexedRecord
    score: float

    def __repr__(self) -> str:
        preview = self.record.text[:80].replace("\n", " ")
        return (
            f"ScoredMatch(score={self.score:.4f}, "
            f"id='{self.record.record_id}', "
            f"preview='{preview}...')"
        )


@dataclass(frozen=True)
class IndexStats:
    record_count: int
    embed_model: str
    source: str


@dataclass(frozen=True)
class SourceRef:
    record_id: str
    score: float


@dataclass
class Answer:
    answer: str
    sources: List[SourceRef] = field(default_factory=list)
