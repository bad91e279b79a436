# docrag/infrastructure/vector_index.py

import numpy as np
from typing import Iterable, List, Sequence, Tuple

from pydantic import ValidationError as SchemaValidationError

from docrag.domain.errors import (
    CorruptIndexError,
    DimensionMismatchError,
    EmptyCollectionError,
)
from docrag.domain.models import CollectionMetadata, IndexedRecord, ScoredMatch
from docrag.infrastructure.index_schema import IndexDocumentSchema, RecordSchema


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity over the first min(len(a), len(b)) dimensions.
    A zero vector on either side scores 0 against everything.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    length = min(len(a), len(b))
    a, b = a[:length], b[:length]

    denominator = np.sqrt(a @ a) * np.sqrt(b @ b)
    if denominator == 0:
        return 0.0
    return float(np.clip((a @ b) / denominator, -1.0, 1.0))


class VectorIndex:
    """
    Flat, ordered collection of indexed records scanned linearly on every
    query. Built once in a batch, then treated as immutable; re-indexing
    replaces the whole collection.
    """

    def __init__(self, records: List[IndexedRecord], metadata: CollectionMetadata):
        self._records = records
        self._metadata = metadata

    @classmethod
    def build(
        cls,
        records: Iterable[IndexedRecord],
        metadata: CollectionMetadata,
    ) -> "VectorIndex":
        records = list(records)
        if not records:
            raise EmptyCollectionError(
                "Cannot build an index with zero records: there is nothing to search."
            )

        print(f"[VectorIndex] Built collection of {len(records)} records "
              f"from '{metadata.source}' (model: {metadata.embed_model})")
        return cls(records, metadata)

    @property
    def metadata(self) -> CollectionMetadata:
        return self._metadata

    @property
    def records(self) -> Tuple[IndexedRecord, ...]:
        return tuple(self._records)

    @property
    def count(self) -> int:
        return len(self._records)

    def __len__(self) -> int:
        return len(self._records)

    # ─── Retrieval ────────────────────────────────────────────────────────────

    def rank_by_similarity(self, query_vector: Sequence[float], k: int) -> List[ScoredMatch]:
        """
        Score every record against the query and return the best `k`,
        highest score first. Equal scores keep ascending chunk order so
        results are deterministic.
        """
        if k <= 0:
            return []

        query = np.asarray(query_vector, dtype=np.float64)
        scores = np.empty(len(self._records), dtype=np.float64)

        for i, record in enumerate(self._records):
            if min(len(query), len(record.embedding)) == 0:
                raise DimensionMismatchError(
                    f"Query vector ({len(query)} dims) and record '{record.record_id}' "
                    f"({len(record.embedding)} dims) have no dimensions in common."
                )
            scores[i] = cosine_similarity(query, record.embedding)

        chunks = np.array([record.chunk for record in self._records])
        # lexsort sorts by the last key first: score descending, then chunk ascending
        order = np.lexsort((chunks, -scores))[:k]

        return [
            ScoredMatch(record=self._records[i], score=float(scores[i]))
            for i in order
        ]

    # ─── Persistence ──────────────────────────────────────────────────────────

    def serialize(self) -> bytes:
        document = IndexDocumentSchema(
            created_at=self._metadata.created_at,
            source=self._metadata.source,
            embed_model=self._metadata.embed_model,
            chunk_size=self._metadata.chunk_size,
            chunk_overlap=self._metadata.chunk_overlap,
            count=len(self._records),
            items=[
                RecordSchema(
                    id=record.record_id,
                    source=record.source,
                    chunk=record.chunk,
                    text=record.text,
                    embedding=record.embedding.tolist(),
                )
                for record in self._records
            ],
        )
        return document.model_dump_json(by_alias=True, indent=2).encode("utf-8")

    @classmethod
    def deserialize(cls, data: bytes) -> "VectorIndex":
        try:
            document = IndexDocumentSchema.model_validate_json(data)
        except SchemaValidationError as error:
            raise CorruptIndexError(
                f"Persisted index failed validation ({error.error_count()} problem(s)):\n{error}"
            ) from error

        metadata = CollectionMetadata(
            created_at=document.created_at,
            source=document.source,
            embed_model=document.embed_model,
            chunk_size=document.chunk_size,
            chunk_overlap=document.chunk_overlap,
        )
        records = [
            IndexedRecord(
                record_id=item.id,
                source=item.source,
                chunk=item.chunk,
                text=item.text,
                embedding=np.asarray(item.embedding, dtype=np.float64),
            )
            for item in document.items
        ]
        if not records:
            raise EmptyCollectionError(
                f"Index for '{document.source}' exists but contains zero records."
            )
        return cls(records, metadata)
