# docrag/application/retrieval_service.py

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np

from docrag.domain.errors import (
    EmbeddingModelMismatchError,
    EmbeddingServiceError,
    EmptyCollectionError,
    ValidationError,
)
from docrag.domain.interfaces import CompletionPort, EmbeddingPort
from docrag.domain.models import (
    Answer,
    CollectionMetadata,
    IndexedRecord,
    IndexStats,
    ScoredMatch,
    Segment,
    SourceRef,
)
from docrag.infrastructure.document_loader import DocumentLoader
from docrag.infrastructure.index_repository import IndexRepository
from docrag.infrastructure.segmenter import (
    DEFAULT_CHUNK_OVERLAP,
    DEFAULT_CHUNK_SIZE,
    Segmenter,
)
from docrag.infrastructure.vector_index import VectorIndex


DEFAULT_EMBED_MODEL = "nomic-embed-text"
DEFAULT_CHAT_MODEL = "llama3.2"
DEFAULT_TOP_K = 5
DEFAULT_EMBED_WORKERS = 4
SCORE_DECIMALS = 4

NOT_FOUND_REPLY = "I cannot find this information in the document."

SYSTEM_INSTRUCTION = " ".join([
    "You are a document question-answering assistant.",
    "Answer ONLY from the CONTEXT provided below.",
    f"If the information is not in the context, say clearly: '{NOT_FOUND_REPLY}'",
    "At the end of your answer, add a 'Sources' section listing the IDs of the chunks you used.",
])


def build_context(matches: List[ScoredMatch]) -> str:
    """Render ranked matches as labelled blocks, best match first."""
    return "\n\n".join(
        f"[#{rank} | {match.record.record_id}]\n{match.record.text}"
        for rank, match in enumerate(matches, start=1)
    )


def build_user_prompt(context: str, question: str) -> str:
    return f"CONTEXT:\n{context}\n\nQUESTION:\n{question}\n\nAnswer:"


class RetrievalService:
    """
    Core use cases over one index location:
    - index_text(): segment → embed → build → persist (replaces the collection)
    - ask():        load → embed question → rank → complete

    Indexing is all-or-nothing: any failure before the final swap leaves the
    previously persisted collection untouched.
    """

    def __init__(
        self,
        embedding_engine: EmbeddingPort,
        completion_engine: CompletionPort,
        repository: IndexRepository,
        max_workers: int = DEFAULT_EMBED_WORKERS,
    ):
        if max_workers < 1:
            raise ValidationError(f"max_workers must be at least 1, got {max_workers}.")
        self._embedding_engine = embedding_engine
        self._completion_engine = completion_engine
        self._repository = repository
        self._max_workers = max_workers

    @property
    def repository(self) -> IndexRepository:
        return self._repository

    # ─── Indexing ─────────────────────────────────────────────────────────────

    def index_text(
        self,
        text: str,
        source: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
        embed_model: str = DEFAULT_EMBED_MODEL,
    ) -> IndexStats:
        if not text or not text.strip():
            raise ValidationError("Text cannot be empty: nothing to index.")
        if not source or not source.strip():
            raise ValidationError("Source name cannot be empty.")

        segmenter = Segmenter(chunk_size=chunk_size, chunk_overlap=chunk_overlap)

        with self._repository.indexing():
            segments = segmenter.segment(text, source=source)
            if not segments:
                raise EmptyCollectionError(f"Segmentation of '{source}' produced no segments.")

            print(f"[RetrievalService] Embedding {len(segments)} segments "
                  f"with '{embed_model}' ({self._max_workers} workers)...")
            vectors = self._embed_segments(segments, embed_model)

            metadata = CollectionMetadata(
                created_at=datetime.now(timezone.utc),
                source=source,
                embed_model=embed_model,
                chunk_size=chunk_size,
                chunk_overlap=chunk_overlap,
            )
            index = VectorIndex.build(
                (IndexedRecord.from_segment(s, vectors[s.sequence]) for s in segments),
                metadata,
            )
            self._repository.save(index)

        print(f"[RetrievalService] Index built successfully: {index.count} records.")
        return IndexStats(record_count=index.count, embed_model=embed_model, source=source)

    def index_file(
        self,
        file_path: str | Path,
        source: Optional[str] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
        embed_model: str = DEFAULT_EMBED_MODEL,
    ) -> IndexStats:
        file_path = Path(file_path)
        text = DocumentLoader().load_text(file_path)
        return self.index_text(
            text,
            source=source or file_path.name,
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            embed_model=embed_model,
        )

    def _embed_segments(self, segments: List[Segment], embed_model: str) -> Dict[int, np.ndarray]:
        """
        Embed segments concurrently. Results are keyed by sequence number,
        so completion order does not matter.
        """
        vectors: Dict[int, np.ndarray] = {}
        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            futures = {
                executor.submit(self._embedding_engine.embed, embed_model, segment.text): segment
                for segment in segments
            }
            try:
                # Iterating in submission order surfaces the first failing segment
                for future, segment in futures.items():
                    vectors[segment.sequence] = self._check_vector(future.result(), segment.segment_id)
            except BaseException:
                for future in futures:
                    future.cancel()
                raise
        return vectors

    @staticmethod
    def _check_vector(raw, label: str) -> np.ndarray:
        try:
            vector = np.asarray(raw, dtype=np.float64)
        except (TypeError, ValueError) as error:
            raise EmbeddingServiceError(
                f"Non-numeric vector for '{label}': {error}"
            ) from error
        if vector.ndim != 1 or vector.size == 0:
            raise EmbeddingServiceError(
                f"Malformed vector for '{label}' (shape {vector.shape})."
            )
        if not np.all(np.isfinite(vector)):
            raise EmbeddingServiceError(f"Non-finite values in vector for '{label}'.")
        return vector

    # ─── Answering ────────────────────────────────────────────────────────────

    def ask(
        self,
        question: str,
        top_k: int = DEFAULT_TOP_K,
        chat_model: str = DEFAULT_CHAT_MODEL,
        embed_model: Optional[str] = None,
    ) -> Answer:
        question = (question or "").strip()
        if not question:
            raise ValidationError("Question cannot be empty.")
        if top_k < 1:
            raise ValidationError(f"top_k must be at least 1, got {top_k}.")

        index = self._repository.load()
        collection_model = index.metadata.embed_model
        if embed_model is not None and embed_model != collection_model:
            raise EmbeddingModelMismatchError(
                f"Index was built with '{collection_model}' but '{embed_model}' was requested. "
                f"Re-index the document to switch embedding models."
            )

        query_vector = self._check_vector(
            self._embedding_engine.embed(collection_model, question), "question"
        )
        matches = index.rank_by_similarity(query_vector, top_k)

        context = build_context(matches)
        answer = self._completion_engine.complete(
            chat_model,
            SYSTEM_INSTRUCTION,
            build_user_prompt(context, question),
        )

        print(f"[RetrievalService] Answer generated from {len(matches)} sources.")
        return Answer(
            answer=answer,
            sources=[
                SourceRef(record_id=m.record.record_id, score=round(m.score, SCORE_DECIMALS))
                for m in matches
            ],
        )
