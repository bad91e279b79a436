# tests/test_retrieval_service.py

import threading
import time
from unittest.mock import MagicMock

import numpy as np
import pytest

from docrag.application.retrieval_service import (
    NOT_FOUND_REPLY,
    SYSTEM_INSTRUCTION,
    RetrievalService,
)
from docrag.domain.errors import (
    CompletionServiceError,
    EmbeddingModelMismatchError,
    EmbeddingServiceError,
    IndexNotFoundError,
    ValidationError,
)
from docrag.infrastructure.index_repository import IndexRepository


TEXT = "AAAAABBBBBCCCCC"
VECTORS = {
    "AAAAA": [1.0, 0.0, 0.0],
    "AABBB": [0.6, 0.8, 0.0],
    "BBBBC": [0.0, 1.0, 0.0],
    "BCCCC": [0.0, 0.6, 0.8],
    "CCC": [0.0, 0.0, 1.0],
}


def _make_mock_engine(query_vector=(1.0, 0.0, 0.0)):
    engine = MagicMock()

    def embed(model_id, text):
        return np.array(VECTORS.get(text, query_vector))

    engine.embed.side_effect = embed
    return engine


def _make_mock_completer(answer: str = "AAAAA is the answer."):
    completer = MagicMock()
    completer.complete.return_value = answer
    return completer


@pytest.fixture
def repository(tmp_path) -> IndexRepository:
    return IndexRepository(tmp_path / "index.json")


def _indexed_service(repository, engine=None, completer=None) -> RetrievalService:
    service = RetrievalService(
        engine or _make_mock_engine(),
        completer or _make_mock_completer(),
        repository,
    )
    service.index_text(TEXT, source="letters.txt", chunk_size=5, chunk_overlap=2, embed_model="embed-v1")
    return service


# ── Indexing ──────────────────────────────────────────────────────────────────

def test_index_text_persists_every_segment_in_order(repository):
    engine = _make_mock_engine()
    service = RetrievalService(engine, _make_mock_completer(), repository)

    stats = service.index_text(TEXT, source="letters.txt", chunk_size=5, chunk_overlap=2, embed_model="embed-v1")

    assert stats.record_count == 5
    assert stats.embed_model == "embed-v1"
    assert stats.source == "letters.txt"

    index = repository.load()
    assert [r.text for r in index.records] == ["AAAAA", "AABBB", "BBBBC", "BCCCC", "CCC"]
    assert [r.record_id for r in index.records][0] == "letters.txt::chunk_1"
    assert index.metadata.chunk_size == 5
    assert index.metadata.chunk_overlap == 2
    assert index.metadata.embed_model == "embed-v1"
    assert engine.embed.call_count == 5
    assert all(call.args[0] == "embed-v1" for call in engine.embed.call_args_list)


def test_vectors_follow_their_segment_regardless_of_completion_order(repository):
    engine = MagicMock()

    def slow_first(model_id, text):
        # The first segment finishes last
        if text == "AAAAA":
            time.sleep(0.1)
        return np.array(VECTORS[text])

    engine.embed.side_effect = slow_first
    service = RetrievalService(engine, _make_mock_completer(), repository, max_workers=4)
    service.index_text(TEXT, source="letters.txt", chunk_size=5, chunk_overlap=2)

    for record in repository.load().records:
        assert record.embedding.tolist() == VECTORS[record.text]


def test_index_text_rejects_empty_text(repository):
    service = RetrievalService(_make_mock_engine(), _make_mock_completer(), repository)
    with pytest.raises(ValidationError, match="empty"):
        service.index_text("  \n\t ", source="x.txt")
    assert repository.exists() is False


def test_embedding_failure_aborts_without_touching_disk(repository):
    engine = MagicMock()

    def failing(model_id, text):
        if text == "BBBBC":
            raise EmbeddingServiceError("upstream down")
        return np.array(VECTORS[text])

    engine.embed.side_effect = failing
    service = RetrievalService(engine, _make_mock_completer(), repository)

    with pytest.raises(EmbeddingServiceError, match="upstream down"):
        service.index_text(TEXT, source="letters.txt", chunk_size=5, chunk_overlap=2)
    assert repository.exists() is False


def test_embedding_failure_keeps_previous_collection(repository):
    _indexed_service(repository)

    broken = MagicMock()
    broken.embed.return_value = np.array([])
    service = RetrievalService(broken, _make_mock_completer(), repository)

    with pytest.raises(EmbeddingServiceError, match="Malformed"):
        service.index_text("entirely new content", source="new.txt")

    assert repository.load().metadata.source == "letters.txt"


def test_non_numeric_vector_is_an_embedding_error(repository):
    engine = MagicMock()
    engine.embed.return_value = ["a", "b"]
    service = RetrievalService(engine, _make_mock_completer(), repository)

    with pytest.raises(EmbeddingServiceError):
        service.index_text("some text", source="x.txt")


@pytest.mark.parametrize("bad", [np.nan, np.inf, -np.inf])
def test_non_finite_vector_aborts_without_touching_disk(repository, bad):
    engine = MagicMock()
    engine.embed.return_value = np.array([bad, 1.0])
    service = RetrievalService(engine, _make_mock_completer(), repository)

    with pytest.raises(EmbeddingServiceError, match="Non-finite"):
        service.index_text("some text", source="x.txt")

    assert not repository.exists()


def test_non_finite_vector_keeps_previous_collection(repository):
    _indexed_service(repository)

    broken = MagicMock()
    broken.embed.return_value = np.array([np.inf, 0.0, 0.0])
    service = RetrievalService(broken, _make_mock_completer(), repository)

    with pytest.raises(EmbeddingServiceError):
        service.index_text("entirely new content", source="new.txt")

    index = repository.load()
    assert index.metadata.source == "letters.txt"
    assert index.count == 5


def test_index_file_uses_file_name_as_source(repository, tmp_path):
    doc = tmp_path / "notes.md"
    doc.write_text("AAAAA\r\n\r\n\r\n\r\nBBBBB", encoding="utf-8")
    service = RetrievalService(_make_mock_engine(), _make_mock_completer(), repository)

    stats = service.index_file(doc, chunk_size=100, chunk_overlap=0)

    assert stats.source == "notes.md"
    assert repository.load().records[0].text == "AAAAA\n\nBBBBB"


def test_concurrent_indexing_is_serialized(repository):
    active = 0
    peak = 0
    guard = threading.Lock()

    engine = MagicMock()

    def tracking(model_id, text):
        nonlocal active, peak
        with guard:
            active += 1
            peak = max(peak, active)
        time.sleep(0.01)
        with guard:
            active -= 1
        return np.array([1.0, 0.0])

    engine.embed.side_effect = tracking
    service = RetrievalService(engine, _make_mock_completer(), repository, max_workers=1)

    threads = [
        threading.Thread(target=service.index_text, args=(f"document {i} " * 20, f"doc{i}.txt"),
                         kwargs={"chunk_size": 40, "chunk_overlap": 0})
        for i in range(3)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    # One worker per operation, so overlap would only come from concurrent operations
    assert peak == 1
    assert repository.load().count > 0


# ── Answering ─────────────────────────────────────────────────────────────────

def test_ask_before_indexing_raises_index_not_found(repository):
    service = RetrievalService(_make_mock_engine(), _make_mock_completer(), repository)
    with pytest.raises(IndexNotFoundError):
        service.ask("What is A?")


def test_ask_returns_answer_with_rounded_ranked_sources(repository):
    completer = _make_mock_completer("  grounded answer ")
    service = _indexed_service(repository, completer=completer)

    answer = service.ask("Where is A?", top_k=2, chat_model="chat-v1")

    assert answer.answer == "  grounded answer "
    assert [s.record_id for s in answer.sources] == ["letters.txt::chunk_1", "letters.txt::chunk_2"]
    assert [s.score for s in answer.sources] == [1.0, 0.6]


def test_ask_builds_context_in_ranked_order(repository):
    completer = _make_mock_completer()
    service = _indexed_service(repository, completer=completer)

    service.ask("Where is A?", top_k=2, chat_model="chat-v1")

    model_id, system, user = completer.complete.call_args.args
    assert model_id == "chat-v1"
    assert system == SYSTEM_INSTRUCTION
    assert NOT_FOUND_REPLY in system
    assert user == (
        "CONTEXT:\n"
        "[#1 | letters.txt::chunk_1]\nAAAAA\n\n"
        "[#2 | letters.txt::chunk_2]\nAABBB\n\n"
        "QUESTION:\nWhere is A?\n\nAnswer:"
    )


def test_ask_embeds_question_with_collection_model(repository):
    engine = _make_mock_engine()
    service = _indexed_service(repository, engine=engine)
    engine.embed.reset_mock()

    service.ask("Where is C?")

    engine.embed.assert_called_once_with("embed-v1", "Where is C?")


def test_ask_rejects_a_different_embedding_model(repository):
    service = _indexed_service(repository)
    with pytest.raises(EmbeddingModelMismatchError, match="Re-index"):
        service.ask("Where is A?", embed_model="other-model")


def test_ask_rejects_empty_question_and_bad_top_k(repository):
    service = _indexed_service(repository)
    with pytest.raises(ValidationError, match="empty"):
        service.ask("   ")
    with pytest.raises(ValidationError, match="top_k"):
        service.ask("Where is A?", top_k=0)


def test_completion_failure_propagates(repository):
    completer = MagicMock()
    completer.complete.side_effect = CompletionServiceError("chat down")
    service = _indexed_service(repository, completer=completer)

    with pytest.raises(CompletionServiceError, match="chat down"):
        service.ask("Where is A?")


def test_non_finite_question_vector_is_an_embedding_error(repository):
    completer = _make_mock_completer()
    service = _indexed_service(
        repository,
        engine=_make_mock_engine(query_vector=(np.nan, 0.0, 0.0)),
        completer=completer,
    )

    with pytest.raises(EmbeddingServiceError, match="question"):
        service.ask("Where is A?")

    completer.complete.assert_not_called()
