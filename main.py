# main.py

import argparse
import sys
from typing import List, Optional

from docrag.application.retrieval_service import DEFAULT_EMBED_MODEL, RetrievalService
from docrag.config import Settings, load_settings
from docrag.domain.errors import DocRagError
from docrag.domain.interfaces import EmbeddingPort
from docrag.infrastructure.index_repository import IndexRepository
from docrag.infrastructure.ollama_client import OllamaClient
from docrag.interface.cli import (
    ask_continue,
    display_answer,
    display_error,
    display_index_stats,
    display_status,
    display_welcome_banner,
    prompt_for_question,
    remediation_hint,
)


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docrag",
        description="Index a document and ask questions answered from its content.",
    )
    parser.add_argument(
        "--index-path",
        default=settings.INDEX_PATH,
        help=f"Index file location (default: {settings.INDEX_PATH})",
    )
    subcommands = parser.add_subparsers(dest="command", required=True)

    index_cmd = subcommands.add_parser("index", help="Index a .txt, .md or .pdf file")
    index_cmd.add_argument("file")
    index_cmd.add_argument("--source", help="Source name stored with each chunk (default: file name)")
    index_cmd.add_argument("--chunk-size", type=int, default=settings.CHUNK_SIZE)
    index_cmd.add_argument("--overlap", type=int, default=settings.CHUNK_OVERLAP)
    index_cmd.add_argument("--embed-model", default=resolve_embed_model(settings))

    ask_cmd = subcommands.add_parser("ask", help="Ask a question (interactive when omitted)")
    ask_cmd.add_argument("question", nargs="?")
    ask_cmd.add_argument("--top-k", type=int, default=settings.TOP_K)
    ask_cmd.add_argument("--chat-model", default=settings.CHAT_MODEL)
    ask_cmd.add_argument(
        "--embed-model",
        default=None,
        help="Must match the model the index was built with (default: the index's model)",
    )

    subcommands.add_parser("status", help="Show what is currently indexed")
    return parser


def resolve_embed_model(settings: Settings) -> str:
    if settings.EMBED_MODEL:
        return settings.EMBED_MODEL
    if settings.EMBEDDING_BACKEND == "sentence-transformers":
        from docrag.infrastructure.embedding_engine import DEFAULT_MODEL_NAME
        return DEFAULT_MODEL_NAME
    return DEFAULT_EMBED_MODEL


def build_embedding_engine(settings: Settings, ollama: OllamaClient) -> EmbeddingPort:
    if settings.EMBEDDING_BACKEND == "sentence-transformers":
        # Heavy import; only pay for it when the local backend is selected
        from docrag.infrastructure.embedding_engine import SentenceTransformerEngine
        return SentenceTransformerEngine()
    return ollama


def main(argv: Optional[List[str]] = None) -> int:
    settings = load_settings()
    args = build_parser(settings).parse_args(argv)

    # ── 1. Initialize infrastructure ─────────────────────────────────────────
    try:
        repository = IndexRepository(args.index_path)
    except DocRagError as error:
        display_error(str(error))
        return 1

    with OllamaClient(base_url=settings.OLLAMA_URL, timeout=settings.REQUEST_TIMEOUT) as ollama:
        service = RetrievalService(
            embedding_engine=build_embedding_engine(settings, ollama),
            completion_engine=ollama,
            repository=repository,
            max_workers=settings.EMBED_WORKERS,
        )

        # ── 2. Dispatch ──────────────────────────────────────────────────────
        try:
            if args.command == "index":
                stats = service.index_file(
                    args.file,
                    source=args.source,
                    chunk_size=args.chunk_size,
                    chunk_overlap=args.overlap,
                    embed_model=args.embed_model,
                )
                display_index_stats(stats)
            elif args.command == "status":
                display_status(repository.load(), str(repository.path))
            elif args.question:
                answer = service.ask(
                    args.question,
                    top_k=args.top_k,
                    chat_model=args.chat_model,
                    embed_model=args.embed_model,
                )
                display_answer(args.question, answer)
            else:
                _interactive_loop(service, args)
        except DocRagError as error:
            display_error(str(error), remediation_hint(error))
            return 1

    return 0


def _interactive_loop(service: RetrievalService, args: argparse.Namespace) -> None:
    """Question loop; failed questions are reported and the loop continues."""
    display_welcome_banner()
    display_status(service.repository.load(), str(service.repository.path))

    while True:
        question = prompt_for_question()
        try:
            answer = service.ask(
                question,
                top_k=args.top_k,
                chat_model=args.chat_model,
                embed_model=args.embed_model,
            )
            display_answer(question, answer)
        except DocRagError as error:
            display_error(str(error), remediation_hint(error))

        if not ask_continue():
            break


if __name__ == "__main__":
    sys.exit(main())
