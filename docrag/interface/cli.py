# docrag/interface/cli.py

from typing import Optional
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.prompt import Prompt
from rich import box
from rich.text import Text
from rich.markup import escape

from docrag.domain.errors import (
    CompletionServiceError,
    CorruptIndexError,
    DimensionMismatchError,
    DocRagError,
    EmbeddingModelMismatchError,
    EmbeddingServiceError,
    EmptyCollectionError,
    IndexNotFoundError,
)
from docrag.domain.models import Answer, IndexStats
from docrag.infrastructure.vector_index import VectorIndex


console = Console()

# Each failure needs a different fix, so keep the hints distinct
REMEDIATION_HINTS = {
    IndexNotFoundError: "Index a document first: [bold]python main.py index <file>[/bold]",
    EmptyCollectionError: "Re-index with a document that actually contains text.",
    CorruptIndexError: "The index file is damaged. Re-index the document to rebuild it.",
    DimensionMismatchError: "Stored vectors are incompatible with the query. Re-index the document.",
    EmbeddingModelMismatchError: "Re-index with the new embedding model, or drop --embed-model.",
    EmbeddingServiceError: "Check that the embedding service is running and the model is available.",
    CompletionServiceError: "Check that the chat service is running and the model is available.",
}


def remediation_hint(error: DocRagError) -> Optional[str]:
    for error_type in type(error).__mro__:
        if error_type in REMEDIATION_HINTS:
            return REMEDIATION_HINTS[error_type]
    return None


def display_welcome_banner() -> None:
    console.print(Panel.fit(
        "[bold cyan]📚 Document Q&A[/bold cyan]\n"
        "[dim]Chunked retrieval + cosine similarity + grounded answers[/dim]",
        box=box.DOUBLE,
        border_style="cyan",
    ))


def display_index_stats(stats: IndexStats) -> None:
    console.print(
        f"\n[green]✓[/green] Indexed [bold]{escape(stats.source)}[/bold]: "
        f"[bold]{stats.record_count}[/bold] chunks embedded with "
        f"[italic]{stats.embed_model}[/italic].\n"
    )


def display_status(index: VectorIndex, location: str) -> None:
    metadata = index.metadata
    table = Table(title="Index status", box=box.ROUNDED, show_header=False)
    table.add_column("Field", style="dim")
    table.add_column("Value", style="bold white")
    table.add_row("Location", escape(location))
    table.add_row("Source", escape(metadata.source))
    table.add_row("Embedding model", metadata.embed_model)
    table.add_row("Chunks", str(index.count))
    table.add_row("Chunk size / overlap", f"{metadata.chunk_size} / {metadata.chunk_overlap}")
    table.add_row("Created at", metadata.created_at.isoformat())
    console.print(table)


def prompt_for_question() -> str:
    return Prompt.ask("\n[bold yellow]❓ Your question[/bold yellow]")


def display_answer(question: str, answer: Answer) -> None:
    console.print(f"\n[bold]Question:[/bold] [italic]\"{escape(question)}\"[/italic]\n")
    console.print(Panel(
        Text(answer.answer),
        title="[bold]Answer[/bold]",
        border_style="cyan",
        box=box.ROUNDED,
        padding=(1, 2),
    ))

    sources = Text()
    for rank, source in enumerate(answer.sources, start=1):
        score_color = _score_to_color(source.score)
        sources.append(f"#{rank} ", style="dim")
        sources.append(source.record_id, style="bold white")
        sources.append("  ")
        sources.append(f"{source.score:.4f}\n", style=score_color)
    console.print(Panel(sources, title="[bold]Sources[/bold]", box=box.ROUNDED))


def display_error(message: str, hint: Optional[str] = None) -> None:
    console.print(f"\n[bold red]✗ Error:[/bold red] {escape(message)}")
    if hint:
        console.print(f"[yellow]→[/yellow] {hint}")
    console.print()


def ask_continue() -> bool:
    answer = Prompt.ask(
        "\n[dim]Ask another question?[/dim]",
        choices=["y", "n"],
        default="y",
    )
    return answer.lower() == "y"


def _score_to_color(score: float) -> str:
    if score >= 0.75:
        return "green"
    elif score >= 0.50:
        return "yellow"
    else:
        return "red"
