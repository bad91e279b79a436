# docrag/infrastructure/document_loader.py

from pathlib import Path
from typing import List

import fitz
import pdfplumber

from docrag.domain.errors import DocumentLoadError


SUPPORTED_EXTENSIONS = {".txt", ".md", ".pdf"}


class DocumentLoader:
    """
    Extracts raw text from a single source file. Segmentation happens later,
    so this only has to produce one string per document.
    """

    def load_text(self, file_path: str | Path) -> str:
        file_path = Path(file_path)
        if not file_path.is_file():
            raise DocumentLoadError(f"Document not found: {file_path}")

        suffix = file_path.suffix.lower()
        if suffix not in SUPPORTED_EXTENSIONS:
            raise DocumentLoadError(
                f"Unsupported file type '{suffix}' for {file_path.name}. "
                f"Supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
            )

        if suffix == ".pdf":
            text = self._load_pdf_text(file_path)
        else:
            text = file_path.read_text(encoding="utf-8", errors="ignore")

        print(f"[DocumentLoader] Loaded {len(text)} chars from {file_path.name}")
        return text

    # ─── Private: PDF Extractors ──────────────────────────────────────────────

    def _load_pdf_text(self, file_path: Path) -> str:
        # Try pdfplumber first
        pages = self._extract_pages_pdfplumber(file_path)

        # Fallback to PyMuPDF
        if not pages:
            pages = self._extract_pages_pymupdf(file_path)

        if not pages:
            raise DocumentLoadError(f"No extractable text in {file_path.name}.")
        return "\n".join(pages)

    def _extract_pages_pdfplumber(self, file_path: Path) -> List[str]:
        try:
            pages = []
            with pdfplumber.open(str(file_path)) as pdf:
                for page in pdf.pages:
                    text = page.extract_text(x_tolerance=2, y_tolerance=2)
                    if text:
                        pages.append(text)
            return pages
        except Exception as error:
            print(f"[DocumentLoader] pdfplumber error on {file_path.name}: {error}")
            return []

    def _extract_pages_pymupdf(self, file_path: Path) -> List[str]:
        try:
            pages = []
            with fitz.open(str(file_path)) as pdf:
                for page in pdf:
                    text = page.get_text()
                    if text:
                        pages.append(text)
            return pages
        except Exception as error:
            raise DocumentLoadError(
                f"Could not read PDF {file_path.name}: {error}"
            ) from error
