# docrag/infrastructure/segmenter.py

import re
from typing import List

from docrag.domain.errors import ValidationError
from docrag.domain.models import Segment


DEFAULT_CHUNK_SIZE = 1200
DEFAULT_CHUNK_OVERLAP = 200


def normalize_text(text: str) -> str:
    """
    Whitespace normalization applied before segmentation.
    Segment boundaries are computed on the result, not on the raw input.
    """
    text = text.replace("\r", "")
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


class Segmenter:
    """
    Splits text into fixed-size character windows that overlap by
    `chunk_overlap` characters.

    The cursor always moves forward by at least one character, so an
    overlap equal to or larger than the window still terminates.
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
    ):
        if chunk_size <= 0:
            raise ValidationError(f"chunk_size must be positive, got {chunk_size}.")
        if chunk_overlap < 0:
            raise ValidationError(f"chunk_overlap cannot be negative, got {chunk_overlap}.")
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap

    def segment(self, text: str, source: str) -> List[Segment]:
        cleaned = normalize_text(text or "")
        segments: List[Segment] = []
        cursor = 0
        length = len(cleaned)

        while cursor < length:
            end = min(cursor + self._chunk_size, length)
            chunk = cleaned[cursor:end].strip()

            if chunk:
                segments.append(Segment(source=source, sequence=len(segments) + 1, text=chunk))

            if end == length:
                break

            cursor = max(cursor + 1, end - self._chunk_overlap)

        print(f"[Segmenter] '{source}': {length} chars → {len(segments)} segments "
              f"(size={self._chunk_size}, overlap={self._chunk_overlap})")
        return segments
