"""Overlapping fixed-size text windows for per-chunk extraction."""

from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class TextChunk:
    index: int
    text: str
    char_start: int
    char_end: int


def chunk_text_overlapping(text: str, chunk_size: int = 2000, overlap: int = 400) -> List[TextChunk]:
    """Split text into windows of ``chunk_size`` characters sharing ``overlap``.

    A window end is pulled back to the last whitespace in its final fifth so
    words are not cut, unless that would leave no forward progress.

    Args:
        text: Full document text
        chunk_size: Maximum characters per chunk
        overlap: Characters shared by consecutive chunks

    Returns:
        Chunks in document order; empty for blank text
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if not 0 <= overlap < chunk_size:
        raise ValueError("overlap must be >= 0 and smaller than chunk_size")
    if not text or not text.strip():
        return []

    chunks: List[TextChunk] = []
    length = len(text)
    start = 0

    while start < length:
        end = min(start + chunk_size, length)
        if end < length:
            floor = end - chunk_size // 5
            boundary = text.rfind(" ", floor, end)
            if boundary > start + overlap:
                end = boundary

        chunks.append(TextChunk(index=len(chunks), text=text[start:end], char_start=start, char_end=end))

        if end >= length:
            break
        start = end - overlap

    return chunks
