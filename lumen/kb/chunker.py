"""Character-window text chunking."""
from __future__ import annotations

from typing import Iterator, Sequence, TypeVar

T = TypeVar("T")


def chunk_text(text: str, max_size: int = 900, overlap: int = 100) -> list[str]:
    """
    Split text into overlapping windows of at most `max_size` characters.

    Consecutive windows share `overlap` characters. The last window may be
    shorter. Carriage returns are stripped first.

    Args:
        text: Input text to chunk
        max_size: Maximum characters per chunk
        overlap: Characters shared by consecutive chunks

    Returns:
        List of chunk strings (empty for empty input)
    """
    if max_size < 1:
        raise ValueError(f"max_size must be >= 1, got {max_size}")

    # Every step must advance by at least one character.
    overlap = min(max(overlap, 0), max_size - 1)
    step = max_size - overlap

    t = (text or "").replace("\r", "")
    chunks = []
    start = 0

    while start < len(t):
        end = min(start + max_size, len(t))
        chunks.append(t[start:end])
        if end == len(t):
            break
        start += step

    return chunks


def batched(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive slices of at most `size` items."""
    if size < 1:
        raise ValueError(f"batch size must be >= 1, got {size}")
    for i in range(0, len(items), size):
        yield list(items[i:i + size])
