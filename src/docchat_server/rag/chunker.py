"""
Document Chunker

Splits raw document text into overlapping fixed-size character windows, the
unit of embedding and retrieval. Each window after the first starts
`overlap` characters before the previous window ended, so context spanning
a boundary is present in both chunks.
"""

from __future__ import annotations

from typing import List

DEFAULT_CHUNK_SIZE = 1500
DEFAULT_CHUNK_OVERLAP = 200

# Rough characters-per-token ratio for English text.
CHARS_PER_TOKEN = 4


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> List[str]:
    """
    Split text into ordered, overlapping, non-empty chunks.

    Parameters
    ----------
    text : str
        Raw document text. CRLF line endings are normalized to LF and the
        result is trimmed before windowing.

    chunk_size : int
        Window length in characters.

    overlap : int
        Characters shared between consecutive windows. Must be smaller than
        `chunk_size`.

    Returns
    -------
    List[str]
        Trimmed chunks in document order. Empty for blank input; callers
        must treat that as an ingestion error.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive; got {chunk_size}")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError(
            f"overlap must be in [0, chunk_size); got {overlap} for chunk_size {chunk_size}"
        )

    normalized = text.replace("\r\n", "\n").strip()
    if not normalized:
        return []

    length = len(normalized)
    chunks: List[str] = []
    start = 0

    while start < length:
        end = min(start + chunk_size, length)
        chunk = normalized[start:end].strip()
        if chunk:
            chunks.append(chunk)
        if end == length:
            break
        start = max(0, end - overlap)

    return chunks


def estimate_tokens(text: str) -> int:
    """Cheap length-based token estimate (never below 1). Not a tokenizer."""
    # Half-up rounding; round() would bank 2.5 down to 2.
    return max(1, int(len(text) / CHARS_PER_TOKEN + 0.5))
