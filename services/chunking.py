"""
Overlapping fixed-size text chunking.
"""

import re
from typing import List

_CARRIAGE_RETURNS = re.compile(r"\r")
_HORIZONTAL_SPACE = re.compile(r"[ \t]+")
_BLANK_RUNS = re.compile(r"\n{3,}")

DEFAULT_CHUNK_SIZE = 1200
DEFAULT_CHUNK_OVERLAP = 200


def normalize_text(text: str) -> str:
    """Drop CRs, collapse spaces/tabs, cap blank-line runs at one empty line, trim."""
    text = _CARRIAGE_RETURNS.sub("", text or "")
    text = _HORIZONTAL_SPACE.sub(" ", text)
    text = _BLANK_RUNS.sub("\n\n", text)
    return text.strip()


def chunk_text(text: str, size: int = DEFAULT_CHUNK_SIZE, overlap: int = DEFAULT_CHUNK_OVERLAP) -> List[str]:
    """
    Split text into overlapping windows of `size` characters.

    Windows start every `size - overlap` characters; the last window ends at
    end-of-text. Each window is trimmed and empty windows are dropped.
    """
    if overlap < 0:
        raise ValueError("overlap must be non-negative")
    if size <= overlap:
        raise ValueError("size must be greater than overlap")

    clean = normalize_text(text)
    if not clean:
        return []

    chunks: List[str] = []
    length = len(clean)
    start = 0
    while start < length:
        end = min(start + size, length)
        window = clean[start:end].strip()
        if window:
            chunks.append(window)
        if end == length:
            break
        start = max(end - overlap, 0)
    return chunks
