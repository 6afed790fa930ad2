"""
manuals/chunker.py
------------------
Deterministic document segmentation for the manual engine.

Splits the flattened manual text into overlapping fixed-size character
windows. Unlike word-boundary chunking, window positions depend only on the
text length, so `chunkCount` stored on a record can always be re-derived
from its `manualText`.

No external calls — operates entirely on local text.
"""

from typing import List

WINDOW_SIZE    = 800
WINDOW_OVERLAP = 100


def chunk_text(
    text: str,
    window_size: int = WINDOW_SIZE,
    overlap: int = WINDOW_OVERLAP,
) -> List[str]:
    """
    Splits text into overlapping, trimmed character windows.

    Windows start at offsets 0, step, 2*step, ... where
    step = window_size - overlap (at least 1). Windows that are blank after
    trimming are dropped.

    Args:
        text:        Flattened manual text.
        window_size: Characters per window.
        overlap:     Characters shared by consecutive windows.

    Returns:
        Ordered list of non-empty trimmed chunks.

    Raises:
        ValueError: If window_size is not positive or overlap is negative.
    """
    if window_size <= 0:
        raise ValueError("window_size must be a positive integer.")
    if overlap < 0:
        raise ValueError("overlap must be >= 0.")
    if not text:
        return []

    # overlap >= window_size would never advance
    step = max(1, window_size - overlap)

    chunks: List[str] = []
    offset = 0
    while offset < len(text):
        chunk = text[offset:offset + window_size].strip()
        if chunk:
            chunks.append(chunk)
        offset += step

    return chunks
