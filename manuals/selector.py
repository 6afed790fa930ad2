"""
manuals/selector.py
-------------------
Ratio-limited selection of the chunks that are actually embedded.

Selection policy: the first `max(1, round(n * ratio))` chunks, i.e. a
PREFIX of the flattened manual. Lowering `embedRatio` trades recall on the
tail of the manual for fewer embedding calls. Because sources are flattened
in order, this biases retrieval toward earlier-uploaded files and away from
whatever was appended last (appended files, instruction text). The policy is
deterministic and observable to users through `embeddedChunks`; change it
only together with that contract.
"""

import math
from typing import List, Optional, Sequence

from manuals.models import VectorDocument, new_id

MIN_EMBED_RATIO = 0.2
MAX_EMBED_RATIO = 1.0


def clamp_embed_ratio(value: Optional[float]) -> float:
    """Clamps a ratio into [0.2, 1.0]; a missing ratio means embed everything."""
    if value is None:
        return MAX_EMBED_RATIO
    return min(MAX_EMBED_RATIO, max(float(value), MIN_EMBED_RATIO))


def embedded_chunk_count(chunk_count: int, embed_ratio: float) -> int:
    """
    Number of chunks to embed for a given ratio.

    Rounds half up (2.5 -> 3), never returns less than 1 for a non-empty
    manual and never more than `chunk_count`.
    """
    if chunk_count <= 0:
        return 0
    limit = math.floor(chunk_count * clamp_embed_ratio(embed_ratio) + 0.5)
    return min(chunk_count, max(1, limit))


def select_chunks(chunks: Sequence[str], embed_ratio: float) -> List[str]:
    """Returns the prefix of `chunks` that should be embedded and indexed."""
    return list(chunks[:embedded_chunk_count(len(chunks), embed_ratio)])


def build_documents(
    chunks: Sequence[str],
    embeddings: Sequence[Sequence[float]],
) -> List[VectorDocument]:
    """
    Pairs selected chunks with their embeddings under freshly generated ids.

    Raises:
        ValueError: If chunks and embeddings are misaligned.
    """
    if len(chunks) != len(embeddings):
        raise ValueError(
            f"Length mismatch: {len(chunks)} chunks vs "
            f"{len(embeddings)} embeddings."
        )
    return [
        VectorDocument(
            id        = f"chunk_{idx}_{new_id()}",
            content   = content,
            embedding = [float(x) for x in embedding],
        )
        for idx, (content, embedding) in enumerate(zip(chunks, embeddings))
    ]
