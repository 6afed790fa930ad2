"""
manuals/ingestion.py
--------------------
Turns extracted file text and optional instruction text into typed
`ManualSource` records with provenance metadata.

Format-specific extraction (PDF, spreadsheets, ...) happens before this
module; it only ever sees strings. A file whose text is blank is skipped
with a warning: losing one file is not fatal, and whether an empty result
is acceptable is the caller's decision.
"""

from typing import Iterable, List, Optional

from manuals.logging_config import get_logger
from manuals.models import (
    ExtractedFile,
    ManualSource,
    SourceKind,
    SourceMetadata,
    utc_now_iso,
)

log = get_logger(__name__)

INSTRUCTION_LABEL = "User prompt"


def create_sources(
    files: Optional[Iterable[ExtractedFile]] = None,
    instruction_text: Optional[str] = None,
) -> List[ManualSource]:
    """
    Builds new sources from one ingestion request.

    Args:
        files:            Extracted files, in upload order.
        instruction_text: Optional free-typed instructions.

    Returns:
        File sources in upload order, followed by at most one instruction
        source. All share the same `createdAt`. May be empty.
    """
    now = utc_now_iso()
    sources: List[ManualSource] = []

    for item in files or []:
        if not (item.raw_text or "").strip():
            log.warning("No text could be extracted from '%s' — skipping", item.label)
            continue
        sources.append(
            ManualSource(
                kind       = SourceKind.FILE,
                label      = item.label,
                text       = item.raw_text,
                created_at = now,
                metadata   = SourceMetadata(size=item.size_bytes, mime=item.mime_type),
            )
        )

    if instruction_text and instruction_text.strip():
        sources.append(
            ManualSource(
                kind       = SourceKind.INSTRUCTION,
                label      = INSTRUCTION_LABEL,
                text       = instruction_text.strip(),
                created_at = now,
            )
        )

    log.debug("Created %d source(s) from request", len(sources))
    return sources


def flatten_sources(sources: Iterable[ManualSource]) -> str:
    """
    Renders sources as the manual text: `=== label ===` header, trimmed text,
    blocks joined by a blank line, in source order.
    """
    blocks = []
    for source in sources:
        header = source.label or (
            "Instruction" if source.kind == SourceKind.INSTRUCTION else "File"
        )
        blocks.append(f"=== {header} ===\n{source.text.strip()}")
    return "\n\n".join(blocks)
