"""
manuals/legacy.py
-----------------
Fallback reconstruction of a source list from a legacy record.

Records written before sources were tracked explicitly only carry the
flattened `manualText`. The headers that flattening writes
(`=== label ===`) are enough to recover source boundaries; the File vs.
Instruction split is a heuristic on the header wording.

Only `record_store` uses this module: for records without `sources`, and
for stored sources that lack an id.
"""

import re
import uuid
from typing import List

from manuals.models import ManualSource, SourceKind

LEGACY_LABEL = "Legacy manual"

_HEADER = re.compile(r"^===\s*(.+?)\s*===\s*$", re.MULTILINE)

# "프롬프트" is "prompt" in the first deployment's UI language
_INSTRUCTION_TOKENS = ("prompt", "instruction", "프롬프트")

_SOURCE_NAMESPACE = uuid.UUID("6f1c2a4e-9b3d-5e70-8a21-4c5d6e7f8091")


def legacy_source_id(text: str, position: int) -> str:
    """Stable id for a source recovered from stored text, so status and removal agree."""
    return str(uuid.uuid5(_SOURCE_NAMESPACE, f"{position}:{text}"))


def classify_header(header: str) -> SourceKind:
    lowered = header.lower()
    if any(token in lowered for token in _INSTRUCTION_TOKENS):
        return SourceKind.INSTRUCTION
    return SourceKind.FILE


def reconstruct_sources(manual_text: str, created_at: str) -> List[ManualSource]:
    """
    Splits `manual_text` at header lines into sources.

    The text between consecutive headers (trimmed) becomes one source;
    empty sections are dropped. Without any usable section the whole text
    becomes a single instruction source labeled "Legacy manual".

    Boundaries and ids depend only on `manual_text`, so repeated reads hand
    out the same ids.
    """
    matches = list(_HEADER.finditer(manual_text))

    sources: List[ManualSource] = []
    for index, match in enumerate(matches):
        header = match.group(1).strip() or f"Source {index + 1}"
        start  = match.end()
        end    = matches[index + 1].start() if index + 1 < len(matches) else len(manual_text)
        section = manual_text[start:end].strip()
        if not section:
            continue
        sources.append(
            ManualSource(
                id         = legacy_source_id(manual_text, index),
                kind       = classify_header(header),
                label      = header,
                text       = section,
                created_at = created_at,
            )
        )

    if not sources:
        return [
            ManualSource(
                id         = legacy_source_id(manual_text, 0),
                kind       = SourceKind.INSTRUCTION,
                label      = LEGACY_LABEL,
                text       = manual_text,
                created_at = created_at,
            )
        ]
    return sources
