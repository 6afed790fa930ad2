"""
validator/json_validator.py
---------------------------
Output schema enforcement for manual summaries and status payloads.

Defines the canonical ManualSummary / ManualStatus TypedDicts and validates
engine output against them before it is returned to callers. Raises a typed
ValidationError on any violation — no silent failures. The counting
invariants of a record (fileCount matches the file sources,
0 < embeddedChunks <= chunkCount, embedRatio within [0.2, 1]) are checked
here as well, since a summary that breaks them means the record is corrupt.
"""

from typing import Any, Dict, List

from typing_extensions import NotRequired, TypedDict

from manuals.logging_config import get_logger

log = get_logger(__name__)

PREVIEW_LENGTH = 200


# ── Schema definition ──────────────────────────────────────────────────────────

class SummarySource(TypedDict):
    """One source as listed to users; the text itself is never included."""
    id:        str
    type:      str            # "file" | "instruction"
    label:     str
    createdAt: str
    preview:   NotRequired[str]   # instruction sources only, <= 200 chars


class ManualSummary(TypedDict):
    fileCount:      int
    chunkCount:     int
    embeddedChunks: int
    updatedAt:      str
    embedRatio:     float
    sources:        List[SummarySource]


class ManualStatus(TypedDict):
    hasManual: bool
    stats:     NotRequired[ManualSummary]


# ── Custom exception ───────────────────────────────────────────────────────────

class ValidationError(ValueError):
    """Raised when a summary or status payload fails schema validation."""


# ── Validators ─────────────────────────────────────────────────────────────────

def _fail(message: str) -> None:
    log.error("Validation failed — %s", message)
    raise ValidationError(message)


def _validate_source(i: int, entry: Any) -> None:
    if not isinstance(entry, dict):
        _fail(f"sources[{i}] must be a dict, got {type(entry).__name__}.")
    for field in ("id", "type", "label", "createdAt"):
        if not isinstance(entry.get(field), str) or not entry[field].strip():
            _fail(f"sources[{i}]['{field}'] must be a non-empty string.")
    if entry["type"] not in ("file", "instruction"):
        _fail(f"sources[{i}]['type'] must be 'file' or 'instruction'.")
    if "preview" in entry:
        if entry["type"] != "instruction":
            _fail(f"sources[{i}] is a file source and must not carry a preview.")
        if not isinstance(entry["preview"], str) or len(entry["preview"]) > PREVIEW_LENGTH:
            _fail(f"sources[{i}]['preview'] must be a string of at most {PREVIEW_LENGTH} chars.")


def validate_summary(summary: Dict[str, Any]) -> ManualSummary:
    """
    Validates a dict against the ManualSummary schema.

    Checks:
      - Required keys are present
      - counts are integers with 0 < embeddedChunks <= chunkCount
      - embedRatio lies within [0.2, 1.0]
      - sources is a non-empty list of well-formed entries
      - fileCount equals the number of file sources

    Raises:
        ValidationError: If any field is missing, wrong type, or inconsistent.
    """
    required_keys = {"fileCount", "chunkCount", "embeddedChunks",
                     "updatedAt", "embedRatio", "sources"}
    missing = required_keys - summary.keys()
    if missing:
        _fail(f"ManualSummary missing required keys: {sorted(missing)}")

    for key in ("fileCount", "chunkCount", "embeddedChunks"):
        value = summary[key]
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            _fail(f"ManualSummary field '{key}' must be a non-negative integer.")

    if not 0 < summary["embeddedChunks"] <= summary["chunkCount"]:
        _fail(
            f"embeddedChunks ({summary['embeddedChunks']}) must be within "
            f"1..chunkCount ({summary['chunkCount']})."
        )

    ratio = summary["embedRatio"]
    if not isinstance(ratio, (int, float)) or not 0.2 <= ratio <= 1.0:
        _fail(f"embedRatio must be within [0.2, 1.0], got {ratio!r}.")

    if not isinstance(summary["updatedAt"], str) or not summary["updatedAt"].strip():
        _fail("updatedAt must be a non-empty string.")

    sources = summary["sources"]
    if not isinstance(sources, list) or not sources:
        _fail("ManualSummary 'sources' must be a non-empty list.")
    for i, entry in enumerate(sources):
        _validate_source(i, entry)

    file_sources = sum(1 for entry in sources if entry["type"] == "file")
    if summary["fileCount"] != file_sources:
        _fail(f"fileCount ({summary['fileCount']}) does not match {file_sources} file source(s).")

    log.debug("Summary validated — chunks=%d embedded=%d sources=%d",
              summary["chunkCount"], summary["embeddedChunks"], len(sources))
    return ManualSummary(**summary)  # type: ignore[typeddict-item]


def validate_status(status: Dict[str, Any]) -> ManualStatus:
    """
    Validates a {hasManual, stats?} payload.

    Raises:
        ValidationError: If hasManual is not a bool, or stats is missing
                         when hasManual is true / present when it is false.
    """
    if not isinstance(status.get("hasManual"), bool):
        _fail("ManualStatus 'hasManual' must be a boolean.")

    if status["hasManual"]:
        if "stats" not in status:
            _fail("ManualStatus with hasManual=true must carry stats.")
        return ManualStatus(hasManual=True, stats=validate_summary(status["stats"]))

    if status.get("stats") is not None:
        _fail("ManualStatus with hasManual=false must not carry stats.")
    return ManualStatus(hasManual=False)
