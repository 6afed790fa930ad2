"""
manuals/models.py
-----------------
Typed records shared across the manual engine.

Persisted records use camelCase field names on disk (`manualText`,
`embedRatio`, ...) so files written by earlier deployments load unchanged;
attribute access in Python stays snake_case.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def new_id() -> str:
    return str(uuid.uuid4())


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Owners ─────────────────────────────────────────────────────────────────────

class OwnerType(str, Enum):
    PROJECT      = "project"
    CONVERSATION = "conversation"
    GUEST        = "guest"


class Owner(_CamelModel):
    """Storage key a manual belongs to. Produced once by the owner resolver."""

    model_config = ConfigDict(frozen=True)

    owner_id:   str
    owner_type: OwnerType

    def __str__(self) -> str:
        return f"{self.owner_type.value}:{self.owner_id}"


# ── Sources ────────────────────────────────────────────────────────────────────

class SourceKind(str, Enum):
    FILE        = "file"
    INSTRUCTION = "instruction"


class SourceMetadata(_CamelModel):
    model_config = ConfigDict(frozen=True)

    size: Optional[int] = None
    mime: Optional[str] = None


class ManualSource(_CamelModel):
    """One unit of ingested material: a file's extracted text or an instruction."""

    model_config = ConfigDict(frozen=True)

    id:         str = Field(default_factory=new_id)
    kind:       SourceKind = Field(alias="type")
    label:      str
    text:       str
    created_at: str = Field(default_factory=utc_now_iso)
    metadata:   Optional[SourceMetadata] = None


class ExtractedFile(_CamelModel):
    """Text already pulled out of an uploaded file by a format adapter."""

    raw_text:   str
    label:      str
    size_bytes: Optional[int] = None
    mime_type:  Optional[str] = None


# ── Records ────────────────────────────────────────────────────────────────────

class ManualCacheRecord(_CamelModel):
    """The authoritative per-owner manual, persisted as one JSON document."""

    manual_text:     str
    chunk_count:     int
    embedded_chunks: int
    file_count:      int
    updated_at:      str
    embed_ratio:     float
    sources:         List[ManualSource]
    owner_id:        str
    owner_type:      OwnerType

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class VectorDocument(_CamelModel):
    id:        str
    content:   str
    embedding: List[float]


# ── Requests ───────────────────────────────────────────────────────────────────

class IngestRequest(_CamelModel):
    """One ingestion call: extracted files and/or instruction text for an owner."""

    conversation_id:  Optional[str] = None
    embed_ratio:      float = Field(default=1.0, ge=0.2, le=1.0)
    mode:             Literal["append", "replace"] = "append"
    instruction_text: Optional[str] = None
    files:            List[ExtractedFile] = Field(default_factory=list)
