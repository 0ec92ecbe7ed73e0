"""
Document and DocumentChunk entity models for the domain layer.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator


DATETIME_FIELDS = ("reviewed_at", "submitted_at", "created_at", "updated_at")


class DocumentKind(str, Enum):
    """Customer evidence vs. reference (standard) material."""
    CUSTOMER = "CUSTOMER"
    STANDARD = "STANDARD"


class TextStatus(str, Enum):
    PENDING = "pending"
    OK = "ok"
    NO_READABLE_TEXT = "no_readable_text"


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value.replace('Z', '+00:00'))
    return None


class Document(BaseModel):
    """A stored evidence or reference file and its analysis state."""
    id: str
    conversation_id: str
    kind: DocumentKind = DocumentKind.CUSTOMER
    original_name: str = ""
    mime_type: Optional[str] = None
    size_bytes: int = 0
    storage_path: str = ""
    external_file_id: Optional[str] = None
    doc_type: Optional[str] = None
    match_control_id: Optional[str] = None
    match_status: Optional[str] = None
    match_note: Optional[str] = None
    match_recommendations: List[str] = Field(default_factory=list)
    text_status: TextStatus = TextStatus.PENDING
    chunk_count: int = 0
    reviewed_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("match_recommendations", mode="before")
    @classmethod
    def _listify_recommendations(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v.strip() else []
        return list(v)

    @property
    def display_name(self) -> str:
        return self.original_name or "document"

    def latest_activity_at(self) -> Optional[datetime]:
        """Most recent of reviewed, submitted and created timestamps."""
        stamps = [s for s in (self.reviewed_at, self.submitted_at, self.created_at) if s is not None]
        return max(stamps) if stamps else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        data = dict(data)
        for fld in DATETIME_FIELDS:
            data[fld] = parse_datetime(data.get(fld))
        return cls(**data)


class DocumentCreate(BaseModel):
    conversation_id: str
    kind: DocumentKind = DocumentKind.CUSTOMER
    original_name: str
    mime_type: Optional[str] = None
    size_bytes: int = 0
    storage_path: str
    external_file_id: Optional[str] = None


class DocumentUpdate(BaseModel):
    doc_type: Optional[str] = None
    match_control_id: Optional[str] = None
    match_status: Optional[str] = None
    match_note: Optional[str] = None
    match_recommendations: Optional[List[str]] = None
    text_status: Optional[TextStatus] = None
    chunk_count: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None


class DocumentChunk(BaseModel):
    """One overlapping text window of a document. Indices start at 0."""
    document_id: str
    chunk_index: int
    text: str
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentChunk":
        data = dict(data)
        data["created_at"] = parse_datetime(data.get("created_at"))
        return cls(**data)


class ScopedChunk(DocumentChunk):
    """Chunk row joined with the owning document's name and kind."""
    doc_name: str = "document"
    kind: DocumentKind = DocumentKind.CUSTOMER

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScopedChunk":
        data = dict(data)
        data["created_at"] = parse_datetime(data.get("created_at"))
        data["doc_name"] = data.pop("original_name", None) or "document"
        data.pop("conversation_id", None)
        return cls(**data)


class ChunkHit(BaseModel):
    """A scored chunk returned by retrieval."""
    document_id: str
    doc_name: str
    chunk_index: int
    text: str
    score: int
    kind: DocumentKind


class IngestResult(BaseModel):
    document_id: str
    ok: bool
    chunks: int = 0
    message: Optional[str] = None


class DocumentView(Document):
    """Document as listed to clients, with evaluation hints and framework references."""
    framework_references: List[str] = Field(default_factory=list)
