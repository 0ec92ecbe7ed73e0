"""
EvidenceEvaluation entity models.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from entities.compliance import Citation, ComplianceStatus
from entities.document import parse_datetime


class EvidenceEvaluation(BaseModel):
    """Persisted LLM judgement for one control in one conversation. Immutable."""
    id: str
    conversation_id: str
    control_id: str
    status: ComplianceStatus
    summary: str = ""
    satisfied: List[str] = Field(default_factory=list)
    missing: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    citations: List[Citation] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EvidenceEvaluation":
        data = dict(data)
        data["status"] = ComplianceStatus.parse(data.get("status")) or ComplianceStatus.UNKNOWN
        citations = data.get("citations") or []
        data["citations"] = [c for c in citations if isinstance(c, dict) and c.get("doc")]
        for fld in ("satisfied", "missing", "recommendations"):
            data[fld] = data.get(fld) or []
        data["created_at"] = parse_datetime(data.get("created_at"))
        return cls(**data)


class EvaluationCreate(BaseModel):
    conversation_id: str
    control_id: str
    status: ComplianceStatus
    summary: str = ""
    satisfied: List[str] = Field(default_factory=list)
    missing: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    citations: List[Citation] = Field(default_factory=list)
