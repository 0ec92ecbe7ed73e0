"""
Compliance status, gap and LLM assessment models.
"""

from enum import Enum
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from entities.document import DocumentKind


class ComplianceStatus(str, Enum):
    COMPLIANT = "COMPLIANT"
    PARTIAL = "PARTIAL"
    NOT_COMPLIANT = "NOT_COMPLIANT"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Any) -> Optional["ComplianceStatus"]:
        """Lenient parse of stored status strings; unknown values give None."""
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return None


SUBMITTABLE_STATUSES = (ComplianceStatus.COMPLIANT, ComplianceStatus.PARTIAL)


class GapReason(str, Enum):
    """Why a PARTIAL / NOT_COMPLIANT control is not fully compliant."""
    MISSING_EVIDENCE = "missing-evidence"
    OWNER_NOT_ASSIGNED = "owner-not-assigned"
    OUTDATED_POLICY = "outdated-policy"
    CONTROL_NOT_TESTED = "control-not-tested"
    CONTROL_NOT_IMPLEMENTED = "control-not-implemented"


class EvidenceHint(str, Enum):
    """Listing-only status for documents that have no match status yet."""
    PENDING = "PENDING"
    UNMATCHED = "UNMATCHED"


class Citation(BaseModel):
    doc: str
    page: Optional[int] = None
    kind: DocumentKind

    @field_validator("page", mode="before")
    @classmethod
    def _coerce_page(cls, v):
        if isinstance(v, float):
            return int(v)
        return v


class ComplianceSummary(BaseModel):
    status: ComplianceStatus = ComplianceStatus.UNKNOWN
    satisfied: List[str] = Field(default_factory=list)
    missing: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class ComplianceAssessment(BaseModel):
    """Structured answer returned by the LLM for a compliance question."""
    model_config = ConfigDict(populate_by_name=True)

    reply: str
    citations: List[Citation] = Field(default_factory=list)
    compliance_summary: ComplianceSummary = Field(alias="complianceSummary")


class DocumentAnalysis(BaseModel):
    """LLM classification of a single customer document."""
    model_config = ConfigDict(populate_by_name=True)

    doc_type: Optional[str] = Field(default=None, alias="docType")
    match_control_id: Optional[str] = Field(default=None, alias="matchControlId")
    match_status: ComplianceStatus = Field(default=ComplianceStatus.UNKNOWN, alias="matchStatus")
    match_note: Optional[str] = Field(default=None, alias="matchNote")
    match_recommendations: List[str] = Field(default_factory=list, alias="matchRecommendations")


class ControlStatusView(BaseModel):
    """Aggregated status and gap for one control, as listed to clients."""
    control_code: str
    title: str
    topic_title: Optional[str] = None
    owner_role: Optional[str] = None
    status: ComplianceStatus
    gap: Optional[GapReason] = None
    framework_codes: List[str] = Field(default_factory=list)
    document_count: int = 0
    has_evaluation: bool = False
