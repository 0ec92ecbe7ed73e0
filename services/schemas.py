from typing import List, Literal, Optional
from pydantic import BaseModel, Field

from entities.compliance import ComplianceStatus
from entities.document import DocumentKind

ReplyLanguage = Literal["en", "ar"]


class RetrievalSearchRequest(BaseModel):
    conversation_id: str = Field(description="Conversation UUID")
    kind: DocumentKind = Field(DocumentKind.CUSTOMER, description="Which document kind to search")
    query: str = Field(min_length=1, max_length=2000)
    top_k: Optional[int] = Field(None, ge=1, le=50, description="Maximum hits to return")
    max_scan: Optional[int] = Field(None, ge=1, le=2000, description="Most recent chunks to consider")


class EvaluateControlRequest(BaseModel):
    conversation_id: str = Field(description="Conversation UUID")
    control_code: str = Field(min_length=1, max_length=100)
    question: Optional[str] = Field(None, max_length=2000)
    language: Optional[ReplyLanguage] = None


class AskQuestionRequest(BaseModel):
    conversation_id: str = Field(description="Conversation UUID")
    question: str = Field(min_length=1, max_length=2000)
    language: Optional[ReplyLanguage] = None


class SubmitEvidenceRequest(BaseModel):
    document_ids: List[str] = Field(min_length=1)
    control_code: str = Field(min_length=1, max_length=100)
    status: ComplianceStatus = Field(description="COMPLIANT or PARTIAL")
    note: Optional[str] = Field(None, max_length=2000)


class CandidateSearchRequest(BaseModel):
    filename: str = Field(min_length=1, max_length=255)
    excerpt: Optional[str] = Field(None, max_length=6000)
