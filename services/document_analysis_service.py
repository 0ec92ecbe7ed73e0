"""
Document analysis service.
Classifies customer documents against catalog controls with the LLM, records
manual evidence submissions and decorates document listings with hints.
"""

import re
import time
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from pydantic import ValidationError

from adapters.openai_adapter import AIRequest, BaseAIAdapter
from entities.compliance import (
    ComplianceStatus,
    DocumentAnalysis,
    EvidenceHint,
    SUBMITTABLE_STATUSES,
)
from entities.document import Document, DocumentKind, DocumentUpdate, DocumentView
from entities.evaluation import EvidenceEvaluation
from entities.framework import ActiveFramework
from repositories.control_repository import ControlCatalogRepository
from repositories.document_repository import DocumentRepository
from repositories.evaluation_repository import EvaluationRepository
from services.control_candidates import ControlCandidateService, group_framework_references
from common.exceptions import (
    LLMResponseException,
    ResourceNotFoundException,
    ValidationException,
)
from common.logging import get_logger, log_business_event, log_performance

logger = get_logger("document_analysis_service")

DEFAULT_MATCH_NOTES = {
    ComplianceStatus.COMPLIANT: "Evidence appears to match this control.",
    ComplianceStatus.PARTIAL: "Evidence partially matches this control.",
    ComplianceStatus.NOT_COMPLIANT: "Evidence does not satisfy this control.",
    ComplianceStatus.UNKNOWN: "Insufficient evidence to assess.",
}
UNMATCHED_NOTE = "Not referenced in the latest evidence review."
PENDING_NOTE = "No evidence review has been run for this conversation yet."

DOCUMENT_ANALYSIS_INSTRUCTIONS = """You are a compliance analyst reviewing one customer document.
Classify the document (docType, e.g. "Access Control Policy", "Training Record").
Pick matchControlId ONLY from the controlCandidates in the context, or null when none fits.
matchStatus must be COMPLIANT, PARTIAL, NOT_COMPLIANT or UNKNOWN and must be based only on
the excerpt provided. Never invent content that is not in the excerpt.
matchNote is one sentence explaining the judgement; matchRecommendations lists concrete
improvements (empty when none)."""

DOCUMENT_ANALYSIS_SCHEMA = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "docType": {"type": "string"},
        "matchControlId": {"type": ["string", "null"]},
        "matchStatus": {"type": "string", "enum": [s.value for s in ComplianceStatus]},
        "matchNote": {"type": "string"},
        "matchRecommendations": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["docType", "matchControlId", "matchStatus", "matchNote", "matchRecommendations"],
}

_NON_ALNUM = re.compile(r"[\W_]+", re.UNICODE)


def default_match_note(status: Optional[ComplianceStatus]) -> str:
    return DEFAULT_MATCH_NOTES[status or ComplianceStatus.UNKNOWN]


def normalize_document_name(name: str) -> str:
    return _NON_ALNUM.sub("", (name or "").lower())


def names_match(document_name: str, cited_name: str) -> bool:
    """Loose filename match: either normalized name contains the other."""
    a = normalize_document_name(document_name)
    b = normalize_document_name(cited_name)
    if not a or not b:
        return False
    return a in b or b in a


def find_citing_evaluation(
    document_name: str,
    evaluations: Sequence[EvidenceEvaluation],
) -> Optional[EvidenceEvaluation]:
    """First (newest) evaluation citing the document as customer evidence."""
    for evaluation in evaluations:
        for citation in evaluation.citations:
            if citation.kind == DocumentKind.CUSTOMER and names_match(document_name, citation.doc):
                return evaluation
    return None


class DocumentAnalysisService:
    """LLM-assisted classification and manual review of customer evidence."""

    def __init__(
        self,
        document_repository: DocumentRepository,
        evaluation_repository: EvaluationRepository,
        control_repository: ControlCatalogRepository,
        candidate_service: ControlCandidateService,
        ai_adapter: BaseAIAdapter,
        excerpt_chunk_count: int = 6,
        excerpt_max_chars: int = 6000,
    ):
        self.document_repository = document_repository
        self.evaluation_repository = evaluation_repository
        self.control_repository = control_repository
        self.candidate_service = candidate_service
        self.ai_adapter = ai_adapter
        self.excerpt_chunk_count = excerpt_chunk_count
        self.excerpt_max_chars = excerpt_max_chars

    async def get_document_excerpt(self, document_id: str) -> str:
        """First chunks of a document in index order, capped in length."""
        chunks = await self.document_repository.read_chunks(document_id, self.excerpt_chunk_count, ascending=True)
        return "\n".join(chunks)[: self.excerpt_max_chars]

    async def analyze_document(
        self,
        document_id: str,
        active_framework: Optional[ActiveFramework],
        language: Optional[str] = None,
    ) -> Document:
        document = await self.document_repository.get_or_raise(document_id)
        if document.kind != DocumentKind.CUSTOMER:
            raise ValidationException(
                detail="Only customer documents can be analyzed",
                field="kind",
                value=document.kind.value,
            )

        start_time = time.time()
        excerpt = await self.get_document_excerpt(document.id)
        candidates = await self.candidate_service.find_candidates(
            document.original_name, excerpt, active_framework
        )

        request = AIRequest(
            system_instructions=DOCUMENT_ANALYSIS_INSTRUCTIONS,
            question=f"Classify the customer document '{document.display_name}' and match it to a control.",
            context={
                "fileName": document.original_name,
                "activeFramework": active_framework.model_dump() if active_framework else None,
                "controlCandidates": [
                    {
                        "controlCode": c.control_code,
                        "title": c.title,
                        "frameworkCodes": c.framework_codes,
                    }
                    for c in candidates
                ],
                "excerpt": excerpt,
            },
            language=language,
        )
        response = await self.ai_adapter.generate_structured_response(
            request, "document_analysis", DOCUMENT_ANALYSIS_SCHEMA
        )
        try:
            analysis = DocumentAnalysis.model_validate(response.data)
        except ValidationError as e:
            raise LLMResponseException(
                detail=f"Document analysis did not match the expected shape: {e.error_count()} errors",
                model=response.model_used,
                raw_excerpt=response.raw_text[:300],
            )

        allowed = {c.control_code for c in candidates}
        control_id = analysis.match_control_id if analysis.match_control_id in allowed else None
        if analysis.match_control_id and control_id is None:
            logger.warning(
                f"Discarding match {analysis.match_control_id!r} for document {document.id}: not a candidate"
            )
        status = analysis.match_status if control_id else ComplianceStatus.UNKNOWN

        updated = await self.document_repository.update(
            document.id,
            DocumentUpdate(
                doc_type=(analysis.doc_type or "").strip() or None,
                match_control_id=control_id,
                match_status=status.value,
                match_note=(analysis.match_note or "").strip() or default_match_note(status),
                match_recommendations=analysis.match_recommendations,
                reviewed_at=datetime.now(timezone.utc),
            ),
        )

        log_performance(
            operation="document_analysis",
            duration_ms=(time.time() - start_time) * 1000,
            success=True,
            candidate_count=len(candidates),
        )
        log_business_event(
            event_type="DOCUMENT_ANALYZED",
            entity_type="document",
            entity_id=document.id,
            action="analyze",
            details={"match_control_id": control_id, "match_status": status.value},
        )
        return updated

    async def submit_evidence(
        self,
        document_ids: Sequence[str],
        control_code: str,
        status: str,
        note: Optional[str] = None,
    ) -> List[Document]:
        """Manually mark documents as evidence for a control."""
        ids = list(dict.fromkeys(d for d in document_ids if d))
        if not ids:
            raise ValidationException(detail="At least one document is required", field="document_ids")

        parsed = ComplianceStatus.parse(status)
        if parsed not in SUBMITTABLE_STATUSES:
            raise ValidationException(
                detail="Submitted status must be COMPLIANT or PARTIAL",
                field="status",
                value=status,
            )

        control = await self.control_repository.get_by_code(control_code)
        if control is None:
            raise ResourceNotFoundException(resource_type="Control", resource_id=control_code)

        now = datetime.now(timezone.utc)
        fields = {
            "match_control_id": control.control_code,
            "match_status": parsed.value,
            "reviewed_at": now,
            "submitted_at": now,
        }
        if note and note.strip():
            fields["match_note"] = note.strip()

        updated = [await self.document_repository.update(doc_id, DocumentUpdate(**fields)) for doc_id in ids]

        log_business_event(
            event_type="EVIDENCE_SUBMITTED",
            entity_type="control",
            entity_id=control.id,
            action="submit",
            details={"control_code": control.control_code, "status": parsed.value, "document_ids": ids},
        )
        return updated

    async def attach_evaluation_hints(
        self,
        documents: Sequence[Document],
        active_framework: Optional[ActiveFramework] = None,
    ) -> List[DocumentView]:
        """
        Fill listing-only status for documents without a match status.

        A document cited by its conversation's newest evaluation inherits
        that evaluation's control and status. Otherwise it is UNMATCHED when
        the conversation has evaluations, PENDING when it has none.
        """
        conversation_ids = list(dict.fromkeys(d.conversation_id for d in documents))
        evaluations = await self.evaluation_repository.list_by_conversations(conversation_ids)
        by_conversation: Dict[str, List[EvidenceEvaluation]] = defaultdict(list)
        for evaluation in evaluations:
            by_conversation[evaluation.conversation_id].append(evaluation)

        views: List[DocumentView] = []
        for document in documents:
            view = DocumentView(**document.model_dump())
            stored = ComplianceStatus.parse(document.match_status)
            if stored is not None:
                view.match_status = stored.value
                view.match_note = document.match_note or default_match_note(stored)
            elif document.kind == DocumentKind.CUSTOMER:
                conversation_evals = by_conversation.get(document.conversation_id, [])
                citing = find_citing_evaluation(document.original_name, conversation_evals)
                if citing is not None:
                    view.match_control_id = citing.control_id
                    view.match_status = citing.status.value
                    view.match_note = citing.summary or default_match_note(citing.status)
                elif conversation_evals:
                    view.match_status = EvidenceHint.UNMATCHED.value
                    view.match_note = UNMATCHED_NOTE
                else:
                    view.match_status = EvidenceHint.PENDING.value
                    view.match_note = PENDING_NOTE
            views.append(view)

        codes = [v.match_control_id for v in views if v.match_control_id]
        if codes:
            controls = await self.control_repository.list_by_codes(codes)
            mappings = {c.control_code: c.framework_mappings for c in controls}
            for view in views:
                if view.match_control_id in mappings:
                    view.framework_references = group_framework_references(
                        mappings[view.match_control_id], active_framework
                    )
        return views

    async def list_documents(
        self,
        conversation_id: str,
        kind: Optional[DocumentKind] = None,
        active_framework: Optional[ActiveFramework] = None,
    ) -> List[DocumentView]:
        documents = await self.document_repository.list_by_conversation(conversation_id, kind)
        return await self.attach_evaluation_hints(documents, active_framework)


def create_document_analysis_service(
    document_repository: DocumentRepository,
    evaluation_repository: EvaluationRepository,
    control_repository: ControlCatalogRepository,
    candidate_service: ControlCandidateService,
    ai_adapter: BaseAIAdapter,
    excerpt_chunk_count: int = 6,
    excerpt_max_chars: int = 6000,
) -> DocumentAnalysisService:
    return DocumentAnalysisService(
        document_repository,
        evaluation_repository,
        control_repository,
        candidate_service,
        ai_adapter,
        excerpt_chunk_count,
        excerpt_max_chars,
    )
