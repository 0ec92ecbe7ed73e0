"""
Evidence evaluation service.
Answers compliance questions and evaluates controls against retrieved
customer evidence, using reference material only as guidance.
"""

import time
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ValidationError

from adapters.openai_adapter import AIRequest, AIResponse, BaseAIAdapter
from entities.compliance import ComplianceAssessment, ComplianceStatus, ComplianceSummary
from entities.control import ControlDefinition
from entities.document import ChunkHit, DocumentKind
from entities.evaluation import EvaluationCreate, EvidenceEvaluation
from entities.framework import ActiveFramework
from repositories.control_repository import ControlCatalogRepository
from repositories.evaluation_repository import EvaluationRepository
from services.control_candidates import is_framework_compatible, resolve_framework_codes
from services.retrieval_service import RetrievalService
from common.exceptions import (
    ControlNotInFrameworkException,
    LLMResponseException,
    ResourceNotFoundException,
)
from common.logging import get_logger, log_business_event, log_performance

logger = get_logger("evidence_evaluation_service")

NO_EVIDENCE_REPLY = "No customer evidence in this conversation addresses this control yet."
UNSUPPORTED_CLAIM_NOTE = "Claim is not supported by a customer document citation."

COMPLIANCE_INSTRUCTIONS = """You are a compliance assistant.
The context contains CUSTOMER evidence excerpts and STANDARD reference excerpts.
STANDARD material describes requirements only; it is never evidence that the customer complies.
Every statement that the customer satisfies a requirement must cite a CUSTOMER excerpt
(doc = its docName, kind = CUSTOMER). When no CUSTOMER excerpt supports an answer, the
complianceSummary status must be UNKNOWN. Never invent documents, pages or quotes.
Use citations with kind STANDARD only for the requirement text you relied on."""

COMPLIANCE_ASSESSMENT_SCHEMA = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "reply": {"type": "string"},
        "citations": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "doc": {"type": "string"},
                    "page": {"type": ["number", "null"]},
                    "kind": {"type": "string", "enum": [k.value for k in DocumentKind]},
                },
                "required": ["doc", "page", "kind"],
            },
        },
        "complianceSummary": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "status": {"type": "string", "enum": [s.value for s in ComplianceStatus]},
                "satisfied": {"type": "array", "items": {"type": "string"}},
                "missing": {"type": "array", "items": {"type": "string"}},
                "recommendations": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["status", "satisfied", "missing", "recommendations"],
        },
    },
    "required": ["reply", "citations", "complianceSummary"],
}


class EvaluationResult(BaseModel):
    control_code: str
    assessment: ComplianceAssessment
    evaluation: Optional[EvidenceEvaluation] = None
    customer_hits: int = 0
    standard_hits: int = 0


def hits_context(hits: Sequence[ChunkHit]) -> List[Dict[str, Any]]:
    return [
        {"docName": h.doc_name, "chunkIndex": h.chunk_index, "kind": h.kind.value, "text": h.text}
        for h in hits
    ]


def parse_assessment(response: AIResponse) -> ComplianceAssessment:
    try:
        return ComplianceAssessment.model_validate(response.data)
    except ValidationError as e:
        raise LLMResponseException(
            detail=f"Compliance assessment did not match the expected shape: {e.error_count()} errors",
            model=response.model_used,
            raw_excerpt=response.raw_text[:300],
        )


def enforce_customer_citations(assessment: ComplianceAssessment, has_customer_evidence: bool) -> ComplianceAssessment:
    """Downgrade to UNKNOWN any compliance claim without a CUSTOMER citation."""
    summary = assessment.compliance_summary
    cited = any(c.kind == DocumentKind.CUSTOMER for c in assessment.citations)
    if summary.status == ComplianceStatus.UNKNOWN:
        return assessment
    if has_customer_evidence and (cited or summary.status == ComplianceStatus.NOT_COMPLIANT):
        return assessment

    logger.warning(f"Downgrading unsupported {summary.status.value} assessment to UNKNOWN")
    missing = list(summary.missing)
    if UNSUPPORTED_CLAIM_NOTE not in missing:
        missing.append(UNSUPPORTED_CLAIM_NOTE)
    return assessment.model_copy(
        update={
            "compliance_summary": summary.model_copy(
                update={"status": ComplianceStatus.UNKNOWN, "missing": missing}
            )
        }
    )


def control_query(control: ControlDefinition, question: Optional[str]) -> str:
    parts = [question or "", control.control_code, control.title, control.description or "", control.requirement_text]
    return " ".join(p for p in parts if p)


class EvidenceEvaluationService:
    def __init__(
        self,
        retrieval_service: RetrievalService,
        control_repository: ControlCatalogRepository,
        evaluation_repository: EvaluationRepository,
        ai_adapter: BaseAIAdapter,
    ):
        self.retrieval_service = retrieval_service
        self.control_repository = control_repository
        self.evaluation_repository = evaluation_repository
        self.ai_adapter = ai_adapter

    async def _ask(
        self,
        question: str,
        context: Dict[str, Any],
        language: Optional[str],
    ) -> ComplianceAssessment:
        request = AIRequest(
            system_instructions=COMPLIANCE_INSTRUCTIONS,
            question=question,
            context=context,
            language=language,
        )
        response = await self.ai_adapter.generate_structured_response(
            request, "compliance_assessment", COMPLIANCE_ASSESSMENT_SCHEMA
        )
        return parse_assessment(response)

    async def answer_question(
        self,
        conversation_id: str,
        question: str,
        active_framework: Optional[ActiveFramework] = None,
        language: Optional[str] = None,
    ) -> ComplianceAssessment:
        """Free-form compliance question over the conversation's documents. Nothing is persisted."""
        start_time = time.time()
        customer_hits = await self.retrieval_service.retrieve(conversation_id, DocumentKind.CUSTOMER, question)
        standard_hits = await self.retrieval_service.retrieve(conversation_id, DocumentKind.STANDARD, question)

        assessment = await self._ask(
            question,
            {
                "activeFramework": active_framework.model_dump() if active_framework else None,
                "customerEvidence": hits_context(customer_hits),
                "referenceMaterial": hits_context(standard_hits),
            },
            language,
        )
        assessment = enforce_customer_citations(assessment, bool(customer_hits))

        log_performance(
            operation="compliance_question",
            duration_ms=(time.time() - start_time) * 1000,
            success=True,
            customer_hits=len(customer_hits),
            standard_hits=len(standard_hits),
        )
        return assessment

    async def evaluate_control(
        self,
        conversation_id: str,
        control_code: str,
        question: Optional[str] = None,
        active_framework: Optional[ActiveFramework] = None,
        language: Optional[str] = None,
    ) -> EvaluationResult:
        """
        Judge whether the conversation's customer evidence satisfies a control.

        Without any customer evidence hit the result is UNKNOWN, no LLM call is
        made and nothing is persisted. Every LLM judgement is stored as a new
        evaluation.
        """
        control = await self.control_repository.get_by_code(control_code)
        if control is None:
            raise ResourceNotFoundException(resource_type="Control", resource_id=control_code)
        if not is_framework_compatible(control, active_framework):
            raise ControlNotInFrameworkException(control.control_code, active_framework.name)
        await self.control_repository.ensure_primary_topic(control)

        start_time = time.time()
        query = control_query(control, question)
        customer_hits = await self.retrieval_service.retrieve(conversation_id, DocumentKind.CUSTOMER, query)
        if not customer_hits:
            logger.info(f"No customer evidence for {control.control_code} in {conversation_id}")
            return EvaluationResult(
                control_code=control.control_code,
                assessment=ComplianceAssessment(
                    reply=NO_EVIDENCE_REPLY,
                    citations=[],
                    compliance_summary=ComplianceSummary(
                        status=ComplianceStatus.UNKNOWN,
                        missing=[f"Evidence for {control.control_code}: {control.title}"],
                    ),
                ),
            )
        standard_hits = await self.retrieval_service.retrieve(conversation_id, DocumentKind.STANDARD, query)

        assessment = await self._ask(
            question or f"Does the customer evidence satisfy control {control.control_code} ({control.title})?",
            {
                "control": {
                    "controlCode": control.control_code,
                    "title": control.title,
                    "description": control.description,
                    "requirement": control.requirement_text,
                    "ownerRole": control.owner_role,
                    "frameworkCodes": resolve_framework_codes(control, active_framework),
                },
                "activeFramework": active_framework.model_dump() if active_framework else None,
                "customerEvidence": hits_context(customer_hits),
                "referenceMaterial": hits_context(standard_hits),
            },
            language,
        )
        assessment = enforce_customer_citations(assessment, True)
        summary = assessment.compliance_summary

        evaluation = await self.evaluation_repository.create(
            EvaluationCreate(
                conversation_id=conversation_id,
                control_id=control.control_code,
                status=summary.status,
                summary=assessment.reply,
                satisfied=summary.satisfied,
                missing=summary.missing,
                recommendations=summary.recommendations,
                citations=assessment.citations,
            )
        )

        log_performance(
            operation="control_evaluation",
            duration_ms=(time.time() - start_time) * 1000,
            success=True,
            customer_hits=len(customer_hits),
            standard_hits=len(standard_hits),
        )
        log_business_event(
            event_type="CONTROL_EVALUATED",
            entity_type="control",
            entity_id=control.id,
            action="evaluate",
            details={
                "control_code": control.control_code,
                "conversation_id": conversation_id,
                "status": summary.status.value,
                "evaluation_id": evaluation.id,
            },
        )
        return EvaluationResult(
            control_code=control.control_code,
            assessment=assessment,
            evaluation=evaluation,
            customer_hits=len(customer_hits),
            standard_hits=len(standard_hits),
        )


def create_evidence_evaluation_service(
    retrieval_service: RetrievalService,
    control_repository: ControlCatalogRepository,
    evaluation_repository: EvaluationRepository,
    ai_adapter: BaseAIAdapter,
) -> EvidenceEvaluationService:
    return EvidenceEvaluationService(retrieval_service, control_repository, evaluation_repository, ai_adapter)
