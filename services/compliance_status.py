"""
Compliance status aggregation for controls.

A control's latest formal evaluation always decides its status. Without
one, the status of its matched documents is used, with COMPLIANT taking
precedence over PARTIAL, then NOT_COMPLIANT, then UNKNOWN.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from entities.compliance import ComplianceStatus
from entities.control import ControlSummary
from entities.document import Document
from entities.evaluation import EvidenceEvaluation
from entities.framework import ActiveFramework
from repositories.document_repository import DocumentRepository
from repositories.evaluation_repository import EvaluationRepository
from services.control_candidates import is_framework_compatible
from common.logging import get_logger, log_performance

logger = get_logger("compliance_status")

DOCUMENT_STATUS_PRECEDENCE = (
    ComplianceStatus.COMPLIANT,
    ComplianceStatus.PARTIAL,
    ComplianceStatus.NOT_COMPLIANT,
)


def aggregate_status(
    evaluation_status: Optional[ComplianceStatus],
    document_statuses: Iterable[Any],
) -> ComplianceStatus:
    if evaluation_status is not None:
        return evaluation_status
    present = {ComplianceStatus.parse(s) for s in document_statuses}
    for status in DOCUMENT_STATUS_PRECEDENCE:
        if status in present:
            return status
    return ComplianceStatus.UNKNOWN


@dataclass
class ControlEvidence:
    """Everything known about one control's evidence, with its aggregated status."""
    control_code: str
    status: ComplianceStatus
    evaluation: Optional[EvidenceEvaluation] = None
    documents: List[Document] = field(default_factory=list)

    @property
    def has_evaluation(self) -> bool:
        return self.evaluation is not None


class ComplianceStatusService:
    """Batch status resolution with a fixed number of bounded queries per page."""

    def __init__(self, document_repository: DocumentRepository, evaluation_repository: EvaluationRepository):
        self.document_repository = document_repository
        self.evaluation_repository = evaluation_repository

    async def evidence_for(
        self,
        controls: Sequence[ControlSummary],
        active_framework: Optional[ActiveFramework],
    ) -> Dict[str, ControlEvidence]:
        """
        Resolve evidence and status for the given controls.

        Controls not compatible with the active framework are left out of
        the result.
        """
        codes = [c.control_code for c in controls if is_framework_compatible(c, active_framework)]
        if not codes:
            return {}

        start_time = time.time()
        evaluations = await self.evaluation_repository.latest_for_controls(codes)
        documents = await self.document_repository.list_by_match_controls(codes)

        docs_by_control: Dict[str, List[Document]] = {code: [] for code in codes}
        for document in documents:
            if document.match_control_id in docs_by_control:
                docs_by_control[document.match_control_id].append(document)

        result: Dict[str, ControlEvidence] = {}
        for code in codes:
            evaluation = evaluations.get(code)
            control_docs = docs_by_control[code]
            result[code] = ControlEvidence(
                control_code=code,
                status=aggregate_status(
                    evaluation.status if evaluation else None,
                    (d.match_status for d in control_docs),
                ),
                evaluation=evaluation,
                documents=control_docs,
            )

        log_performance(
            operation="control_status_batch",
            duration_ms=(time.time() - start_time) * 1000,
            success=True,
            item_count=len(codes),
        )
        return result

    async def statuses_for(
        self,
        controls: Sequence[ControlSummary],
        active_framework: Optional[ActiveFramework],
    ) -> Dict[str, ComplianceStatus]:
        evidence = await self.evidence_for(controls, active_framework)
        return {code: item.status for code, item in evidence.items()}

    async def status_of(
        self,
        control: ControlSummary,
        active_framework: Optional[ActiveFramework],
    ) -> Optional[ComplianceStatus]:
        """Status of one control; None when it is outside the active framework."""
        statuses = await self.statuses_for([control], active_framework)
        return statuses.get(control.control_code)


def create_compliance_status_service(
    document_repository: DocumentRepository,
    evaluation_repository: EvaluationRepository,
) -> ComplianceStatusService:
    return ComplianceStatusService(document_repository, evaluation_repository)
