"""
Control listing with aggregated compliance status and gap classification.
"""

from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from entities.compliance import ComplianceStatus, ControlStatusView, GapReason
from entities.control import ControlDefinition, ControlTopic
from entities.framework import ActiveFramework
from repositories.control_repository import ControlCatalogRepository
from services.compliance_status import ComplianceStatusService, ControlEvidence
from services.control_candidates import is_framework_compatible, resolve_framework_codes
from services.gap_classifier import classify_gap
from common.exceptions import ControlNotInFrameworkException, ResourceNotFoundException
from common.logging import get_logger

logger = get_logger("control_service")


class ControlService:
    def __init__(
        self,
        control_repository: ControlCatalogRepository,
        status_service: ComplianceStatusService,
        outdated_policy_days: int = 180,
    ):
        self.control_repository = control_repository
        self.status_service = status_service
        self.outdated_policy_days = outdated_policy_days

    def _to_view(
        self,
        control: ControlDefinition,
        evidence: Optional[ControlEvidence],
        active_framework: Optional[ActiveFramework],
        now: datetime,
    ) -> ControlStatusView:
        status = evidence.status if evidence else ComplianceStatus.UNKNOWN
        documents = evidence.documents if evidence else []
        has_evaluation = evidence.has_evaluation if evidence else False
        return ControlStatusView(
            control_code=control.control_code,
            title=control.title,
            topic_title=control.topic_title,
            owner_role=control.owner_role,
            status=status,
            gap=classify_gap(control, status, documents, has_evaluation, now, self.outdated_policy_days),
            framework_codes=resolve_framework_codes(control, active_framework),
            document_count=len(documents),
            has_evaluation=has_evaluation,
        )

    async def _views(
        self,
        controls: Sequence[ControlDefinition],
        active_framework: Optional[ActiveFramework],
    ) -> List[ControlStatusView]:
        evidence = await self.status_service.evidence_for(controls, active_framework)
        now = datetime.now(timezone.utc)
        return [self._to_view(c, evidence.get(c.control_code), active_framework, now) for c in controls]

    async def list_controls(
        self,
        active_framework: Optional[ActiveFramework],
        page: int = 1,
        page_size: int = 50,
        topic_id: Optional[str] = None,
        query: Optional[str] = None,
        status: Optional[ComplianceStatus] = None,
        gap: Optional[GapReason] = None,
    ) -> Tuple[List[ControlStatusView], int]:
        """
        One page of enabled controls compatible with the active framework.

        Status and gap are computed only for the requested page unless a
        status or gap filter is given, in which case every compatible control
        is resolved (still in bounded batches) before paginating.
        """
        controls = await self.control_repository.list_controls(topic_id=topic_id, query=query, active_only=True)
        controls = [c for c in controls if is_framework_compatible(c, active_framework)]
        offset = (page - 1) * page_size

        if status is None and gap is None:
            page_views = await self._views(controls[offset:offset + page_size], active_framework)
            return page_views, len(controls)

        views = await self._views(controls, active_framework)
        if status is not None:
            views = [v for v in views if v.status == status]
        if gap is not None:
            views = [v for v in views if v.gap == gap]
        return views[offset:offset + page_size], len(views)

    async def list_topics(self) -> List[ControlTopic]:
        return await self.control_repository.list_topics(active_only=True)

    async def get_control_status(
        self,
        control_code: str,
        active_framework: Optional[ActiveFramework],
    ) -> ControlStatusView:
        control = await self.control_repository.get_by_code(control_code)
        if control is None:
            raise ResourceNotFoundException(resource_type="Control", resource_id=control_code)
        if not is_framework_compatible(control, active_framework):
            raise ControlNotInFrameworkException(control.control_code, active_framework.name)
        await self.control_repository.ensure_primary_topic(control)
        views = await self._views([control], active_framework)
        return views[0]


def create_control_service(
    control_repository: ControlCatalogRepository,
    status_service: ComplianceStatusService,
    outdated_policy_days: int = 180,
) -> ControlService:
    return ControlService(control_repository, status_service, outdated_policy_days)
