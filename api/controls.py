import time
from typing import Any, Optional
from fastapi import APIRouter, Path, Query

from dependencies import ActiveFrameworkDep, ControlCandidateServiceDep, ControlServiceDep
from entities.compliance import ComplianceStatus, GapReason
from services.schemas import CandidateSearchRequest
from common.logging import get_logger, log_performance
from common.validation import validate_pagination_params
from common.responses import create_paginated_response, create_success_response

router = APIRouter(prefix="/controls", tags=["Controls"])
logger = get_logger("controls_api")


@router.get("",
    summary="List controls with compliance status",
    description="Enabled controls of the active framework, each with its aggregated status and gap.",
)
async def list_controls(
    control_service: ControlServiceDep,
    active_framework: ActiveFrameworkDep,
    page: int = Query(1, description="Page number, starting at 1"),
    page_size: int = Query(50, description="Controls per page"),
    topic_id: Optional[str] = Query(None, description="Filter by topic"),
    q: Optional[str] = Query(None, max_length=200, description="Search code, title and description"),
    status: Optional[ComplianceStatus] = Query(None, description="Filter by aggregated status"),
    gap: Optional[GapReason] = Query(None, description="Filter by gap reason"),
) -> Any:
    start_time = time.time()
    page, page_size = validate_pagination_params(page, page_size)
    controls, total = await control_service.list_controls(
        active_framework,
        page=page,
        page_size=page_size,
        topic_id=topic_id,
        query=q,
        status=status,
        gap=gap,
    )
    log_performance(
        operation="list_controls",
        duration_ms=(time.time() - start_time) * 1000,
        success=True,
        item_count=len(controls),
    )
    return create_paginated_response(
        data=controls,
        total=total,
        page=page,
        page_size=page_size,
        active_framework=active_framework,
    )


@router.get("/topics",
    summary="List control topics",
    description="Enabled topics, usable as the topic_id filter of the control listing.",
)
async def list_topics(control_service: ControlServiceDep) -> Any:
    topics = await control_service.list_topics()
    return create_success_response(data=topics, meta={"count": len(topics)})


@router.post("/candidates",
    summary="Suggest controls for a document",
    description="Ranks up to eight catalog controls by filename (or excerpt) keyword overlap.",
)
async def find_candidates(
    req: CandidateSearchRequest,
    candidate_service: ControlCandidateServiceDep,
    active_framework: ActiveFrameworkDep,
) -> Any:
    candidates = await candidate_service.find_candidates(req.filename, req.excerpt, active_framework)
    return create_success_response(data=candidates, meta={"count": len(candidates)})


@router.get("/{control_code}/status",
    summary="Compliance status of one control",
)
async def get_control_status(
    control_service: ControlServiceDep,
    active_framework: ActiveFrameworkDep,
    control_code: str = Path(..., min_length=1, max_length=100),
) -> Any:
    view = await control_service.get_control_status(control_code, active_framework)
    return create_success_response(data=view)
