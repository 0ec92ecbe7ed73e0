from typing import Any
from fastapi import APIRouter, Request

from dependencies import ActiveFrameworkDep, EvidenceEvaluationServiceDep
from services.schemas import AskQuestionRequest, EvaluateControlRequest
from config.config import settings
from common.logging import get_logger
from common.rate_limit import limiter
from common.validation import validate_uuid
from common.responses import create_success_response

router = APIRouter(prefix="/evidence", tags=["Evidence"])
logger = get_logger("evidence_api")


@router.post("/evaluate",
    summary="Evaluate customer evidence against a control",
    description="Retrieves evidence and reference excerpts, asks the LLM and stores the judgement.",
)
@limiter.limit(settings.llm_rate_limit)
async def evaluate_control(
    request: Request,
    req: EvaluateControlRequest,
    evaluation_service: EvidenceEvaluationServiceDep,
    active_framework: ActiveFrameworkDep,
) -> Any:
    conversation_id = validate_uuid(req.conversation_id, "conversation_id")
    result = await evaluation_service.evaluate_control(
        conversation_id,
        req.control_code.strip(),
        question=req.question,
        active_framework=active_framework,
        language=req.language,
    )
    return create_success_response(
        data={
            "control_code": result.control_code,
            "assessment": result.assessment.model_dump(mode="json", by_alias=True),
            "evaluation_id": result.evaluation.id if result.evaluation else None,
            "customer_hits": result.customer_hits,
            "standard_hits": result.standard_hits,
        }
    )


@router.post("/ask",
    summary="Ask a compliance question",
    description="Answers from the conversation's documents. Nothing is stored.",
)
@limiter.limit(settings.llm_rate_limit)
async def ask_question(
    request: Request,
    req: AskQuestionRequest,
    evaluation_service: EvidenceEvaluationServiceDep,
    active_framework: ActiveFrameworkDep,
) -> Any:
    conversation_id = validate_uuid(req.conversation_id, "conversation_id")
    assessment = await evaluation_service.answer_question(
        conversation_id, req.question, active_framework=active_framework, language=req.language
    )
    return create_success_response(data=assessment.model_dump(mode="json", by_alias=True))
