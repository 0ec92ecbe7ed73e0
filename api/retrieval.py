from typing import Any
from fastapi import APIRouter

from dependencies import RetrievalServiceDep
from services.schemas import RetrievalSearchRequest
from common.logging import get_logger
from common.validation import validate_uuid
from common.responses import create_success_response

router = APIRouter(prefix="/retrieval", tags=["Retrieval"])
logger = get_logger("retrieval_api")


@router.post("/search",
    summary="Keyword search over a conversation's chunks",
    description="Ranks the most recent chunks of one document kind by keyword relevance.",
)
async def search_chunks(
    req: RetrievalSearchRequest,
    retrieval_service: RetrievalServiceDep,
) -> Any:
    conversation_id = validate_uuid(req.conversation_id, "conversation_id")
    hits = await retrieval_service.retrieve(
        conversation_id, req.kind, req.query, top_k=req.top_k, max_scan=req.max_scan
    )
    return create_success_response(data=hits, meta={"count": len(hits), "kind": req.kind})
