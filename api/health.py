from fastapi import APIRouter

from dependencies import get_ai_adapter

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("/status",
    summary="Application health status",
    description="Basic health check endpoint"
)
def health_status():
    return {
        "status": "healthy",
        "service": "Compliance Evidence API",
        "version": "1.0.0",
        "llm_available": get_ai_adapter().is_healthy(),
    }
