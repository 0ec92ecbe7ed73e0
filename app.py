from fastapi import FastAPI, Request
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from config.config import settings, tags_metadata
from config.cors import configure_cors

# Enhanced error handling imports
from common.logging import setup_logging, get_logger
from common.middleware import setup_middleware
from common.exceptions import BaseComplianceException
from common.rate_limit import limiter
from common.responses import create_error_response

# Setup enhanced logging
setup_logging(
    level=settings.log_level,
    format_type=settings.log_format
)

logger = get_logger("main")

app = FastAPI(
    title="Compliance Evidence API",
    version="1.0.0",
    description="Evidence ingestion, keyword retrieval and LLM-backed control evaluation",
    openapi_tags=tags_metadata,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

setup_middleware(app)
configure_cors(app)


@app.get("/",
    summary="Root endpoint",
    description="Simple health check and API info"
)
async def root():
    """Root endpoint for basic health check."""
    return {
        "message": "Compliance Evidence API",
        "version": "1.0.0",
        "status": "healthy",
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.exception_handler(BaseComplianceException)
async def compliance_exception_handler(request: Request, exc: BaseComplianceException):
    logger.error(f"Compliance exception: {exc.error_code}", extra={
        "error_code": exc.error_code,
        "context": exc.context,
        "path": str(request.url.path),
        "method": request.method
    })
    return create_error_response(
        error_code=exc.error_code,
        message=exc.detail,
        status_code=exc.status_code,
        context=exc.context
    )

# Import routers
from api.health import router as health_router
from api.documents import router as documents_router
from api.retrieval import router as retrieval_router
from api.evidence import router as evidence_router
from api.controls import router as controls_router
from api.frameworks import router as frameworks_router

# Include all routers with v1 prefix
app.include_router(health_router, prefix="/v1")
app.include_router(documents_router, prefix="/v1")
app.include_router(retrieval_router, prefix="/v1")
app.include_router(evidence_router, prefix="/v1")
app.include_router(controls_router, prefix="/v1")
app.include_router(frameworks_router, prefix="/v1")

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
