"""
Middleware for error handling, logging, and request tracking.
"""
import time

from fastapi import Request, Response, HTTPException
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp
from pydantic import ValidationError

from common.exceptions import BaseComplianceException
from common.logging import RequestContextLogger, get_logger, log_api_request, log_error
from common.responses import (
    create_error_response,
    create_validation_error_response,
)

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "AUTHENTICATION_REQUIRED",
    403: "ACCESS_DENIED",
    404: "RESOURCE_NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "RESOURCE_CONFLICT",
    429: "RATE_LIMIT_EXCEEDED",
    500: "INTERNAL_SERVER_ERROR",
    502: "BAD_GATEWAY",
    503: "SERVICE_UNAVAILABLE",
    504: "GATEWAY_TIMEOUT"
}


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """Binds a request id (and conversation id when present) to every log record."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.logger = get_logger("middleware")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id")
        conversation_id = request.query_params.get("conversation_id")
        start = time.time()

        with RequestContextLogger(request_id=request_id, conversation_id=conversation_id) as ctx:
            response = await call_next(request)
            response.headers["X-Request-ID"] = ctx.request_id
            log_api_request(
                method=request.method,
                path=str(request.url.path),
                status_code=response.status_code,
                duration_ms=(time.time() - start) * 1000,
                ip_address=request.client.host if request.client else None,
            )
            return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Centralized error handling and response formatting."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.logger = get_logger("error_handler")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except BaseComplianceException as e:
            return self._handle_compliance_exception(e, request)
        except HTTPException as e:
            return self._handle_http_exception(e, request)
        except ValidationError as e:
            return self._handle_validation_error(e, request)
        except Exception as e:
            return self._handle_unexpected_error(e, request)

    def _handle_compliance_exception(self, error: BaseComplianceException, request: Request) -> JSONResponse:
        self.logger.error(
            f"Compliance exception: {error.error_code}",
            extra={
                "error_code": error.error_code,
                "status_code": error.status_code,
                "context": error.context,
                "path": str(request.url.path),
                "method": request.method
            }
        )

        response = create_error_response(
            error_code=error.error_code,
            message=error.detail,
            status_code=error.status_code,
            context=error.context
        )
        if error.headers:
            for key, value in error.headers.items():
                response.headers[key] = value
        return response

    def _handle_http_exception(self, error: HTTPException, request: Request) -> JSONResponse:
        self.logger.warning(
            f"HTTP exception: {error.status_code}",
            extra={
                "status_code": error.status_code,
                "detail": error.detail,
                "path": str(request.url.path),
                "method": request.method
            }
        )

        response = create_error_response(
            error_code=HTTP_ERROR_CODES.get(error.status_code, "HTTP_ERROR"),
            message=str(error.detail),
            status_code=error.status_code
        )
        if error.headers:
            for key, value in error.headers.items():
                response.headers[key] = value
        return response

    def _handle_validation_error(self, error: ValidationError, request: Request) -> JSONResponse:
        self.logger.warning(
            "Validation error occurred",
            extra={
                "error_count": error.error_count(),
                "path": str(request.url.path),
                "method": request.method
            }
        )

        validation_errors = [
            {
                "field": ".".join(str(x) for x in err["loc"]),
                "message": err["msg"],
                "type": err["type"],
                "value": err.get("input")
            }
            for err in error.errors()
        ]
        return create_validation_error_response(
            validation_errors=validation_errors,
            message="Request validation failed"
        )

    def _handle_unexpected_error(self, error: Exception, request: Request) -> JSONResponse:
        log_error(error, {"path": str(request.url.path), "method": request.method})
        return create_error_response(
            error_code="INTERNAL_SERVER_ERROR",
            message="An unexpected error occurred",
            status_code=500
        )


def setup_middleware(app) -> None:
    """Register middleware; the last one added runs first."""
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestTrackingMiddleware)
