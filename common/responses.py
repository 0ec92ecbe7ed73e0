"""
Standardized API response envelopes for success, error and paginated results.
"""

import json
from enum import Enum
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from uuid import UUID
from pydantic import BaseModel
from fastapi import status
from fastapi.responses import JSONResponse

from common.logging import request_id_var


class ErrorDetail(BaseModel):
    code: str
    message: str
    field: Optional[str] = None
    context: Optional[Dict[str, Any]] = None


class APIResponse(BaseModel):
    """Standard API response format."""
    success: bool
    data: Optional[Any] = None
    error: Optional[ErrorDetail] = None
    meta: Optional[Dict[str, Any]] = None
    request_id: Optional[str] = None
    timestamp: str


class PaginatedResponse(BaseModel):
    success: bool = True
    data: List[Any]
    meta: Dict[str, Any]
    request_id: Optional[str] = None
    timestamp: str


class ValidationErrorResponse(BaseModel):
    success: bool = False
    error: ErrorDetail
    validation_errors: List[Dict[str, Any]]
    request_id: Optional[str] = None
    timestamp: str


def _ensure_jsonable(value: Any) -> Any:
    """Recursively convert models, datetimes, UUIDs, enums and sets to JSON-safe values."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value.value if isinstance(value, Enum) else value

    if isinstance(value, Enum):
        return value.value

    if isinstance(value, BaseModel):
        return _ensure_jsonable(value.model_dump(exclude_none=True))

    if isinstance(value, datetime):
        return value.isoformat()

    if isinstance(value, UUID):
        return str(value)

    if isinstance(value, dict):
        return {k: _ensure_jsonable(v) for k, v in value.items()}

    if isinstance(value, (list, tuple)):
        return [_ensure_jsonable(v) for v in value]

    if isinstance(value, (set, frozenset)):
        return sorted(_ensure_jsonable(v) for v in value)

    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        return str(value)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_success_response(
    data: Any,
    meta: Optional[Dict[str, Any]] = None,
    status_code: int = status.HTTP_200_OK
) -> JSONResponse:
    response_data = APIResponse(
        success=True,
        data=_ensure_jsonable(data),
        meta=meta,
        request_id=request_id_var.get(),
        timestamp=_now()
    )
    content = _ensure_jsonable(response_data.model_dump(exclude_none=True))
    return JSONResponse(content=content, status_code=status_code)


def create_error_response(
    error_code: str,
    message: str,
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
    field: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> JSONResponse:
    error_detail = ErrorDetail(
        code=error_code,
        message=message,
        field=field,
        context=_ensure_jsonable(context) if context else None
    )
    response_data = APIResponse(
        success=False,
        error=error_detail,
        request_id=request_id_var.get(),
        timestamp=_now()
    )
    content = _ensure_jsonable(response_data.model_dump(exclude_none=True))
    return JSONResponse(content=content, status_code=status_code)


def create_validation_error_response(
    validation_errors: List[Dict[str, Any]],
    message: str = "Validation failed"
) -> JSONResponse:
    response_data = ValidationErrorResponse(
        error=ErrorDetail(code="VALIDATION_ERROR", message=message),
        validation_errors=_ensure_jsonable(validation_errors),
        request_id=request_id_var.get(),
        timestamp=_now()
    )
    content = _ensure_jsonable(response_data.model_dump(exclude_none=True))
    return JSONResponse(content=content, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


def create_paginated_response(
    data: List[Any],
    total: int,
    page: int = 1,
    page_size: int = 10,
    **additional_meta
) -> JSONResponse:
    """Create a paginated response with page-based metadata."""
    total_pages = (total + page_size - 1) // page_size if page_size else 0
    meta = {
        "pagination": {
            "page": page,
            "page_size": page_size,
            "total": total,
            "count": len(data),
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
        **additional_meta
    }
    response_data = PaginatedResponse(
        data=_ensure_jsonable(data),
        meta=_ensure_jsonable(meta),
        request_id=request_id_var.get(),
        timestamp=_now()
    )
    content = _ensure_jsonable(response_data.model_dump(exclude_none=True))
    return JSONResponse(content=content, status_code=status.HTTP_200_OK)
