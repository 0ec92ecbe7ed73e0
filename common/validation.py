"""
Request validation helpers shared by the routers.
"""

import uuid
from typing import Tuple

from common.exceptions import ValidationException, InvalidUUIDException

MAX_PAGE_SIZE = 200


def validate_uuid(value: str, field: str) -> str:
    try:
        return str(uuid.UUID(str(value)))
    except (ValueError, TypeError, AttributeError):
        raise InvalidUUIDException(field=field, value=str(value))


def validate_pagination_params(page: int, page_size: int) -> Tuple[int, int]:
    """Validate page-based pagination parameters."""
    if page < 1:
        raise ValidationException(
            detail="Page must be 1 or greater",
            field="page",
            value=page
        )

    if page_size <= 0:
        raise ValidationException(
            detail="Page size must be positive",
            field="page_size",
            value=page_size
        )

    if page_size > MAX_PAGE_SIZE:
        raise ValidationException(
            detail=f"Page size cannot exceed {MAX_PAGE_SIZE}",
            field="page_size",
            value=page_size
        )

    return page, page_size
