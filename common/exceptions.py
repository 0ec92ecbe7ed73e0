"""
Centralized exception classes for the compliance evidence service.
Provides a hierarchy of custom exceptions with error codes and context.
"""

from typing import Optional, Dict, Any
from fastapi import HTTPException, status


class BaseComplianceException(HTTPException):
    """Base exception class for all compliance service errors."""

    def __init__(
        self,
        detail: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        headers: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}


# Validation Exceptions
class ValidationException(BaseComplianceException):
    """Data validation errors."""

    def __init__(
        self,
        detail: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            detail=detail,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="VALIDATION_ERROR",
            context=context or {"field": field, "value": value}
        )


class InvalidUUIDException(ValidationException):
    """Invalid UUID format errors."""

    def __init__(
        self,
        field: str,
        value: str,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            detail=f"Invalid UUID format for field '{field}': {value}",
            field=field,
            value=value,
            context=context
        )


class InvalidFileException(ValidationException):
    """Invalid file upload errors."""

    def __init__(
        self,
        detail: str,
        filename: Optional[str] = None,
        file_type: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            detail=detail,
            context=context or {"filename": filename, "file_type": file_type}
        )


# Resource Exceptions
class ResourceException(BaseComplianceException):
    """Resource-related errors."""

    def __init__(
        self,
        detail: str,
        status_code: int = status.HTTP_404_NOT_FOUND,
        error_code: str = "RESOURCE_ERROR",
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            detail=detail,
            status_code=status_code,
            error_code=error_code,
            context=context or {"resource_type": resource_type, "resource_id": resource_id}
        )


class ResourceNotFoundException(ResourceException):
    """Resource not found errors."""

    def __init__(
        self,
        resource_type: str,
        resource_id: str,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            detail=f"{resource_type} with ID '{resource_id}' not found",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
            resource_type=resource_type,
            resource_id=resource_id,
            context=context
        )


class ResourceConflictException(ResourceException):
    """Resource conflict errors."""

    def __init__(
        self,
        detail: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            detail=detail,
            status_code=status.HTTP_409_CONFLICT,
            error_code="RESOURCE_CONFLICT",
            resource_type=resource_type,
            resource_id=resource_id,
            context=context
        )


# Business Logic Exceptions
class BusinessLogicException(BaseComplianceException):
    """Business logic errors."""

    def __init__(
        self,
        detail: str,
        error_code: str = "BUSINESS_LOGIC_ERROR",
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            detail=detail,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code=error_code,
            context=context
        )


class ControlNotInFrameworkException(BusinessLogicException):
    """The control has framework mappings, none of them for the active framework."""

    def __init__(self, control_code: str, framework_name: str):
        super().__init__(
            detail=f"Control {control_code} is not part of the active framework",
            error_code="CONTROL_NOT_IN_ACTIVE_FRAMEWORK",
            context={"control_code": control_code, "framework": framework_name}
        )


# External Service Exceptions
class ExternalServiceException(BaseComplianceException):
    """External service errors."""

    def __init__(
        self,
        detail: str,
        service_name: str,
        error_code: str = "EXTERNAL_SERVICE_ERROR",
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            detail=detail,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code=error_code,
            context=context or {"service_name": service_name}
        )


class DatabaseException(ExternalServiceException):
    """Database-related errors."""

    def __init__(
        self,
        detail: str,
        operation: Optional[str] = None,
        error_code: str = "DATABASE_ERROR",
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            detail=detail,
            service_name="database",
            error_code=error_code,
            context=context or {"operation": operation}
        )


class OpenAIException(ExternalServiceException):
    """OpenAI API errors."""

    def __init__(
        self,
        detail: str,
        model: Optional[str] = None,
        error_code: str = "OPENAI_ERROR",
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            detail=detail,
            service_name="openai",
            error_code=error_code,
            context=context or {"model": model}
        )


class LLMTimeoutException(OpenAIException):
    """LLM call aborted after the configured timeout."""

    def __init__(
        self,
        timeout_seconds: float,
        model: Optional[str] = None
    ):
        super().__init__(
            detail=f"LLM request timed out after {timeout_seconds}s",
            model=model,
            error_code="LLM_TIMEOUT",
            context={"model": model, "timeout_seconds": timeout_seconds}
        )


class LLMResponseException(OpenAIException):
    """LLM returned output that is not valid JSON for the requested schema."""

    def __init__(
        self,
        detail: str = "LLM returned an unparsable response",
        model: Optional[str] = None,
        raw_excerpt: Optional[str] = None
    ):
        super().__init__(
            detail=detail,
            model=model,
            error_code="LLM_RESPONSE_INVALID",
            context={"model": model, "raw_excerpt": raw_excerpt}
        )


# File Processing Exceptions
class FileProcessingException(BaseComplianceException):
    """File processing errors."""

    def __init__(
        self,
        detail: str,
        filename: Optional[str] = None,
        error_code: str = "FILE_PROCESSING_ERROR",
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            detail=detail,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code=error_code,
            context=context or {"filename": filename}
        )


class ExtractionException(FileProcessingException):
    """Text could not be extracted from a stored file."""

    def __init__(
        self,
        detail: str,
        filename: Optional[str] = None,
        file_type: Optional[str] = None,
        error_code: str = "EXTRACTION_FAILED",
    ):
        super().__init__(
            detail=detail,
            filename=filename,
            error_code=error_code,
            context={"filename": filename, "file_type": file_type}
        )


class UnsupportedFileTypeException(ExtractionException):
    """No extractor exists for the detected file type."""

    def __init__(
        self,
        filename: Optional[str] = None,
        mime_type: Optional[str] = None
    ):
        super().__init__(
            detail=f"Unsupported file type for '{filename}' ({mime_type or 'unknown mime'})",
            filename=filename,
            file_type=mime_type,
            error_code="UNSUPPORTED_FILE_TYPE",
        )



class StorageException(FileProcessingException):
    """Stored file could not be written, read or located."""

    def __init__(
        self,
        detail: str,
        path: Optional[str] = None,
        error_code: str = "STORAGE_ERROR"
    ):
        super().__init__(
            detail=detail,
            filename=path,
            error_code=error_code,
            context={"path": path}
        )
