"""
Structured logging configuration for the compliance evidence service.
Provides request/conversation correlation and JSON log records.
"""

import json
import logging
import sys
import uuid
from typing import Optional, Dict, Any
from contextvars import ContextVar
from datetime import datetime, timezone

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
conversation_id_var: ContextVar[Optional[str]] = ContextVar('conversation_id', default=None)

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'exc_info', 'exc_text', 'stack_info', 'lineno', 'funcName',
    'created', 'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'taskName',
}


class StructuredFormatter(logging.Formatter):
    """Formatter that outputs one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_entry["request_id"] = request_id

        conversation_id = conversation_id_var.get()
        if conversation_id:
            log_entry["conversation_id"] = conversation_id

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info)
            }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_entry[key] = value

        try:
            return json.dumps(log_entry, default=str, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            return f"LOG_SERIALIZATION_ERROR: {e} | Original message: {log_entry.get('message', 'N/A')}"


class RequestContextLogger:
    """Context manager binding request and conversation ids to log records."""

    def __init__(
        self,
        request_id: Optional[str] = None,
        conversation_id: Optional[str] = None
    ):
        self.request_id = request_id or str(uuid.uuid4())
        self.conversation_id = conversation_id
        self.tokens = []

    def __enter__(self):
        self.tokens.append(request_id_var.set(self.request_id))
        if self.conversation_id:
            self.tokens.append(conversation_id_var.set(self.conversation_id))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for token in reversed(self.tokens):
            token.var.reset(token)


def setup_logging(
    level: str = "INFO",
    format_type: str = "structured",
    log_file: Optional[str] = None
) -> None:
    """
    Setup application logging configuration.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: 'structured' for JSON, anything else for plain text
        log_file: Optional file path for logging output
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(numeric_level)

    if format_type == "structured":
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Noisy third-party loggers
    for noisy in ("uvicorn", "fastapi", "httpx", "openai", "pdfminer", "pypdf"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_performance(
    operation: str,
    duration_ms: float,
    success: bool = True,
    **kwargs
) -> None:
    """Log timing for a pipeline step."""
    logger = get_logger("performance")
    logger.info(
        f"Performance metric: {operation}",
        extra={
            "operation": operation,
            "duration_ms": round(duration_ms, 2),
            "success": success,
            **kwargs
        }
    )


def log_business_event(
    event_type: str,
    entity_type: str,
    entity_id: str,
    action: str,
    details: Optional[Dict[str, Any]] = None
) -> None:
    """Log a domain state change (ingestion, evaluation, framework switch...)."""
    logger = get_logger("business")
    logger.info(
        f"Business event: {event_type}",
        extra={
            "event_type": event_type,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "action": action,
            "details": details or {}
        }
    )


def log_api_request(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    ip_address: Optional[str] = None
) -> None:
    logger = get_logger("api")
    logger.info(
        f"API request: {method} {path}",
        extra={
            "method": method,
            "path": path,
            "status_code": status_code,
            "duration_ms": round(duration_ms, 2),
            "ip_address": ip_address
        }
    )


def log_error(
    error: Exception,
    context: Optional[Dict[str, Any]] = None
) -> None:
    """Log an error with its exception context, if any."""
    logger = get_logger("error")

    error_context = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        **(context or {})
    }
    if hasattr(error, 'context'):
        error_context["exception_context"] = error.context
    if hasattr(error, 'error_code'):
        error_context["error_code"] = error.error_code

    logger.error(
        f"Error occurred: {type(error).__name__}",
        extra=error_context,
        exc_info=error
    )
