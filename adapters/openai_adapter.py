"""
OpenAI API adapter for structured (JSON schema) compliance responses.
This handles all direct communication with the LLM provider.
"""

import asyncio
import json
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from openai import AsyncOpenAI, APIConnectionError, APIError, APIStatusError, APITimeoutError

from common.exceptions import (
    LLMResponseException,
    LLMTimeoutException,
    OpenAIException,
    ValidationException,
)
from common.logging import get_logger, log_performance

logger = get_logger("openai_adapter")


@dataclass
class AIRequest:
    """Prompt in: instructions, structured context and the user question."""
    system_instructions: str
    question: str
    context: Dict[str, Any] = field(default_factory=dict)
    model: Optional[str] = None
    temperature: Optional[float] = 0.1
    max_tokens: Optional[int] = 1200
    language: Optional[str] = None


@dataclass
class AIResponse:
    """Structured JSON out, plus call metadata."""
    data: Dict[str, Any]
    raw_text: str
    model_used: str
    tokens_used: int
    response_time_ms: float
    request_id: str
    created_at: datetime


def extract_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced {...} substring of text, or None.

    Braces inside JSON string literals (including escaped quotes) are ignored.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for pos in range(start, len(text)):
            ch = text[pos]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:pos + 1]
        start = text.find("{", start + 1)
    return None


def parse_structured_output(text: str, model: Optional[str] = None) -> Dict[str, Any]:
    """Parse LLM output as a JSON object, falling back to a brace-matched substring."""
    candidates = [text]
    embedded = extract_json_object(text or "")
    if embedded and embedded != text:
        candidates.append(embedded)

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except (TypeError, ValueError):
            continue
        if isinstance(parsed, dict):
            return parsed

    raise LLMResponseException(model=model, raw_excerpt=(text or "")[:300])


REPLY_LANGUAGES = {"en": "English", "ar": "Arabic"}


def build_user_message(request: AIRequest) -> str:
    parts = [f"Question: {request.question.strip()}"]
    language = REPLY_LANGUAGES.get((request.language or "").lower())
    if language:
        parts.append(f"Write every free-text field of the answer in {language}.")
    if request.context:
        parts.append("Context (JSON):\n" + json.dumps(request.context, ensure_ascii=False, indent=2, default=str))
    return "\n\n".join(parts)


class BaseAIAdapter(ABC):
    """Abstract base class for LLM adapters."""

    @abstractmethod
    async def generate_structured_response(
        self,
        request: AIRequest,
        schema_name: str,
        schema: Dict[str, Any],
    ) -> AIResponse:
        """Return JSON matching `schema`, or raise an ExternalServiceException subclass."""
        pass

    @abstractmethod
    def is_healthy(self) -> bool:
        pass


class OpenAIAdapter(BaseAIAdapter):
    """
    OpenAI chat-completions adapter using strict JSON schema output.

    Every call is bounded by `timeout` seconds and is never retried.
    """

    def __init__(self, api_key: str, default_model: str = "gpt-4o-mini", timeout: float = 25):
        self.api_key = api_key
        self.default_model = default_model
        self.timeout = timeout
        self._client = AsyncOpenAI(api_key=api_key, max_retries=0)
        logger.info(f"OpenAI client initialized (model={default_model}, timeout={timeout}s)")

    async def generate_structured_response(
        self,
        request: AIRequest,
        schema_name: str,
        schema: Dict[str, Any],
    ) -> AIResponse:
        if not request.question or not request.question.strip():
            raise ValidationException(detail="Question cannot be empty", field="question", value=request.question)

        model = request.model or self.default_model
        start_time = time.time()
        request_id = str(uuid.uuid4())
        messages = [
            {"role": "system", "content": request.system_instructions},
            {"role": "user", "content": build_user_message(request)},
        ]

        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=model,
                    messages=messages,
                    temperature=request.temperature if request.temperature is not None else 0.1,
                    max_tokens=request.max_tokens or 1200,
                    response_format={
                        "type": "json_schema",
                        "json_schema": {"name": schema_name, "strict": True, "schema": schema},
                    },
                ),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, APITimeoutError):
            log_performance(
                operation="openai_structured_generation",
                duration_ms=(time.time() - start_time) * 1000,
                success=False,
                error="timeout",
                schema=schema_name,
            )
            raise LLMTimeoutException(timeout_seconds=self.timeout, model=model)
        except APIStatusError as e:
            log_performance(
                operation="openai_structured_generation",
                duration_ms=(time.time() - start_time) * 1000,
                success=False,
                error=f"http_{e.status_code}",
                schema=schema_name,
            )
            logger.error(f"OpenAI returned HTTP {e.status_code}: {e}", exc_info=True)
            raise OpenAIException(
                detail=f"OpenAI API request failed with HTTP {e.status_code}",
                model=model,
                context={"model": model, "status_code": e.status_code},
            )
        except APIConnectionError as e:
            logger.error(f"OpenAI connection failed: {e}", exc_info=True)
            raise OpenAIException(
                detail="Could not reach OpenAI API",
                model=model,
                context={"model": model, "error": str(e)},
            )
        except APIError as e:
            logger.error(f"OpenAI API error: {e}", exc_info=True)
            raise OpenAIException(
                detail="OpenAI API returned an invalid response",
                model=model,
                context={"model": model, "error": str(e)},
            )

        if not response.choices:
            raise LLMResponseException(detail="LLM returned no choices", model=model)
        message = response.choices[0].message
        raw_text = message.content or ""
        if not raw_text and getattr(message, "refusal", None):
            raise LLMResponseException(detail="LLM refused to answer", model=model, raw_excerpt=message.refusal[:300])

        data = parse_structured_output(raw_text, model=model)
        tokens_used = response.usage.total_tokens if response.usage else 0
        response_time_ms = (time.time() - start_time) * 1000

        log_performance(
            operation="openai_structured_generation",
            duration_ms=response_time_ms,
            success=True,
            token_count=tokens_used,
            schema=schema_name,
        )
        logger.info(f"OpenAI structured generation completed: {tokens_used} tokens, {response_time_ms:.0f}ms")

        return AIResponse(
            data=data,
            raw_text=raw_text,
            model_used=response.model,
            tokens_used=tokens_used,
            response_time_ms=response_time_ms,
            request_id=request_id,
            created_at=datetime.now(timezone.utc),
        )

    def is_healthy(self) -> bool:
        return self._client is not None


class MockAIAdapter(BaseAIAdapter):
    """
    Offline adapter for development: returns canned or schema-shaped JSON.
    """

    def __init__(self, canned: Optional[Dict[str, Dict[str, Any]]] = None, delay_ms: int = 0):
        self.canned = canned or {}
        self.delay_ms = delay_ms
        logger.info("Mock AI adapter initialized")

    async def generate_structured_response(
        self,
        request: AIRequest,
        schema_name: str,
        schema: Dict[str, Any],
    ) -> AIResponse:
        start_time = time.time()
        if self.delay_ms:
            await asyncio.sleep(self.delay_ms / 1000)

        data = self.canned.get(schema_name) or self._mock_from_schema(schema)
        raw_text = json.dumps(data)
        return AIResponse(
            data=json.loads(raw_text),
            raw_text=raw_text,
            model_used="mock",
            tokens_used=0,
            response_time_ms=(time.time() - start_time) * 1000,
            request_id=str(uuid.uuid4()),
            created_at=datetime.now(timezone.utc),
        )

    def _mock_from_schema(self, schema: Dict[str, Any]) -> Any:
        if "enum" in schema:
            return "UNKNOWN" if "UNKNOWN" in schema["enum"] else schema["enum"][0]
        schema_type = schema.get("type", "string")
        if isinstance(schema_type, list):
            if "null" in schema_type:
                return None
            schema_type = schema_type[0]
        if schema_type == "object":
            return {name: self._mock_from_schema(sub) for name, sub in schema.get("properties", {}).items()}
        if schema_type == "array":
            return []
        if schema_type in ("number", "integer"):
            return 0
        if schema_type == "boolean":
            return False
        return "Mock response (LLM disabled)"

    def is_healthy(self) -> bool:
        return True
