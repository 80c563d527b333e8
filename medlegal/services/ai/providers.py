"""LLM providers for document analysis, bill extraction and chat.

``OpenAIProvider`` talks to the OpenAI API directly; ``AzureOpenAIProvider``
routes through an Azure OpenAI deployment, which differs only in URL shape
and auth header. Prompting and response parsing are shared in ``AIProvider``.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from medlegal.core.config import settings
from medlegal.core.exceptions import APIClientError, AnalysisError, BillExtractionError
from medlegal.core.llm_client import BaseLLMClient
from medlegal.prompts.system_prompts import (
    BILL_LINE_ITEMS_PROMPT,
    DEMAND_LETTER_PROMPT,
    DOCUMENT_ANALYSIS_PROMPT,
    DOCUMENT_ANALYSIS_SYSTEM_PROMPT,
)
from medlegal.utils.json_parser import parse_json_safely
from medlegal.utils.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_SUMMARY = "Document analyzed successfully."
MAX_PROMPT_CHARS = 60000


class DocumentAnalysis(BaseModel):
    """Well-typed result of ``analyze_document``."""

    summary: str = DEFAULT_SUMMARY
    extracted_data: Dict[str, Any] = Field(default_factory=dict)
    key_findings: List[str] = Field(default_factory=list)


def _truncate(text: str, file_name: str) -> str:
    if len(text) <= MAX_PROMPT_CHARS:
        return text
    LOGGER.warning(
        "Document text truncated for prompt",
        extra={"file_name": file_name, "original_chars": len(text), "kept_chars": MAX_PROMPT_CHARS}
    )
    return text[:MAX_PROMPT_CHARS]


def parse_analysis_response(content: str) -> DocumentAnalysis:
    """Turn raw model output into a ``DocumentAnalysis``, substituting defaults.

    Never raises: unparseable output or missing keys fall back to the
    defaults so callers always get the full shape.
    """
    parsed = parse_json_safely(content)
    if not isinstance(parsed, dict):
        LOGGER.warning(
            "Analysis response was not a JSON object, using defaults",
            extra={"preview": (content or "")[:200]}
        )
        return DocumentAnalysis()

    missing = [key for key in ("summary", "extractedData", "keyFindings") if not parsed.get(key)]
    if missing:
        LOGGER.info("Analysis response missing keys, defaults applied", extra={"missing": missing})

    summary = parsed.get("summary")
    extracted = parsed.get("extractedData")
    findings = parsed.get("keyFindings")

    return DocumentAnalysis(
        summary=summary.strip() if isinstance(summary, str) and summary.strip() else DEFAULT_SUMMARY,
        extracted_data=extracted if isinstance(extracted, dict) else {},
        key_findings=[str(item) for item in findings] if isinstance(findings, list) else [],
    )


def parse_line_items_response(content: str) -> List[Dict[str, Any]]:
    """Accept a top-level array or ``{"bills": [...]}``; anything else is empty."""
    parsed = parse_json_safely(content)

    if isinstance(parsed, list):
        items = parsed
    elif isinstance(parsed, dict) and isinstance(parsed.get("bills"), list):
        items = parsed["bills"]
    else:
        LOGGER.warning(
            "Unexpected line-item response shape, no bills extracted",
            extra={"type": type(parsed).__name__}
        )
        return []

    candidates = [item for item in items if isinstance(item, dict)]
    if len(candidates) != len(items):
        LOGGER.warning(
            "Dropped non-object line items",
            extra={"dropped": len(items) - len(candidates)}
        )
    return candidates


def _message_content(response: Dict[str, Any]) -> str:
    try:
        return response["choices"][0]["message"].get("content") or ""
    except (KeyError, IndexError, TypeError, AttributeError):
        LOGGER.warning("Chat completion response had no message content")
        return ""


class AIProvider(ABC):
    """Capability interface shared by both chat-completion backends."""

    name: str = "base"

    def __init__(self, client: BaseLLMClient, model: str):
        self.client = client
        self.model = model

    @abstractmethod
    def _build_payload(
        self,
        messages: List[Dict[str, str]],
        json_mode: bool,
        max_tokens: Optional[int],
    ) -> Dict[str, Any]:
        """Build the request body for the backend."""

    async def _complete(
        self,
        messages: List[Dict[str, str]],
        json_mode: bool = False,
        max_tokens: Optional[int] = None,
    ) -> str:
        payload = self._build_payload(messages, json_mode, max_tokens)
        response = await self.client.call_api(endpoint="/chat/completions", payload=payload)
        return _message_content(response)

    async def analyze_document(self, text: str, file_name: str) -> DocumentAnalysis:
        """Summarize a document and extract structured medical data.

        Raises:
            AnalysisError: If the model could not be reached
        """
        prompt = DOCUMENT_ANALYSIS_PROMPT.format(file_name=file_name, content=_truncate(text, file_name))
        messages = [
            {"role": "system", "content": DOCUMENT_ANALYSIS_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

        LOGGER.info(
            "Requesting document analysis",
            extra={"provider": self.name, "model": self.model, "file_name": file_name, "chars": len(text)}
        )
        try:
            content = await self._complete(messages, json_mode=True, max_tokens=settings.llm.analysis_max_tokens)
        except APIClientError as e:
            raise AnalysisError(f"Document analysis failed: {e}", original_error=e) from e

        return parse_analysis_response(content)

    async def extract_line_items(self, text: str, file_name: str) -> List[Dict[str, Any]]:
        """Ask the model for bill line items; always best-effort.

        Raises:
            BillExtractionError: If the model could not be reached
        """
        prompt = BILL_LINE_ITEMS_PROMPT.format(file_name=file_name, content=_truncate(text, file_name))
        messages = [
            {"role": "system", "content": DOCUMENT_ANALYSIS_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        try:
            content = await self._complete(messages, json_mode=True, max_tokens=settings.llm.analysis_max_tokens)
        except APIClientError as e:
            raise BillExtractionError(f"Line-item extraction failed: {e}", original_error=e) from e

        return parse_line_items_response(content)

    async def generate_letter(self, case_facts: Dict[str, Any]) -> str:
        prompt = DEMAND_LETTER_PROMPT.format(case_facts=json.dumps(case_facts, default=str, indent=2))
        return await self._complete(
            [{"role": "user", "content": prompt}],
            max_tokens=settings.llm.letter_max_tokens,
        )

    async def chat_completion(
        self,
        history: List[Dict[str, str]],
        system_prompt: Optional[str] = None,
    ) -> str:
        messages = list(history)
        if system_prompt:
            messages.insert(0, {"role": "system", "content": system_prompt})
        return await self._complete(messages)


class OpenAIProvider(AIProvider):
    """Direct OpenAI API backend."""

    name = "openai"

    def __init__(self, api_key: str, model: Optional[str] = None, base_url: Optional[str] = None):
        client = BaseLLMClient(
            api_key=api_key,
            base_url=base_url or settings.llm.openai_api_url,
            timeout=settings.http_timeout,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
        )
        super().__init__(client, model or settings.llm.openai_model)

    def _build_payload(self, messages, json_mode, max_tokens):
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": settings.llm.temperature,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        if max_tokens:
            payload["max_tokens"] = max_tokens
        return payload


class AzureOpenAIProvider(AIProvider):
    """Azure OpenAI deployment backend.

    Requests go to ``{endpoint}/openai/deployments/{deployment}`` with the
    ``api-version`` query parameter and an ``api-key`` header.
    """

    name = "azure_openai"

    def __init__(self, endpoint: str, api_key: str, deployment: str, api_version: Optional[str] = None):
        self.endpoint = endpoint.rstrip("/")
        self.api_version = api_version or settings.llm.azure_openai_api_version
        client = BaseLLMClient(
            api_key=api_key,
            base_url=f"{self.endpoint}/openai/deployments/{deployment}",
            timeout=settings.http_timeout,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
            auth_header="api-key",
            auth_scheme=None,
            query_params={"api-version": self.api_version},
        )
        super().__init__(client, deployment)

    def _build_payload(self, messages, json_mode, max_tokens):
        payload: Dict[str, Any] = {
            "messages": messages,
            "temperature": settings.llm.temperature,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        if max_tokens:
            payload["max_tokens"] = max_tokens
        return payload
