"""Text extraction through the Azure Document Intelligence REST API."""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from medlegal.core.config import settings
from medlegal.core.exceptions import APIClientError, ExtractionError, UnavailableError
from medlegal.utils.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_CONFIDENCE = 0.8


@dataclass
class TextExtractionResult:
    """Plain text plus the structure Document Intelligence recovered."""

    text: str
    confidence: float
    page_count: int
    tables: List[Dict[str, Any]] = field(default_factory=list)
    key_value_pairs: List[Dict[str, Any]] = field(default_factory=list)
    model: str = "prebuilt-document"
    processing_time: float = 0.0

    def metadata(self) -> Dict[str, Any]:
        """Summary stored on the document record."""
        return {
            "confidence": self.confidence,
            "pageCount": self.page_count,
            "tableCount": len(self.tables),
            "keyValuePairCount": len(self.key_value_pairs),
            "characters": len(self.text),
            "model": self.model,
            "processingTime": round(self.processing_time, 3),
            "analyzedAt": datetime.now(timezone.utc).isoformat(),
        }


class DocumentIntelligenceService:
    """Converts a stored blob into text, tables and key-value pairs.

    Availability is decided once from the credentials passed in; callers
    check ``is_available()`` or handle ``UnavailableError``.

    Attributes:
        endpoint: Document Intelligence resource endpoint
        model: Analysis model id
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        api_version: Optional[str] = None,
        blob_base_url: Optional[str] = None,
        blob_sas_token: Optional[str] = None,
        poll_interval: Optional[float] = None,
        timeout: int = 30,
    ):
        azure = settings.azure
        self.endpoint = (endpoint if endpoint is not None else azure.document_intelligence_endpoint).rstrip("/")
        self.api_key = api_key if api_key is not None else azure.document_intelligence_key
        self.model = model or azure.document_intelligence_model
        self.api_version = api_version or azure.document_intelligence_api_version
        self.blob_base_url = (blob_base_url if blob_base_url is not None else azure.blob_base_url).rstrip("/")
        self.blob_sas_token = blob_sas_token if blob_sas_token is not None else azure.blob_sas_token
        self.poll_interval = poll_interval if poll_interval is not None else settings.pipeline.ocr_poll_interval
        self.timeout = timeout

        self._available = bool(self.endpoint and self.api_key)
        if not self._available:
            LOGGER.warning("Document Intelligence credentials not configured, text extraction disabled")

    def is_available(self) -> bool:
        return self._available

    def resolve_locator(self, locator: str) -> str:
        """Turn a storage locator into a URL the service can fetch.

        Absolute URLs pass through; object paths are joined onto the blob
        base URL with the SAS token appended when one is configured.
        """
        if not locator:
            raise ExtractionError("Document has no storage locator")

        if locator.startswith(("http://", "https://")):
            return locator

        if not self.blob_base_url:
            raise ExtractionError(
                f"Cannot resolve storage locator '{locator}' without AZURE_BLOB_BASE_URL"
            )

        url = f"{self.blob_base_url}/{quote(locator.lstrip('/'))}"
        if self.blob_sas_token:
            url = f"{url}?{self.blob_sas_token.lstrip('?')}"
        return url

    async def extract(self, locator: str) -> TextExtractionResult:
        """Extract text and structure from the blob at ``locator``.

        Args:
            locator: Object path or absolute URL of the stored document

        Returns:
            TextExtractionResult with non-empty text

        Raises:
            UnavailableError: If credentials are not configured
            ExtractionError: If the service fails or returns no text
        """
        if not self._available:
            raise UnavailableError("Document Intelligence is not configured", stage="text_extraction")

        document_url = self.resolve_locator(locator)
        LOGGER.info("Starting text extraction", extra={"locator": locator, "model": self.model})
        start_time = time.time()

        try:
            analyze_result = await self._analyze(document_url)
        except (ExtractionError, UnavailableError):
            raise
        except APIClientError as e:
            raise ExtractionError(f"Document Intelligence request failed: {e}", original_error=e) from e
        except httpx.HTTPError as e:
            raise ExtractionError(f"Document Intelligence transport error: {e}", original_error=e) from e
        except (ValueError, AttributeError) as e:
            raise ExtractionError(f"Malformed Document Intelligence response: {e}", original_error=e) from e

        try:
            result = self._create_result(analyze_result, time.time() - start_time)
        except (AttributeError, TypeError) as e:
            raise ExtractionError(f"Malformed Document Intelligence result: {e}", original_error=e) from e
        self._validate_result(result, locator)

        LOGGER.info(
            "Text extraction completed",
            extra={
                "locator": locator,
                "characters": len(result.text),
                "pages": result.page_count,
                "tables": len(result.tables),
                "processing_time": result.processing_time,
            },
        )
        return result

    async def _analyze(self, document_url: str) -> Dict[str, Any]:
        analyze_url = (
            f"{self.endpoint}/formrecognizer/documentModels/{self.model}:analyze"
        )
        headers = {
            "Ocp-Apim-Subscription-Key": self.api_key,
            "Content-Type": "application/json",
        }

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                analyze_url,
                params={"api-version": self.api_version},
                headers=headers,
                json={"urlSource": document_url},
            )
            if response.status_code != 202:
                raise APIClientError(
                    f"Analyze request rejected ({response.status_code}): {response.text[:300]}",
                    status_code=response.status_code,
                )

            operation_url = response.headers.get("Operation-Location")
            if not operation_url:
                raise ExtractionError("Analyze response had no Operation-Location header")

            while True:
                poll = await client.get(operation_url, headers={"Ocp-Apim-Subscription-Key": self.api_key})
                if poll.status_code >= 400:
                    raise APIClientError(
                        f"Polling analyze result failed ({poll.status_code}): {poll.text[:300]}",
                        status_code=poll.status_code,
                    )

                body = poll.json()
                status = body.get("status")
                if status == "succeeded":
                    return body.get("analyzeResult") or {}
                if status == "failed":
                    error = (body.get("error") or {}).get("message", "unknown error")
                    raise ExtractionError(f"Document analysis failed: {error}")

                await asyncio.sleep(self.poll_interval)

    def _create_result(self, analyze_result: Dict[str, Any], processing_time: float) -> TextExtractionResult:
        tables = [
            {
                "rowCount": table.get("rowCount", 0),
                "columnCount": table.get("columnCount", 0),
                "cells": [
                    {
                        "text": cell.get("content", ""),
                        "rowIndex": cell.get("rowIndex", 0),
                        "columnIndex": cell.get("columnIndex", 0),
                    }
                    for cell in table.get("cells", [])
                ],
            }
            for table in analyze_result.get("tables") or []
        ]

        key_value_pairs = [
            {
                "key": (pair.get("key") or {}).get("content", ""),
                "value": (pair.get("value") or {}).get("content", ""),
                "confidence": pair.get("confidence", 0),
            }
            for pair in analyze_result.get("keyValuePairs") or []
        ]

        documents = analyze_result.get("documents") or []
        confidence = documents[0].get("confidence") if documents else None

        return TextExtractionResult(
            text=analyze_result.get("content") or "",
            confidence=confidence if confidence is not None else DEFAULT_CONFIDENCE,
            page_count=len(analyze_result.get("pages") or []) or 1,
            tables=tables,
            key_value_pairs=key_value_pairs,
            model=self.model,
            processing_time=processing_time,
        )

    def _validate_result(self, result: TextExtractionResult, locator: str) -> None:
        if not result.text.strip():
            LOGGER.warning("Text extraction returned empty text", extra={"locator": locator})
            raise ExtractionError("Text extraction returned empty text")

        if len(result.text.strip()) < 10:
            LOGGER.warning(
                "Text extraction returned suspiciously short text",
                extra={"locator": locator, "characters": len(result.text)},
            )
