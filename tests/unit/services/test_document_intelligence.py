import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from medlegal.core.exceptions import ExtractionError, UnavailableError
from medlegal.services.extraction.document_intelligence import DocumentIntelligenceService

OPERATION_URL = "https://di.example.com/formrecognizer/documentModels/prebuilt-document/analyzeResults/1"

ANALYZE_RESULT = {
    "content": "CITY HOSPITAL\nPatient: Jane Doe\nER visit 01/15/2024 $500.00",
    "pages": [{"pageNumber": 1}, {"pageNumber": 2}],
    "tables": [
        {
            "rowCount": 1,
            "columnCount": 2,
            "cells": [
                {"content": "ER visit", "rowIndex": 0, "columnIndex": 0},
                {"content": "$500.00", "rowIndex": 0, "columnIndex": 1},
            ],
        }
    ],
    "keyValuePairs": [
        {"key": {"content": "Patient"}, "value": {"content": "Jane Doe"}, "confidence": 0.97},
    ],
}


@pytest.fixture
def service():
    return DocumentIntelligenceService(
        endpoint="https://di.example.com",
        api_key="di-key",
        blob_base_url="https://store.blob.core.windows.net/documents",
        blob_sas_token="?sv=2024&sig=abc",
        poll_interval=0,
    )


def _mock_async_client(mock_client_cls, post_response, get_responses):
    client = MagicMock()
    client.post = AsyncMock(return_value=post_response)
    client.get = AsyncMock(side_effect=get_responses)
    mock_client_cls.return_value.__aenter__.return_value = client
    return client


def _response(status_code, body=None, headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.text = ""
    response.json.return_value = body or {}
    return response


class TestDocumentIntelligenceService:

    def test_unconfigured_service_is_unavailable(self):
        assert not DocumentIntelligenceService(endpoint="", api_key="").is_available()

    @pytest.mark.asyncio
    async def test_extract_raises_unavailable_without_credentials(self):
        with pytest.raises(UnavailableError) as exc_info:
            await DocumentIntelligenceService(endpoint="", api_key="").extract("cases/1/file.pdf")
        assert exc_info.value.stage == "text_extraction"

    def test_resolve_locator_joins_blob_url_and_sas(self, service):
        url = service.resolve_locator("cases/123/er visit.pdf")
        assert url == "https://store.blob.core.windows.net/documents/cases/123/er%20visit.pdf?sv=2024&sig=abc"

    def test_resolve_locator_passes_urls_through(self, service):
        assert service.resolve_locator("https://other.example.com/a.pdf") == "https://other.example.com/a.pdf"

    def test_resolve_locator_requires_blob_base_url(self):
        service = DocumentIntelligenceService(endpoint="https://di.example.com", api_key="k", blob_base_url="")
        with pytest.raises(ExtractionError):
            service.resolve_locator("cases/1/file.pdf")

    def test_create_result_maps_structure(self, service):
        result = service._create_result(ANALYZE_RESULT, 1.5)

        assert result.page_count == 2
        assert result.confidence == 0.8
        assert result.tables[0]["cells"][1]["text"] == "$500.00"
        assert result.key_value_pairs == [{"key": "Patient", "value": "Jane Doe", "confidence": 0.97}]

        metadata = result.metadata()
        assert metadata["pageCount"] == 2
        assert metadata["tableCount"] == 1
        assert metadata["keyValuePairCount"] == 1
        assert metadata["characters"] == len(ANALYZE_RESULT["content"])

    def test_create_result_defaults_to_one_page(self, service):
        assert service._create_result({"content": "text"}, 0.1).page_count == 1

    @pytest.mark.asyncio
    async def test_extract_polls_until_succeeded(self, service):
        with patch("medlegal.services.extraction.document_intelligence.httpx.AsyncClient") as mock_client_cls:
            client = _mock_async_client(
                mock_client_cls,
                _response(202, headers={"Operation-Location": OPERATION_URL}),
                [
                    _response(200, {"status": "running"}),
                    _response(200, {"status": "succeeded", "analyzeResult": ANALYZE_RESULT}),
                ],
            )

            result = await service.extract("cases/123/er_visit.pdf")

        assert "Jane Doe" in result.text
        assert client.get.await_count == 2
        post_kwargs = client.post.call_args.kwargs
        assert post_kwargs["headers"]["Ocp-Apim-Subscription-Key"] == "di-key"
        assert post_kwargs["json"]["urlSource"].startswith("https://store.blob.core.windows.net/documents/")

    @pytest.mark.asyncio
    async def test_rejected_request_raises_extraction_error(self, service):
        with patch("medlegal.services.extraction.document_intelligence.httpx.AsyncClient") as mock_client_cls:
            _mock_async_client(mock_client_cls, _response(401), [])

            with pytest.raises(ExtractionError):
                await service.extract("cases/123/er_visit.pdf")

    @pytest.mark.asyncio
    async def test_failed_analysis_raises_extraction_error(self, service):
        with patch("medlegal.services.extraction.document_intelligence.httpx.AsyncClient") as mock_client_cls:
            _mock_async_client(
                mock_client_cls,
                _response(202, headers={"Operation-Location": OPERATION_URL}),
                [_response(200, {"status": "failed", "error": {"message": "Corrupt file"}})],
            )

            with pytest.raises(ExtractionError, match="Corrupt file"):
                await service.extract("cases/123/er_visit.pdf")

    @pytest.mark.asyncio
    async def test_empty_text_raises_extraction_error(self, service):
        with patch("medlegal.services.extraction.document_intelligence.httpx.AsyncClient") as mock_client_cls:
            _mock_async_client(
                mock_client_cls,
                _response(202, headers={"Operation-Location": OPERATION_URL}),
                [_response(200, {"status": "succeeded", "analyzeResult": {"content": "  "}})],
            )

            with pytest.raises(ExtractionError):
                await service.extract("cases/123/er_visit.pdf")

    @pytest.mark.asyncio
    async def test_html_poll_body_raises_extraction_error(self, service):
        html = httpx.Response(200, text="<html>gateway timeout</html>")
        with patch("medlegal.services.extraction.document_intelligence.httpx.AsyncClient") as mock_client_cls:
            _mock_async_client(
                mock_client_cls,
                _response(202, headers={"Operation-Location": OPERATION_URL}),
                [html],
            )

            with pytest.raises(ExtractionError, match="Malformed"):
                await service.extract("cases/123/er_visit.pdf")

    @pytest.mark.asyncio
    async def test_non_object_result_raises_extraction_error(self, service):
        with patch("medlegal.services.extraction.document_intelligence.httpx.AsyncClient") as mock_client_cls:
            _mock_async_client(
                mock_client_cls,
                _response(202, headers={"Operation-Location": OPERATION_URL}),
                [_response(200, {"status": "succeeded", "analyzeResult": ["not", "an", "object"]})],
            )

            with pytest.raises(ExtractionError, match="Malformed"):
                await service.extract("cases/123/er_visit.pdf")
