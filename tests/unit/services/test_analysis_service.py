"""Tests for the document analysis pipeline with every external call mocked."""

import asyncio
import json
from decimal import Decimal
from uuid import uuid4

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from medlegal.core.config import settings
from medlegal.core.exceptions import (
    AccessDeniedError,
    APIClientError,
    AnalysisInProgressError,
    ConfigurationError,
    DatabaseError,
    DocumentNotFoundError,
    EmbeddingError,
    ExtractionError,
    SearchIndexError,
)
from medlegal.core.llm_client import BaseLLMClient
from medlegal.database.models import MedicalBill
from medlegal.schemas.bills import MedicalBillResponse
from medlegal.services.analysis_service import DocumentAnalysisService
from medlegal.services.bills.bill_materializer import BillMaterializer
from medlegal.services.degraded import FALLBACK_KEY_FINDING, FALLBACK_SUMMARY, REASON_EXTRACTION_FAILED
from medlegal.services.embeddings.embedding_service import EmbeddingResult, chunk_text
from medlegal.services.extraction.document_intelligence import TextExtractionResult

ER_VISIT_TEXT = (
    "CITY HOSPITAL EMERGENCY DEPARTMENT\n"
    "Patient: Jane Doe  DOB: 04/02/1985\n"
    "Date of service: 01/15/2024\n"
    "Diagnosis: Cervical strain following motor vehicle collision.\n"
    "Charges: ER visit $500.00"
)

ANALYSIS_JSON = json.dumps({
    "summary": "Jane Doe was treated at City Hospital ER for a cervical strain after a car accident.",
    "extractedData": {
        "patientInfo": {"name": "Jane Doe", "dateOfBirth": "1985-04-02"},
        "medicalInfo": {"diagnoses": [{"code": "S13.4", "narrative": "Cervical strain"}]},
    },
    "keyFindings": ["Cervical strain diagnosed on 2024-01-15"],
})

BILLS_JSON = json.dumps({
    "bills": [
        {"provider": "City Hospital", "amount": "$500.00", "serviceDate": "2024-01-15", "treatment": "ER visit"}
    ]
})


def _chat(content: str) -> dict:
    return {"choices": [{"message": {"content": content}}]}


def _unavailable_adapter() -> MagicMock:
    adapter = MagicMock()
    adapter.is_available.return_value = False
    return adapter


@pytest.fixture
def call_api():
    with patch.object(BaseLLMClient, "call_api", new_callable=AsyncMock) as mock_call_api:
        yield mock_call_api


@pytest.fixture
def text_extractor():
    extractor = MagicMock()
    extractor.is_available.return_value = True
    extractor.extract = AsyncMock(
        return_value=TextExtractionResult(text=ER_VISIT_TEXT, confidence=0.95, page_count=1)
    )
    return extractor


@pytest.fixture
def bill_repository():
    repository = MagicMock()
    repository.find_duplicate = AsyncMock(return_value=None)
    repository.create = AsyncMock(side_effect=lambda **fields: MedicalBill(id=uuid4(), **fields))
    return repository


@pytest.fixture
def document(make_document):
    return make_document()


@pytest.fixture
def build_service(document, make_user, text_extractor, bill_repository):
    """Build the service with repositories replaced by mocks."""

    def _build(user=None, extractor=None, embedding_service=None, search_service=None):
        service = DocumentAnalysisService(
            MagicMock(),
            extractor or text_extractor,
            embedding_service or _unavailable_adapter(),
            search_service or _unavailable_adapter(),
        )

        def save_analysis(document_id, **fields):
            document.processing_status = "processed"
            document.ai_processed = True
            document.ai_summary = fields["summary"]
            document.extracted_data = fields["extracted_data"]
            document.analysis_quality = fields["analysis_quality"]
            return document

        service.documents = MagicMock()
        service.documents.get_by_id = AsyncMock(return_value=document)
        service.documents.claim_for_analysis = AsyncMock(return_value=True)
        service.documents.save_analysis = AsyncMock(side_effect=save_analysis)
        service.documents.mark_error = AsyncMock()

        service.users = MagicMock()
        service.users.get_by_id = AsyncMock(
            return_value=user if user is not None else make_user(openai_api_key="sk-test")
        )
        service.materializer = BillMaterializer(bill_repository)
        return service

    return _build


class TestAnalysisPipeline:

    @pytest.mark.asyncio
    async def test_er_visit_end_to_end(self, build_service, document, user_id, call_api, bill_repository):
        call_api.side_effect = [_chat(ANALYSIS_JSON), _chat(BILLS_JSON)]
        service = build_service()

        response = await service.analyze_document(document.id, user_id)

        analysis = response.analysis
        assert analysis.extracted_data["patientInfo"]["name"] == "Jane Doe"
        assert analysis.key_findings == ["Cervical strain diagnosed on 2024-01-15"]
        assert analysis.analysis_quality == "full"
        assert analysis.bills_created == 1
        assert response.document.processing_status == "processed"

        bill_fields = bill_repository.create.call_args.kwargs
        assert bill_fields["provider"] == "City Hospital"
        assert bill_fields["amount"] == Decimal("500.00")
        assert bill_fields["case_id"] == document.case_id
        assert bill_fields["document_id"] == document.id

        bill = MedicalBill(id=uuid4(), **bill_fields)
        assert MedicalBillResponse.model_validate(bill).model_dump(mode="json")["amount"] == "500.00"

        service.documents.save_analysis.assert_awaited_once()
        service.documents.mark_error.assert_not_awaited()
        saved = service.documents.save_analysis.call_args.kwargs
        assert saved["document_intelligence"]["pageCount"] == 1
        assert saved["processing_errors"] == []

    @pytest.mark.asyncio
    async def test_extraction_unavailable_still_processes(self, build_service, document, user_id, call_api):
        call_api.return_value = _chat(ANALYSIS_JSON)
        service = build_service(extractor=_unavailable_adapter())

        response = await service.analyze_document(document.id, user_id)

        assert response.analysis.summary
        assert response.document.processing_status == "processed"
        stages = {stage.stage: stage.status for stage in response.analysis.stages}
        assert stages["text_extraction"] == "skipped"
        assert stages["bill_extraction"] == "skipped"
        assert stages["llm_analysis"] == "completed"
        # Only the analysis prompt is sent; bills need real text
        assert call_api.await_count == 1

    @pytest.mark.asyncio
    async def test_extraction_failure_uses_placeholder_text(
        self, build_service, document, user_id, call_api, text_extractor
    ):
        text_extractor.extract.side_effect = ExtractionError("Document Intelligence request failed")
        call_api.return_value = _chat(ANALYSIS_JSON)
        service = build_service()

        response = await service.analyze_document(document.id, user_id)

        prompt = call_api.call_args.kwargs["payload"]["messages"][1]["content"]
        assert "Document: er_visit.pdf" in prompt
        assert REASON_EXTRACTION_FAILED in prompt
        stages = {stage.stage: stage for stage in response.analysis.stages}
        assert stages["text_extraction"].status == "degraded"
        saved = service.documents.save_analysis.call_args.kwargs
        assert saved["processing_errors"][0]["stage"] == "text_extraction"

    @pytest.mark.asyncio
    async def test_slow_extraction_times_out(self, build_service, document, user_id, call_api, text_extractor):
        async def slow_extract(locator):
            await asyncio.sleep(1)

        text_extractor.extract.side_effect = slow_extract
        call_api.return_value = _chat(ANALYSIS_JSON)
        service = build_service()
        service.pipeline = settings.pipeline.model_copy(update={"ocr_stage_timeout": 0.01})

        response = await service.analyze_document(document.id, user_id)

        stages = {stage.stage: stage for stage in response.analysis.stages}
        assert stages["text_extraction"].status == "degraded"
        assert stages["text_extraction"].detail == "timed out after 0.01s"
        assert response.document.processing_status == "processed"

    @pytest.mark.asyncio
    async def test_llm_failure_returns_degraded_shape(self, build_service, document, user_id, call_api):
        call_api.side_effect = APIClientError("API Client Error 500", status_code=500)
        service = build_service()

        response = await service.analyze_document(document.id, user_id)

        analysis = response.analysis
        assert analysis.summary == FALLBACK_SUMMARY
        assert analysis.extracted_data == {"keyFindings": [FALLBACK_KEY_FINDING]}
        assert analysis.key_findings == [FALLBACK_KEY_FINDING]
        assert analysis.analysis_quality == "degraded"
        assert response.document.processing_status == "processed"

        dumped = analysis.model_dump(by_alias=True)
        assert {"summary", "extractedData", "keyFindings"} <= set(dumped)

        saved = service.documents.save_analysis.call_args.kwargs
        assert saved["analysis_quality"] == "degraded"
        assert {error["stage"] for error in saved["processing_errors"]} == {"llm_analysis", "bill_extraction"}
        service.documents.mark_error.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_embedding_and_search_stages(self, build_service, document, user_id, call_api):
        call_api.side_effect = [_chat(ANALYSIS_JSON), _chat("[]")]

        embedding_service = MagicMock()
        embedding_service.is_available.return_value = True
        embedding_service.chunk.side_effect = chunk_text
        embedding_service.embed = AsyncMock(
            return_value=EmbeddingResult(vector=[0.1, 0.2], model="ada", dimensions=2, token_usage={"totalTokens": 9})
        )
        search_service = MagicMock()
        search_service.is_available.return_value = True
        search_service.index_document = AsyncMock()

        service = build_service(embedding_service=embedding_service, search_service=search_service)
        await service.analyze_document(document.id, user_id)

        saved = service.documents.save_analysis.call_args.kwargs
        assert saved["vector_embedding"]["model"] == "ada"
        assert saved["vector_embedding"]["chunkCount"] == 1
        assert saved["search_indexed_at"] is not None

        indexed = search_service.index_document.call_args.kwargs
        assert indexed["document_id"] == str(document.id)
        assert indexed["content_vector"] == [0.1, 0.2]
        assert indexed["summary_vector"] == [0.1, 0.2]
        assert indexed["tags"] == ["Cervical strain"]

    @pytest.mark.asyncio
    async def test_search_failure_is_not_fatal(self, build_service, document, user_id, call_api):
        call_api.side_effect = [_chat(ANALYSIS_JSON), _chat("[]")]
        search_service = MagicMock()
        search_service.is_available.return_value = True
        search_service.index_document = AsyncMock(side_effect=SearchIndexError("Search API error 503"))

        service = build_service(search_service=search_service)
        response = await service.analyze_document(document.id, user_id)

        assert response.analysis.analysis_quality == "full"
        saved = service.documents.save_analysis.call_args.kwargs
        assert saved["search_indexed_at"] is None
        assert saved["processing_errors"][0]["stage"] == "search_index"

    @pytest.mark.asyncio
    async def test_non_json_llm_reply_degrades_instead_of_failing(
        self, build_service, document, user_id, monkeypatch
    ):
        monkeypatch.setattr(settings, "retry_delay", 0)
        html = httpx.Response(
            200, text="<html>proxy error</html>", request=httpx.Request("POST", "https://api.openai.com/v1")
        )
        service = build_service()

        with patch("medlegal.core.llm_client.httpx.AsyncClient") as mock_client_cls:
            client = MagicMock()
            client.post = AsyncMock(return_value=html)
            mock_client_cls.return_value.__aenter__.return_value = client

            response = await service.analyze_document(document.id, user_id)

        assert response.document.processing_status == "processed"
        assert response.analysis.summary == FALLBACK_SUMMARY
        assert response.analysis.analysis_quality == "degraded"
        stages = {stage.stage: stage.status for stage in response.analysis.stages}
        assert stages["llm_analysis"] == "degraded"
        assert stages["bill_extraction"] == "degraded"
        service.documents.mark_error.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_extractor_error_uses_placeholder_text(
        self, build_service, document, user_id, call_api, text_extractor
    ):
        text_extractor.extract.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
        call_api.return_value = _chat(ANALYSIS_JSON)
        service = build_service()

        response = await service.analyze_document(document.id, user_id)

        stages = {stage.stage: stage for stage in response.analysis.stages}
        assert stages["text_extraction"].status == "degraded"
        assert stages["text_extraction"].detail == "Expecting value: line 1 column 1 (char 0)"
        assert response.document.processing_status == "processed"
        service.documents.mark_error.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_embedding_failure_is_not_fatal(self, build_service, document, user_id, call_api):
        call_api.side_effect = [_chat(ANALYSIS_JSON), _chat("[]")]

        embedding_service = MagicMock()
        embedding_service.is_available.return_value = True
        embedding_service.chunk.side_effect = chunk_text
        embedding_service.embed = AsyncMock(side_effect=EmbeddingError("Embedding request failed: 500"))
        search_service = MagicMock()
        search_service.is_available.return_value = True
        search_service.index_document = AsyncMock()

        service = build_service(embedding_service=embedding_service, search_service=search_service)
        response = await service.analyze_document(document.id, user_id)

        assert response.document.processing_status == "processed"
        assert response.analysis.analysis_quality == "full"
        saved = service.documents.save_analysis.call_args.kwargs
        assert saved["vector_embedding"] is None
        assert saved["processing_errors"][0]["stage"] == "embedding"

        indexed = search_service.index_document.call_args.kwargs
        assert indexed["content_vector"] is None
        assert indexed["summary_vector"] is None
        embedding_service.embed.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_slow_embedding_times_out(self, build_service, document, user_id, call_api):
        call_api.side_effect = [_chat(ANALYSIS_JSON), _chat("[]")]

        async def slow_embed(text):
            await asyncio.sleep(1)

        embedding_service = MagicMock()
        embedding_service.is_available.return_value = True
        embedding_service.chunk.side_effect = chunk_text
        embedding_service.embed = AsyncMock(side_effect=slow_embed)
        search_service = MagicMock()
        search_service.is_available.return_value = True
        search_service.index_document = AsyncMock()

        service = build_service(embedding_service=embedding_service, search_service=search_service)
        service.pipeline = settings.pipeline.model_copy(update={"embedding_stage_timeout": 0.01})
        response = await service.analyze_document(document.id, user_id)

        stages = {stage.stage: stage for stage in response.analysis.stages}
        assert stages["embedding"].status == "degraded"
        assert stages["embedding"].detail == "timed out after 0.01s"
        assert response.document.processing_status == "processed"
        assert service.documents.save_analysis.call_args.kwargs["vector_embedding"] is None
        assert search_service.index_document.call_args.kwargs["content_vector"] is None

    @pytest.mark.asyncio
    async def test_line_item_failure_keeps_full_analysis(
        self, build_service, document, user_id, call_api, bill_repository
    ):
        call_api.side_effect = [_chat(ANALYSIS_JSON), APIClientError("API Client Error 500", status_code=500)]
        service = build_service()

        response = await service.analyze_document(document.id, user_id)

        analysis = response.analysis
        assert analysis.analysis_quality == "full"
        assert analysis.extracted_data["patientInfo"]["name"] == "Jane Doe"
        assert analysis.bills_created == 0
        stages = {stage.stage: stage.status for stage in analysis.stages}
        assert stages["llm_analysis"] == "completed"
        assert stages["bill_extraction"] == "degraded"
        bill_repository.create.assert_not_awaited()

        saved = service.documents.save_analysis.call_args.kwargs
        assert saved["analysis_quality"] == "full"
        assert [error["stage"] for error in saved["processing_errors"]] == ["bill_extraction"]

    @pytest.mark.asyncio
    async def test_unexpected_materializer_error_is_contained(
        self, build_service, document, user_id, call_api, bill_repository
    ):
        call_api.side_effect = [_chat(ANALYSIS_JSON), _chat(BILLS_JSON)]
        bill_repository.find_duplicate.side_effect = RuntimeError("session closed")
        service = build_service()

        response = await service.analyze_document(document.id, user_id)

        stages = {stage.stage: stage for stage in response.analysis.stages}
        assert stages["bill_extraction"].status == "degraded"
        assert stages["bill_extraction"].detail == "session closed"
        assert response.document.processing_status == "processed"
        service.documents.mark_error.assert_not_awaited()


class TestAnalysisPreconditions:

    @pytest.mark.asyncio
    async def test_missing_configuration_fails_before_any_work(
        self, build_service, document, user_id, make_user, call_api, text_extractor
    ):
        service = build_service(user=make_user())

        with pytest.raises(ConfigurationError) as exc_info:
            await service.analyze_document(document.id, user_id)

        assert exc_info.value.missing_fields == ["openai_api_key"]
        service.documents.claim_for_analysis.assert_not_awaited()
        text_extractor.extract.assert_not_awaited()
        call_api.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_document(self, build_service, user_id):
        service = build_service()
        service.documents.get_by_id.return_value = None

        with pytest.raises(DocumentNotFoundError):
            await service.analyze_document(uuid4(), user_id)

    @pytest.mark.asyncio
    async def test_other_users_document(self, build_service, document, call_api):
        service = build_service()

        with pytest.raises(AccessDeniedError):
            await service.analyze_document(document.id, uuid4())

        call_api.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_concurrent_analysis_is_rejected(self, build_service, document, user_id, text_extractor):
        service = build_service()
        service.documents.claim_for_analysis.return_value = False

        with pytest.raises(AnalysisInProgressError):
            await service.analyze_document(document.id, user_id)

        text_extractor.extract.assert_not_awaited()
        service.documents.save_analysis.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_database_failure_marks_document_errored(self, build_service, document, user_id, call_api):
        call_api.side_effect = [_chat(ANALYSIS_JSON), _chat("[]")]
        service = build_service()
        service.documents.save_analysis.side_effect = DatabaseError("Failed to update record")

        with pytest.raises(DatabaseError):
            await service.analyze_document(document.id, user_id)

        service.documents.mark_error.assert_awaited_once()
        assert service.documents.mark_error.call_args.kwargs["error"] == "Failed to update record"
