"""Document analysis orchestration.

Runs the analysis stages for one document in order:

    text extraction -> embedding -> LLM analysis -> bill extraction -> search indexing

Only the LLM stage is mandatory, and even it falls back to a canned result.
Each stage writes into an in-memory ``AnalysisOutcome``; the document row is
written once at the end. A document is claimed (status ``analyzing``) before
the first stage so two requests cannot analyze it at the same time.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from medlegal.core.config import settings
from medlegal.core.exceptions import AnalysisInProgressError, PipelineError
from medlegal.database.models import Document
from medlegal.repositories.document_repository import DocumentRepository
from medlegal.repositories.medical_bill_repository import MedicalBillRepository
from medlegal.repositories.user_repository import UserRepository
from medlegal.schemas.documents import (
    AnalysisResult,
    AnalyzeDocumentResponse,
    DocumentResponse,
    StageReport,
)
from medlegal.schemas.extracted_data import normalize_extracted_data
from medlegal.services.ai.factory import create_ai_provider
from medlegal.services.ai.providers import AIProvider, DocumentAnalysis
from medlegal.services.base_service import BaseService
from medlegal.services.bills.bill_materializer import BillMaterializer
from medlegal.services.degraded import (
    REASON_EXTRACTION_FAILED,
    REASON_EXTRACTION_UNAVAILABLE,
    REASON_NO_FILE,
    build_degraded_analysis,
    build_placeholder_text,
)
from medlegal.services.document_access import ProviderFactory, load_owned_document, resolve_provider
from medlegal.services.embeddings.embedding_service import EmbeddingResult, EmbeddingService
from medlegal.services.extraction.document_intelligence import DocumentIntelligenceService
from medlegal.services.search.search_index_service import SearchIndexService
from medlegal.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class AnalysisOutcome:
    """Results accumulated across the stages of one analysis run."""

    text: str = ""
    has_extracted_text: bool = False
    document_intelligence: Optional[Dict[str, Any]] = None
    embedding: Optional[EmbeddingResult] = None
    vector_embedding: Optional[Dict[str, Any]] = None
    analysis: Optional[DocumentAnalysis] = None
    extracted_data: Dict[str, Any] = field(default_factory=dict)
    quality: str = "full"
    bills_created: int = 0
    search_indexed_at: Optional[datetime] = None
    stages: List[StageReport] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def record(self, stage: str, status: str, detail: Optional[str] = None) -> None:
        self.stages.append(StageReport(stage=stage, status=status, detail=detail))
        if status == "degraded":
            self.errors.append({
                "stage": stage,
                "error": detail,
                "at": datetime.now(timezone.utc).isoformat(),
            })


class DocumentAnalysisService(BaseService):
    """Analyzes a single document end to end."""

    def __init__(
        self,
        session: AsyncSession,
        text_extractor: DocumentIntelligenceService,
        embedding_service: EmbeddingService,
        search_service: SearchIndexService,
        provider_factory: ProviderFactory = create_ai_provider,
    ):
        super().__init__()
        self.documents = DocumentRepository(session)
        self.users = UserRepository(session)
        self.materializer = BillMaterializer(MedicalBillRepository(session))
        self.text_extractor = text_extractor
        self.embedding_service = embedding_service
        self.search_service = search_service
        self.provider_factory = provider_factory
        self.pipeline = settings.pipeline

    async def analyze_document(self, document_id: UUID, user_id: UUID) -> AnalyzeDocumentResponse:
        return await self.execute(document_id, user_id)

    async def run(self, document_id: UUID, user_id: UUID) -> AnalyzeDocumentResponse:
        """Run the analysis pipeline.

        Raises:
            DocumentNotFoundError: If the document does not exist
            AccessDeniedError: If the user does not own the document
            ConfigurationError: If the user has no usable AI provider
            AnalysisInProgressError: If another analysis holds the document
        """
        document = await load_owned_document(self.documents, document_id, user_id)
        provider = await resolve_provider(self.users, user_id, self.provider_factory)

        claimed = await self.documents.claim_for_analysis(document.id, self.pipeline.analysis_lock_ttl_seconds)
        if not claimed:
            raise AnalysisInProgressError(f"Document {document_id} is already being analyzed")

        LOGGER.info(
            "Starting document analysis",
            extra={"document_id": str(document_id), "provider": provider.name}
        )
        outcome = AnalysisOutcome()

        try:
            await self._extract_text(document, outcome)
            await self._embed(document, outcome)
            await self._analyze(provider, document, outcome)
            await self._extract_bills(provider, document, user_id, outcome)
            await self._index(document, outcome)

            updated = await self.documents.save_analysis(
                document_id,
                summary=outcome.analysis.summary,
                extracted_data=outcome.extracted_data,
                analysis_quality=outcome.quality,
                document_intelligence=outcome.document_intelligence,
                vector_embedding=outcome.vector_embedding,
                search_indexed_at=outcome.search_indexed_at,
                processing_errors=outcome.errors,
            )
        except Exception as e:
            LOGGER.error(
                "Document analysis aborted",
                exc_info=True,
                extra={"document_id": str(document_id), "error": str(e)}
            )
            await self.documents.mark_error(document_id, stage="pipeline", error=str(e))
            raise

        LOGGER.info(
            "Document analysis completed",
            extra={
                "document_id": str(document_id),
                "quality": outcome.quality,
                "bills_created": outcome.bills_created,
                "degraded_stages": [s.stage for s in outcome.stages if s.status == "degraded"],
            },
        )

        return AnalyzeDocumentResponse(
            document=DocumentResponse.model_validate(updated or document),
            analysis=AnalysisResult(
                summary=outcome.analysis.summary,
                extracted_data=outcome.extracted_data,
                key_findings=outcome.analysis.key_findings,
                analysis_quality=outcome.quality,
                bills_created=outcome.bills_created,
                stages=outcome.stages,
            ),
        )

    async def _extract_text(self, document: Document, outcome: AnalysisOutcome) -> None:
        stage = "text_extraction"

        def use_placeholder(reason: str) -> None:
            outcome.text = build_placeholder_text(
                document.file_name, document.created_at, document.mime_type, reason
            )

        if not document.object_path:
            use_placeholder(REASON_NO_FILE)
            outcome.record(stage, "skipped", "document has no stored file")
            return

        if not self.text_extractor.is_available():
            use_placeholder(REASON_EXTRACTION_UNAVAILABLE)
            outcome.record(stage, "skipped", "text extraction not configured")
            return

        try:
            result = await asyncio.wait_for(
                self.text_extractor.extract(document.object_path),
                timeout=self.pipeline.ocr_stage_timeout,
            )
        except Exception as e:
            detail = _describe(e, self.pipeline.ocr_stage_timeout)
            LOGGER.warning(
                "Text extraction failed, continuing with placeholder text",
                exc_info=_is_unexpected(e),
                extra={"document_id": str(document.id), "error": detail}
            )
            use_placeholder(REASON_EXTRACTION_FAILED)
            outcome.record(stage, "degraded", detail)
            return

        outcome.text = result.text
        outcome.has_extracted_text = True
        outcome.document_intelligence = result.metadata()
        outcome.record(stage, "completed")

    async def _embed(self, document: Document, outcome: AnalysisOutcome) -> None:
        stage = "embedding"

        if not self.embedding_service.is_available():
            outcome.record(stage, "skipped", "embeddings not configured")
            return
        if not outcome.has_extracted_text:
            outcome.record(stage, "skipped", "no extracted text")
            return

        chunks = self.embedding_service.chunk(outcome.text, self.pipeline.embedding_max_tokens)
        if not chunks:
            outcome.record(stage, "skipped", "no text to embed")
            return

        try:
            embedding = await asyncio.wait_for(
                self.embedding_service.embed(chunks[0]),
                timeout=self.pipeline.embedding_stage_timeout,
            )
        except Exception as e:
            detail = _describe(e, self.pipeline.embedding_stage_timeout)
            LOGGER.warning(
                "Embedding failed, continuing without vectors",
                exc_info=_is_unexpected(e),
                extra={"document_id": str(document.id), "error": detail}
            )
            outcome.record(stage, "degraded", detail)
            return

        outcome.embedding = embedding
        outcome.vector_embedding = {
            **embedding.metadata(chunk_count=len(chunks)),
            "generatedAt": datetime.now(timezone.utc).isoformat(),
        }
        outcome.record(stage, "completed")

    async def _analyze(self, provider: AIProvider, document: Document, outcome: AnalysisOutcome) -> None:
        stage = "llm_analysis"

        try:
            analysis = await asyncio.wait_for(
                provider.analyze_document(outcome.text, document.file_name),
                timeout=self.pipeline.llm_stage_timeout,
            )
            outcome.record(stage, "completed")
        except Exception as e:
            detail = _describe(e, self.pipeline.llm_stage_timeout)
            LOGGER.error(
                "LLM analysis failed, using fallback result",
                exc_info=_is_unexpected(e),
                extra={"document_id": str(document.id), "error": detail}
            )
            analysis = build_degraded_analysis()
            outcome.quality = "degraded"
            outcome.record(stage, "degraded", detail)

        extracted = normalize_extracted_data(analysis.extracted_data, str(document.id))
        if analysis.key_findings and "keyFindings" not in extracted:
            extracted["keyFindings"] = analysis.key_findings

        outcome.analysis = analysis
        outcome.extracted_data = extracted

    async def _extract_bills(
        self,
        provider: AIProvider,
        document: Document,
        user_id: UUID,
        outcome: AnalysisOutcome,
    ) -> None:
        stage = "bill_extraction"

        if not outcome.has_extracted_text:
            outcome.record(stage, "skipped", "no extracted text")
            return

        try:
            candidates = await asyncio.wait_for(
                provider.extract_line_items(outcome.text, document.file_name),
                timeout=self.pipeline.llm_stage_timeout,
            )
            if not candidates:
                outcome.record(stage, "completed", "no bills found")
                return

            result = await self.materializer.materialize(
                candidates, case_id=document.case_id, document_id=document.id, created_by=user_id
            )
        except Exception as e:
            detail = _describe(e, self.pipeline.llm_stage_timeout)
            LOGGER.warning(
                "Bill extraction failed, continuing without bills",
                exc_info=_is_unexpected(e),
                extra={"document_id": str(document.id), "error": detail}
            )
            outcome.record(stage, "degraded", detail)
            return

        outcome.bills_created = len(result.bills)
        detail = f"{len(result.bills)} created, {result.skipped} skipped"
        outcome.record(stage, "completed", detail)

    async def _index(self, document: Document, outcome: AnalysisOutcome) -> None:
        stage = "search_index"

        if not self.search_service.is_available():
            outcome.record(stage, "skipped", "search not configured")
            return

        try:
            await asyncio.wait_for(
                self._upsert_search_record(document, outcome),
                timeout=self.pipeline.search_stage_timeout,
            )
        except Exception as e:
            detail = _describe(e, self.pipeline.search_stage_timeout)
            LOGGER.warning(
                "Search indexing failed, document not indexed",
                exc_info=_is_unexpected(e),
                extra={"document_id": str(document.id), "error": detail}
            )
            outcome.record(stage, "degraded", detail)
            return

        outcome.search_indexed_at = datetime.now(timezone.utc)
        outcome.record(stage, "completed")

    async def _upsert_search_record(self, document: Document, outcome: AnalysisOutcome) -> None:
        summary = outcome.analysis.summary
        summary_vector = None
        if outcome.embedding and outcome.quality == "full":
            try:
                summary_vector = (await self.embedding_service.embed(summary)).vector
            except PipelineError as e:
                LOGGER.info(
                    "Summary embedding failed, indexing without summary vector",
                    extra={"document_id": str(document.id), "error": str(e)}
                )

        await self.search_service.index_document(
            document_id=str(document.id),
            file_name=document.file_name,
            content=outcome.text,
            case_id=str(document.case_id),
            document_type=document.mime_type,
            upload_date=document.created_at,
            summary=summary,
            tags=_diagnosis_tags(outcome.extracted_data),
            content_vector=outcome.embedding.vector if outcome.embedding else None,
            summary_vector=summary_vector,
        )


def _describe(error: BaseException, timeout: float) -> str:
    if isinstance(error, asyncio.TimeoutError):
        return f"timed out after {timeout:g}s"
    return str(error) or error.__class__.__name__


def _is_unexpected(error: BaseException) -> bool:
    return not isinstance(error, (PipelineError, asyncio.TimeoutError))


def _diagnosis_tags(extracted: Dict[str, Any], limit: int = 10) -> List[str]:
    medical = extracted.get("medicalInfo")
    if not isinstance(medical, dict):
        return []

    tags = []
    for diagnosis in medical.get("diagnoses") or []:
        if isinstance(diagnosis, dict):
            diagnosis = diagnosis.get("narrative") or diagnosis.get("code")
        if isinstance(diagnosis, str) and diagnosis.strip():
            tags.append(diagnosis.strip())
    return tags[:limit]
