import asyncio
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from medlegal.core.config import settings
from medlegal.core.exceptions import (
    BillExtractionError,
    PipelineError,
    UnavailableError,
    ValidationError,
)
from medlegal.repositories.document_repository import DocumentRepository
from medlegal.repositories.medical_bill_repository import MedicalBillRepository
from medlegal.repositories.user_repository import UserRepository
from medlegal.schemas.bills import MedicalBillResponse
from medlegal.schemas.documents import ExtractBillsResponse
from medlegal.services.ai.factory import create_ai_provider
from medlegal.services.base_service import BaseService
from medlegal.services.bills.bill_materializer import BillMaterializer
from medlegal.services.document_access import ProviderFactory, load_owned_document, resolve_provider
from medlegal.services.extraction.document_intelligence import DocumentIntelligenceService
from medlegal.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BillExtractionService(BaseService):
    """Extracts bills from a document without running the full analysis.

    Unlike the analysis pipeline there is no placeholder fallback here:
    without real document text there is nothing to extract, so extraction
    problems surface as ``UnavailableError`` and no bills are written.
    """

    def __init__(
        self,
        session: AsyncSession,
        text_extractor: DocumentIntelligenceService,
        provider_factory: ProviderFactory = create_ai_provider,
    ):
        super().__init__()
        self.documents = DocumentRepository(session)
        self.users = UserRepository(session)
        self.materializer = BillMaterializer(MedicalBillRepository(session))
        self.text_extractor = text_extractor
        self.provider_factory = provider_factory

    async def extract_bills(self, document_id: UUID, user_id: UUID) -> ExtractBillsResponse:
        return await self.execute(document_id, user_id)

    async def run(self, document_id: UUID, user_id: UUID) -> ExtractBillsResponse:
        document = await load_owned_document(self.documents, document_id, user_id)
        provider = await resolve_provider(self.users, user_id, self.provider_factory)

        if not self.text_extractor.is_available():
            raise UnavailableError("Text extraction service is not configured", stage="text_extraction")
        if not document.object_path:
            raise ValidationError("Document has no stored file to extract bills from")

        timeout = settings.pipeline.ocr_stage_timeout
        try:
            extraction = await asyncio.wait_for(
                self.text_extractor.extract(document.object_path), timeout=timeout
            )
        except asyncio.TimeoutError as e:
            raise UnavailableError(
                f"Text extraction timed out after {timeout:g}s", stage="text_extraction", original_error=e
            ) from e
        except PipelineError as e:
            raise UnavailableError(
                f"Text extraction failed: {e}", stage="text_extraction", original_error=e
            ) from e

        try:
            candidates = await asyncio.wait_for(
                provider.extract_line_items(extraction.text, document.file_name),
                timeout=settings.pipeline.llm_stage_timeout,
            )
        except (BillExtractionError, asyncio.TimeoutError) as e:
            LOGGER.warning(
                "Line-item extraction failed",
                extra={"document_id": str(document_id), "error": str(e)}
            )
            return ExtractBillsResponse(
                extracted_count=0,
                created_count=0,
                errors=[str(e) or "Line-item extraction timed out"],
            )

        result = await self.materializer.materialize(
            candidates, case_id=document.case_id, document_id=document.id, created_by=user_id
        )

        return ExtractBillsResponse(
            extracted_count=len(candidates),
            created_count=len(result.bills),
            skipped_count=result.skipped,
            bills=[MedicalBillResponse.model_validate(bill) for bill in result.bills],
            errors=result.errors or None,
        )
