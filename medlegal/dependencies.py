"""Dependency providers for services and the shared external adapters.

Adapters hold only configuration, so one instance per process is shared by
every request.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from medlegal.core.database import get_async_session
from medlegal.services.analysis_service import DocumentAnalysisService
from medlegal.services.bill_extraction_service import BillExtractionService
from medlegal.services.document_search_service import DocumentSearchService
from medlegal.services.embeddings.embedding_service import EmbeddingService
from medlegal.services.extraction.document_intelligence import DocumentIntelligenceService
from medlegal.services.medical_bill_service import MedicalBillService
from medlegal.services.search.search_index_service import SearchIndexService
from medlegal.services.user_settings_service import UserSettingsService


@lru_cache
def get_text_extractor() -> DocumentIntelligenceService:
    return DocumentIntelligenceService()


@lru_cache
def get_embedding_service() -> EmbeddingService:
    return EmbeddingService()


@lru_cache
def get_search_service() -> SearchIndexService:
    return SearchIndexService()


async def get_analysis_service(
    db_session: Annotated[AsyncSession, Depends(get_async_session)],
    text_extractor: Annotated[DocumentIntelligenceService, Depends(get_text_extractor)],
    embedding_service: Annotated[EmbeddingService, Depends(get_embedding_service)],
    search_service: Annotated[SearchIndexService, Depends(get_search_service)],
) -> DocumentAnalysisService:
    return DocumentAnalysisService(db_session, text_extractor, embedding_service, search_service)


async def get_bill_extraction_service(
    db_session: Annotated[AsyncSession, Depends(get_async_session)],
    text_extractor: Annotated[DocumentIntelligenceService, Depends(get_text_extractor)],
) -> BillExtractionService:
    return BillExtractionService(db_session, text_extractor)


async def get_medical_bill_service(
    db_session: Annotated[AsyncSession, Depends(get_async_session)]
) -> MedicalBillService:
    return MedicalBillService(db_session)


async def get_user_settings_service(
    db_session: Annotated[AsyncSession, Depends(get_async_session)]
) -> UserSettingsService:
    return UserSettingsService(db_session)


async def get_document_search_service(
    db_session: Annotated[AsyncSession, Depends(get_async_session)],
    search_service: Annotated[SearchIndexService, Depends(get_search_service)],
    embedding_service: Annotated[EmbeddingService, Depends(get_embedding_service)],
) -> DocumentSearchService:
    return DocumentSearchService(db_session, search_service, embedding_service)
