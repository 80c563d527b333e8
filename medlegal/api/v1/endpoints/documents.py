from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from medlegal.core.auth import get_current_user
from medlegal.dependencies import (
    get_analysis_service,
    get_bill_extraction_service,
    get_document_search_service,
)
from medlegal.schemas.auth import CurrentUser
from medlegal.schemas.common import ApiResponse
from medlegal.services.analysis_service import DocumentAnalysisService
from medlegal.services.bill_extraction_service import BillExtractionService
from medlegal.services.document_search_service import DocumentSearchService
from medlegal.utils.logging import get_logger
from medlegal.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


@router.get(
    "/search",
    response_model=ApiResponse,
    summary="Search a case's analyzed documents",
    operation_id="search_documents",
)
async def search_documents(
    request: Request,
    case_id: UUID,
    q: str = Query("", description="Free-text query"),
    top: int = Query(10, ge=1, le=50),
    current_user: Annotated[CurrentUser, Depends(get_current_user)] = None,
    search_service: Annotated[DocumentSearchService, Depends(get_document_search_service)] = None,
) -> ApiResponse:
    """Full-text search, hybrid with vector search when embeddings are configured."""
    hits = await search_service.search(q, case_id=case_id, user_id=current_user.id, top=top)
    return create_api_response(
        data={"total": len(hits), "results": [hit.model_dump() for hit in hits]},
        message="Search completed",
        request=request,
    )


@router.post(
    "/{document_id}/analyze",
    response_model=ApiResponse,
    summary="Run AI analysis on a document",
    operation_id="analyze_document",
)
async def analyze_document(
    request: Request,
    document_id: UUID,
    current_user: Annotated[CurrentUser, Depends(get_current_user)] = None,
    analysis_service: Annotated[DocumentAnalysisService, Depends(get_analysis_service)] = None,
) -> ApiResponse:
    """Extract text, analyze, materialize bills and index the document.

    Completes with 200 even when optional stages degrade; check
    ``analysis.analysisQuality`` for fallback results.
    """
    result = await analysis_service.analyze_document(document_id, current_user.id)

    message = "Document analyzed successfully"
    if result.analysis.analysis_quality == "degraded":
        message = "Document processed with fallback analysis"

    return create_api_response(data=result, message=message, request=request)


@router.post(
    "/{document_id}/extract-bills",
    response_model=ApiResponse,
    summary="Extract medical bills from a document",
    operation_id="extract_document_bills",
)
async def extract_bills(
    request: Request,
    document_id: UUID,
    current_user: Annotated[CurrentUser, Depends(get_current_user)] = None,
    bill_service: Annotated[BillExtractionService, Depends(get_bill_extraction_service)] = None,
) -> ApiResponse:
    """Run text extraction and bill materialization only."""
    result = await bill_service.extract_bills(document_id, current_user.id)
    return create_api_response(
        data=result,
        message=f"Created {result.created_count} of {result.extracted_count} extracted bills",
        request=request,
    )
