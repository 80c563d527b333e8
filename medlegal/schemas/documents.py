"""Document and analysis response schemas."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from medlegal.schemas.bills import MedicalBillResponse

AnalysisQuality = Literal["full", "degraded"]


class DocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    case_id: UUID
    uploaded_by: UUID
    file_name: str
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    object_path: Optional[str] = None
    processing_status: str
    ai_processed: bool = False
    ai_summary: Optional[str] = None
    extracted_data: Optional[Dict[str, Any]] = None
    analysis_quality: Optional[str] = None
    document_intelligence: Optional[Dict[str, Any]] = None
    vector_embedding: Optional[Dict[str, Any]] = None
    search_indexed: bool = False
    search_indexed_at: Optional[datetime] = None
    processing_errors: Optional[List[Dict[str, Any]]] = None
    last_processed_at: Optional[datetime] = None


class StageReport(BaseModel):
    """Outcome of one pipeline stage."""

    stage: str
    status: Literal["completed", "degraded", "skipped"]
    detail: Optional[str] = None


class AnalysisResult(BaseModel):
    """Analysis payload; the three content keys are always present."""

    model_config = ConfigDict(populate_by_name=True)

    summary: str
    extracted_data: Dict[str, Any] = Field(default_factory=dict, alias="extractedData")
    key_findings: List[str] = Field(default_factory=list, alias="keyFindings")
    analysis_quality: AnalysisQuality = Field("full", alias="analysisQuality")
    bills_created: int = Field(0, alias="billsCreated")
    stages: List[StageReport] = Field(default_factory=list)


class AnalyzeDocumentResponse(BaseModel):
    document: DocumentResponse
    analysis: AnalysisResult


class ExtractBillsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    extracted_count: int = Field(..., alias="extractedCount")
    created_count: int = Field(..., alias="createdCount")
    skipped_count: int = Field(0, alias="skippedCount")
    bills: List[MedicalBillResponse] = Field(default_factory=list)
    errors: Optional[List[str]] = None


class SearchHit(BaseModel):
    id: str
    file_name: Optional[str] = None
    document_type: Optional[str] = None
    case_id: Optional[str] = None
    summary: Optional[str] = None
    score: Optional[float] = None
    highlights: Optional[List[str]] = None
