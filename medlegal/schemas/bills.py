"""Medical bill request, validation and response schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

BillStatus = Literal["pending", "verified", "disputed", "approved"]
BillSource = Literal["manual", "extracted"]


class MedicalBillCreate(BaseModel):
    """Validated bill ready to be persisted."""

    case_id: UUID
    document_id: Optional[UUID] = None
    provider: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    service_date: datetime
    bill_date: datetime
    treatment: Optional[str] = None
    insurance: Optional[str] = None
    status: BillStatus = "pending"
    source: BillSource = "manual"
    created_by: UUID

    @field_validator("provider")
    @classmethod
    def provider_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("provider must not be blank")
        return value


class MedicalBillCreateRequest(BaseModel):
    """Request body for manually entering a bill."""

    case_id: UUID
    document_id: Optional[UUID] = None
    provider: str = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    service_date: datetime
    bill_date: Optional[datetime] = None
    treatment: Optional[str] = None
    insurance: Optional[str] = None
    status: BillStatus = "pending"


class MedicalBillUpdateRequest(BaseModel):
    """Partial update; typically only ``status`` changes."""

    provider: Optional[str] = Field(None, min_length=1)
    amount: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    service_date: Optional[datetime] = None
    bill_date: Optional[datetime] = None
    treatment: Optional[str] = None
    insurance: Optional[str] = None
    status: Optional[BillStatus] = None


class MedicalBillResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    case_id: UUID
    document_id: Optional[UUID] = None
    provider: str
    amount: Decimal
    service_date: datetime
    bill_date: datetime
    treatment: Optional[str] = None
    insurance: Optional[str] = None
    status: str
    source: str = "manual"

    @field_serializer("amount")
    def serialize_amount(self, amount: Decimal) -> str:
        return f"{amount:.2f}"
