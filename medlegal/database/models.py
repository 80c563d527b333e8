"""SQLAlchemy models for all database tables."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    TIMESTAMP,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from medlegal.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """Firm user, including the AI provider configuration they saved."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    external_id: Mapped[str | None] = mapped_column(String, unique=True, nullable=True)
    email: Mapped[str] = mapped_column(String, nullable=False)
    full_name: Mapped[str | None] = mapped_column(String, nullable=True)

    # AI provider configuration
    openai_api_key: Mapped[str | None] = mapped_column(String, nullable=True)
    use_azure_openai: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    azure_openai_endpoint: Mapped[str | None] = mapped_column(String, nullable=True)
    azure_openai_api_key: Mapped[str | None] = mapped_column(String, nullable=True)
    azure_openai_version: Mapped[str | None] = mapped_column(
        String, nullable=True, default="2024-02-15-preview"
    )
    azure_model_deployment: Mapped[str | None] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", onupdate=_utcnow
    )

    documents: Mapped[list["Document"]] = relationship(
        "Document", back_populates="uploader"
    )


class Case(Base):
    """Personal-injury case that documents and bills belong to."""

    __tablename__ = "cases"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    client_name: Mapped[str] = mapped_column(String, nullable=False)
    case_number: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    case_type: Mapped[str] = mapped_column(String, nullable=False, default="personal_injury")
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", onupdate=_utcnow
    )

    documents: Mapped[list["Document"]] = relationship(
        "Document", back_populates="case", cascade="all, delete-orphan"
    )
    medical_bills: Mapped[list["MedicalBill"]] = relationship(
        "MedicalBill", back_populates="case", cascade="all, delete-orphan"
    )


class Document(Base):
    """Uploaded case document and the results of its AI analysis."""

    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    case_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False
    )
    uploaded_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    file_name: Mapped[str] = mapped_column(String, nullable=False)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    mime_type: Mapped[str | None] = mapped_column(String, nullable=True)
    object_path: Mapped[str | None] = mapped_column(String, nullable=True)

    processing_status: Mapped[str] = mapped_column(
        String, nullable=False, default="uploaded"
    )  # uploaded | analyzing | processed | error
    ai_processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ai_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    extracted_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    analysis_quality: Mapped[str | None] = mapped_column(String, nullable=True)  # full | degraded

    document_intelligence: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    vector_embedding: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    search_indexed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    search_indexed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    processing_errors: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    analysis_started_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    last_processed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", onupdate=_utcnow
    )

    case: Mapped["Case"] = relationship("Case", back_populates="documents")
    uploader: Mapped["User"] = relationship("User", back_populates="documents")
    medical_bills: Mapped[list["MedicalBill"]] = relationship(
        "MedicalBill", back_populates="document"
    )


class MedicalBill(Base):
    """Medical bill line item, entered manually or materialized from a document."""

    __tablename__ = "medical_bills"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    case_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False
    )
    document_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id", ondelete="SET NULL"), nullable=True
    )
    provider: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    service_date: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    bill_date: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    treatment: Mapped[str | None] = mapped_column(Text, nullable=True)
    insurance: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="pending"
    )  # pending | verified | disputed | approved
    source: Mapped[str] = mapped_column(String, nullable=False, default="manual")  # manual | extracted
    created_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", onupdate=_utcnow
    )

    case: Mapped["Case"] = relationship("Case", back_populates="medical_bills")
    document: Mapped["Document | None"] = relationship("Document", back_populates="medical_bills")
