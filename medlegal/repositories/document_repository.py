from typing import Optional, List, Dict, Any
from uuid import UUID
from datetime import datetime, timedelta, timezone

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from medlegal.core.exceptions import DatabaseError
from medlegal.database.models import Document
from medlegal.repositories.base_repository import BaseRepository
from medlegal.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DocumentRepository(BaseRepository[Document]):
    """Repository for managing Document records.

    Inherits from BaseRepository for standard CRUD operations and adds
    the analysis claim and the single final analysis write.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, Document)

    async def claim_for_analysis(self, document_id: UUID, lock_ttl_seconds: int) -> bool:
        """Atomically move a document into the ``analyzing`` state.

        The claim succeeds unless another analysis already holds the document
        and started less than ``lock_ttl_seconds`` ago. Stale claims left by a
        crashed worker can be taken over.

        Args:
            document_id: Document to claim
            lock_ttl_seconds: Age after which an existing claim is stale

        Returns:
            True if this caller now owns the analysis, False otherwise
        """
        now = datetime.now(timezone.utc)
        stale_before = now - timedelta(seconds=lock_ttl_seconds)

        stmt = (
            update(Document)
            .where(Document.id == document_id)
            .where(
                or_(
                    Document.processing_status != "analyzing",
                    Document.analysis_started_at.is_(None),
                    Document.analysis_started_at < stale_before,
                )
            )
            .values(processing_status="analyzing", analysis_started_at=now, updated_at=now)
            .returning(Document.id)
            .execution_options(synchronize_session=False)
        )

        try:
            result = await self.session.execute(stmt)
            claimed = result.scalar_one_or_none() is not None
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            LOGGER.error(
                f"Error claiming document {document_id} for analysis: {str(e)}",
                exc_info=True
            )
            raise DatabaseError("Failed to claim document for analysis", original_error=e) from e

        LOGGER.info(
            "Analysis claim attempted",
            extra={"document_id": str(document_id), "claimed": claimed}
        )
        return claimed

    async def save_analysis(
        self,
        document_id: UUID,
        summary: str,
        extracted_data: Dict[str, Any],
        analysis_quality: str,
        document_intelligence: Optional[Dict[str, Any]] = None,
        vector_embedding: Optional[Dict[str, Any]] = None,
        search_indexed_at: Optional[datetime] = None,
        processing_errors: Optional[List[Dict[str, Any]]] = None,
    ) -> Optional[Document]:
        """Persist the accumulated analysis outcome in one write.

        Optional stage metadata that was not produced in this run is left
        untouched, so a re-analysis never erases earlier metadata with None.
        """
        now = datetime.now(timezone.utc)
        fields: Dict[str, Any] = {
            "processing_status": "processed",
            "ai_processed": True,
            "ai_summary": summary,
            "extracted_data": extracted_data,
            "analysis_quality": analysis_quality,
            "processing_errors": processing_errors or [],
            "analysis_started_at": None,
            "last_processed_at": now,
        }
        if document_intelligence is not None:
            fields["document_intelligence"] = document_intelligence
        if vector_embedding is not None:
            fields["vector_embedding"] = vector_embedding
        if search_indexed_at is not None:
            fields["search_indexed"] = True
            fields["search_indexed_at"] = search_indexed_at

        return await self.update(document_id, **fields)

    async def mark_error(self, document_id: UUID, stage: str, error: str) -> None:
        """Record an infrastructure failure and release the analysis claim."""
        now = datetime.now(timezone.utc)
        stmt = (
            update(Document)
            .where(Document.id == document_id)
            .values(
                processing_status="error",
                analysis_started_at=None,
                last_processed_at=now,
                processing_errors=[{"stage": stage, "error": error, "at": now.isoformat()}],
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            LOGGER.error(
                f"Error marking document {document_id} as failed: {str(e)}",
                exc_info=True
            )
            raise DatabaseError("Failed to record document error state", original_error=e) from e
