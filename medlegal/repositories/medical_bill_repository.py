from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from medlegal.core.exceptions import DatabaseError
from medlegal.database.models import MedicalBill
from medlegal.repositories.base_repository import BaseRepository


class MedicalBillRepository(BaseRepository[MedicalBill]):
    """Repository for medical bill line items."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, MedicalBill)

    async def create(self, **kwargs) -> MedicalBill:
        """Insert a bill inside a savepoint and commit it.

        A failed insert rolls back only the savepoint, so other objects held by
        the session (the document under analysis, earlier bills) stay loaded.
        """
        try:
            async with self.session.begin_nested():
                bill = MedicalBill(**kwargs)
                self.session.add(bill)
                await self.session.flush()
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating MedicalBill: {str(e)}", exc_info=True)
            raise DatabaseError("Failed to create MedicalBill", original_error=e) from e

        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(f"Error committing MedicalBill: {str(e)}", exc_info=True)
            raise DatabaseError("Failed to create MedicalBill", original_error=e) from e
        return bill

    async def list_by_case(self, case_id: UUID) -> List[MedicalBill]:
        """Bills for a case, most recent service date first."""
        try:
            query = (
                select(MedicalBill)
                .where(MedicalBill.case_id == case_id)
                .order_by(MedicalBill.service_date.desc())
            )
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing bills for case {case_id}: {str(e)}", exc_info=True)
            raise DatabaseError("Failed to list medical bills", original_error=e) from e

    async def find_duplicate(
        self,
        case_id: UUID,
        document_id: Optional[UUID],
        provider: str,
        amount: Decimal,
        service_date: datetime,
    ) -> Optional[MedicalBill]:
        """Find an existing bill with the same identifying fields."""
        try:
            query = select(MedicalBill).where(
                MedicalBill.case_id == case_id,
                MedicalBill.provider == provider,
                MedicalBill.amount == amount,
                MedicalBill.service_date == service_date,
            )
            if document_id is None:
                query = query.where(MedicalBill.document_id.is_(None))
            else:
                query = query.where(MedicalBill.document_id == document_id)
            async with self.session.begin_nested():
                result = await self.session.execute(query.limit(1))
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(f"Error looking up duplicate bill: {str(e)}", exc_info=True)
            raise DatabaseError("Failed to check for duplicate bill", original_error=e) from e
