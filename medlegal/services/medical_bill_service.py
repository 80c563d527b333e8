from typing import List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from medlegal.core.exceptions import AccessDeniedError, ResourceNotFoundError
from medlegal.repositories.case_repository import CaseRepository
from medlegal.repositories.medical_bill_repository import MedicalBillRepository
from medlegal.schemas.bills import (
    MedicalBillCreate,
    MedicalBillCreateRequest,
    MedicalBillResponse,
    MedicalBillUpdateRequest,
)
from medlegal.utils.logging import get_logger

LOGGER = get_logger(__name__)


class MedicalBillService:
    """Manual bill entry and status updates for a user's cases."""

    def __init__(self, session: AsyncSession):
        self.cases = CaseRepository(session)
        self.bills = MedicalBillRepository(session)

    async def _check_case_owner(self, case_id: UUID, user_id: UUID) -> None:
        case = await self.cases.get_by_id(case_id)
        if case is None:
            raise ResourceNotFoundError(f"Case with ID {case_id} not found")
        if case.created_by != user_id:
            raise AccessDeniedError("Access denied")

    async def list_case_bills(self, case_id: UUID, user_id: UUID) -> List[MedicalBillResponse]:
        await self._check_case_owner(case_id, user_id)
        bills = await self.bills.list_by_case(case_id)
        return [MedicalBillResponse.model_validate(bill) for bill in bills]

    async def create_bill(self, request: MedicalBillCreateRequest, user_id: UUID) -> MedicalBillResponse:
        await self._check_case_owner(request.case_id, user_id)

        bill = MedicalBillCreate(
            **request.model_dump(exclude={"bill_date"}),
            bill_date=request.bill_date or request.service_date,
            created_by=user_id,
            source="manual",
        )
        created = await self.bills.create(**bill.model_dump())
        LOGGER.info("Medical bill created", extra={"bill_id": str(created.id), "case_id": str(request.case_id)})
        return MedicalBillResponse.model_validate(created)

    async def update_bill(
        self, bill_id: UUID, request: MedicalBillUpdateRequest, user_id: UUID
    ) -> MedicalBillResponse:
        bill = await self.bills.get_by_id(bill_id)
        if bill is None:
            raise ResourceNotFoundError(f"Medical bill with ID {bill_id} not found")
        await self._check_case_owner(bill.case_id, user_id)

        changes = request.model_dump(exclude_unset=True, exclude_none=True)
        updated = await self.bills.update(bill_id, **changes)
        LOGGER.info("Medical bill updated", extra={"bill_id": str(bill_id), "fields": sorted(changes)})
        return MedicalBillResponse.model_validate(updated)
