from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from unittest.mock import AsyncMock, MagicMock

from medlegal.core.exceptions import AccessDeniedError, ResourceNotFoundError
from medlegal.database.models import Case, MedicalBill
from medlegal.schemas.bills import MedicalBillCreateRequest, MedicalBillUpdateRequest
from medlegal.services.medical_bill_service import MedicalBillService

SERVICE_DATE = datetime(2024, 1, 15, tzinfo=timezone.utc)


@pytest.fixture
def case(user_id):
    return Case(id=uuid4(), client_name="Jane Doe", case_number="PI-2024-001", created_by=user_id)


@pytest.fixture
def bill(case, user_id):
    return MedicalBill(
        id=uuid4(),
        case_id=case.id,
        provider="City Hospital",
        amount=Decimal("500.00"),
        service_date=SERVICE_DATE,
        bill_date=SERVICE_DATE,
        status="pending",
        source="extracted",
        created_by=user_id,
    )


@pytest.fixture
def service(case, bill):
    service = MedicalBillService(MagicMock())
    service.cases = MagicMock()
    service.cases.get_by_id = AsyncMock(return_value=case)
    service.bills = MagicMock()
    service.bills.get_by_id = AsyncMock(return_value=bill)
    service.bills.list_by_case = AsyncMock(return_value=[bill])
    service.bills.create = AsyncMock(side_effect=lambda **fields: MedicalBill(id=uuid4(), **fields))
    service.bills.update = AsyncMock(return_value=bill)
    return service


class TestMedicalBillService:

    @pytest.mark.asyncio
    async def test_list_serializes_amount_with_two_decimals(self, service, case, user_id):
        bills = await service.list_case_bills(case.id, user_id)
        assert bills[0].model_dump(mode="json")["amount"] == "500.00"

    @pytest.mark.asyncio
    async def test_list_for_unknown_case(self, service, user_id):
        service.cases.get_by_id.return_value = None
        with pytest.raises(ResourceNotFoundError):
            await service.list_case_bills(uuid4(), user_id)

    @pytest.mark.asyncio
    async def test_list_for_other_users_case(self, service, case):
        with pytest.raises(AccessDeniedError):
            await service.list_case_bills(case.id, uuid4())

    @pytest.mark.asyncio
    async def test_create_defaults_bill_date_to_service_date(self, service, case, user_id):
        request = MedicalBillCreateRequest(
            case_id=case.id, provider="Metro Imaging", amount=Decimal("250"), service_date=SERVICE_DATE
        )

        created = await service.create_bill(request, user_id)

        fields = service.bills.create.call_args.kwargs
        assert fields["bill_date"] == SERVICE_DATE
        assert fields["source"] == "manual"
        assert fields["created_by"] == user_id
        assert created.provider == "Metro Imaging"

    @pytest.mark.asyncio
    async def test_update_sends_only_given_fields(self, service, bill, user_id):
        await service.update_bill(bill.id, MedicalBillUpdateRequest(status="verified"), user_id)
        service.bills.update.assert_awaited_once_with(bill.id, status="verified")
