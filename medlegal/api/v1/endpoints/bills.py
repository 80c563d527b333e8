from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status

from medlegal.core.auth import get_current_user
from medlegal.dependencies import get_medical_bill_service
from medlegal.schemas.auth import CurrentUser
from medlegal.schemas.bills import MedicalBillCreateRequest, MedicalBillUpdateRequest
from medlegal.schemas.common import ApiResponse
from medlegal.services.medical_bill_service import MedicalBillService
from medlegal.utils.responses import create_api_response

router = APIRouter()


@router.get(
    "/cases/{case_id}/bills",
    response_model=ApiResponse,
    summary="List medical bills for a case",
    operation_id="list_case_bills",
)
async def list_case_bills(
    request: Request,
    case_id: UUID,
    current_user: Annotated[CurrentUser, Depends(get_current_user)] = None,
    bill_service: Annotated[MedicalBillService, Depends(get_medical_bill_service)] = None,
) -> ApiResponse:
    bills = await bill_service.list_case_bills(case_id, current_user.id)
    return create_api_response(
        data={"total": len(bills), "bills": [bill.model_dump(mode="json") for bill in bills]},
        message="Medical bills retrieved successfully",
        request=request,
    )


@router.post(
    "/bills",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a medical bill",
    operation_id="create_bill",
)
async def create_bill(
    request: Request,
    body: MedicalBillCreateRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)] = None,
    bill_service: Annotated[MedicalBillService, Depends(get_medical_bill_service)] = None,
) -> ApiResponse:
    bill = await bill_service.create_bill(body, current_user.id)
    return create_api_response(data=bill, message="Medical bill created", request=request)


@router.patch(
    "/bills/{bill_id}",
    response_model=ApiResponse,
    summary="Update a medical bill",
    operation_id="update_bill",
)
async def update_bill(
    request: Request,
    bill_id: UUID,
    body: MedicalBillUpdateRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)] = None,
    bill_service: Annotated[MedicalBillService, Depends(get_medical_bill_service)] = None,
) -> ApiResponse:
    """Update bill fields, most often the review status."""
    bill = await bill_service.update_bill(bill_id, body, current_user.id)
    return create_api_response(data=bill, message="Medical bill updated", request=request)
