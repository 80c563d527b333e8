from typing import Annotated

from fastapi import APIRouter, Depends, Request

from medlegal.core.auth import get_current_user
from medlegal.dependencies import get_user_settings_service
from medlegal.schemas.auth import CurrentUser
from medlegal.schemas.common import ApiResponse
from medlegal.schemas.provider_config import AIConfigUpdate
from medlegal.services.user_settings_service import UserSettingsService
from medlegal.utils.responses import create_api_response

router = APIRouter()


@router.put(
    "/api-key",
    response_model=ApiResponse,
    summary="Save AI provider configuration",
    operation_id="update_ai_config",
)
async def update_ai_config(
    request: Request,
    body: AIConfigUpdate,
    current_user: Annotated[CurrentUser, Depends(get_current_user)] = None,
    settings_service: Annotated[UserSettingsService, Depends(get_user_settings_service)] = None,
) -> ApiResponse:
    """Store either a direct OpenAI key or Azure OpenAI gateway settings."""
    config = await settings_service.update_ai_config(current_user.id, body)
    return create_api_response(data=config, message="AI configuration saved", request=request)


@router.post(
    "/api-key/test",
    response_model=ApiResponse,
    summary="Test the stored AI provider configuration",
    operation_id="test_ai_config",
)
async def test_ai_config(
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)] = None,
    settings_service: Annotated[UserSettingsService, Depends(get_user_settings_service)] = None,
) -> ApiResponse:
    result = await settings_service.test_ai_connection(current_user.id)
    message = "AI provider is working" if result.working else "AI provider test failed"
    return create_api_response(data=result, message=message, status=result.working, request=request)
