import asyncio
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from medlegal.core.config import settings
from medlegal.core.exceptions import APIClientError, ResourceNotFoundError
from medlegal.prompts.system_prompts import CONNECTION_TEST_PROMPT
from medlegal.repositories.user_repository import UserRepository
from medlegal.schemas.provider_config import (
    AIConfigResponse,
    AIConfigUpdate,
    AIConnectionTestResult,
    ProviderConfig,
)
from medlegal.services.ai.factory import create_ai_provider
from medlegal.services.document_access import ProviderFactory, resolve_provider
from medlegal.utils.logging import get_logger

LOGGER = get_logger(__name__)

_STATUS_ERROR_CODES = {
    401: "AUTH_ERROR",
    403: "PERMISSION_ERROR",
    404: "ENDPOINT_ERROR",
    429: "QUOTA_ERROR",
}


def classify_provider_error(status_code: Optional[int]) -> str:
    return _STATUS_ERROR_CODES.get(status_code, "UNKNOWN_ERROR")


class UserSettingsService:
    """Stores and checks a user's AI provider configuration."""

    def __init__(self, session: AsyncSession, provider_factory: ProviderFactory = create_ai_provider):
        self.users = UserRepository(session)
        self.provider_factory = provider_factory

    async def update_ai_config(self, user_id: UUID, update: AIConfigUpdate) -> AIConfigResponse:
        user = await self.users.update_ai_config(user_id, update.model_dump())
        if user is None:
            raise ResourceNotFoundError(f"User {user_id} not found")

        LOGGER.info(
            "AI configuration updated",
            extra={"user_id": str(user_id), "use_azure_openai": update.use_azure_openai}
        )
        return AIConfigResponse.from_config(ProviderConfig.from_user(user))

    async def test_ai_connection(self, user_id: UUID) -> AIConnectionTestResult:
        """Send a one-line prompt through the user's provider.

        Raises:
            ConfigurationError: If the stored configuration is incomplete
        """
        provider = await resolve_provider(self.users, user_id, self.provider_factory)
        timeout = settings.pipeline.llm_stage_timeout

        try:
            reply = await asyncio.wait_for(
                provider.chat_completion([{"role": "user", "content": CONNECTION_TEST_PROMPT}]),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            return AIConnectionTestResult(
                working=False,
                provider=provider.name,
                model=provider.model,
                error_code="UNKNOWN_ERROR",
                error=f"No response within {timeout:g}s",
            )
        except APIClientError as e:
            code = classify_provider_error(e.status_code)
            LOGGER.warning(
                "AI connection test failed",
                extra={"user_id": str(user_id), "provider": provider.name, "error_code": code}
            )
            return AIConnectionTestResult(
                working=False,
                provider=provider.name,
                model=provider.model,
                error_code=code,
                error=str(e),
            )

        return AIConnectionTestResult(
            working=True, provider=provider.name, model=provider.model, response=reply[:200]
        )
