from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from medlegal.database.models import User
from medlegal.repositories.base_repository import BaseRepository


class UserRepository(BaseRepository[User]):
    """Repository for users and their stored AI provider configuration."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, User)

    async def update_ai_config(self, user_id: UUID, config: Dict[str, Any]) -> Optional[User]:
        """Overwrite the provider configuration columns present in ``config``."""
        allowed = {
            "openai_api_key",
            "use_azure_openai",
            "azure_openai_endpoint",
            "azure_openai_api_key",
            "azure_openai_version",
            "azure_model_deployment",
        }
        fields = {key: value for key, value in config.items() if key in allowed}
        return await self.update(user_id, **fields)
