from sqlalchemy.ext.asyncio import AsyncSession

from medlegal.database.models import Case
from medlegal.repositories.base_repository import BaseRepository


class CaseRepository(BaseRepository[Case]):
    """Repository for cases; only used for ownership checks."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Case)
