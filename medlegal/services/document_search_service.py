from typing import List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from medlegal.core.exceptions import AccessDeniedError, PipelineError, ResourceNotFoundError
from medlegal.repositories.case_repository import CaseRepository
from medlegal.schemas.documents import SearchHit
from medlegal.services.embeddings.embedding_service import EmbeddingService
from medlegal.services.search.search_index_service import SearchIndexService
from medlegal.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DocumentSearchService:
    """Hybrid search over a case's indexed documents."""

    def __init__(
        self,
        session: AsyncSession,
        search_service: SearchIndexService,
        embedding_service: EmbeddingService,
    ):
        self.cases = CaseRepository(session)
        self.search_service = search_service
        self.embedding_service = embedding_service

    async def search(self, query: str, case_id: UUID, user_id: UUID, top: int = 10) -> List[SearchHit]:
        """Search a case's documents; the query is also embedded when possible.

        Raises:
            UnavailableError: If search is not configured
            SearchIndexError: If the query fails
        """
        case = await self.cases.get_by_id(case_id)
        if case is None:
            raise ResourceNotFoundError(f"Case with ID {case_id} not found")
        if case.created_by != user_id:
            raise AccessDeniedError("Access denied")

        vector = None
        if query and self.embedding_service.is_available():
            try:
                vector = (await self.embedding_service.embed(query)).vector
            except PipelineError as e:
                LOGGER.info("Query embedding failed, using text search only", extra={"error": str(e)})

        hits = await self.search_service.search(query, case_id=str(case_id), top=top, vector=vector)
        return [SearchHit(**hit) for hit in hits]
