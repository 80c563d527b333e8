"""Ownership checks and provider resolution shared by document services."""

from typing import Callable
from uuid import UUID

from medlegal.core.exceptions import AccessDeniedError, DocumentNotFoundError, ResourceNotFoundError
from medlegal.database.models import Document
from medlegal.repositories.document_repository import DocumentRepository
from medlegal.repositories.user_repository import UserRepository
from medlegal.schemas.provider_config import ProviderConfig
from medlegal.services.ai.providers import AIProvider
from medlegal.utils.logging import get_logger

LOGGER = get_logger(__name__)

ProviderFactory = Callable[[ProviderConfig], AIProvider]


async def load_owned_document(
    repository: DocumentRepository, document_id: UUID, user_id: UUID
) -> Document:
    """Load a document the user uploaded.

    Raises:
        DocumentNotFoundError: If the document does not exist
        AccessDeniedError: If another user uploaded it
    """
    document = await repository.get_by_id(document_id)
    if document is None:
        raise DocumentNotFoundError(f"Document with ID {document_id} not found")

    if document.uploaded_by != user_id:
        LOGGER.warning(
            "Document access denied",
            extra={"document_id": str(document_id), "user_id": str(user_id)}
        )
        raise AccessDeniedError("Access denied")

    return document


async def resolve_provider(
    repository: UserRepository, user_id: UUID, factory: ProviderFactory
) -> AIProvider:
    """Build the AI provider from the user's stored configuration.

    Raises:
        ConfigurationError: If the user has no usable configuration
        ResourceNotFoundError: If the user record is missing
    """
    user = await repository.get_by_id(user_id)
    if user is None:
        raise ResourceNotFoundError(f"User {user_id} not found")
    return factory(ProviderConfig.from_user(user))
