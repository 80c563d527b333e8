"""Custom exception hierarchy."""

from typing import List, Optional


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails."""

    def __init__(
        self,
        message: str,
        original_error: Exception = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, original_error)
        self.status_code = status_code


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class ConfigurationError(AppError):
    """Raised when AI provider configuration is invalid or missing.

    ``missing_fields`` names the settings the caller still has to provide.
    """

    def __init__(
        self,
        message: str,
        missing_fields: Optional[List[str]] = None,
        original_error: Exception = None,
    ):
        super().__init__(message, original_error)
        self.missing_fields = missing_fields or []


class PipelineError(AppError):
    """Base exception for analysis pipeline stage errors."""
    stage: str = "pipeline"


class UnavailableError(PipelineError):
    """Raised when an optional adapter has no credentials configured."""

    def __init__(self, message: str, stage: str = "pipeline", original_error: Exception = None):
        super().__init__(message, original_error)
        self.stage = stage


class ExtractionError(PipelineError):
    """Text extraction failed."""
    stage = "text_extraction"


class EmbeddingError(PipelineError):
    """Embedding generation failed."""
    stage = "embedding"


class AnalysisError(PipelineError):
    """LLM structured analysis failed."""
    stage = "llm_analysis"


class BillExtractionError(PipelineError):
    """Medical-bill line-item extraction failed."""
    stage = "bill_extraction"


class SearchIndexError(PipelineError):
    """Search indexing or querying failed."""
    stage = "search_index"


class ResourceNotFoundError(AppError):
    """Raised when a requested record does not exist."""
    pass


class DocumentNotFoundError(ResourceNotFoundError):
    """Raised when a document is not found."""
    pass


class AccessDeniedError(AppError):
    """Raised when the caller does not own the requested resource."""
    pass


class AnalysisInProgressError(AppError):
    """Raised when another analysis already holds the document."""
    pass
