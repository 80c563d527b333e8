"""Chat-completion providers behind a single capability interface."""

from medlegal.services.ai.factory import (
    ProviderKind,
    create_ai_provider,
    select_provider_kind,
)
from medlegal.services.ai.providers import (
    AIProvider,
    AzureOpenAIProvider,
    DocumentAnalysis,
    OpenAIProvider,
)

__all__ = [
    "AIProvider",
    "AzureOpenAIProvider",
    "DocumentAnalysis",
    "OpenAIProvider",
    "ProviderKind",
    "create_ai_provider",
    "select_provider_kind",
]
