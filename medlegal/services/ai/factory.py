from enum import Enum
from typing import List, Optional

from medlegal.core.config import settings
from medlegal.core.exceptions import ConfigurationError
from medlegal.schemas.provider_config import DEFAULT_AZURE_API_VERSION, ProviderConfig
from medlegal.services.ai.providers import AIProvider, AzureOpenAIProvider, OpenAIProvider
from medlegal.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ProviderKind(str, Enum):
    """Which chat-completion backend a configuration resolves to."""
    DIRECT = "openai"
    GATEWAY = "azure_openai"


def _missing_gateway_fields(config: ProviderConfig, env_azure_api_key: Optional[str]) -> List[str]:
    missing = []
    if not config.azure_openai_endpoint:
        missing.append("azure_openai_endpoint")
    if not config.azure_model_deployment:
        missing.append("azure_model_deployment")
    if not (config.azure_openai_api_key or env_azure_api_key):
        missing.append("azure_openai_api_key")
    return missing


def select_provider_kind(config: ProviderConfig, env_azure_api_key: Optional[str] = None) -> ProviderKind:
    """Pick the backend for a configuration.

    The Azure gateway wins when it is enabled and complete; otherwise a direct
    OpenAI key is used. The result depends only on the arguments.

    Args:
        config: Stored provider configuration
        env_azure_api_key: Server-side Azure key used when the user has none

    Returns:
        ProviderKind for the configuration

    Raises:
        ConfigurationError: If neither backend can be built
    """
    gateway_missing = _missing_gateway_fields(config, env_azure_api_key)

    if config.use_azure_openai and not gateway_missing:
        return ProviderKind.GATEWAY
    if config.openai_api_key:
        return ProviderKind.DIRECT

    missing = gateway_missing if config.use_azure_openai else ["openai_api_key"]
    raise ConfigurationError(
        "No AI service configuration found. Configure an OpenAI API key or "
        f"Azure OpenAI in settings (missing: {', '.join(missing)}).",
        missing_fields=missing,
    )


def create_ai_provider(config: ProviderConfig) -> AIProvider:
    """Build the provider a configuration resolves to.

    Raises:
        ConfigurationError: If the configuration is incomplete
    """
    env_key = settings.llm.azure_openai_api_key or None
    kind = select_provider_kind(config, env_key)

    if kind is ProviderKind.GATEWAY:
        LOGGER.info(
            "Using Azure OpenAI provider",
            extra={"deployment": config.azure_model_deployment, "env_key": not config.azure_openai_api_key}
        )
        return AzureOpenAIProvider(
            endpoint=config.azure_openai_endpoint,
            api_key=config.azure_openai_api_key or env_key,
            deployment=config.azure_model_deployment,
            api_version=config.azure_openai_version or DEFAULT_AZURE_API_VERSION,
        )

    LOGGER.info("Using OpenAI provider", extra={"model": settings.llm.openai_model})
    return OpenAIProvider(api_key=config.openai_api_key)
