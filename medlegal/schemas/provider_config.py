"""AI provider configuration stored per user."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_AZURE_API_VERSION = "2024-02-15-preview"


def mask_secret(value: Optional[str]) -> Optional[str]:
    """Show only the last four characters of a secret."""
    if not value:
        return None
    if len(value) <= 4:
        return "****"
    return f"****{value[-4:]}"


class ProviderConfig(BaseModel):
    """Provider settings resolved from a user record."""

    model_config = ConfigDict(from_attributes=True)

    openai_api_key: Optional[str] = None
    use_azure_openai: bool = False
    azure_openai_endpoint: Optional[str] = None
    azure_openai_api_key: Optional[str] = None
    azure_openai_version: Optional[str] = None
    azure_model_deployment: Optional[str] = None

    @classmethod
    def from_user(cls, user: Any) -> "ProviderConfig":
        return cls(
            openai_api_key=getattr(user, "openai_api_key", None),
            use_azure_openai=bool(getattr(user, "use_azure_openai", False)),
            azure_openai_endpoint=getattr(user, "azure_openai_endpoint", None),
            azure_openai_api_key=getattr(user, "azure_openai_api_key", None),
            azure_openai_version=getattr(user, "azure_openai_version", None),
            azure_model_deployment=getattr(user, "azure_model_deployment", None),
        )


class AIConfigUpdate(BaseModel):
    """Body of ``PUT /user/api-key``.

    Either a direct OpenAI key, or the Azure gateway flag together with its
    endpoint and deployment, must be supplied. The Azure key may come from the
    server environment instead of the request.
    """

    openai_api_key: Optional[str] = Field(None, min_length=1)
    use_azure_openai: bool = False
    azure_openai_endpoint: Optional[str] = None
    azure_openai_api_key: Optional[str] = None
    azure_openai_version: Optional[str] = DEFAULT_AZURE_API_VERSION
    azure_model_deployment: Optional[str] = None

    @model_validator(mode="after")
    def require_one_provider(self) -> "AIConfigUpdate":
        if self.use_azure_openai:
            missing = [
                name
                for name in ("azure_openai_endpoint", "azure_model_deployment")
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(f"Azure OpenAI requires: {', '.join(missing)}")
        elif not self.openai_api_key:
            raise ValueError("Provide openai_api_key or enable use_azure_openai with endpoint and deployment")
        if self.azure_openai_endpoint:
            self.azure_openai_endpoint = self.azure_openai_endpoint.rstrip("/")
        return self


class AIConfigResponse(BaseModel):
    """Stored configuration with secrets masked."""

    use_azure_openai: bool
    openai_api_key: Optional[str] = None
    azure_openai_endpoint: Optional[str] = None
    azure_openai_api_key: Optional[str] = None
    azure_openai_version: Optional[str] = None
    azure_model_deployment: Optional[str] = None

    @classmethod
    def from_config(cls, config: ProviderConfig) -> "AIConfigResponse":
        return cls(
            use_azure_openai=config.use_azure_openai,
            openai_api_key=mask_secret(config.openai_api_key),
            azure_openai_endpoint=config.azure_openai_endpoint,
            azure_openai_api_key=mask_secret(config.azure_openai_api_key),
            azure_openai_version=config.azure_openai_version,
            azure_model_deployment=config.azure_model_deployment,
        )


class AIConnectionTestResult(BaseModel):
    working: bool
    provider: Optional[str] = None
    model: Optional[str] = None
    response: Optional[str] = None
    error_code: Optional[str] = None
    error: Optional[str] = None
