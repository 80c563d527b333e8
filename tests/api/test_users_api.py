import pytest
from unittest.mock import AsyncMock, MagicMock

from medlegal.dependencies import get_user_settings_service
from medlegal.main import app
from medlegal.schemas.provider_config import AIConfigResponse, AIConnectionTestResult


@pytest.fixture
def settings_service():
    service = MagicMock()
    service.update_ai_config = AsyncMock(
        return_value=AIConfigResponse(use_azure_openai=False, openai_api_key="****7890")
    )
    service.test_ai_connection = AsyncMock()
    app.dependency_overrides[get_user_settings_service] = lambda: service
    return service


class TestUpdateAIConfig:

    def test_saves_direct_key(self, test_client, auth_headers, settings_service, user_id):
        response = test_client.put(
            "/api/v1/user/api-key", json={"openai_api_key": "sk-1234567890"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["data"]["openai_api_key"] == "****7890"
        saved_user_id, update = settings_service.update_ai_config.call_args.args
        assert saved_user_id == user_id
        assert update.openai_api_key == "sk-1234567890"

    @pytest.mark.parametrize("body", [
        {},
        {"use_azure_openai": True},
        {"use_azure_openai": True, "azure_openai_endpoint": "https://firm.openai.azure.com"},
    ])
    def test_incomplete_configuration_is_400(self, test_client, auth_headers, settings_service, body):
        response = test_client.put("/api/v1/user/api-key", json=body, headers=auth_headers)

        assert response.status_code == 400
        settings_service.update_ai_config.assert_not_awaited()


class TestConnectionTest:

    def test_reports_error_code(self, test_client, auth_headers, settings_service):
        settings_service.test_ai_connection.return_value = AIConnectionTestResult(
            working=False, provider="azure_openai", error_code="QUOTA_ERROR", error="API Client Error 429"
        )

        response = test_client.post("/api/v1/user/api-key/test", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] is False
        assert body["data"]["error_code"] == "QUOTA_ERROR"
