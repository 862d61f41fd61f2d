"""
Tests for the wallet pass HTTP endpoints
"""
import zipfile
from io import BytesIO
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from cardpass.core.config import get_settings
from cardpass.main import create_app
from cardpass.routers.wallet_pass import content_disposition
from cardpass.services.pass_verification import verify_pkpass
from cardpass.services.wallet_pass_errors import AssetFetchError

CARD_BODY = {
    "firstName": "Amina",
    "lastName": "Al-Thani",
    "cardUrl": "https://wakti.qa/card/abc",
}


def _client(settings):
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: settings
    return TestClient(app)


@pytest.fixture
def client(settings):
    return _client(settings)


class TestCreateApplePass:
    def test_returns_signed_pkpass(self, client):
        response = client.post("/v1/wallet/pass/apple", json=CARD_BODY)

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/vnd.apple.pkpass"
        assert response.headers["content-disposition"] == 'attachment; filename="Amina_Al-Thani.pkpass"'
        with zipfile.ZipFile(BytesIO(response.content)) as zf:
            assert "signature" in zf.namelist()
        assert verify_pkpass(response.content).ok

    def test_not_configured_returns_501(self, unconfigured_settings):
        client = _client(unconfigured_settings)

        with patch("cardpass.routers.wallet_pass.fetch_card_images") as mock_fetch:
            response = client.post(
                "/v1/wallet/pass/apple",
                json={**CARD_BODY, "logoUrl": "https://cdn.wakti.qa/logo.png"},
            )

        assert response.status_code == 501
        body = response.json()
        assert body["error"] == "APPLE_WALLET_NOT_CONFIGURED"
        assert "APPLE_WALLET_CERT_P12_BASE64" in body["missing"]
        mock_fetch.assert_not_called()

    def test_missing_required_field_is_422(self, client):
        response = client.post("/v1/wallet/pass/apple", json={"firstName": "Amina"})

        assert response.status_code == 422

    def test_invalid_card_url_is_422(self, client):
        response = client.post("/v1/wallet/pass/apple", json={**CARD_BODY, "cardUrl": "/card/abc"})

        assert response.status_code == 422
        assert response.json()["error"] == "DESCRIPTOR_INVALID"

    def test_invalid_card_rejected_before_image_fetch(self, client):
        """An invalid card with an unreachable logo is still a 422"""
        with patch(
            "cardpass.routers.wallet_pass.fetch_card_images",
            side_effect=AssetFetchError("Image fetch failed", url="https://cdn.wakti.qa/x.png"),
        ) as mock_fetch:
            response = client.post(
                "/v1/wallet/pass/apple",
                json={**CARD_BODY, "cardUrl": "/card/abc", "logoUrl": "https://cdn.wakti.qa/x.png"},
            )

        assert response.status_code == 422
        assert response.json()["error"] == "DESCRIPTOR_INVALID"
        mock_fetch.assert_not_called()

    def test_image_fetch_failure_is_502(self, client):
        with patch(
            "cardpass.routers.wallet_pass.fetch_card_images",
            side_effect=AssetFetchError("Image fetch failed with HTTP 404", url="https://cdn.wakti.qa/x.png"),
        ):
            response = client.post(
                "/v1/wallet/pass/apple",
                json={**CARD_BODY, "logoUrl": "https://cdn.wakti.qa/x.png"},
            )

        assert response.status_code == 502
        assert response.json()["error"] == "ASSET_FETCH_FAILED"

    def test_bad_credentials_is_500(self, settings):
        client = _client(settings.model_copy(update={"APPLE_WALLET_CERT_P12_PASSWORD": "hunter2-not-it"}))

        response = client.post("/v1/wallet/pass/apple", json=CARD_BODY)

        assert response.status_code == 500
        assert response.json()["error"] == "PASS_SIGNING_FAILED"
        assert response.json()["code"] == "CREDENTIAL_PASSWORD"
        assert "hunter2-not-it" not in response.text


class TestAppleWalletConfig:
    def test_configured(self, client):
        response = client.get("/v1/wallet/pass/apple/config")

        assert response.status_code == 200
        assert response.json() == {"configured": True, "missing": []}

    def test_does_not_leak_secrets(self, client, settings):
        response = client.get("/v1/wallet/pass/apple/config")

        assert settings.APPLE_WALLET_CERT_P12_BASE64[:32] not in response.text

    def test_unconfigured(self, unconfigured_settings):
        response = _client(unconfigured_settings).get("/v1/wallet/pass/apple/config")

        assert response.json()["configured"] is False


class TestHealthz:
    def test_ok(self, client):
        response = client.get("/healthz")

        assert response.status_code == 200
        assert response.json()["ok"] is True


class TestContentDisposition:
    def test_ascii(self):
        assert content_disposition("Amina_Al-Thani.pkpass") == 'attachment; filename="Amina_Al-Thani.pkpass"'

    def test_non_ascii_uses_filename_star(self):
        header = content_disposition("أمينة_الثاني.pkpass")

        assert "filename*=UTF-8''" in header
        header.encode("latin-1")
