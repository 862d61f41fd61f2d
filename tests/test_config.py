"""
Test startup configuration validation
"""
import pytest

from cardpass.core.config import validate_config


def test_prod_fails_without_signing_material(unconfigured_settings):
    """Production refuses to start when pass signing is not configured"""
    settings = unconfigured_settings.model_copy(update={"ENV": "prod"})

    with pytest.raises(ValueError) as exc_info:
        validate_config(settings)

    assert "APPLE_WALLET_CERT_P12_BASE64" in str(exc_info.value)


def test_dev_allows_unconfigured(unconfigured_settings, caplog):
    """Outside production an unconfigured wallet only warns"""
    validate_config(unconfigured_settings)

    assert "not configured" in caplog.text


def test_prod_succeeds_when_configured(settings):
    validate_config(settings.model_copy(update={"ENV": "prod"}))


def test_team_id_length(settings):
    with pytest.raises(ValueError):
        validate_config(settings.model_copy(update={"APPLE_WALLET_TEAM_ID": "SHORT"}))


def test_fetch_timeout_must_be_positive(settings):
    with pytest.raises(ValueError):
        validate_config(settings.model_copy(update={"APPLE_WALLET_ASSET_FETCH_TIMEOUT_S": 0.0}))


def test_missing_signing_config_ignores_password(settings):
    """An empty P12 password is valid for unencrypted exports"""
    settings = settings.model_copy(update={"APPLE_WALLET_CERT_P12_PASSWORD": ""})

    assert settings.missing_signing_config() == []
    assert settings.wallet_signing_configured
