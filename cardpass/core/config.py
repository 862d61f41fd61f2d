from pydantic import BaseModel
import os
import logging
from typing import List
from functools import lru_cache

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    # Environment and logging
    ENV: str = os.getenv("ENV", "dev")  # dev, staging, prod
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Apple Wallet identity (fixed configuration, never request-supplied)
    APPLE_WALLET_PASS_TYPE_ID: str = os.getenv("APPLE_WALLET_PASS_TYPE_ID", "")
    APPLE_WALLET_TEAM_ID: str = os.getenv("APPLE_WALLET_TEAM_ID", "")
    APPLE_WALLET_ORGANIZATION_NAME: str = os.getenv("APPLE_WALLET_ORGANIZATION_NAME", "Wakti")
    # Only written into pass.json, never called from here
    APPLE_WALLET_WEB_SERVICE_URL: str = os.getenv("APPLE_WALLET_WEB_SERVICE_URL", "")

    # Signing material (base64, supplied from secret storage)
    APPLE_WALLET_CERT_P12_BASE64: str = os.getenv("APPLE_WALLET_CERT_P12_BASE64", "")
    APPLE_WALLET_CERT_P12_PASSWORD: str = os.getenv("APPLE_WALLET_CERT_P12_PASSWORD", "")
    APPLE_WALLET_WWDR_CERT_BASE64: str = os.getenv("APPLE_WALLET_WWDR_CERT_BASE64", "")

    # Assets
    APPLE_WALLET_ASSETS_DIR: str = os.getenv("APPLE_WALLET_ASSETS_DIR", "")
    APPLE_WALLET_ASSET_FETCH_TIMEOUT_S: float = float(os.getenv("APPLE_WALLET_ASSET_FETCH_TIMEOUT_S", "10"))

    # Pass colors
    APPLE_WALLET_BACKGROUND_COLOR: str = os.getenv("APPLE_WALLET_BACKGROUND_COLOR", "rgb(12,15,20)")
    APPLE_WALLET_FOREGROUND_COLOR: str = os.getenv("APPLE_WALLET_FOREGROUND_COLOR", "rgb(255,255,255)")
    APPLE_WALLET_LABEL_COLOR: str = os.getenv("APPLE_WALLET_LABEL_COLOR", "rgb(160,170,190)")

    def missing_signing_config(self) -> List[str]:
        """
        List the environment keys that must be set before a pass can be signed.

        The P12 password is not listed: an empty password is valid for
        containers exported without encryption.
        """
        required = [
            ("APPLE_WALLET_PASS_TYPE_ID", self.APPLE_WALLET_PASS_TYPE_ID),
            ("APPLE_WALLET_TEAM_ID", self.APPLE_WALLET_TEAM_ID),
            ("APPLE_WALLET_CERT_P12_BASE64", self.APPLE_WALLET_CERT_P12_BASE64),
            ("APPLE_WALLET_WWDR_CERT_BASE64", self.APPLE_WALLET_WWDR_CERT_BASE64),
        ]
        return [name for name, value in required if not value]

    @property
    def wallet_signing_configured(self) -> bool:
        return not self.missing_signing_config()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings dependency (override in tests via app.dependency_overrides)."""
    return Settings()


def validate_config(settings: Settings) -> None:
    """Validate configuration at startup. Raises ValueError if invalid."""
    missing = settings.missing_signing_config()
    if missing:
        # Unconfigured is a supported mode: requests get a structured 501
        logger.warning(
            f"Apple Wallet signing not configured, missing: {', '.join(missing)}"
        )
    else:
        logger.info("Apple Wallet configuration validated")

    if settings.ENV == "prod" and missing:
        error_msg = f"Apple Wallet signing is required in production but missing: {', '.join(missing)}"
        logger.error(error_msg)
        raise ValueError(error_msg)

    if settings.APPLE_WALLET_TEAM_ID and len(settings.APPLE_WALLET_TEAM_ID) != 10:
        error_msg = (
            f"APPLE_WALLET_TEAM_ID must be 10 characters, got {len(settings.APPLE_WALLET_TEAM_ID)}"
        )
        logger.error(error_msg)
        raise ValueError(error_msg)

    if settings.APPLE_WALLET_ASSET_FETCH_TIMEOUT_S <= 0:
        error_msg = "APPLE_WALLET_ASSET_FETCH_TIMEOUT_S must be positive"
        logger.error(error_msg)
        raise ValueError(error_msg)

    logger.info(f"Environment: {settings.ENV}")
    if settings.APPLE_WALLET_PASS_TYPE_ID:
        logger.info(f"Pass type: {settings.APPLE_WALLET_PASS_TYPE_ID}")
