"""
Wallet Pass Router

Endpoints for Apple Wallet business card passes.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import Response
from urllib.parse import quote

from cardpass.core.config import Settings, get_settings
from cardpass.schemas.business_card import CardRecord, WalletPassConfigStatus
from cardpass.services.apple_wallet_pass import create_pkpass_bundle, wallet_pass_status
from cardpass.services.pass_assets import fetch_card_images
from cardpass.services.pass_descriptor import validate_card
from cardpass.services.wallet_pass_errors import PassConfigurationError

router = APIRouter(prefix="/v1/wallet", tags=["wallet-pass"])


def content_disposition(filename: str) -> str:
    """Attachment header; non-ASCII names (e.g. Arabic) go in filename* per RFC 6266."""
    fallback = filename.encode("ascii", "ignore").decode("ascii") or "card.pkpass"
    if fallback == filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


@router.get("/pass/apple/config", response_model=WalletPassConfigStatus)
def get_apple_wallet_config(settings: Settings = Depends(get_settings)):
    """Report whether pass signing is configured (no secrets are returned)."""
    return wallet_pass_status(settings)


@router.post("/pass/apple")
def create_apple_pass(card: CardRecord, settings: Settings = Depends(get_settings)):
    """
    Create an Apple Wallet pass for a business card.

    Returns:
    - 200: Signed .pkpass file
    - 501: Structured error listing missing configuration
    - 422: Card record cannot be turned into a pass
    - 502: Card image could not be fetched
    - 500: Credential, signing or packaging failure
    """
    config_status = wallet_pass_status(settings)
    if not config_status.configured:
        # Checked before any image download
        raise PassConfigurationError(
            f"Apple Wallet signing is not configured, missing: {', '.join(config_status.missing)}",
            missing_keys=config_status.missing,
        )

    # A bad card is a 422 whether or not its images are reachable
    validate_card(card)
    images = fetch_card_images(card, timeout=settings.APPLE_WALLET_ASSET_FETCH_TIMEOUT_S)
    bundle = create_pkpass_bundle(card, settings, images=images)

    return Response(
        content=bundle.data,
        media_type=bundle.content_type,
        headers={
            "Content-Disposition": content_disposition(bundle.filename),
        },
    )
