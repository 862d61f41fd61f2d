"""
Apple Wallet Business Card Pass

Generates signed .pkpass bundles for business cards:

    credentials ─────────────────────────────┐
    card -> pass.json -> archive/manifest -> signature -> .pkpass

Each call owns all of its state, so concurrent calls are safe.
"""
import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from cardpass.core.config import Settings
from cardpass.schemas.business_card import CardRecord, WalletPassConfigStatus
from cardpass.services.pass_archive import assemble_pass_archive
from cardpass.services.pass_assets import load_brand_assets, parse_color, resolve_pass_assets
from cardpass.services.pass_credentials import load_credentials
from cardpass.services.pass_descriptor import (
    PassIdentity,
    build_pass_descriptor,
    generate_serial,
    serialize_descriptor,
)
from cardpass.services.pass_signing import package_pkpass, sign_manifest
from cardpass.services.wallet_pass_errors import PassConfigurationError

logger = logging.getLogger(__name__)

PKPASS_CONTENT_TYPE = "application/vnd.apple.pkpass"

_FILENAME_UNSAFE = re.compile(r'[\\/:*?"<>|\s]+')


@dataclass(frozen=True)
class PkpassBundle:
    data: bytes
    filename: str
    serial_number: str
    content_type: str = PKPASS_CONTENT_TYPE


def wallet_pass_status(settings: Settings) -> WalletPassConfigStatus:
    """Report whether passes can be signed, listing missing configuration keys."""
    missing = settings.missing_signing_config()
    return WalletPassConfigStatus(configured=not missing, missing=missing)


def pkpass_filename(card: CardRecord) -> str:
    """'{firstName}_{lastName}.pkpass', with path and header-unsafe characters removed."""
    first = _FILENAME_UNSAFE.sub("-", card.first_name.strip()).strip("-") or "card"
    last = _FILENAME_UNSAFE.sub("-", card.last_name.strip()).strip("-") or "card"
    return f"{first}_{last}.pkpass"


def _initials(card: CardRecord) -> str:
    return "".join(part.strip()[:1].upper() for part in (card.first_name, card.last_name) if part.strip())


def create_pkpass_bundle(
    card: CardRecord,
    settings: Settings,
    images: Optional[Dict[str, bytes]] = None,
    serial_factory: Callable[[], str] = generate_serial,
) -> PkpassBundle:
    """
    Create a signed .pkpass bundle for a business card.

    Args:
        card: CardRecord
        settings: Settings with pass identity and signing material
        images: already-fetched card images by role ("logo", "photo"),
            see pass_assets.fetch_card_images
        serial_factory: serial number source

    Returns:
        PkpassBundle

    Raises:
        PassConfigurationError: signing material or identifiers missing;
            nothing is signed in this case
        CredentialError, DescriptorError, AssetError, SigningError,
        PackagingError: see wallet_pass_errors
    """
    status = wallet_pass_status(settings)
    if not status.configured:
        raise PassConfigurationError(
            f"Apple Wallet signing is not configured, missing: {', '.join(status.missing)}",
            missing_keys=status.missing,
        )

    identity = PassIdentity.from_settings(settings)
    descriptor = build_pass_descriptor(card, identity, serial_factory=serial_factory)
    serial_number = descriptor["serialNumber"]
    pass_json = serialize_descriptor(descriptor)

    assets = resolve_pass_assets(images, load_brand_assets(settings.APPLE_WALLET_ASSETS_DIR))
    archive = assemble_pass_archive(
        pass_json,
        assets,
        placeholder_color=parse_color(settings.APPLE_WALLET_BACKGROUND_COLOR),
        placeholder_label=_initials(card),
    )

    credentials = load_credentials(
        settings.APPLE_WALLET_CERT_P12_BASE64,
        settings.APPLE_WALLET_CERT_P12_PASSWORD,
        settings.APPLE_WALLET_WWDR_CERT_BASE64,
    )
    signature = sign_manifest(credentials, archive.manifest_bytes)
    bundle_bytes = package_pkpass(archive, signature)

    logger.info(
        f"Created Apple Wallet pass serial={serial_number} "
        f"(files={len(archive.files) + 2}, placeholders={len(archive.placeholders)}, "
        f"size={len(bundle_bytes)} bytes)"
    )
    return PkpassBundle(
        data=bundle_bytes,
        filename=pkpass_filename(card),
        serial_number=serial_number,
    )
