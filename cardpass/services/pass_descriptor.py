"""
Business Card Pass Descriptor

Builds the pass.json document for a business card.

Pass design:
- Primary: NAME -> "First Last"
- Secondary: TITLE, COMPANY
- Auxiliary: EMAIL, PHONE
- Back fields: contact details and the public card link
- Barcode: QR payload, or the card URL when no payload is given
"""
import json
import logging
import secrets
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, Any, Optional
from urllib.parse import urlparse

from cardpass.core.config import Settings
from cardpass.schemas.business_card import CardRecord
from cardpass.services.wallet_pass_errors import DescriptorError

logger = logging.getLogger(__name__)

PASS_FORMAT_VERSION = 1
BARCODE_FORMAT = "PKBarcodeFormatQR"
BARCODE_ENCODING = "iso-8859-1"
BARCODE_ENCODING_UNICODE = "utf-8"


@dataclass(frozen=True)
class PassIdentity:
    """Fixed platform identifiers and styling; configuration, never user data"""
    pass_type_identifier: str
    team_identifier: str
    organization_name: str
    web_service_url: str = ""
    background_color: str = "rgb(12,15,20)"
    foreground_color: str = "rgb(255,255,255)"
    label_color: str = "rgb(160,170,190)"

    @classmethod
    def from_settings(cls, settings: Settings) -> "PassIdentity":
        return cls(
            pass_type_identifier=settings.APPLE_WALLET_PASS_TYPE_ID,
            team_identifier=settings.APPLE_WALLET_TEAM_ID,
            organization_name=settings.APPLE_WALLET_ORGANIZATION_NAME,
            web_service_url=settings.APPLE_WALLET_WEB_SERVICE_URL,
            background_color=settings.APPLE_WALLET_BACKGROUND_COLOR,
            foreground_color=settings.APPLE_WALLET_FOREGROUND_COLOR,
            label_color=settings.APPLE_WALLET_LABEL_COLOR,
        )


def generate_serial(random_bytes: Callable[[int], bytes] = secrets.token_bytes) -> str:
    """
    Generate a pass serial number (UUID-4 over 16 random bytes).

    The serial doubles as the web service authentication token, so the
    default source is the OS CSPRNG. Tests may pass a deterministic source.
    """
    return str(uuid.UUID(bytes=random_bytes(16), version=4))


def _text(value: Optional[str]) -> str:
    # Absent optional fields are emitted as "" so every pass has the same layout
    return (value or "").strip()


def barcode_encoding(message: str) -> str:
    """Latin-1 when the message fits in it, UTF-8 otherwise (e.g. Arabic vCards)."""
    try:
        message.encode(BARCODE_ENCODING)
    except UnicodeEncodeError:
        return BARCODE_ENCODING_UNICODE
    return BARCODE_ENCODING


def _field(key: str, label: str, value: str, **extra) -> Dict[str, Any]:
    field = {"key": key, "label": label, "value": value}
    field.update(extra)
    return field


def validate_card(card: CardRecord) -> None:
    """Raise DescriptorError unless the card has both names and an absolute card URL."""
    if not _text(card.first_name):
        raise DescriptorError("Card record is missing first name")
    if not _text(card.last_name):
        raise DescriptorError("Card record is missing last name")

    parsed = urlparse(_text(card.card_url))
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise DescriptorError(f"Card URL must be an absolute http(s) URL, got '{card.card_url}'")


def build_pass_descriptor(
    card: CardRecord,
    identity: PassIdentity,
    serial_factory: Callable[[], str] = generate_serial,
) -> Dict[str, Any]:
    """
    Map a card record onto a pass.json structure.

    Args:
        card: CardRecord (first/last name and card URL required)
        identity: PassIdentity from configuration
        serial_factory: returns a fresh serial number per call

    Returns:
        JSON-serializable descriptor dict

    Raises:
        DescriptorError: missing name or non-absolute card URL
    """
    validate_card(card)

    serial_number = serial_factory()
    card_url = _text(card.card_url)
    barcode_message = _text(card.qr_payload) or card_url
    email = _text(card.email)
    phone = _text(card.phone)
    website = _text(card.website)

    generic = {
        "primaryFields": [
            _field("name", "NAME", card.full_name),
        ],
        "secondaryFields": [
            _field("title", "TITLE", _text(card.job_title)),
            _field("company", "COMPANY", _text(card.company_name)),
        ],
        "auxiliaryFields": [
            _field("email", "EMAIL", email),
            _field("phone", "PHONE", phone),
        ],
        "backFields": [
            _field("back_email", "Email", email),
            _field("back_phone", "Phone", phone),
            _field("back_website", "Website", website),
            _field(
                "card_url",
                "Digital Card",
                card_url,
                attributedValue=f"<a href='{card_url}'>{card_url}</a>",
            ),
        ],
    }

    barcode = {
        "format": BARCODE_FORMAT,
        "message": barcode_message,
        "messageEncoding": barcode_encoding(barcode_message),
    }

    descriptor = {
        "formatVersion": PASS_FORMAT_VERSION,
        "passTypeIdentifier": identity.pass_type_identifier,
        "teamIdentifier": identity.team_identifier,
        "serialNumber": serial_number,
        "organizationName": identity.organization_name,
        "description": f"{card.full_name} - Business Card",
        "logoText": identity.organization_name,
        "foregroundColor": identity.foreground_color,
        "backgroundColor": identity.background_color,
        "labelColor": identity.label_color,
        "generic": generic,
        # "barcode" for iOS 8 and earlier, "barcodes" for everything newer
        "barcode": dict(barcode),
        "barcodes": [dict(barcode)],
    }

    if identity.web_service_url:
        descriptor["webServiceURL"] = identity.web_service_url
        descriptor["authenticationToken"] = serial_number

    logger.debug(f"Built pass descriptor serial={serial_number}")
    return descriptor


def serialize_descriptor(descriptor: Dict[str, Any]) -> bytes:
    """Canonical pass.json bytes: sorted keys, compact separators, UTF-8."""
    try:
        return json.dumps(
            descriptor, sort_keys=True, separators=(",", ":"), ensure_ascii=False
        ).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise DescriptorError(f"Pass descriptor is not JSON-serializable: {e}") from e
