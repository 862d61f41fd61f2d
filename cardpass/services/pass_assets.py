"""
Wallet Pass Image Assets

Required images for a business card pass (Apple Wallet generic style):
- icon.png (29x29), icon@2x.png (58x58), icon@3x.png (87x87)
- logo.png (160x50), logo@2x.png (320x100)

Optional:
- thumbnail.png (90x90), thumbnail@2x.png (180x180) from the profile photo

Sources, in order of precedence: images fetched for the card, pre-sized
brand images from APPLE_WALLET_ASSETS_DIR, generated placeholders.
"""
import logging
import re
from io import BytesIO
from pathlib import Path
from typing import Dict, Optional, Tuple
from urllib.parse import urlparse

import httpx
from PIL import Image, ImageDraw, ImageFont, ImageOps, UnidentifiedImageError

from cardpass.schemas.business_card import CardRecord
from cardpass.services.wallet_pass_errors import AssetError, AssetFetchError

logger = logging.getLogger(__name__)

REQUIRED_ASSETS: Dict[str, Tuple[int, int]] = {
    "icon.png": (29, 29),
    "icon@2x.png": (58, 58),
    "icon@3x.png": (87, 87),
    "logo.png": (160, 50),
    "logo@2x.png": (320, 100),
}

OPTIONAL_ASSETS: Dict[str, Tuple[int, int]] = {
    "thumbnail.png": (90, 90),
    "thumbnail@2x.png": (180, 180),
}

ASSET_DIMENSIONS: Dict[str, Tuple[int, int]] = {**REQUIRED_ASSETS, **OPTIONAL_ASSETS}

# Fetched card image role -> files rendered from it
IMAGE_ROLES: Dict[str, Tuple[str, ...]] = {
    "logo": ("logo.png", "logo@2x.png"),
    "photo": ("thumbnail.png", "thumbnail@2x.png"),
}

DEFAULT_PLACEHOLDER_COLOR = (12, 15, 20)

_RGB_RE = re.compile(r"^rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})")


def parse_color(value: str, default: Tuple[int, int, int] = DEFAULT_PLACEHOLDER_COLOR) -> Tuple[int, int, int]:
    """Parse a Wallet color string ('rgb(r,g,b)' or '#rrggbb') to an RGB tuple."""
    value = (value or "").strip()
    match = _RGB_RE.match(value)
    if match:
        return tuple(min(int(c), 255) for c in match.groups())
    if re.fullmatch(r"#[0-9a-fA-F]{6}", value):
        return tuple(int(value[i:i + 2], 16) for i in (1, 3, 5))
    return default


def placeholder_image(
    width: int,
    height: int,
    bg_color: Tuple[int, int, int] = DEFAULT_PLACEHOLDER_COLOR,
    label: str = "",
) -> bytes:
    """
    Generate a placeholder PNG with specified dimensions.

    Uses RGBA mode for transparency support (Apple Wallet requirement).

    Args:
        width: Image width in pixels
        height: Image height in pixels
        bg_color: RGB background
        label: short text (initials) drawn in the center when it fits

    Returns:
        PNG image bytes
    """
    try:
        img = Image.new("RGBA", (width, height), color=(*bg_color, 255))
        if label and width >= 29 and height >= 29:
            draw = ImageDraw.Draw(img)
            font = ImageFont.load_default()
            left, top, right, bottom = draw.textbbox((0, 0), label, font=font)
            x = (width - (right - left)) // 2
            y = (height - (bottom - top)) // 2
            draw.text((x, y), label, fill=(255, 255, 255, 255), font=font)

        buf = BytesIO()
        img.save(buf, format="PNG", optimize=True)
        return buf.getvalue()
    except (OSError, ValueError) as e:
        raise AssetError(f"Could not generate {width}x{height} placeholder: {e}") from e


def image_size(content: bytes) -> Tuple[int, int]:
    """Pixel size of an encoded image."""
    try:
        with Image.open(BytesIO(content)) as img:
            return img.size
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise AssetError(f"Unreadable image: {e}") from e


def render_asset(source: bytes, filename: str) -> bytes:
    """
    Produce the PNG for `filename` at its fixed Wallet dimensions.

    A PNG already at the right size is returned byte-for-byte. Anything else
    is decoded and resized: logos are fitted inside a transparent canvas,
    icons and thumbnails are center-cropped to fill.

    Raises:
        AssetError: unknown filename or undecodable image
    """
    if filename not in ASSET_DIMENSIONS:
        raise AssetError(f"Unknown pass asset: {filename}")
    target = ASSET_DIMENSIONS[filename]

    try:
        with Image.open(BytesIO(source)) as img:
            if img.format == "PNG" and img.size == target:
                return bytes(source)

            img = img.convert("RGBA")
            if filename.startswith("logo"):
                fitted = ImageOps.contain(img, target, Image.Resampling.LANCZOS)
                canvas = Image.new("RGBA", target, (0, 0, 0, 0))
                canvas.paste(fitted, ((target[0] - fitted.width) // 2, (target[1] - fitted.height) // 2))
            else:
                canvas = ImageOps.fit(img, target, Image.Resampling.LANCZOS)

            buf = BytesIO()
            canvas.save(buf, format="PNG", optimize=True)
            return buf.getvalue()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise AssetError(f"Could not render {filename}: {e}") from e


def load_brand_assets(directory: Optional[str]) -> Dict[str, bytes]:
    """Read any pre-made required images from a brand asset directory."""
    if not directory:
        return {}
    base = Path(directory)
    if not base.is_dir():
        logger.warning(f"APPLE_WALLET_ASSETS_DIR does not exist: {directory}")
        return {}

    assets = {}
    for filename in REQUIRED_ASSETS:
        path = base / filename
        if path.is_file():
            assets[filename] = path.read_bytes()
    logger.debug(f"Loaded {len(assets)} brand asset(s) from {directory}")
    return assets


def _fetch(client: httpx.Client, url: str) -> bytes:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise AssetFetchError(f"Image URL must be absolute http(s): {url}", url=url)
    try:
        response = client.get(url)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise AssetFetchError(
            f"Image fetch failed with HTTP {e.response.status_code}: {url}", url=url
        ) from e
    except httpx.HTTPError as e:
        raise AssetFetchError(f"Image fetch failed: {url}: {e}", url=url) from e
    if not response.content:
        raise AssetFetchError(f"Image fetch returned no content: {url}", url=url)
    return response.content


def fetch_card_images(
    card: CardRecord,
    timeout: float = 10.0,
    client: Optional[httpx.Client] = None,
) -> Dict[str, bytes]:
    """
    Download the card's logo and profile photo.

    One attempt per URL with a bounded timeout. Any failure is terminal for
    this pass: retrying is the caller's decision.

    Returns:
        Dict of role ("logo", "photo") -> raw image bytes, for URLs present

    Raises:
        AssetFetchError
    """
    urls = {"logo": card.logo_url, "photo": card.profile_photo_url}
    urls = {role: url.strip() for role, url in urls.items() if url and url.strip()}
    if not urls:
        return {}

    owns_client = client is None
    if owns_client:
        client = httpx.Client(timeout=timeout, follow_redirects=True)
    try:
        images = {}
        for role, url in urls.items():
            images[role] = _fetch(client, url)
            logger.debug(f"Fetched card {role} image ({len(images[role])} bytes)")
        return images
    finally:
        if owns_client:
            client.close()


def resolve_pass_assets(
    images: Optional[Dict[str, bytes]] = None,
    brand_assets: Optional[Dict[str, bytes]] = None,
) -> Dict[str, bytes]:
    """
    Pick the bytes for each pass image from the available sources.

    Files with no usable source are left out; the archive assembler fills
    required ones with placeholders.

    Args:
        images: card images by role ("logo", "photo")
        brand_assets: pre-sized images by filename

    Returns:
        Dict of filename -> PNG bytes
    """
    images = images or {}
    brand_assets = brand_assets or {}
    resolved: Dict[str, bytes] = {}

    for role, filenames in IMAGE_ROLES.items():
        source = images.get(role)
        if not source:
            continue
        for filename in filenames:
            try:
                resolved[filename] = render_asset(source, filename)
            except AssetError as e:
                logger.warning(f"Card {role} image unusable for {filename}, skipping: {e}")

    for filename, content in brand_assets.items():
        if filename in resolved:
            continue
        try:
            resolved[filename] = render_asset(content, filename)
        except AssetError as e:
            logger.warning(f"Brand asset {filename} unusable, skipping: {e}")

    return resolved
