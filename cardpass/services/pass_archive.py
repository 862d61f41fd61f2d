"""
Pass Archive Assembly

Holds the exact bytes of every file that goes into a .pkpass and the
manifest (filename -> SHA-1 hex digest) computed over those bytes. Once
assembled the archive is immutable, so the manifest cannot drift from the
files that are later packaged.
"""
import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

from cardpass.services.pass_assets import (
    ASSET_DIMENSIONS,
    DEFAULT_PLACEHOLDER_COLOR,
    REQUIRED_ASSETS,
    placeholder_image,
)
from cardpass.services.wallet_pass_errors import AssetError

logger = logging.getLogger(__name__)

PASS_JSON = "pass.json"
MANIFEST_JSON = "manifest.json"
SIGNATURE = "signature"
RESERVED_NAMES = frozenset({PASS_JSON, MANIFEST_JSON, SIGNATURE})


@dataclass(frozen=True)
class ManifestEntry:
    filename: str
    digest_hex: str


@dataclass(frozen=True)
class PassArchive:
    """Named pass files plus the manifest computed over them"""
    files: Tuple[Tuple[str, bytes], ...]
    manifest: Tuple[ManifestEntry, ...]
    manifest_bytes: bytes
    placeholders: Tuple[str, ...] = ()

    @property
    def filenames(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.files)

    def file_bytes(self, filename: str) -> bytes:
        for name, content in self.files:
            if name == filename:
                return content
        raise KeyError(filename)


def file_digest(content: bytes) -> str:
    """SHA-1 hex digest, as Wallet expects in manifest.json"""
    return hashlib.sha1(content).hexdigest()


def build_manifest(files: Tuple[Tuple[str, bytes], ...]) -> Tuple[ManifestEntry, ...]:
    return tuple(ManifestEntry(filename=name, digest_hex=file_digest(content)) for name, content in files)


def serialize_manifest(manifest: Tuple[ManifestEntry, ...]) -> bytes:
    """
    Serialize the manifest once. These exact bytes are both signed and
    written to the archive.
    """
    mapping = {entry.filename: entry.digest_hex for entry in manifest}
    return json.dumps(mapping, sort_keys=True, separators=(",", ":")).encode("utf-8")


def assemble_pass_archive(
    descriptor_bytes: bytes,
    assets: Optional[Mapping[str, bytes]] = None,
    placeholder_color: Tuple[int, int, int] = DEFAULT_PLACEHOLDER_COLOR,
    placeholder_label: str = "",
) -> PassArchive:
    """
    Collect pass.json and image files and compute their manifest.

    Every required image is present in the result: when no bytes were
    supplied for one, a placeholder is generated and logged.

    Args:
        descriptor_bytes: serialized pass.json, used verbatim
        assets: filename -> image bytes
        placeholder_color: background for generated placeholders
        placeholder_label: initials drawn on placeholders

    Returns:
        PassArchive

    Raises:
        AssetError: unknown or reserved asset filename, or a placeholder
            could not be generated
    """
    assets = dict(assets or {})
    for filename in assets:
        if filename in RESERVED_NAMES:
            raise AssetError(f"Asset name is reserved for the pass bundle: {filename}")
        if filename not in ASSET_DIMENSIONS:
            raise AssetError(f"Unknown pass asset: {filename}")

    files = [(PASS_JSON, bytes(descriptor_bytes))]
    placeholders = []

    for filename, (width, height) in REQUIRED_ASSETS.items():
        content = assets.get(filename)
        if content:
            files.append((filename, bytes(content)))
            continue
        # Placeholder keeps the bundle valid, but the pass will look unbranded
        logger.warning(f"{filename} ({width}x{height}) not supplied, generating placeholder")
        files.append((filename, placeholder_image(width, height, placeholder_color, placeholder_label)))
        placeholders.append(filename)

    for filename, content in assets.items():
        if filename not in REQUIRED_ASSETS and content:
            files.append((filename, bytes(content)))

    files_tuple = tuple(files)
    manifest = build_manifest(files_tuple)
    manifest_bytes = serialize_manifest(manifest)

    logger.debug(f"Assembled pass archive: {len(files_tuple)} files, {len(placeholders)} placeholder(s)")
    return PassArchive(
        files=files_tuple,
        manifest=manifest,
        manifest_bytes=manifest_bytes,
        placeholders=tuple(placeholders),
    )


def manifest_as_dict(archive: PassArchive) -> Dict[str, str]:
    return {entry.filename: entry.digest_hex for entry in archive.manifest}
