"""
Pass Signing and Packaging

Signs manifest.json with a detached CMS/PKCS#7 signature and writes the
final .pkpass ZIP.

The signature:
- is detached (manifest.json travels next to it, not inside it)
- carries the leaf and WWDR intermediate certificates
- has exactly three authenticated attributes: content-type (data),
  message-digest and signing-time
"""
import logging
import zipfile
from io import BytesIO

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.hazmat.primitives.serialization.pkcs7 import (
    PKCS7Options,
    PKCS7SignatureBuilder,
)

from cardpass.services.pass_archive import MANIFEST_JSON, SIGNATURE, PassArchive, file_digest
from cardpass.services.pass_credentials import Credentials, key_matches_certificate
from cardpass.services.pass_verification import (
    REQUIRED_SIGNED_ATTRIBUTES,
    verify_detached_signature,
)
from cardpass.services.wallet_pass_errors import (
    KeyCertificateMismatchError,
    PackagingError,
    PassConfigurationError,
    SigningError,
)

logger = logging.getLogger(__name__)

SIGNING_OPTIONS = [
    PKCS7Options.DetachedSignature,
    PKCS7Options.Binary,  # sign the manifest bytes as-is, no MIME canonicalization
    PKCS7Options.NoCapabilities,  # drops S/MIME capabilities, leaving the three required attributes
]


def _check_credentials(credentials: Credentials) -> None:
    if credentials.issuer_certificate is None:
        # Without the intermediate the device cannot build the chain
        raise PassConfigurationError(
            "WWDR intermediate certificate is required to sign passes",
            missing_keys=["APPLE_WALLET_WWDR_CERT_BASE64"],
        )
    if not isinstance(credentials.private_key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
        raise SigningError(
            f"Unsupported signing key type: {type(credentials.private_key).__name__}"
        )
    if not key_matches_certificate(credentials.private_key, credentials.leaf_certificate):
        raise KeyCertificateMismatchError(
            "Private key does not match the pass certificate's public key"
        )


def sign_manifest(credentials: Credentials, manifest_bytes: bytes) -> bytes:
    """
    Create the detached DER signature for manifest.json.

    Args:
        credentials: signing key, leaf certificate and WWDR intermediate
        manifest_bytes: manifest.json exactly as it will be written to the ZIP

    Returns:
        DER-encoded CMS SignedData (contents of the `signature` file)

    Raises:
        PassConfigurationError: intermediate certificate missing
        KeyCertificateMismatchError: key does not belong to the leaf certificate
        SigningError: any other signing failure, including a signature that
            does not verify over manifest_bytes
    """
    _check_credentials(credentials)

    try:
        builder = (
            PKCS7SignatureBuilder()
            .set_data(manifest_bytes)
            .add_signer(credentials.leaf_certificate, credentials.private_key, hashes.SHA256())
            .add_certificate(credentials.issuer_certificate)
        )
        signature = builder.sign(Encoding.DER, SIGNING_OPTIONS)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise SigningError(f"CMS signature construction failed: {e}") from e

    info = verify_detached_signature(signature, manifest_bytes)
    if set(info.signed_attribute_types) != REQUIRED_SIGNED_ATTRIBUTES or len(info.signed_attribute_types) != 3:
        raise SigningError(
            f"Unexpected authenticated attributes in signature: {info.signed_attribute_types}"
        )
    if len(info.certificates) != 2:
        raise SigningError(f"Signature carries {len(info.certificates)} certificates, expected 2")

    logger.debug(f"Signed manifest ({len(manifest_bytes)} bytes) -> signature ({len(signature)} bytes)")
    return signature


def package_pkpass(archive: PassArchive, signature: bytes) -> bytes:
    """
    Write the .pkpass ZIP: pass files, manifest.json, signature.

    Raises:
        PackagingError
    """
    if not signature:
        raise PackagingError("Refusing to package a pass without a signature")

    names = archive.filenames
    if len(set(names)) != len(names):
        raise PackagingError(f"Duplicate file names in pass archive: {names}")
    for name in names:
        if name in (MANIFEST_JSON, SIGNATURE):
            raise PackagingError(f"Pass archive already contains {name}")

    listed = {entry.filename for entry in archive.manifest}
    if listed != set(names):
        raise PackagingError("Manifest does not list exactly the archive files")
    for entry in archive.manifest:
        if file_digest(archive.file_bytes(entry.filename)) != entry.digest_hex:
            raise PackagingError(f"Manifest digest does not match {entry.filename}")

    bundle = BytesIO()
    try:
        with zipfile.ZipFile(bundle, "w", zipfile.ZIP_DEFLATED) as zf:
            for filename, content in archive.files:
                zf.writestr(filename, content)
            zf.writestr(MANIFEST_JSON, archive.manifest_bytes)
            zf.writestr(SIGNATURE, signature)
    except (zipfile.LargeZipFile, ValueError, OSError) as e:
        raise PackagingError(f"Could not write pass bundle: {e}") from e

    return bundle.getvalue()

