"""
Pass Signing Credentials

Loads the pass-type signing identity (private key + leaf certificate) from a
base64 PKCS#12 container and the Apple WWDR intermediate certificate from its
own base64 blob. Nothing is read from disk or the network, and nothing is
cached: credentials live for one pass generation.
"""
import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs12
from pyasn1.codec.ber import decoder as ber_decoder
from pyasn1.error import PyAsn1Error
from pyasn1.type import univ
from pyasn1_modules import rfc7292

from cardpass.services.wallet_pass_errors import (
    CredentialAmbiguityError,
    CredentialEncodingError,
    CredentialFormatError,
    CredentialMissingError,
    CredentialPasswordError,
)

logger = logging.getLogger(__name__)

# PKCS#7 content types used by the PKCS#12 authenticated safe
OID_DATA = "1.2.840.113549.1.7.1"
OID_ENCRYPTED_DATA = "1.2.840.113549.1.7.6"

# PKCS#12 bag types (RFC 7292 section 4.2)
OID_KEY_BAG = "1.2.840.113549.1.12.10.1.1"
OID_SHROUDED_KEY_BAG = "1.2.840.113549.1.12.10.1.2"
OID_CERT_BAG = "1.2.840.113549.1.12.10.1.3"


@dataclass(frozen=True)
class Credentials:
    """Signing identity for one pass generation"""
    private_key: Any = field(repr=False)
    leaf_certificate: x509.Certificate
    issuer_certificate: Optional[x509.Certificate]


@dataclass
class SafeBagInventory:
    """What a PKCS#12 container holds, as far as is visible before decryption"""
    key_bags: int = 0
    shrouded_key_bags: int = 0
    cert_bags: int = 0
    other_bags: int = 0
    encrypted_contents: int = 0  # opaque until decrypted, usually the certificates

    @property
    def private_key_bags(self) -> int:
        return self.key_bags + self.shrouded_key_bags


def _b64decode(value: str, what: str) -> bytes:
    """Strict base64 decode; secrets often arrive wrapped over several lines."""
    if not value or not value.strip():
        raise CredentialEncodingError(f"{what} is empty")
    compact = "".join(value.split())
    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CredentialEncodingError(f"{what} is not valid base64: {e}") from e


def _public_key_der(public_key) -> bytes:
    return public_key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def key_matches_certificate(private_key, certificate: x509.Certificate) -> bool:
    """True if the certificate carries the public half of private_key."""
    try:
        return _public_key_der(private_key.public_key()) == _public_key_der(certificate.public_key())
    except (AttributeError, ValueError, UnsupportedAlgorithm):
        return False


def inventory_safe_bags(p12_bytes: bytes) -> SafeBagInventory:
    """
    Walk every content of the PKCS#12 authenticated safe and count its bags.

    Plaintext safe contents are decoded bag by bag. Encrypted contents are
    counted but not opened; their bags become visible only after decryption.

    Raises:
        CredentialFormatError: the bytes are not a PKCS#12 PFX structure
    """
    inventory = SafeBagInventory()
    try:
        pfx, rest = ber_decoder.decode(p12_bytes, asn1Spec=rfc7292.PFX())
        if rest:
            raise CredentialFormatError("PKCS#12 container has trailing data")
        if str(pfx['authSafe']['contentType']) != OID_DATA:
            # Public-key integrity mode (signedData) is not used for pass certificates
            raise CredentialFormatError(
                f"Unsupported PKCS#12 integrity mode: {pfx['authSafe']['contentType']}"
            )

        auth_safe_data, _ = ber_decoder.decode(pfx['authSafe']['content'], asn1Spec=univ.OctetString())
        auth_safe, _ = ber_decoder.decode(bytes(auth_safe_data), asn1Spec=rfc7292.AuthenticatedSafe())

        for content_info in auth_safe:
            content_type = str(content_info['contentType'])
            if content_type == OID_ENCRYPTED_DATA:
                inventory.encrypted_contents += 1
                continue
            if content_type != OID_DATA:
                raise CredentialFormatError(f"Unexpected PKCS#12 content type: {content_type}")

            safe_data, _ = ber_decoder.decode(content_info['content'], asn1Spec=univ.OctetString())
            safe_contents, _ = ber_decoder.decode(bytes(safe_data), asn1Spec=rfc7292.SafeContents())
            for bag in safe_contents:
                bag_id = str(bag['bagId'])
                if bag_id == OID_KEY_BAG:
                    inventory.key_bags += 1
                elif bag_id == OID_SHROUDED_KEY_BAG:
                    inventory.shrouded_key_bags += 1
                elif bag_id == OID_CERT_BAG:
                    inventory.cert_bags += 1
                else:
                    inventory.other_bags += 1
    except (PyAsn1Error, ValueError, TypeError) as e:
        raise CredentialFormatError(f"Malformed PKCS#12 container: {e}") from e

    return inventory


def _password_candidates(password: Optional[str]) -> List[Optional[bytes]]:
    # Containers exported without a password are read with no password or with ""
    if password:
        return [password.encode("utf-8")]
    return [None, b""]


def _decrypt_pkcs12(p12_bytes: bytes, password: Optional[str]):
    last_error: Optional[Exception] = None
    for candidate in _password_candidates(password):
        try:
            return pkcs12.load_pkcs12(p12_bytes, candidate)
        except UnsupportedAlgorithm as e:
            raise CredentialFormatError(f"PKCS#12 container uses an unsupported algorithm: {e}") from e
        except (ValueError, TypeError) as e:
            last_error = e
    raise CredentialPasswordError(
        "PKCS#12 container could not be decrypted (wrong password?)"
    ) from last_error


def _select_leaf(private_key, certificates: List[x509.Certificate]) -> x509.Certificate:
    """Pick the single certificate whose public key matches private_key."""
    matches = {}
    for cert in certificates:
        if key_matches_certificate(private_key, cert):
            matches[cert.fingerprint(hashes.SHA256())] = cert

    if not matches:
        raise CredentialMissingError(
            "PKCS#12 container has no certificate matching its private key",
            missing="certificate",
        )
    if len(matches) > 1:
        raise CredentialAmbiguityError(
            f"PKCS#12 container has {len(matches)} certificates matching its private key"
        )
    return next(iter(matches.values()))


def load_issuer_certificate(wwdr_base64: str) -> x509.Certificate:
    """
    Load the WWDR intermediate from base64 (DER, or PEM text).

    Raises:
        CredentialEncodingError, CredentialFormatError
    """
    raw = _b64decode(wwdr_base64, "Intermediate certificate")
    try:
        if raw.lstrip().startswith(b"-----BEGIN"):
            return x509.load_pem_x509_certificate(raw)
        return x509.load_der_x509_certificate(raw)
    except ValueError as e:
        raise CredentialFormatError(f"Intermediate certificate is malformed: {e}") from e


def _check_chain(leaf: x509.Certificate, issuer: x509.Certificate) -> None:
    if leaf.issuer != issuer.subject:
        logger.warning(
            f"Leaf certificate issuer '{leaf.issuer.rfc4514_string()}' does not match "
            f"intermediate subject '{issuer.subject.rfc4514_string()}'"
        )


def load_credentials(p12_base64: str, password: Optional[str], wwdr_base64: str) -> Credentials:
    """
    Load signing credentials from a base64 PKCS#12 container and intermediate.

    Args:
        p12_base64: base64 PKCS#12 holding the pass-type private key and certificate
        password: container password; empty/None for unencrypted exports
        wwdr_base64: base64 WWDR intermediate certificate (supplied separately)

    Returns:
        Credentials

    Raises:
        CredentialEncodingError: either input is not base64
        CredentialFormatError: malformed PKCS#12 or certificate
        CredentialPasswordError: container does not decrypt with password
        CredentialMissingError: no private key, or no certificate for it
        CredentialAmbiguityError: more than one private key or matching certificate
    """
    p12_bytes = _b64decode(p12_base64, "PKCS#12 container")
    inventory = inventory_safe_bags(p12_bytes)
    logger.debug(
        f"PKCS#12 inventory: {inventory.private_key_bags} key bag(s), {inventory.cert_bags} "
        f"plaintext cert bag(s), {inventory.encrypted_contents} encrypted content(s)"
    )
    if inventory.private_key_bags > 1:
        raise CredentialAmbiguityError(
            f"PKCS#12 container has {inventory.private_key_bags} private keys, expected exactly one"
        )

    issuer = load_issuer_certificate(wwdr_base64)
    bundle = _decrypt_pkcs12(p12_bytes, password)

    if bundle.key is None:
        raise CredentialMissingError("PKCS#12 container has no private key", missing="private_key")

    candidates = []
    if bundle.cert is not None:
        candidates.append(bundle.cert.certificate)
    candidates.extend(extra.certificate for extra in bundle.additional_certs)
    if not candidates:
        raise CredentialMissingError("PKCS#12 container has no certificate", missing="certificate")

    leaf = _select_leaf(bundle.key, candidates)
    _check_chain(leaf, issuer)

    logger.info(
        f"Loaded pass signing credentials for '{leaf.subject.rfc4514_string()}' "
        f"({len(candidates)} certificate(s) scanned)"
    )
    return Credentials(private_key=bundle.key, leaf_certificate=leaf, issuer_certificate=issuer)


def load_credentials_from_pem(
    cert_pem: bytes,
    key_pem: bytes,
    key_password: Optional[str],
    wwdr_pem: bytes,
) -> Credentials:
    """
    Load credentials from separate PEM certificate, key and intermediate.

    Unlike the PKCS#12 path no pairing is done here; a key that does not
    belong to the certificate is rejected by the signer.
    """
    try:
        cert = x509.load_pem_x509_certificate(cert_pem)
        issuer = x509.load_pem_x509_certificate(wwdr_pem)
    except ValueError as e:
        raise CredentialFormatError(f"Certificate PEM is malformed: {e}") from e

    password_bytes = key_password.encode("utf-8") if key_password else None
    try:
        private_key = serialization.load_pem_private_key(key_pem, password=password_bytes)
    except TypeError as e:
        # Encrypted key without password, or password for an unencrypted key
        raise CredentialPasswordError(f"Private key password mismatch: {e}") from e
    except ValueError as e:
        if password_bytes:
            raise CredentialPasswordError("Private key could not be decrypted (wrong password?)") from e
        raise CredentialFormatError(f"Private key PEM is malformed: {e}") from e
    except UnsupportedAlgorithm as e:
        raise CredentialFormatError(f"Private key uses an unsupported algorithm: {e}") from e

    _check_chain(cert, issuer)
    return Credentials(private_key=private_key, leaf_certificate=cert, issuer_certificate=issuer)
