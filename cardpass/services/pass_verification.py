"""
Pass Verification

Checks a .pkpass the way the Wallet runtime does:
1. ZIP is readable and holds pass.json, manifest.json and signature
2. manifest.json lists exactly the other files, with matching SHA-1 digests
3. signature is a detached CMS SignedData over the manifest.json bytes,
   signed by a certificate it carries, which chains to the included
   intermediate

Used by the signer to check its own output, by the tests, and by
scripts/diagnose_signature.py.
"""
import hashlib
import json
import logging
import zipfile
import zlib
from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
from typing import Dict, List, Optional

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from pyasn1.codec.ber import decoder as ber_decoder
from pyasn1.codec.der import encoder as der_encoder
from pyasn1.error import PyAsn1Error
from pyasn1.type import univ
from pyasn1_modules import rfc5280, rfc5652

from cardpass.services.wallet_pass_errors import SigningError

logger = logging.getLogger(__name__)

OID_SIGNED_DATA = "1.2.840.113549.1.7.2"
OID_DATA = "1.2.840.113549.1.7.1"
OID_CONTENT_TYPE = "1.2.840.113549.1.9.3"
OID_MESSAGE_DIGEST = "1.2.840.113549.1.9.4"
OID_SIGNING_TIME = "1.2.840.113549.1.9.5"

REQUIRED_SIGNED_ATTRIBUTES = frozenset({OID_CONTENT_TYPE, OID_MESSAGE_DIGEST, OID_SIGNING_TIME})

_DIGESTS = {
    "1.3.14.3.2.26": hashes.SHA1,
    "2.16.840.1.101.3.4.2.4": hashes.SHA224,
    "2.16.840.1.101.3.4.2.1": hashes.SHA256,
    "2.16.840.1.101.3.4.2.2": hashes.SHA384,
    "2.16.840.1.101.3.4.2.3": hashes.SHA512,
}

_HASHLIB_NAMES = {
    hashes.SHA1: "sha1",
    hashes.SHA224: "sha224",
    hashes.SHA256: "sha256",
    hashes.SHA384: "sha384",
    hashes.SHA512: "sha512",
}


@dataclass
class SignatureInfo:
    """Decoded detached CMS signature"""
    certificates: List[x509.Certificate]
    signer_certificate: Optional[x509.Certificate]
    digest_algorithm: type
    signed_attribute_types: List[str]
    content_type: Optional[str]
    message_digest: bytes
    signing_time: Optional[datetime]
    signed_attributes_der: bytes
    signature_value: bytes
    detached: bool


@dataclass
class PkpassReport:
    """Result of verify_pkpass"""
    filenames: List[str] = field(default_factory=list)
    manifest: Dict[str, str] = field(default_factory=dict)
    signature: Optional[SignatureInfo] = None
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _decode_value(any_value, spec):
    value, _ = ber_decoder.decode(bytes(any_value), asn1Spec=spec)
    return value


def _signing_time(any_value) -> Optional[datetime]:
    time_choice = _decode_value(any_value, rfc5280.Time())
    return time_choice.getComponent().asDateTime


def match_signer_certificate(
    certificates: List[x509.Certificate], issuer_der: bytes, serial_number: int
) -> Optional[x509.Certificate]:
    """Find the certificate named by a SignerInfo's issuerAndSerialNumber."""
    for cert in certificates:
        # Serials are only unique per issuer
        if cert.serial_number == serial_number and cert.issuer.public_bytes() == issuer_der:
            return cert
    return None


def parse_detached_signature(signature: bytes) -> SignatureInfo:
    """
    Decode a DER CMS SignedData with one signer.

    Raises:
        SigningError: not a CMS SignedData, or structurally unusable
    """
    try:
        content_info, rest = ber_decoder.decode(signature, asn1Spec=rfc5652.ContentInfo())
        if rest:
            raise SigningError("Signature has trailing data")
        if str(content_info['contentType']) != OID_SIGNED_DATA:
            raise SigningError(f"Signature is not SignedData: {content_info['contentType']}")

        signed_data = _decode_value(content_info['content'], rfc5652.SignedData())
        detached = not signed_data['encapContentInfo']['eContent'].isValue

        certificates = []
        if signed_data['certificates'].isValue:
            for choice in signed_data['certificates']:
                if choice.getName() == 'certificate':
                    certificates.append(
                        x509.load_der_x509_certificate(der_encoder.encode(choice['certificate']))
                    )

        signer_infos = signed_data['signerInfos']
        if len(signer_infos) != 1:
            raise SigningError(f"Expected exactly one signer, found {len(signer_infos)}")
        signer_info = signer_infos[0]

        digest_oid = str(signer_info['digestAlgorithm']['algorithm'])
        if digest_oid not in _DIGESTS:
            raise SigningError(f"Unsupported digest algorithm: {digest_oid}")

        signer_certificate = None
        sid = signer_info['sid']
        if sid.getName() == 'issuerAndSerialNumber':
            signer_certificate = match_signer_certificate(
                certificates,
                der_encoder.encode(sid['issuerAndSerialNumber']['issuer']),
                int(sid['issuerAndSerialNumber']['serialNumber']),
            )

        if not signer_info['signedAttrs'].isValue:
            raise SigningError("Signature has no authenticated attributes")

        attribute_types = []
        content_type = None
        message_digest = b""
        signing_time = None
        for attribute in signer_info['signedAttrs']:
            attr_type = str(attribute['attrType'])
            attribute_types.append(attr_type)
            first_value = attribute['attrValues'][0]
            if attr_type == OID_CONTENT_TYPE:
                content_type = str(_decode_value(first_value, univ.ObjectIdentifier()))
            elif attr_type == OID_MESSAGE_DIGEST:
                message_digest = bytes(_decode_value(first_value, univ.OctetString()))
            elif attr_type == OID_SIGNING_TIME:
                signing_time = _signing_time(first_value)

        # The signature covers the attributes re-tagged as a universal SET OF
        tagged = der_encoder.encode(signer_info['signedAttrs'])
        signed_attributes_der = b"\x31" + tagged[1:]

        return SignatureInfo(
            certificates=certificates,
            signer_certificate=signer_certificate,
            digest_algorithm=_DIGESTS[digest_oid],
            signed_attribute_types=attribute_types,
            content_type=content_type,
            message_digest=message_digest,
            signing_time=signing_time,
            signed_attributes_der=signed_attributes_der,
            signature_value=bytes(signer_info['signature']),
            detached=detached,
        )
    except SigningError:
        raise
    except (PyAsn1Error, ValueError, TypeError, IndexError) as e:
        raise SigningError(f"Malformed CMS signature: {e}") from e


def _verify_signature_value(info: SignatureInfo) -> None:
    public_key = info.signer_certificate.public_key()
    algorithm = info.digest_algorithm()
    try:
        if isinstance(public_key, rsa.RSAPublicKey):
            public_key.verify(info.signature_value, info.signed_attributes_der, padding.PKCS1v15(), algorithm)
        elif isinstance(public_key, ec.EllipticCurvePublicKey):
            public_key.verify(info.signature_value, info.signed_attributes_der, ec.ECDSA(algorithm))
        else:
            raise SigningError(f"Unsupported signer key type: {type(public_key).__name__}")
    except InvalidSignature as e:
        raise SigningError("Signature value does not verify against the signer certificate") from e


def verify_detached_signature(signature: bytes, content: bytes) -> SignatureInfo:
    """
    Verify a detached CMS signature over `content`.

    Checks the signature is detached, carries the content-type,
    message-digest and signing-time attributes, that the message digest
    matches `content`, and that the signer's key produced the signature.

    Raises:
        SigningError
    """
    info = parse_detached_signature(signature)

    if not info.detached:
        raise SigningError("Signature embeds its content; a detached signature is required")
    missing = REQUIRED_SIGNED_ATTRIBUTES - set(info.signed_attribute_types)
    if missing:
        raise SigningError(f"Signature is missing authenticated attributes: {sorted(missing)}")
    if info.content_type != OID_DATA:
        raise SigningError(f"Signed content type is {info.content_type}, expected data")

    expected = hashlib.new(_HASHLIB_NAMES[info.digest_algorithm], content).digest()
    if info.message_digest != expected:
        raise SigningError("Signed message digest does not match the content")

    if info.signer_certificate is None:
        raise SigningError("Signer certificate is not included in the signature")
    _verify_signature_value(info)
    return info


def _issued_by_included_intermediate(info: SignatureInfo) -> bool:
    signer = info.signer_certificate
    for cert in info.certificates:
        if cert is signer or cert.subject != signer.issuer:
            continue
        try:
            signer.verify_directly_issued_by(cert)
            return True
        except (ValueError, TypeError, InvalidSignature):
            continue
    return False


def _read_entry(zf: zipfile.ZipFile, name: str, report: PkpassReport) -> Optional[bytes]:
    """Read one ZIP entry; a damaged entry is recorded in the report."""
    try:
        return zf.read(name)
    except (zipfile.BadZipFile, zlib.error, EOFError, OSError) as e:
        report.errors.append(f"Unreadable entry {name}: {e}")
        return None


def verify_pkpass(data: bytes, trusted_issuer: Optional[x509.Certificate] = None) -> PkpassReport:
    """
    Inspect a .pkpass bundle and collect everything wrong with it.

    Args:
        data: .pkpass bytes
        trusted_issuer: when given, the included intermediate must be this
            certificate (e.g. the configured WWDR certificate)

    Returns:
        PkpassReport; report.ok is True only when no check failed
    """
    report = PkpassReport()
    try:
        zf = zipfile.ZipFile(BytesIO(data), "r")
    except zipfile.BadZipFile as e:
        report.errors.append(f"Not a ZIP archive: {e}")
        return report

    with zf:
        report.filenames = zf.namelist()
        for required in ("pass.json", "manifest.json", "signature"):
            if required not in report.filenames:
                report.errors.append(f"Missing required file: {required}")
        if report.errors:
            return report

        manifest_bytes = _read_entry(zf, "manifest.json", report)
        if manifest_bytes is None:
            return report
        try:
            manifest = json.loads(manifest_bytes.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            report.errors.append(f"manifest.json is not valid JSON: {e}")
            return report
        if not isinstance(manifest, dict):
            report.errors.append("manifest.json is not a JSON object")
            return report
        report.manifest = manifest

        listed = set(report.manifest)
        packaged = set(report.filenames) - {"manifest.json", "signature"}
        for name in sorted(packaged - listed):
            report.errors.append(f"File not listed in manifest: {name}")
        for name in sorted(listed - packaged):
            report.errors.append(f"Manifest lists missing file: {name}")

        for name in sorted(listed & packaged):
            content = _read_entry(zf, name, report)
            if content is None:
                continue
            if hashlib.sha1(content).hexdigest() != report.manifest[name]:
                report.errors.append(f"Digest mismatch for {name}")

        signature = _read_entry(zf, "signature", report)
        if signature is None:
            return report
        try:
            report.signature = verify_detached_signature(signature, manifest_bytes)
        except SigningError as e:
            report.errors.append(f"Signature invalid: {e}")
            return report

        if not _issued_by_included_intermediate(report.signature):
            report.errors.append("Signer certificate is not issued by an included intermediate")
        if trusted_issuer is not None and trusted_issuer not in report.signature.certificates:
            report.errors.append(
                f"Signature does not carry the expected intermediate "
                f"'{trusted_issuer.subject.rfc4514_string()}'"
            )

    return report
