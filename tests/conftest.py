"""
Pytest configuration and fixtures for cardpass tests.

Provides throwaway signing material: a root CA, a WWDR-style intermediate,
a pass-type leaf certificate, and PKCS#12 containers built from them.
"""
import sys
import base64
import pathlib
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from cardpass.core.config import Settings
from cardpass.schemas.business_card import CardRecord

P12_PASSWORD = "s3cret-pass"
PASS_TYPE_ID = "pass.qa.wakti.card"
TEAM_ID = "ABCDE12345"


def _name(common_name: str, org: str = "cardpass tests") -> x509.Name:
    return x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, org),
    ])


def _rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def make_certificate(
    subject: x509.Name, issuer: x509.Name, public_key, signing_key, is_ca: bool, serial_number=None
):
    now = datetime.now(timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(public_key)
        .serial_number(serial_number or x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=365))
        .add_extension(x509.BasicConstraints(ca=is_ca, path_length=None), critical=True)
        .sign(signing_key, hashes.SHA256())
    )


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


@pytest.fixture(scope="session")
def pki():
    """
    Root CA -> intermediate -> pass-type leaf, plus an unrelated key.

    Key generation is slow, so this is built once per session.
    """
    root_key = _rsa_key()
    root_name = _name("Test Root CA")
    root_cert = make_certificate(root_name, root_name, root_key.public_key(), root_key, is_ca=True)

    wwdr_key = _rsa_key()
    wwdr_name = _name("Test Worldwide Developer Relations Certification Authority")
    wwdr_cert = make_certificate(wwdr_name, root_name, wwdr_key.public_key(), root_key, is_ca=True)

    leaf_key = _rsa_key()
    leaf_cert = make_certificate(
        _name(f"Pass Type ID: {PASS_TYPE_ID}"), wwdr_name, leaf_key.public_key(), wwdr_key, is_ca=False
    )

    other_key = _rsa_key()

    p12_encrypted = pkcs12.serialize_key_and_certificates(
        b"Pass Type ID", leaf_key, leaf_cert, None,
        serialization.BestAvailableEncryption(P12_PASSWORD.encode()),
    )
    p12_plain = pkcs12.serialize_key_and_certificates(
        b"Pass Type ID", leaf_key, leaf_cert, None, serialization.NoEncryption(),
    )

    return SimpleNamespace(
        root_key=root_key,
        root_cert=root_cert,
        wwdr_key=wwdr_key,
        wwdr_cert=wwdr_cert,
        leaf_key=leaf_key,
        leaf_cert=leaf_cert,
        other_key=other_key,
        p12_encrypted=p12_encrypted,
        p12_plain=p12_plain,
        p12_b64=b64(p12_encrypted),
        p12_plain_b64=b64(p12_plain),
        wwdr_der_b64=b64(wwdr_cert.public_bytes(serialization.Encoding.DER)),
        wwdr_pem=wwdr_cert.public_bytes(serialization.Encoding.PEM),
    )


@pytest.fixture
def settings(pki):
    """Fully configured settings (no web service, no brand asset dir)."""
    return Settings(
        ENV="test",
        APPLE_WALLET_PASS_TYPE_ID=PASS_TYPE_ID,
        APPLE_WALLET_TEAM_ID=TEAM_ID,
        APPLE_WALLET_ORGANIZATION_NAME="Wakti",
        APPLE_WALLET_WEB_SERVICE_URL="",
        APPLE_WALLET_CERT_P12_BASE64=pki.p12_b64,
        APPLE_WALLET_CERT_P12_PASSWORD=P12_PASSWORD,
        APPLE_WALLET_WWDR_CERT_BASE64=pki.wwdr_der_b64,
        APPLE_WALLET_ASSETS_DIR="",
    )


@pytest.fixture
def unconfigured_settings():
    return Settings(
        ENV="test",
        APPLE_WALLET_PASS_TYPE_ID="",
        APPLE_WALLET_TEAM_ID="",
        APPLE_WALLET_CERT_P12_BASE64="",
        APPLE_WALLET_CERT_P12_PASSWORD="",
        APPLE_WALLET_WWDR_CERT_BASE64="",
        APPLE_WALLET_ASSETS_DIR="",
    )


@pytest.fixture
def card():
    return CardRecord(firstName="Amina", lastName="Al-Thani", cardUrl="https://wakti.qa/card/abc")


@pytest.fixture
def full_card():
    return CardRecord(
        firstName="Amina",
        lastName="Al-Thani",
        email="amina@wakti.qa",
        phone="+974 5555 1234",
        companyName="Wakti",
        jobTitle="Product Lead",
        website="https://wakti.qa",
        cardUrl="https://wakti.qa/card/abc",
        qrPayload="BEGIN:VCARD\nFN:Amina Al-Thani\nEND:VCARD",
    )
