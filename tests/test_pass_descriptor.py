"""
Tests for pass.json construction
"""
import json

import pytest

from cardpass.schemas.business_card import CardRecord
from cardpass.services.pass_descriptor import (
    PassIdentity,
    build_pass_descriptor,
    generate_serial,
    serialize_descriptor,
)
from cardpass.services.wallet_pass_errors import DescriptorError


@pytest.fixture
def identity():
    return PassIdentity(
        pass_type_identifier="pass.qa.wakti.card",
        team_identifier="ABCDE12345",
        organization_name="Wakti",
    )


def _fields(section):
    return {f["key"]: f for f in section}


class TestSerialNumbers:
    def test_serials_are_unique(self):
        serials = {generate_serial() for _ in range(200)}
        assert len(serials) == 200

    def test_deterministic_source(self):
        """Injected byte source gives a reproducible UUID-4"""
        serial = generate_serial(random_bytes=lambda n: b"\x00" * n)
        assert serial == "00000000-0000-4000-8000-000000000000"

    def test_each_descriptor_gets_a_fresh_serial(self, card, identity):
        first = build_pass_descriptor(card, identity)
        second = build_pass_descriptor(card, identity)
        assert first["serialNumber"] != second["serialNumber"]


class TestBuildPassDescriptor:
    def test_identity_and_layout(self, full_card, identity):
        descriptor = build_pass_descriptor(full_card, identity, serial_factory=lambda: "serial-1")

        assert descriptor["formatVersion"] == 1
        assert descriptor["passTypeIdentifier"] == "pass.qa.wakti.card"
        assert descriptor["teamIdentifier"] == "ABCDE12345"
        assert descriptor["serialNumber"] == "serial-1"
        assert descriptor["organizationName"] == "Wakti"
        assert descriptor["description"] == "Amina Al-Thani - Business Card"

        generic = descriptor["generic"]
        assert generic["primaryFields"][0]["value"] == "Amina Al-Thani"
        secondary = _fields(generic["secondaryFields"])
        assert secondary["title"]["value"] == "Product Lead"
        assert secondary["company"]["value"] == "Wakti"
        auxiliary = _fields(generic["auxiliaryFields"])
        assert auxiliary["email"]["value"] == "amina@wakti.qa"
        assert auxiliary["phone"]["value"] == "+974 5555 1234"

        back = _fields(generic["backFields"])
        assert back["card_url"]["value"] == "https://wakti.qa/card/abc"
        assert back["back_website"]["value"] == "https://wakti.qa"

    def test_optional_fields_are_empty_strings(self, card, identity):
        descriptor = build_pass_descriptor(card, identity)

        generic = descriptor["generic"]
        assert _fields(generic["secondaryFields"])["title"]["value"] == ""
        assert _fields(generic["auxiliaryFields"])["email"]["value"] == ""
        assert _fields(generic["backFields"])["back_phone"]["value"] == ""

    def test_barcode_defaults_to_card_url(self, card, identity):
        descriptor = build_pass_descriptor(card, identity)

        assert descriptor["barcode"]["message"] == "https://wakti.qa/card/abc"
        assert descriptor["barcodes"][0]["message"] == "https://wakti.qa/card/abc"
        assert descriptor["barcodes"][0]["format"] == "PKBarcodeFormatQR"
        assert descriptor["barcodes"][0]["messageEncoding"] == "iso-8859-1"

    def test_barcode_uses_qr_payload(self, full_card, identity):
        descriptor = build_pass_descriptor(full_card, identity)

        assert descriptor["barcodes"][0]["message"].startswith("BEGIN:VCARD")

    def test_latin1_payload_keeps_latin1_encoding(self, full_card, identity):
        descriptor = build_pass_descriptor(full_card, identity)

        assert descriptor["barcodes"][0]["messageEncoding"] == "iso-8859-1"
        assert descriptor["barcode"]["messageEncoding"] == "iso-8859-1"

    def test_non_latin1_payload_switches_to_utf8(self, identity):
        card = CardRecord(
            firstName="Amina", lastName="Al-Thani", cardUrl="https://wakti.qa/card/abc",
            qrPayload="BEGIN:VCARD\nFN:أمينة الثاني\nEND:VCARD",
        )

        descriptor = build_pass_descriptor(card, identity)

        for barcode in (descriptor["barcode"], descriptor["barcodes"][0]):
            assert barcode["messageEncoding"] == "utf-8"
            barcode["message"].encode(barcode["messageEncoding"])

    def test_no_web_service_without_url(self, card, identity):
        descriptor = build_pass_descriptor(card, identity)

        assert "webServiceURL" not in descriptor
        assert "authenticationToken" not in descriptor

    def test_web_service_token_is_serial(self, card):
        identity = PassIdentity(
            pass_type_identifier="pass.qa.wakti.card",
            team_identifier="ABCDE12345",
            organization_name="Wakti",
            web_service_url="https://api.wakti.qa/wallet",
        )

        descriptor = build_pass_descriptor(card, identity)

        assert descriptor["webServiceURL"] == "https://api.wakti.qa/wallet"
        assert descriptor["authenticationToken"] == descriptor["serialNumber"]

    @pytest.mark.parametrize("first,last", [("", "Al-Thani"), ("Amina", "  ")])
    def test_blank_name_rejected(self, identity, first, last):
        card = CardRecord(firstName=first, lastName=last, cardUrl="https://wakti.qa/card/abc")

        with pytest.raises(DescriptorError):
            build_pass_descriptor(card, identity)

    @pytest.mark.parametrize("url", ["/card/abc", "wakti.qa/card/abc", "ftp://wakti.qa/card", ""])
    def test_non_absolute_card_url_rejected(self, identity, url):
        card = CardRecord(firstName="Amina", lastName="Al-Thani", cardUrl=url)

        with pytest.raises(DescriptorError):
            build_pass_descriptor(card, identity)


class TestSerializeDescriptor:
    def test_canonical_bytes(self, card, identity):
        descriptor = build_pass_descriptor(card, identity, serial_factory=lambda: "s")

        data = serialize_descriptor(descriptor)

        assert data.startswith(b'{"backgroundColor"')
        assert b", " not in data and b": " not in data
        assert json.loads(data) == descriptor
        assert serialize_descriptor(descriptor) == data

    def test_non_ascii_kept_as_utf8(self, identity):
        card = CardRecord(firstName="أمينة", lastName="الثاني", cardUrl="https://wakti.qa/card/abc")

        data = serialize_descriptor(build_pass_descriptor(card, identity))

        assert "أمينة".encode("utf-8") in data

    def test_unserializable_value(self):
        with pytest.raises(DescriptorError):
            serialize_descriptor({"serialNumber": object()})
