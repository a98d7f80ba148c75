"""Tests for the tracking code scheme."""

import uuid

import pytest

from modules.tracking_codes import (
    QRCodeType,
    generate_code,
    new_sale_code,
    parse_code,
    tracking_url,
)


class TestTrackingCodes:

    def test_sale_codes_are_prefixed_and_unique(self):
        codes = {new_sale_code() for _ in range(200)}
        assert len(codes) == 200
        assert all(code.startswith("S") for code in codes)

    def test_generate_code_lowercases_identifier(self):
        identifier = "3F2B9C1E-6D4A-4C1B-9A7E-2F1D0C8B7A65"
        assert generate_code(QRCodeType.PRODUCT, identifier) == "P" + identifier.lower()

    def test_parse_round_trip(self):
        value = uuid.uuid4()
        code = generate_code(QRCodeType.ORDER, str(value))
        assert parse_code(code) == (QRCodeType.ORDER, str(value))

    @pytest.mark.parametrize("code", ["", "S", "Snot-a-uuid", "X" + str(uuid.UUID(int=1))])
    def test_parse_rejects_malformed(self, code):
        assert parse_code(code) is None

    def test_tracking_url_joins_without_double_slash(self):
        assert tracking_url("https://floradistro.com/qr/", "Sabc") == "https://floradistro.com/qr/Sabc"
        assert tracking_url("https://floradistro.com/qr", "Sabc") == "https://floradistro.com/qr/Sabc"

    def test_tracking_url_requires_code(self):
        with pytest.raises(ValueError):
            tracking_url("https://floradistro.com/qr", "")
