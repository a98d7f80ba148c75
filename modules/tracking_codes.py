"""
Tracking code scheme.

A code is a one-letter type prefix followed by a lowercase UUID, e.g.
``S3f2b...``. The literal string encoded into a label's code image is
``{tracking_base}/{code}``.
"""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Optional, Tuple


class QRCodeType(Enum):
    """Kinds of tracked codes and their one-letter prefixes."""

    PRODUCT = "product"
    SALE = "sale"
    ORDER = "order"
    LOCATION = "location"
    CAMPAIGN = "campaign"
    CUSTOM = "custom"

    @property
    def prefix(self) -> str:
        return _PREFIXES[self]


_PREFIXES = {
    QRCodeType.PRODUCT: "P",
    QRCodeType.SALE: "S",
    QRCodeType.ORDER: "O",
    QRCodeType.LOCATION: "L",
    QRCodeType.CAMPAIGN: "C",
    QRCodeType.CUSTOM: "",
}


def generate_code(code_type: QRCodeType, identifier: str) -> str:
    """Build a code from a type and an id (the id is lowercased)."""
    return f"{code_type.prefix}{str(identifier).lower()}"


def new_sale_code() -> str:
    """A fresh per-unit sale code."""
    return generate_code(QRCodeType.SALE, str(uuid.uuid4()))


def tracking_url(base_url: str, code: str) -> str:
    """The content encoded into a label's code image."""
    if not code:
        raise ValueError("code is required")
    return f"{base_url.rstrip('/')}/{code}"


def parse_code(code: str) -> Optional[Tuple[QRCodeType, str]]:
    """
    Split a prefixed code back into (type, uuid).

    Returns None when the code does not carry a known prefix followed by
    a valid UUID.
    """
    if len(code) < 2:
        return None
    for code_type, prefix in _PREFIXES.items():
        if prefix and code.startswith(prefix):
            try:
                return code_type, str(uuid.UUID(code[len(prefix):]))
            except ValueError:
                return None
    return None
