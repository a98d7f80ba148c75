"""
Label payload data models.

These mirror the registration backend's JSON (snake_case keys) and are
the only input the renderer accepts. A LabelPayload exists only because
the backend confirmed its sale code; nothing in this package creates one
from scratch.

All payload records are frozen - a confirmed payload can be handed to a
job thread, stored for reprint, and rendered again without copying.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _optional_float(value: Any) -> Optional[float]:
    """Parse a potency-style number; blanks and junk become None."""
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _optional_decimal(value: Any) -> Optional[Decimal]:
    """Parse a price; unlike potency, junk here is a malformed request."""
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"invalid unit_price {value!r}")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (``Z`` suffix accepted); non-strings are None."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def format_timestamp(value: datetime) -> str:
    """Format as ISO-8601 in UTC with a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class PrintSource(Enum):
    """Where a label job was started from (sent to the backend for analytics)."""

    POS_CHECKOUT = "pos_checkout"
    FULFILLMENT = "fulfillment"
    REPRINT = "reprint"
    MANUAL_INVENTORY = "manual_inventory"
    ORDER_LABELS = "order_labels"


@dataclass(frozen=True)
class SaleContext:
    """
    Sale context attached to every registered code.

    ``order_id`` is free-form: a real order UUID, or a ``manual-xxxxxxxx``
    id for inventory labels printed outside a sale.
    """

    order_id: str
    sold_at: datetime
    customer_id: Optional[str] = None
    staff_id: Optional[str] = None
    location_id: Optional[str] = None
    location_name: Optional[str] = None
    order_type: Optional[str] = None
    """walk_in, pickup, shipping, delivery, manual_print, order_reprint..."""

    print_source: Optional[PrintSource] = None

    def to_dict(self) -> Dict[str, Any]:
        """Wire format: optional keys are omitted when unset."""
        data: Dict[str, Any] = {
            "order_id": self.order_id,
            "sold_at": format_timestamp(self.sold_at),
        }
        optional = {
            "customer_id": self.customer_id,
            "staff_id": self.staff_id,
            "location_id": self.location_id,
            "location_name": self.location_name,
            "order_type": self.order_type,
            "print_source": self.print_source.value if self.print_source else None,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SaleContext":
        source = data.get("print_source")
        try:
            print_source = PrintSource(source) if source else None
        except ValueError:
            print_source = None
        return cls(
            order_id=str(data["order_id"]),
            sold_at=parse_timestamp(data.get("sold_at")) or datetime.now(timezone.utc),
            customer_id=_optional_str(data.get("customer_id")),
            staff_id=_optional_str(data.get("staff_id")),
            location_id=_optional_str(data.get("location_id")),
            location_name=_optional_str(data.get("location_name")),
            order_type=_optional_str(data.get("order_type")),
            print_source=print_source,
        )


@dataclass(frozen=True)
class PrintCartItem:
    """One line of a registration request: a product and how many labels."""

    product_id: str
    quantity: int
    tier_label: Optional[str] = None
    unit_price: Optional[Decimal] = None

    def __post_init__(self):
        if not self.product_id:
            raise ValueError("product_id is required")
        if self.quantity < 0:
            raise ValueError(f"quantity must be >= 0, got {self.quantity}")

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "product_id": self.product_id,
            "quantity": self.quantity,
        }
        if self.tier_label is not None:
            data["tier_label"] = self.tier_label
        if self.unit_price is not None:
            data["unit_price"] = float(self.unit_price)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PrintCartItem":
        return cls(
            product_id=str(data.get("product_id") or ""),
            quantity=int(data.get("quantity", 1)),
            tier_label=_optional_str(data.get("tier_label")),
            unit_price=_optional_decimal(data.get("unit_price")),
        )


@dataclass(frozen=True)
class ProductSnapshot:
    """
    Point-in-time product facts needed to draw a label.

    A closed record: only the attributes the renderer consumes are kept,
    unknown keys in the backend JSON are ignored.
    """

    id: str
    name: str
    description: Optional[str] = None
    strain_type: Optional[str] = None
    thca_percentage: Optional[float] = None
    d9_thc_percentage: Optional[float] = None
    featured_image: Optional[str] = None
    coa_url: Optional[str] = None
    test_date: Optional[str] = None
    batch_number: Optional[str] = None
    category_name: Optional[str] = None

    @property
    def initial(self) -> str:
        """First letter of the name, used when no image is available."""
        return self.name[:1].upper() if self.name else "?"

    @property
    def tested_on(self) -> Optional[datetime]:
        return parse_timestamp(self.test_date)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "strain_type": self.strain_type,
            "thca_percentage": self.thca_percentage,
            "d9_thc_percentage": self.d9_thc_percentage,
            "featured_image": self.featured_image,
            "coa_url": self.coa_url,
            "test_date": self.test_date,
            "batch_number": self.batch_number,
        }
        if self.category_name is not None:
            data["primary_category"] = {"name": self.category_name}
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductSnapshot":
        category = data.get("primary_category") or {}
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            description=_optional_str(data.get("description")),
            strain_type=_optional_str(data.get("strain_type")),
            thca_percentage=_optional_float(data.get("thca_percentage")),
            d9_thc_percentage=_optional_float(data.get("d9_thc_percentage")),
            featured_image=_optional_str(data.get("featured_image")),
            coa_url=_optional_str(data.get("coa_url")),
            test_date=_optional_str(data.get("test_date")),
            batch_number=_optional_str(data.get("batch_number")),
            category_name=_optional_str(category.get("name")) if isinstance(category, dict) else None,
        )


@dataclass(frozen=True)
class LabelPayload:
    """One label's confirmed, print-ready content."""

    sale_code: str
    """Backend-issued unique code for this physical unit."""

    product: ProductSnapshot
    tier_label: Optional[str] = None
    qr_url: Optional[str] = None
    """Tracking URL as returned by the backend (informational)."""

    quantity_index: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sale_code": self.sale_code,
            "product": self.product.to_dict(),
            "tier_label": self.tier_label,
            "qr_url": self.qr_url,
            "quantity_index": self.quantity_index,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LabelPayload":
        sale_code = _optional_str(data.get("sale_code"))
        if sale_code is None:
            raise ValueError("label item is missing sale_code")
        return cls(
            sale_code=sale_code,
            product=ProductSnapshot.from_dict(data["product"]),
            tier_label=_optional_str(data.get("tier_label")),
            qr_url=_optional_str(data.get("qr_url")),
            quantity_index=int(data.get("quantity_index") or 0),
        )


@dataclass(frozen=True)
class PayloadConfig:
    """Store branding returned alongside a confirmed batch."""

    store_id: str
    store_logo_url: Optional[str] = None
    location_name: Optional[str] = None
    distributor_license: Optional[str] = None
    brand_color: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "store_id": self.store_id,
            "store_logo_url": self.store_logo_url,
            "location_name": self.location_name,
            "distributor_license": self.distributor_license,
            "brand_color": self.brand_color,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PayloadConfig":
        return cls(
            store_id=str(data.get("store_id") or ""),
            store_logo_url=_optional_str(data.get("store_logo_url")),
            location_name=_optional_str(data.get("location_name")),
            distributor_license=_optional_str(data.get("distributor_license")),
            brand_color=_optional_str(data.get("brand_color")),
        )


@dataclass(frozen=True)
class PrintPayload:
    """
    A confirmed batch: every item's code is recorded server-side.

    Reprinting reuses this object as-is; it is never sent back to the
    registration endpoint.
    """

    items: Tuple[LabelPayload, ...]
    config: PayloadConfig
    sealed_date: str
    sale_context: SaleContext

    @property
    def sale_codes(self) -> List[str]:
        return [item.sale_code for item in self.items]

    @property
    def sealed_on(self) -> Optional[datetime]:
        return parse_timestamp(self.sealed_date)

    @property
    def image_urls(self) -> List[str]:
        """Distinct product image URLs, in first-seen order."""
        seen: Dict[str, None] = {}
        for item in self.items:
            if item.product.featured_image:
                seen.setdefault(item.product.featured_image, None)
        return list(seen)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "config": self.config.to_dict(),
            "sealed_date": self.sealed_date,
            "sale_context": self.sale_context.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PrintPayload":
        return cls(
            items=tuple(LabelPayload.from_dict(item) for item in data.get("items", [])),
            config=PayloadConfig.from_dict(data.get("config") or {}),
            sealed_date=str(data.get("sealed_date") or ""),
            sale_context=SaleContext.from_dict(data["sale_context"]),
        )


@dataclass(frozen=True)
class PreparedLabels:
    """Successful registration: the confirmed payload plus backend counters."""

    payload: PrintPayload
    qr_codes_registered: int
    skipped_products: Tuple[str, ...] = field(default_factory=tuple)
