"""
Job-scoped configuration snapshots.

PrintJobConfig is the branding context a job renders with; PrinterSettings
is the printer configuration read ONCE when a job starts. Both are frozen
so a settings change made while a job is running cannot move its labels.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple

from .label import PrintCartItem, PrintPayload, SaleContext


DEFAULT_LOCATION_NAME = "Licensed Dispensary"
DEFAULT_BRAND_FALLBACK = "W"
DEFAULT_TRACKING_BASE_URL = "https://floradistro.com/qr"
DEFAULT_LOGO_SIZE_RATIO = 0.22


@dataclass(frozen=True)
class PrintJobConfig:
    """
    Immutable rendering and branding context for one job.

    Built from the confirmed payload's store config plus application
    defaults; the renderer draws location and compliance strings from here.
    """

    store_id: Optional[str] = None
    location_id: Optional[str] = None
    location_name: str = DEFAULT_LOCATION_NAME
    location_license: Optional[str] = None
    distributor_license: Optional[str] = None
    store_logo_url: Optional[str] = None
    brand_logo_fallback: str = DEFAULT_BRAND_FALLBACK
    weight_tier: Optional[str] = None
    """Tier drawn on labels that carry no tier of their own."""

    sale_context: Optional[SaleContext] = None
    tracking_base_url: str = DEFAULT_TRACKING_BASE_URL
    logo_size_ratio: float = DEFAULT_LOGO_SIZE_RATIO

    store_logo_image: Optional[Any] = field(default=None, compare=False, repr=False)
    """Decoded store logo (PIL image), filled in after prefetch."""

    @classmethod
    def from_payload(
        cls,
        payload: PrintPayload,
        *,
        default_location_name: str = DEFAULT_LOCATION_NAME,
        brand_logo_fallback: str = DEFAULT_BRAND_FALLBACK,
        tracking_base_url: str = DEFAULT_TRACKING_BASE_URL,
        logo_size_ratio: float = DEFAULT_LOGO_SIZE_RATIO,
        weight_tier: Optional[str] = None,
    ) -> "PrintJobConfig":
        """Derive the render context from a confirmed payload."""
        location_name = (
            payload.config.location_name
            or payload.sale_context.location_name
            or default_location_name
        )
        return cls(
            store_id=payload.config.store_id or None,
            location_id=payload.sale_context.location_id,
            location_name=location_name,
            distributor_license=payload.config.distributor_license,
            store_logo_url=payload.config.store_logo_url,
            brand_logo_fallback=brand_logo_fallback,
            weight_tier=weight_tier,
            sale_context=payload.sale_context,
            tracking_base_url=tracking_base_url,
            logo_size_ratio=logo_size_ratio,
        )

    def with_logo(self, image: Optional[Any]) -> "PrintJobConfig":
        return replace(self, store_logo_image=image)


@dataclass(frozen=True)
class PrinterSettings:
    """Snapshot of the process-wide printer settings."""

    destination_id: Optional[str] = None
    """Opaque printer handle, e.g. ``socket://10.0.0.20:9100`` or ``file://front-desk``."""

    printer_name: Optional[str] = None
    auto_print_enabled: bool = False
    start_position: int = 0
    """Slots already used on the first sheet."""

    def __post_init__(self):
        if self.start_position < 0:
            raise ValueError(f"start_position must be >= 0, got {self.start_position}")

    @property
    def is_printer_configured(self) -> bool:
        return bool(self.destination_id)

    @property
    def is_ready_to_auto_print(self) -> bool:
        return self.auto_print_enabled and self.is_printer_configured

    def to_dict(self) -> Dict[str, Any]:
        return {
            "destination_id": self.destination_id,
            "printer_name": self.printer_name,
            "auto_print_enabled": self.auto_print_enabled,
            "start_position": self.start_position,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PrinterSettings":
        return cls(
            destination_id=data.get("destination_id") or None,
            printer_name=data.get("printer_name") or None,
            auto_print_enabled=bool(data.get("auto_print_enabled", False)),
            start_position=int(data.get("start_position") or 0),
        )


@dataclass(frozen=True)
class LabelJobRequest:
    """
    Immutable description of one label job, handed to a job thread.

    ``destination_id`` overrides the configured printer for this job only;
    ``preview`` routes delivery through the interactive preview sink.
    """

    store_id: str
    items: Tuple[PrintCartItem, ...]
    sale_context: SaleContext
    store_logo_url: Optional[str] = None
    destination_id: Optional[str] = None
    weight_tier: Optional[str] = None
    preview: bool = False

    @property
    def total_units(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def job_name(self) -> str:
        return f"Labels {self.sale_context.order_id}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "store_id": self.store_id,
            "items": [item.to_dict() for item in self.items],
            "sale_context": self.sale_context.to_dict(),
            "store_logo_url": self.store_logo_url,
            "destination_id": self.destination_id,
            "weight_tier": self.weight_tier,
            "preview": self.preview,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LabelJobRequest":
        return cls(
            store_id=str(data.get("store_id") or ""),
            items=tuple(PrintCartItem.from_dict(item) for item in data.get("items") or []),
            sale_context=SaleContext.from_dict(data["sale_context"]),
            store_logo_url=data.get("store_logo_url") or None,
            destination_id=data.get("destination_id") or None,
            weight_tier=data.get("weight_tier") or None,
            preview=bool(data.get("preview", False)),
        )
