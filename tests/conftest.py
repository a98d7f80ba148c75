"""
Shared fixtures for label print tests.

The registration backend is faked with httpx.MockTransport; it expands
the requested cart into one label per unit, in request order, exactly
like the real prepare-print-labels function.
"""

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import httpx
import pytest

from core.registration_client import RegistrationClient
from models.label import PrintCartItem, PrintPayload, PrintSource, SaleContext
from modules.printer_sink import PrinterSink


BACKEND_URL = "https://backend.test"
SOLD_AT = datetime(2025, 1, 5, 18, 0, tzinfo=timezone.utc)


def product_json(product_id: str) -> Dict[str, Any]:
    """Backend product snapshot for ``product_id``."""
    return {
        "id": product_id,
        "name": f"Product {product_id}",
        "strain_type": "hybrid",
        "thca_percentage": 24.5,
        "d9_thc_percentage": 0.21,
        "test_date": "2024-12-20T00:00:00Z",
        "batch_number": "B-100",
    }


def build_prepare_response(
    body: Dict[str, Any],
    skipped: Iterable[str] = (),
) -> Dict[str, Any]:
    """Successful prepare-print-labels response for a request body."""
    skipped = set(skipped)
    labels: List[Dict[str, Any]] = []
    for item in body["items"]:
        if item["product_id"] in skipped:
            continue
        for quantity_index in range(item["quantity"]):
            code = f"S{uuid.UUID(int=len(labels) + 1)}"
            labels.append({
                "sale_code": code,
                "product": product_json(item["product_id"]),
                "tier_label": item.get("tier_label"),
                "qr_url": f"https://floradistro.com/qr/{code}",
                "quantity_index": quantity_index,
            })
    return {
        "success": True,
        "payload": {
            "items": labels,
            "config": {
                "store_id": body["store_id"],
                "location_name": "Main Street",
                "distributor_license": "USDA-123",
                "store_logo_url": body.get("store_logo_url"),
            },
            "sealed_date": "2025-01-05T18:00:00Z",
            "sale_context": body["sale_context"],
        },
        "qr_codes_registered": len(labels),
        "skipped_products": sorted(skipped),
    }


class FakeBackend:
    """
    Request handler imitating the registration backend.

    Queue entries in ``failures`` (an httpx.Response to return or an
    exception to raise) are used, in order, before answering normally.
    """

    def __init__(self):
        self.prepare_calls: List[Dict[str, Any]] = []
        self.track_calls: List[Dict[str, Any]] = []
        self.failures: List[Any] = []
        self.skipped: List[str] = []
        self.headers: List[httpx.Headers] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            # image fetches: nothing hosted here
            return httpx.Response(404)

        body = json.loads(request.content)
        self.headers.append(request.headers)

        if request.url.path.endswith("/qr-register"):
            self.track_calls.append(body)
            return httpx.Response(201, json={"success": True})

        self.prepare_calls.append(body)
        if self.failures:
            failure = self.failures.pop(0)
            if isinstance(failure, Exception):
                raise failure
            return failure
        return httpx.Response(200, json=build_prepare_response(body, self.skipped))

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class RecordingSink(PrinterSink):
    """Printer sink that records documents and returns a fixed answer."""

    def __init__(self, accept: bool = True):
        self.accept = accept
        self.sent: List[Any] = []

    async def send(self, document, destination_id: str) -> bool:
        self.sent.append((document, destination_id))
        return self.accept


class SleepRecorder:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


async def no_images(urls) -> Dict[str, Any]:
    return {}


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def registration_client(fake_backend):
    return RegistrationClient(BACKEND_URL, "test-key", transport=fake_backend.transport)


@pytest.fixture
def sale_context():
    return SaleContext(
        order_id="order-1",
        sold_at=SOLD_AT,
        staff_id="staff-9",
        location_id="loc-1",
        location_name="Main Street",
        order_type="walk_in",
        print_source=PrintSource.POS_CHECKOUT,
    )


@pytest.fixture
def make_payload(sale_context):
    """Factory: confirmed PrintPayload with ``count`` labels of one product."""

    def _make(count: int, product_id: str = "prod-1", tier_label: Optional[str] = "3.5g") -> PrintPayload:
        body = {
            "store_id": "store-1",
            "items": [PrintCartItem(product_id, count, tier_label).to_dict()] if count else [],
            "sale_context": sale_context.to_dict(),
        }
        return PrintPayload.from_dict(build_prepare_response(body)["payload"])

    return _make


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()
