"""
Tests for the registration backend client.

The backend is replaced by httpx.MockTransport (see conftest.FakeBackend),
so these tests exercise the real request building, error mapping and
fail-closed verification of responses.
"""

import asyncio
import json

import httpx
import pytest

from core.exceptions import RegistrationError
from core.registration_client import RegistrationClient, expand_units
from core.retry import RetryPolicy
from models.label import PrintCartItem
from models.print_result import PrintErrorKind

from conftest import BACKEND_URL, build_prepare_response


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def cart():
    """Two lines, three units."""
    return [
        PrintCartItem("prod-a", 2, "3.5g"),
        PrintCartItem("prod-b", 1),
    ]


def prepare(client, cart, sale_context, **kwargs):
    return asyncio.run(client.prepare_labels("store-1", cart, sale_context, **kwargs))


def respond_with(fake_backend, mutate):
    """Queue a successful response after passing its JSON through ``mutate``."""

    def handler(request):
        body = json.loads(request.content)
        data = build_prepare_response(body)
        mutate(data)
        return httpx.Response(200, json=data)

    return RegistrationClient(BACKEND_URL, "test-key", transport=httpx.MockTransport(handler))


# =============================================================================
# Tests for prepare_labels()
# =============================================================================

class TestPrepareLabels:
    """Successful registration."""

    def test_one_label_per_unit_in_request_order(self, registration_client, cart, sale_context):
        prepared = prepare(registration_client, cart, sale_context)

        assert prepared.qr_codes_registered == 3
        assert [label.product.id for label in prepared.payload.items] == ["prod-a", "prod-a", "prod-b"]
        assert [label.quantity_index for label in prepared.payload.items] == [0, 1, 0]
        assert len(set(prepared.payload.sale_codes)) == 3

    def test_request_body_and_headers(self, registration_client, fake_backend, cart, sale_context):
        prepare(registration_client, cart, sale_context, store_logo_url="https://cdn.test/logo.png")

        body = fake_backend.prepare_calls[0]
        assert body["store_id"] == "store-1"
        assert body["items"] == [
            {"product_id": "prod-a", "quantity": 2, "tier_label": "3.5g"},
            {"product_id": "prod-b", "quantity": 1},
        ]
        assert body["sale_context"]["order_id"] == "order-1"
        assert body["sale_context"]["sold_at"] == "2025-01-05T18:00:00Z"
        assert body["sale_context"]["print_source"] == "pos_checkout"
        assert body["store_logo_url"] == "https://cdn.test/logo.png"

        headers = fake_backend.headers[0]
        assert headers["apikey"] == "test-key"
        assert headers["authorization"] == "Bearer test-key"

    def test_missing_tier_filled_from_request(self, cart, sale_context, fake_backend):
        def drop_tiers(data):
            for item in data["payload"]["items"]:
                item["tier_label"] = None

        client = respond_with(fake_backend, drop_tiers)
        prepared = prepare(client, cart, sale_context)

        assert [label.tier_label for label in prepared.payload.items] == ["3.5g", "3.5g", None]

    def test_skipped_products_are_reported(self, registration_client, fake_backend, cart, sale_context):
        fake_backend.skipped = ["prod-b"]
        prepared = prepare(registration_client, cart, sale_context)

        assert prepared.skipped_products == ("prod-b",)
        assert len(prepared.payload.items) == 2


class TestPrepareLabelsFailures:
    """Every failure maps to exactly one PrintErrorKind."""

    def test_empty_cart_is_no_items_without_network(self, registration_client, fake_backend, sale_context):
        with pytest.raises(RegistrationError) as exc_info:
            prepare(registration_client, [], sale_context)

        assert exc_info.value.kind is PrintErrorKind.NO_ITEMS
        assert fake_backend.prepare_calls == []

    def test_zero_quantity_is_no_items(self, registration_client, sale_context):
        with pytest.raises(RegistrationError) as exc_info:
            prepare(registration_client, [PrintCartItem("prod-a", 0)], sale_context)
        assert exc_info.value.kind is PrintErrorKind.NO_ITEMS

    def test_missing_base_url_is_not_configured(self, cart, sale_context, fake_backend):
        client = RegistrationClient("", transport=fake_backend.transport)

        with pytest.raises(RegistrationError) as exc_info:
            prepare(client, cart, sale_context)

        assert exc_info.value.kind is PrintErrorKind.NOT_CONFIGURED
        assert fake_backend.prepare_calls == []

    def test_http_error_status_is_backend_error(self, registration_client, fake_backend, cart, sale_context):
        fake_backend.failures.append(httpx.Response(500, text="boom"))

        with pytest.raises(RegistrationError) as exc_info:
            prepare(registration_client, cart, sale_context)

        assert exc_info.value.kind is PrintErrorKind.BACKEND_ERROR
        assert "HTTP 500" in exc_info.value.detail

    def test_transport_error_is_network_error(self, registration_client, fake_backend, cart, sale_context):
        fake_backend.failures.append(httpx.ConnectError("connection refused"))

        with pytest.raises(RegistrationError) as exc_info:
            prepare(registration_client, cart, sale_context)

        assert exc_info.value.kind is PrintErrorKind.NETWORK_ERROR

    def test_unsuccessful_body_is_backend_error(self, registration_client, fake_backend, cart, sale_context):
        fake_backend.failures.append(httpx.Response(200, json={"success": False, "error": "Store not found"}))

        with pytest.raises(RegistrationError) as exc_info:
            prepare(registration_client, cart, sale_context)

        assert exc_info.value.kind is PrintErrorKind.BACKEND_ERROR
        assert exc_info.value.detail == "Store not found"

    def test_invalid_json_is_backend_error(self, registration_client, fake_backend, cart, sale_context):
        fake_backend.failures.append(httpx.Response(200, text="<html>"))

        with pytest.raises(RegistrationError) as exc_info:
            prepare(registration_client, cart, sale_context)

        assert exc_info.value.kind is PrintErrorKind.BACKEND_ERROR

    def test_short_batch_fails_closed(self, cart, sale_context, fake_backend):
        client = respond_with(fake_backend, lambda data: data["payload"]["items"].pop())

        with pytest.raises(RegistrationError) as exc_info:
            prepare(client, cart, sale_context)

        assert exc_info.value.kind is PrintErrorKind.BACKEND_ERROR
        assert "2 label(s) for 3 unit(s)" in exc_info.value.detail

    def test_duplicate_codes_fail_closed(self, cart, sale_context, fake_backend):
        def duplicate(data):
            items = data["payload"]["items"]
            items[1]["sale_code"] = items[0]["sale_code"]

        client = respond_with(fake_backend, duplicate)

        with pytest.raises(RegistrationError) as exc_info:
            prepare(client, cart, sale_context)
        assert "duplicate" in exc_info.value.detail

    def test_reordered_batch_fails_closed(self, cart, sale_context, fake_backend):
        client = respond_with(fake_backend, lambda data: data["payload"]["items"].reverse())

        with pytest.raises(RegistrationError) as exc_info:
            prepare(client, cart, sale_context)
        assert exc_info.value.kind is PrintErrorKind.BACKEND_ERROR

    def test_label_without_code_fails_closed(self, cart, sale_context, fake_backend):
        client = respond_with(fake_backend, lambda data: data["payload"]["items"][0].pop("sale_code"))

        with pytest.raises(RegistrationError) as exc_info:
            prepare(client, cart, sale_context)
        assert exc_info.value.kind is PrintErrorKind.BACKEND_ERROR

    @pytest.mark.parametrize("mutate", [
        lambda data: data["payload"]["items"][0].update(product=None),
        lambda data: data["payload"]["items"].__setitem__(0, "S-0001"),
        lambda data: data.update(payload="sealed"),
        lambda data: data.update(qr_codes_registered="abc"),
        lambda data: data.update(skipped_products=5),
    ], ids=["null-product", "string-item", "string-payload", "bad-count", "bad-skipped"])
    def test_mistyped_fields_are_backend_error(self, cart, sale_context, fake_backend, mutate):
        client = respond_with(fake_backend, mutate)

        with pytest.raises(RegistrationError) as exc_info:
            prepare(client, cart, sale_context)

        assert exc_info.value.kind is PrintErrorKind.BACKEND_ERROR
        assert exc_info.value.detail == "Failed to decode response"


# =============================================================================
# Tests for prepare_labels_with_retry()
# =============================================================================

class TestPrepareWithRetry:
    """Retry wiring through the client."""

    def test_transient_failures_are_retried(
        self, registration_client, fake_backend, cart, sale_context, sleep_recorder
    ):
        fake_backend.failures.extend([
            httpx.Response(503, text="unavailable"),
            httpx.ConnectError("reset"),
        ])

        prepared = asyncio.run(registration_client.prepare_labels_with_retry(
            "store-1", cart, sale_context, policy=RetryPolicy(), sleep=sleep_recorder
        ))

        assert prepared.qr_codes_registered == 3
        assert len(fake_backend.prepare_calls) == 3
        assert sleep_recorder.delays == [1.0, 2.0]

    def test_attempts_are_bounded(self, registration_client, fake_backend, cart, sale_context, sleep_recorder):
        fake_backend.failures.extend([httpx.Response(500) for _ in range(5)])

        with pytest.raises(RegistrationError):
            asyncio.run(registration_client.prepare_labels_with_retry(
                "store-1", cart, sale_context, policy=RetryPolicy(), sleep=sleep_recorder
            ))

        assert len(fake_backend.prepare_calls) == 3
        assert sleep_recorder.delays == [1.0, 2.0]

    def test_undecodable_response_is_retried(
        self, registration_client, fake_backend, cart, sale_context, sleep_recorder
    ):
        body = build_prepare_response({
            "store_id": "store-1",
            "items": [{"product_id": "prod-a", "quantity": 1}],
            "sale_context": {"order_id": "order-1"},
        })
        body["payload"]["items"][0]["product"] = None
        fake_backend.failures.append(httpx.Response(200, json=body))

        prepared = asyncio.run(registration_client.prepare_labels_with_retry(
            "store-1", cart, sale_context, policy=RetryPolicy(), sleep=sleep_recorder
        ))

        assert prepared.qr_codes_registered == 3
        assert len(fake_backend.prepare_calls) == 2
        assert sleep_recorder.delays == [1.0]


# =============================================================================
# Tests for record_print_event()
# =============================================================================

class TestPrintTracking:
    """Best-effort tracking after a print."""

    def test_one_record_per_label(self, registration_client, fake_backend, make_payload):
        payload = make_payload(3)

        recorded = asyncio.run(registration_client.record_print_event(payload))

        assert recorded == 3
        codes = [call["code"] for call in fake_backend.track_calls]
        assert sorted(codes) == sorted(payload.sale_codes)
        first = fake_backend.track_calls[0]
        assert first["type"] == "sale"
        assert first["order_id"] == "order-1"
        assert first["tags"] == ["sale", "label"]

    def test_failures_are_swallowed(self, make_payload):
        def handler(request):
            raise httpx.ConnectError("down")

        client = RegistrationClient(BACKEND_URL, "k", transport=httpx.MockTransport(handler))
        assert asyncio.run(client.record_print_event(make_payload(2))) == 0


def test_expand_units_preserves_order():
    units = expand_units([PrintCartItem("a", 2), PrintCartItem("b", 0), PrintCartItem("c", 1)])
    assert [unit.product_id for unit in units] == ["a", "a", "c"]
