"""
Client for the QR code registration backend.

The backend is the only place sale codes come from. One call exchanges a
cart (product ids + quantities) and a sale context for a confirmed batch
of label payloads, one code per physical unit, every code durably recorded
before the response is sent.

FAIL CLOSED:
    A response is accepted only if it accounts for every requested unit,
    in request order, with distinct codes. Anything else is a backend
    error - the caller never gets a partially registered batch.

Each call opens its own httpx.AsyncClient, so a client instance can be
shared by job threads that each run their own event loop.

Usage:
    client = RegistrationClient(base_url, api_key)

    prepared = await client.prepare_labels_with_retry(
        store_id, items, sale_context, policy=RetryPolicy()
    )
    payload = prepared.payload
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlparse

import httpx

from models.label import PreparedLabels, PrintCartItem, PrintPayload, SaleContext
from models.print_result import PrintErrorKind
from modules.tracking_codes import QRCodeType, tracking_url

from .exceptions import RegistrationError
from .retry import RetryPolicy, SleepFunc, call_with_retry


DEFAULT_PREPARE_PATH = "/functions/v1/prepare-print-labels"
DEFAULT_TRACK_PATH = "/functions/v1/qr-register"


def expand_units(items: Sequence[PrintCartItem]) -> List[PrintCartItem]:
    """One entry per physical unit, in request order."""
    return [item for item in items for _ in range(item.quantity)]


class RegistrationClient:
    """
    Async client for the label registration endpoints.

    Methods:
    - prepare_labels(): one registration attempt
    - prepare_labels_with_retry(): registration under a RetryPolicy
    - record_print_event(): best-effort tracking after a successful print
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        *,
        prepare_path: str = DEFAULT_PREPARE_PATH,
        track_path: str = DEFAULT_TRACK_PATH,
        timeout_seconds: float = 30.0,
        tracking_base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Backend root, e.g. "https://xyz.supabase.co"
            api_key: Sent as ``apikey`` and bearer token
            prepare_path: Path of the prepare-print-labels function
            track_path: Path of the per-code tracking function
            timeout_seconds: Per-request timeout
            tracking_base_url: Prefix for destination URLs in tracking records
            transport: Optional httpx transport (tests use httpx.MockTransport)
            logger: Logger instance (creates default if not provided)
        """
        self._base_url = (base_url or "").rstrip("/")
        self._api_key = api_key
        self._prepare_path = prepare_path
        self._track_path = track_path
        self._timeout = timeout_seconds
        self._tracking_base_url = tracking_base_url
        self._transport = transport
        self._logger = logger or logging.getLogger("label_print.core.registration_client")

    @property
    def is_configured(self) -> bool:
        parsed = urlparse(self._base_url)
        return parsed.scheme in ("http", "https") and bool(parsed.netloc)

    @property
    def prepare_url(self) -> str:
        return f"{self._base_url}{self._prepare_path}"

    @property
    def track_url(self) -> str:
        return f"{self._base_url}{self._track_path}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["apikey"] = self._api_key
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def build_request(
        self,
        store_id: str,
        items: Sequence[PrintCartItem],
        sale_context: SaleContext,
        store_logo_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Request body for prepare-print-labels."""
        return {
            "store_id": store_id,
            "items": [item.to_dict() for item in items],
            "sale_context": sale_context.to_dict(),
            "store_logo_url": store_logo_url,
        }

    async def prepare_labels(
        self,
        store_id: str,
        items: Sequence[PrintCartItem],
        sale_context: SaleContext,
        store_logo_url: Optional[str] = None,
    ) -> PreparedLabels:
        """
        Register one code per unit and return the confirmed batch.

        Single attempt - see prepare_labels_with_retry() for the retried form.

        Raises:
            RegistrationError: NO_ITEMS, NOT_CONFIGURED, BACKEND_ERROR or NETWORK_ERROR
        """
        if not items or sum(item.quantity for item in items) == 0:
            raise RegistrationError(PrintErrorKind.NO_ITEMS)

        if not self.is_configured:
            raise RegistrationError(PrintErrorKind.NOT_CONFIGURED, "Invalid backend URL")

        if not store_id:
            raise RegistrationError(PrintErrorKind.NOT_CONFIGURED, "store_id is required")

        body = self.build_request(store_id, items, sale_context, store_logo_url)
        total_units = sum(item.quantity for item in items)
        self._logger.debug(f"Registering {total_units} code(s) for order {sale_context.order_id}")

        try:
            async with self._client() as client:
                response = await client.post(self.prepare_url, json=body, headers=self._headers())
        except httpx.HTTPError as e:
            self._logger.error(f"Registration request failed: {e!r}")
            raise RegistrationError(PrintErrorKind.NETWORK_ERROR, str(e) or type(e).__name__)

        if response.status_code != 200:
            self._logger.error(
                f"Backend error {response.status_code}: {response.text[:500]}"
            )
            raise RegistrationError(
                PrintErrorKind.BACKEND_ERROR, f"HTTP {response.status_code}"
            )

        try:
            result = response.json()
        except ValueError:
            self._logger.error("Registration response is not valid JSON")
            raise RegistrationError(PrintErrorKind.BACKEND_ERROR, "Failed to decode response")

        if not isinstance(result, dict) or not result.get("success") or not result.get("payload"):
            error = result.get("error") if isinstance(result, dict) else None
            raise RegistrationError(
                PrintErrorKind.BACKEND_ERROR, error or "Unknown backend error"
            )

        try:
            payload = PrintPayload.from_dict(result["payload"])
            skipped = tuple(str(p) for p in (result.get("skipped_products") or []))
            registered = result.get("qr_codes_registered")
            registered = len(payload.items) if registered is None else int(registered)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            self._logger.error(f"Registration payload could not be decoded: {e!r}")
            raise RegistrationError(PrintErrorKind.BACKEND_ERROR, "Failed to decode response")

        payload = self._verify_payload(items, payload, skipped)

        if skipped:
            self._logger.warning(
                f"Prepared {len(payload.items)} label(s), {registered} code(s) registered, "
                f"{len(skipped)} product(s) skipped (deleted)"
            )
        else:
            self._logger.info(
                f"Prepared {len(payload.items)} label(s), {registered} code(s) registered"
            )

        return PreparedLabels(
            payload=payload,
            qr_codes_registered=registered,
            skipped_products=skipped,
        )

    def _verify_payload(
        self,
        items: Sequence[PrintCartItem],
        payload: PrintPayload,
        skipped: Sequence[str],
    ) -> PrintPayload:
        """
        Check the batch covers every requested unit, in order, with unique codes.

        Fills in a missing per-label tier from the request by position.
        """
        skipped_ids = {p.lower() for p in skipped}
        expected = [
            unit for unit in expand_units(items)
            if unit.product_id.lower() not in skipped_ids
        ]

        if not payload.items:
            raise RegistrationError(PrintErrorKind.BACKEND_ERROR, "Backend returned no labels")

        if len(payload.items) != len(expected):
            raise RegistrationError(
                PrintErrorKind.BACKEND_ERROR,
                f"Backend returned {len(payload.items)} label(s) for {len(expected)} unit(s)",
            )

        codes = payload.sale_codes
        if len(set(codes)) != len(codes):
            raise RegistrationError(PrintErrorKind.BACKEND_ERROR, "Backend returned duplicate sale codes")

        labels = []
        for position, (unit, label) in enumerate(zip(expected, payload.items)):
            if unit.product_id.lower() != label.product.id.lower():
                raise RegistrationError(
                    PrintErrorKind.BACKEND_ERROR,
                    f"Label {position} is for product {label.product.id}, expected {unit.product_id}",
                )
            if label.tier_label is None and unit.tier_label is not None:
                label = replace(label, tier_label=unit.tier_label)
            labels.append(label)

        return replace(payload, items=tuple(labels))

    async def prepare_labels_with_retry(
        self,
        store_id: str,
        items: Sequence[PrintCartItem],
        sale_context: SaleContext,
        store_logo_url: Optional[str] = None,
        *,
        policy: Optional[RetryPolicy] = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> PreparedLabels:
        """Registration under ``policy``; raises the last RegistrationError on exhaustion."""
        return await call_with_retry(
            lambda: self.prepare_labels(store_id, items, sale_context, store_logo_url),
            policy or RetryPolicy(),
            sleep=sleep,
            logger=self._logger,
        )

    # =========================================================================
    # PRINT TRACKING (best effort)
    # =========================================================================

    def build_print_event(self, payload: PrintPayload, index: int) -> Dict[str, Any]:
        """Tracking record for the label at ``index`` of a printed batch."""
        label = payload.items[index]
        context = payload.sale_context
        destination = label.qr_url
        if not destination and self._tracking_base_url:
            destination = tracking_url(self._tracking_base_url, label.sale_code)
        record = {
            "store_id": payload.config.store_id,
            "code": label.sale_code,
            "name": label.product.name,
            "type": QRCodeType.SALE.value,
            "destination_url": destination,
            "product_id": label.product.id,
            "order_id": context.order_id,
            "location_id": context.location_id,
            "location_name": context.location_name or payload.config.location_name,
            "customer_id": context.customer_id,
            "staff_id": context.staff_id,
            "order_type": context.order_type,
            "print_source": context.print_source.value if context.print_source else None,
            "tier_label": label.tier_label,
            "quantity_index": label.quantity_index,
            "tags": ["sale", "label"],
        }
        return {k: v for k, v in record.items() if v is not None}

    async def record_print_event(self, payload: PrintPayload) -> int:
        """
        Report printed codes for analytics. Never raises.

        Returns:
            Number of codes the backend acknowledged
        """
        if not self.is_configured or not payload.items:
            return 0

        async with self._client() as client:
            async def send(index: int) -> bool:
                try:
                    response = await client.post(
                        self.track_url,
                        json=self.build_print_event(payload, index),
                        headers=self._headers(),
                    )
                except httpx.HTTPError as e:
                    self._logger.warning(f"Print tracking failed for label {index}: {e!r}")
                    return False
                if response.status_code not in (200, 201):
                    self._logger.warning(
                        f"Print tracking rejected for label {index}: HTTP {response.status_code}"
                    )
                    return False
                return True

            outcomes = await asyncio.gather(*(send(i) for i in range(len(payload.items))))

        recorded = sum(1 for ok in outcomes if ok)
        self._logger.info(f"Print tracking recorded {recorded}/{len(payload.items)} code(s)")
        return recorded
