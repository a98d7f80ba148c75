"""
Print job orchestrator.

Runs one label job as a single async sequence:

    preparing -> registering_codes -> codes_registered -> rendering
    -> sending -> completed(result)

BACKEND-FIRST:
    Nothing is rendered until the registration backend has confirmed a
    code for every unit. A registration failure ends the job in ``failed``
    before any drawing happens.

RETRY SCOPE:
    Registration is retried under a RetryPolicy. Rendering is local and
    deterministic. Delivery to the printer is a single attempt; a failed
    delivery still reports the registered codes and keeps the confirmed
    payload on the result so deliver() can print it again later without
    registering new codes.

STATUS STREAM:
    Every transition is passed to ``on_status``. The callback is best
    effort: if it raises, the error is logged and the job carries on.

CANCELLATION:
    Abandoning the task (asyncio cancel) propagates CancelledError out of
    run()/deliver() and no further statuses are emitted. An in-flight
    registration call is shielded and allowed to finish; its late
    response is simply unused.

Usage:
    orchestrator = PrintJobOrchestrator(client, sink, settings=store.snapshot())
    result = await orchestrator.run(request)
    if result.can_reprint:
        result = await orchestrator.deliver(result.payload)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Iterable, Optional, Sequence

from PIL import Image

from core.exceptions import RegistrationError, RenderError
from core.registration_client import RegistrationClient
from core.retry import RetryPolicy, SleepFunc
from models.label import PrintCartItem, PrintPayload, SaleContext
from models.print_job import (
    DEFAULT_BRAND_FALLBACK,
    DEFAULT_LOCATION_NAME,
    DEFAULT_LOGO_SIZE_RATIO,
    DEFAULT_TRACKING_BASE_URL,
    LabelJobRequest,
    PrintJobConfig,
    PrinterSettings,
)
from models.print_result import PrintErrorKind, PrintJobStatus, PrintResult
from modules.image_prefetch import prefetch_images
from modules.label_renderer import LabelDocument, render_labels
from modules.pdf_analyzer import PDFAnalyzer
from modules.printer_sink import PreviewOutcome, PreviewSink, PrinterSink
from modules.sheet_layout import page_count


StatusCallback = Callable[[PrintJobStatus], None]
ImageLoader = Callable[[Iterable[str]], Awaitable[Dict[str, Image.Image]]]


def _discard_outcome(task: asyncio.Future) -> None:
    """Consume the result of a registration nobody awaits any more."""
    if not task.cancelled():
        task.exception()


class PrintJobOrchestrator:
    """
    State machine for one label job (or one reprint of a confirmed payload).

    Printer settings are a snapshot taken when the orchestrator is built;
    they are never re-read mid-job.
    """

    def __init__(
        self,
        client: RegistrationClient,
        sink: PrinterSink,
        *,
        settings: Optional[PrinterSettings] = None,
        preview_sink: Optional[PreviewSink] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: SleepFunc = asyncio.sleep,
        image_loader: Optional[ImageLoader] = None,
        analyzer: Optional[PDFAnalyzer] = None,
        on_status: Optional[StatusCallback] = None,
        track_print_events: bool = False,
        default_location_name: str = DEFAULT_LOCATION_NAME,
        brand_logo_fallback: str = DEFAULT_BRAND_FALLBACK,
        tracking_base_url: str = DEFAULT_TRACKING_BASE_URL,
        logo_size_ratio: float = DEFAULT_LOGO_SIZE_RATIO,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            client: Registration backend client
            sink: Direct printer sink
            settings: Printer settings snapshot for this job
            preview_sink: Interactive sink used when a job asks for preview
            retry_policy: Registration retry policy (3 attempts, 1s base by default)
            sleep: Backoff sleep (tests inject a recorder)
            image_loader: Coroutine fetching images by URL
            analyzer: Verifies the rendered PDF before delivery
            on_status: Receives every status transition
            track_print_events: Report printed codes after a successful delivery
            default_location_name: Location drawn when the backend sends none
            brand_logo_fallback: Glyph drawn in the code center without a logo
            tracking_base_url: Prefix of the URL encoded in each code
            logo_size_ratio: Code center mark size
            logger: Logger instance (creates default if not provided)
        """
        self._client = client
        self._sink = sink
        self._settings = settings or PrinterSettings()
        self._preview_sink = preview_sink
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._image_loader = image_loader or prefetch_images
        self._analyzer = analyzer or PDFAnalyzer()
        self._on_status = on_status
        self._track_print_events = track_print_events
        self._default_location_name = default_location_name
        self._brand_logo_fallback = brand_logo_fallback
        self._tracking_base_url = tracking_base_url
        self._logo_size_ratio = logo_size_ratio
        self._logger = logger or logging.getLogger("label_print.services.print_orchestrator")

    @property
    def settings(self) -> PrinterSettings:
        return self._settings

    def _emit(self, status: PrintJobStatus) -> None:
        if self._on_status is None:
            return
        try:
            self._on_status(status)
        except Exception as e:
            self._logger.warning(f"Status callback failed for '{status.state.value}': {e!r}")

    # =========================================================================
    # FULL JOB
    # =========================================================================

    async def run(self, request: LabelJobRequest) -> PrintResult:
        """
        Register codes for ``request``, render them and deliver the sheets.

        Returns:
            Exactly one PrintResult; expected failures never raise
        """
        return await self.run_items(
            request.store_id,
            request.items,
            request.sale_context,
            store_logo_url=request.store_logo_url,
            destination_id=request.destination_id,
            weight_tier=request.weight_tier,
            preview=request.preview,
        )

    async def run_items(
        self,
        store_id: str,
        items: Sequence[PrintCartItem],
        sale_context: SaleContext,
        *,
        store_logo_url: Optional[str] = None,
        destination_id: Optional[str] = None,
        weight_tier: Optional[str] = None,
        preview: bool = False,
    ) -> PrintResult:
        """Keyword form of run()."""
        self._emit(PrintJobStatus.preparing())

        total_units = sum(item.quantity for item in items)
        if total_units == 0:
            self._logger.info("Label job has no items, nothing to register")
            result = PrintResult.failed(PrintErrorKind.NO_ITEMS)
            self._emit(PrintJobStatus.failed(result))
            return result

        self._emit(PrintJobStatus.registering_codes(total_units))
        self._logger.info(
            f"Registering {total_units} code(s) for order {sale_context.order_id} "
            f"({len(items)} line(s))"
        )

        # =====================================================================
        # STEP 1: Register codes (retried, shielded from cancellation)
        # =====================================================================
        registration = asyncio.ensure_future(
            self._client.prepare_labels_with_retry(
                store_id,
                items,
                sale_context,
                store_logo_url,
                policy=self._retry_policy,
                sleep=self._sleep,
            )
        )
        try:
            prepared = await asyncio.shield(registration)
        except asyncio.CancelledError:
            # Registration keeps running; a late outcome is dropped
            registration.add_done_callback(_discard_outcome)
            raise
        except RegistrationError as e:
            self._logger.error(f"Label job failed before printing: {e}")
            result = PrintResult.failed(e.kind, e.detail)
            self._emit(PrintJobStatus.failed(result))
            return result

        payload = prepared.payload
        self._emit(PrintJobStatus.codes_registered(prepared.qr_codes_registered))

        # =====================================================================
        # STEP 2-3: Render and deliver the confirmed payload
        # =====================================================================
        return await self._render_and_deliver(
            payload,
            prepared.qr_codes_registered,
            destination_id=destination_id,
            weight_tier=weight_tier,
            preview=preview,
        )

    # =========================================================================
    # REPRINT
    # =========================================================================

    async def deliver(
        self,
        payload: PrintPayload,
        destination_id: Optional[str] = None,
        *,
        weight_tier: Optional[str] = None,
        preview: bool = False,
    ) -> PrintResult:
        """
        Render and deliver an already-confirmed payload.

        Never contacts the registration endpoint; the codes in ``payload``
        were recorded when it was first prepared.
        """
        self._logger.info(
            f"Reprinting {len(payload.items)} confirmed label(s) for order "
            f"{payload.sale_context.order_id}"
        )
        return await self._render_and_deliver(
            payload,
            len(payload.items),
            destination_id=destination_id,
            weight_tier=weight_tier,
            preview=preview,
        )

    # =========================================================================
    # RENDER + DELIVER
    # =========================================================================

    def build_config(self, payload: PrintPayload, weight_tier: Optional[str] = None) -> PrintJobConfig:
        return PrintJobConfig.from_payload(
            payload,
            default_location_name=self._default_location_name,
            brand_logo_fallback=self._brand_logo_fallback,
            tracking_base_url=self._tracking_base_url,
            logo_size_ratio=self._logo_size_ratio,
            weight_tier=weight_tier,
        )

    async def render(
        self,
        payload: PrintPayload,
        weight_tier: Optional[str] = None,
    ) -> LabelDocument:
        """
        Prefetch images, draw every label and verify the document.

        Raises:
            RenderError: drawing or verification failed
        """
        start_position = self._settings.start_position
        expected_pages = page_count(start_position, len(payload.items))

        urls = list(payload.image_urls)
        if payload.config.store_logo_url:
            urls.append(payload.config.store_logo_url)
        images = await self._image_loader(urls)

        config = self.build_config(payload, weight_tier)
        if payload.config.store_logo_url:
            config = config.with_logo(images.get(payload.config.store_logo_url))

        document = await asyncio.to_thread(
            render_labels, payload, config, start_position, images
        )
        self._analyzer.verify_label_document(document.pdf_bytes, expected_pages)
        return document

    async def _render_and_deliver(
        self,
        payload: PrintPayload,
        registered: int,
        *,
        destination_id: Optional[str],
        weight_tier: Optional[str],
        preview: bool,
    ) -> PrintResult:
        pages = page_count(self._settings.start_position, len(payload.items))
        self._emit(PrintJobStatus.rendering(pages))

        try:
            document = await self.render(payload, weight_tier)
        except RenderError as e:
            self._logger.error(f"Label rendering failed: {e}")
            result = PrintResult.failed(
                PrintErrorKind.RENDER_ERROR, e.message, qr_codes_registered=registered, payload=payload
            )
            self._emit(PrintJobStatus.completed(result))
            return result

        self._emit(PrintJobStatus.sending())

        if preview:
            result = await self._deliver_with_preview(document, payload, registered, destination_id)
        else:
            result = await self._deliver_direct(document, payload, registered, destination_id)

        if result.success and self._track_print_events:
            await self._client.record_print_event(payload)

        self._emit(PrintJobStatus.completed(result))
        return result

    async def _deliver_direct(
        self,
        document: LabelDocument,
        payload: PrintPayload,
        registered: int,
        destination_id: Optional[str],
    ) -> PrintResult:
        destination = destination_id or self._settings.destination_id
        if not destination:
            if self._preview_sink is not None:
                self._logger.info("No printer selected, falling back to print preview")
                return await self._deliver_with_preview(document, payload, registered, None)
            return PrintResult.failed(
                PrintErrorKind.PRINTER_UNAVAILABLE,
                "No printer selected",
                qr_codes_registered=registered,
                payload=payload,
            )

        self._logger.info(
            f"Sending {document.label_count} label(s) on {document.page_count} page(s) to {destination}"
        )
        if await self._sink.send(document, destination):
            return PrintResult.succeeded(len(payload.items), registered, payload=payload)

        self._logger.error(f"Printer {destination} did not accept the document")
        return PrintResult.failed(
            PrintErrorKind.PRINTER_UNAVAILABLE,
            destination,
            qr_codes_registered=registered,
            payload=payload,
        )

    async def _deliver_with_preview(
        self,
        document: LabelDocument,
        payload: PrintPayload,
        registered: int,
        destination_id: Optional[str],
    ) -> PrintResult:
        if self._preview_sink is None:
            return PrintResult.failed(
                PrintErrorKind.PRINTER_UNAVAILABLE,
                "Print preview is not available",
                qr_codes_registered=registered,
                payload=payload,
            )

        outcome = await self._preview_sink.present(document, destination_id or self._settings.destination_id)
        if outcome is PreviewOutcome.PRINTED:
            return PrintResult.succeeded(len(payload.items), registered, payload=payload)
        if outcome is PreviewOutcome.CANCELLED:
            self._logger.info("Print preview cancelled by user")
            return PrintResult.failed(
                PrintErrorKind.CANCELLED, qr_codes_registered=registered, payload=payload
            )

        self._logger.error("Print preview reported a printing failure")
        return PrintResult.failed(
            PrintErrorKind.PRINTER_UNAVAILABLE,
            "Print preview failed",
            qr_codes_registered=registered,
            payload=payload,
        )
