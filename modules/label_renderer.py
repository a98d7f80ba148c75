"""
Label sheet renderer.

Draws a confirmed PrintPayload onto letter-size sheets with reportlab and
returns the PDF bytes. Slot placement comes from modules.sheet_layout;
each label's code image comes from modules.qr_generator.

Per-label layout (points, 8pt padding inside the 4" x 2" rectangle):

    +--------------------------------------------------+
    | PRODUCT NAME (18 bold, truncated)         STRAIN |
    | +--------+ +--------+   THCA                     |
    | | image  | |  code  |   23.4%                    |
    | |  72pt  | |  72pt  |   D9-THC                   |
    | +--------+ +--------+   0.21%                    |
    | 3.5g        LOCATION      TESTED 01/02/25        |
    |             license       PACKED 01/05/25        |
    +--------------------------------------------------+

Rendering is pure: everything drawn comes from the payload, the job config
and the prefetched image map. Missing data renders as a placeholder glyph.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional, Tuple

from PIL import Image
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from core.exceptions import CodeGenerationError, RenderError
from models.label import LabelPayload, PrintPayload
from models.print_job import PrintJobConfig
from modules.qr_generator import generate_code_image
from modules.sheet_layout import (
    POINTS_PER_INCH,
    SHEET_HEIGHT,
    SHEET_WIDTH,
    iter_slots,
    page_count,
    slot_rect,
)
from modules.tracking_codes import tracking_url


PLACEHOLDER = "—"

PADDING = 8.0
CORNER_RADIUS = 6.0
NAME_FONT_SIZE = 18
NAME_ROW_HEIGHT = 26.0
MIDDLE_HEIGHT = 72.0
MIDDLE_GAP = 6.0
CODE_IMAGE_PIXELS = int(MIDDLE_HEIGHT * 3)

FONT_REGULAR = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
FONT_MONO = "Courier"
FONT_SYMBOL = "Symbol"

LABEL_GREY = 0.4
STRAIN_COLORS: Dict[str, Tuple[float, float, float]] = {
    "indica": (0.6, 0.2, 0.8),
    "sativa": (0.2, 0.7, 0.3),
    "hybrid": (0.9, 0.6, 0.1),
}
DEFAULT_STRAIN_COLOR = (0.5, 0.5, 0.5)


@dataclass(frozen=True)
class LabelDocument:
    """A rendered, paginated label document ready for a printer sink."""

    pdf_bytes: bytes
    page_count: int
    label_count: int
    job_name: str


# =============================================================================
# FORMATTING HELPERS
# =============================================================================

def format_thca(value: Optional[float]) -> str:
    return f"{value:.1f}%" if value is not None else PLACEHOLDER


def format_d9_thc(value: Optional[float]) -> str:
    return f"{value:.2f}%" if value is not None else PLACEHOLDER


def format_label_date(value: Optional[datetime]) -> str:
    return value.strftime("%m/%d/%y") if value is not None else PLACEHOLDER


def strain_color(strain: str) -> Tuple[float, float, float]:
    return STRAIN_COLORS.get(strain.strip().lower(), DEFAULT_STRAIN_COLOR)


def truncate_to_width(pdf: canvas.Canvas, text: str, font: str, size: float, max_width: float) -> str:
    """Trim ``text`` with a trailing ellipsis until it fits ``max_width``."""
    if pdf.stringWidth(text, font, size) <= max_width:
        return text
    ellipsis = "…"
    trimmed = text
    while trimmed and pdf.stringWidth(trimmed + ellipsis, font, size) > max_width:
        trimmed = trimmed[:-1]
    return (trimmed.rstrip() + ellipsis) if trimmed else ""


# =============================================================================
# RENDERER
# =============================================================================

class LabelSheetRenderer:
    """
    Renders one confirmed payload into a multi-page PDF.

    One renderer per job: it keeps ImageReader wrappers for the prefetched
    images so repeated products embed the same image object.
    """

    def __init__(
        self,
        config: PrintJobConfig,
        images: Optional[Mapping[str, Image.Image]] = None,
    ):
        """
        Initialize the renderer.

        Args:
            config: Job branding context (location, licenses, logo, fallbacks)
            images: Prefetched product images keyed by URL
        """
        self._config = config
        self._images = dict(images or {})
        self._readers: Dict[str, ImageReader] = {}
        self._logo_reader = ImageReader(config.store_logo_image) if config.store_logo_image else None

    def render(
        self,
        payload: PrintPayload,
        start_position: int = 0,
        now: Optional[datetime] = None,
    ) -> LabelDocument:
        """
        Draw every label of ``payload`` after ``start_position`` used slots.

        Raises:
            RenderError: a label's code content could not be encoded
        """
        items = payload.items
        pages = page_count(start_position, len(items))
        sealed_on = payload.sealed_on or now or datetime.now(timezone.utc)
        job_name = f"Labels {payload.sale_context.order_id}"

        buffer = io.BytesIO()
        pdf = canvas.Canvas(
            buffer,
            pagesize=(SHEET_WIDTH * POINTS_PER_INCH, SHEET_HEIGHT * POINTS_PER_INCH),
            invariant=1,
        )
        pdf.setTitle(job_name)
        pdf.setCreator("label_print")

        current_page = 0
        for assignment in iter_slots(start_position, len(items)):
            if assignment.position.page != current_page:
                pdf.showPage()
                current_page = assignment.position.page
            if assignment.is_blank:
                continue
            rect = slot_rect(assignment.position.slot_on_page).to_pdf_origin()
            label = items[assignment.payload_index]
            try:
                self.draw_label(pdf, label, rect, sealed_on)
            except CodeGenerationError as e:
                raise RenderError(
                    f"Label {assignment.payload_index} ({label.sale_code}) could not be drawn: {e.message}",
                    pages=pages,
                )
        pdf.showPage()
        pdf.save()

        return LabelDocument(
            pdf_bytes=buffer.getvalue(),
            page_count=pages,
            label_count=len(items),
            job_name=job_name,
        )

    def draw_label(
        self,
        pdf: canvas.Canvas,
        label: LabelPayload,
        rect: Tuple[float, float, float, float],
        sealed_on: datetime,
    ) -> None:
        """Draw one label inside ``rect`` = (x, y, w, h), bottom-left origin."""
        x, y, w, h = rect
        left = x + PADDING
        right = x + w - PADDING
        top = y + h - PADDING
        bottom = y + PADDING
        product = label.product

        # Name row
        badge_width = 0.0
        if product.strain_type:
            strain = product.strain_type.upper()
            badge_width = pdf.stringWidth(strain, FONT_BOLD, 9) + 8
            pdf.setFillColorRGB(*strain_color(product.strain_type))
            pdf.setFont(FONT_BOLD, 9)
            pdf.drawRightString(right - 4, top - 5 - 9 * 0.8, strain)

        name = truncate_to_width(pdf, product.name, FONT_BOLD, NAME_FONT_SIZE, right - left - badge_width)
        pdf.setFillColorRGB(0, 0, 0)
        pdf.setFont(FONT_BOLD, NAME_FONT_SIZE)
        pdf.drawString(left, top - NAME_FONT_SIZE * 0.8, name)

        # Middle row: image | code | potency
        middle_bottom = top - NAME_ROW_HEIGHT - MIDDLE_HEIGHT
        self._draw_image_block(pdf, label, left, middle_bottom)

        code_x = left + MIDDLE_HEIGHT + MIDDLE_GAP
        code_image = generate_code_image(
            tracking_url(self._config.tracking_base_url, label.sale_code),
            CODE_IMAGE_PIXELS,
            logo=self._config.store_logo_image,
            logo_text=self._config.brand_logo_fallback,
            logo_size_ratio=self._config.logo_size_ratio,
        )
        pdf.drawImage(ImageReader(code_image), code_x, middle_bottom, MIDDLE_HEIGHT, MIDDLE_HEIGHT)

        potency_x = left + (MIDDLE_HEIGHT + MIDDLE_GAP) * 2 + 8
        row_top = top - NAME_ROW_HEIGHT - 2
        self._draw_caption(pdf, potency_x, row_top - 7, "THCA")
        self._draw_value(pdf, potency_x, row_top - 10 - 20, format_thca(product.thca_percentage))
        self._draw_delta9_caption(pdf, potency_x, row_top - 38 - 7)
        self._draw_value(pdf, potency_x, row_top - 48 - 20, format_d9_thc(product.d9_thc_percentage))

        # Footer
        line1 = bottom + 11
        line2 = bottom + 2

        tier = label.tier_label or self._config.weight_tier
        if tier:
            pdf.setFillColorRGB(0, 0, 0)
            pdf.setFont(FONT_BOLD, 14)
            pdf.drawString(left, line2 + 2, truncate_to_width(pdf, tier, FONT_BOLD, 14, MIDDLE_HEIGHT))

        code_center = code_x + MIDDLE_HEIGHT / 2
        location_width = MIDDLE_HEIGHT + 10
        pdf.setFillGray(LABEL_GREY)
        pdf.setFont(FONT_BOLD, 6)
        location = truncate_to_width(pdf, self._config.location_name.upper(), FONT_BOLD, 6, location_width)
        pdf.drawCentredString(code_center, line1, location)
        if self._config.distributor_license:
            license_text = truncate_to_width(
                pdf, self._config.distributor_license, FONT_BOLD, 6, location_width
            )
            pdf.drawCentredString(code_center, line2, license_text)

        dates_x = right - 115
        self._draw_date_line(pdf, dates_x, line1, "TESTED", format_label_date(product.tested_on))
        self._draw_date_line(pdf, dates_x, line2, "PACKED", format_label_date(sealed_on))

    # =========================================================================
    # DRAWING PRIMITIVES
    # =========================================================================

    def _reader_for(self, url: Optional[str]) -> Optional[ImageReader]:
        if not url or url not in self._images:
            return None
        if url not in self._readers:
            self._readers[url] = ImageReader(self._images[url])
        return self._readers[url]

    def _draw_image_block(self, pdf: canvas.Canvas, label: LabelPayload, x: float, y: float) -> None:
        """Product thumbnail, else store logo, else the product initial on grey."""
        size = MIDDLE_HEIGHT
        pdf.saveState()
        clip = pdf.beginPath()
        clip.roundRect(x, y, size, size, CORNER_RADIUS)
        pdf.clipPath(clip, stroke=0, fill=0)

        thumbnail = self._reader_for(label.product.featured_image)
        if thumbnail is not None:
            pdf.drawImage(thumbnail, x, y, size, size, preserveAspectRatio=True, anchor="c", mask="auto")
        elif self._logo_reader is not None:
            pdf.setFillGray(0.98)
            pdf.rect(x, y, size, size, stroke=0, fill=1)
            pdf.drawImage(self._logo_reader, x, y, size, size, preserveAspectRatio=True, anchor="c", mask="auto")
        else:
            pdf.setFillGray(0.93)
            pdf.rect(x, y, size, size, stroke=0, fill=1)
            pdf.setFillGray(0.7)
            pdf.setFont(FONT_BOLD, 28)
            pdf.drawCentredString(x + size / 2, y + size / 2 - 28 * 0.35, label.product.initial)

        pdf.restoreState()

    def _draw_caption(self, pdf: canvas.Canvas, x: float, y: float, text: str) -> None:
        pdf.setFillGray(LABEL_GREY)
        pdf.setFont(FONT_BOLD, 9)
        pdf.drawString(x, y, text)

    def _draw_delta9_caption(self, pdf: canvas.Canvas, x: float, y: float) -> None:
        # Helvetica has no Greek capital delta; Symbol maps it to "D".
        pdf.setFillGray(LABEL_GREY)
        pdf.setFont(FONT_SYMBOL, 9)
        pdf.drawString(x, y, "D")
        offset = pdf.stringWidth("D", FONT_SYMBOL, 9)
        pdf.setFont(FONT_BOLD, 9)
        pdf.drawString(x + offset, y, "9-THC")

    def _draw_value(self, pdf: canvas.Canvas, x: float, y: float, text: str) -> None:
        pdf.setFillColorRGB(0, 0, 0)
        pdf.setFont(FONT_BOLD, 26)
        pdf.drawString(x, y, text)

    def _draw_date_line(self, pdf: canvas.Canvas, x: float, y: float, caption: str, value: str) -> None:
        pdf.setFillGray(LABEL_GREY)
        pdf.setFont(FONT_BOLD, 6.5)
        pdf.drawString(x, y, caption)
        pdf.setFillColorRGB(0, 0, 0)
        pdf.setFont(FONT_MONO, 7.5)
        pdf.drawString(x + 32, y, value)


def render_labels(
    payload: PrintPayload,
    config: PrintJobConfig,
    start_position: int = 0,
    images: Optional[Mapping[str, Image.Image]] = None,
    now: Optional[datetime] = None,
) -> LabelDocument:
    """Render ``payload`` into a LabelDocument (see LabelSheetRenderer)."""
    return LabelSheetRenderer(config, images).render(payload, start_position, now=now)
