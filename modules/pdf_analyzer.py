"""Lightweight PDF analyzer used to verify rendered label documents."""

from __future__ import annotations

import io
from typing import Any, Dict

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from core.exceptions import RenderError
from modules.sheet_layout import SHEET_HEIGHT, SHEET_WIDTH


class PDFAnalyzer:
    """Extract page count and sheet dimensions, resilient to malformed PDFs."""

    def analyze(self, pdf_bytes: bytes) -> Dict[str, Any]:
        info: Dict[str, Any] = {
            "pages": 0,
            "size_kb": round(len(pdf_bytes) / 1024, 2),
            "page_dimensions": [],
        }

        try:
            reader = PdfReader(io.BytesIO(pdf_bytes))
            info["pages"] = len(reader.pages)
            for page in reader.pages:
                width = round(float(page.mediabox.width) / 72, 2)
                height = round(float(page.mediabox.height) / 72, 2)
                info["page_dimensions"].append({"width_in": width, "height_in": height})
        except (PdfReadError, ValueError, OSError) as exc:
            info["error"] = f"PDF analysis failed: {exc}"

        return info

    def verify_label_document(self, pdf_bytes: bytes, expected_pages: int) -> Dict[str, Any]:
        """
        Confirm a rendered document has the expected sheet count and size.

        Raises:
            RenderError: unreadable document, wrong page count or wrong sheet size
        """
        info = self.analyze(pdf_bytes)
        if "error" in info:
            raise RenderError(info["error"])

        if info["pages"] != expected_pages:
            raise RenderError(
                f"Rendered {info['pages']} page(s), expected {expected_pages}",
                pages=info["pages"],
            )

        for number, dims in enumerate(info["page_dimensions"], start=1):
            if (dims["width_in"], dims["height_in"]) != (SHEET_WIDTH, SHEET_HEIGHT):
                raise RenderError(
                    f"Page {number} is {dims['width_in']}x{dims['height_in']} in, "
                    f"expected {SHEET_WIDTH}x{SHEET_HEIGHT} in",
                    pages=info["pages"],
                )

        return info
