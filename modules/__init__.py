"""Helper modules for the LabelSheetPrint application."""

__all__ = [
    "image_prefetch",
    "label_renderer",
    "pdf_analyzer",
    "printer_config",
    "printer_sink",
    "qr_generator",
    "sheet_layout",
    "tracking_codes",
]
