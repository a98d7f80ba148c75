"""
Data models for LabelSheetPrint.

This module contains immutable dataclasses for:
- Label payloads: confirmed, print-ready label content from the backend
- Job snapshots: branding context and printer settings read at job start
- Results: the terminal PrintResult, error taxonomy, and status stream

Everything a job thread receives or produces is frozen, so it can be
passed between the Flask thread and job threads without copying.
"""

from .label import (
    LabelPayload,
    PayloadConfig,
    PreparedLabels,
    PrintCartItem,
    PrintPayload,
    PrintSource,
    ProductSnapshot,
    SaleContext,
)
from .print_job import LabelJobRequest, PrintJobConfig, PrinterSettings
from .print_result import JobState, PrintErrorKind, PrintJobStatus, PrintResult

__all__ = [
    # Label payload models
    "LabelPayload",
    "PayloadConfig",
    "PreparedLabels",
    "PrintCartItem",
    "PrintPayload",
    "PrintSource",
    "ProductSnapshot",
    "SaleContext",
    # Job snapshots
    "LabelJobRequest",
    "PrintJobConfig",
    "PrinterSettings",
    # Results
    "JobState",
    "PrintErrorKind",
    "PrintJobStatus",
    "PrintResult",
]
