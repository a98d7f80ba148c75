"""
Custom exceptions for LabelSheetPrint.

Exception Hierarchy:
    LabelPrintError (base)
    ├── ConfigurationError       - invalid settings (startup / request time)
    ├── RegistrationError        - code registration failed (carries a PrintErrorKind)
    ├── CodeGenerationError      - content cannot be encoded as a code image
    ├── RenderError              - label document could not be assembled
    └── PrinterUnavailableError  - printer sink transport failure

Usage:
    These exceptions travel between layers inside a job. The orchestrator
    converts them into a PrintResult; callers of the orchestrator never
    see them for expected failures.
"""

from typing import Any, Dict, Optional

from models.print_result import PrintErrorKind


class LabelPrintError(Exception):
    """
    Base exception for all LabelSheetPrint errors.

    Catch this to handle any application-specific error in one place.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional context for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(LabelPrintError):
    """A required setting is missing or malformed."""

    def __init__(self, setting: str, reason: str):
        super().__init__(
            f"Invalid configuration for {setting}: {reason}",
            {"setting": setting, "resolution": f"Check {setting} in .env"},
        )
        self.setting = setting


class RegistrationError(LabelPrintError):
    """
    The registration backend did not confirm a batch.

    ``kind`` decides whether the retry policy tries again
    (see PrintErrorKind.retryable).
    """

    def __init__(self, kind: PrintErrorKind, detail: str = ""):
        super().__init__(kind.describe(detail), {"kind": kind.value})
        self.kind = kind
        self.detail = detail


class CodeGenerationError(LabelPrintError):
    """
    Content could not be turned into a scannable code.

    Raised for empty content or content too large for the symbol at the
    highest error-correction level. Never replaced by a blank image.
    """

    def __init__(self, content: str, reason: str):
        preview = content if len(content) <= 64 else content[:61] + "..."
        super().__init__(
            f"Cannot encode code content: {reason}",
            {"content": preview, "length": len(content)},
        )
        self.reason = reason


class RenderError(LabelPrintError):
    """The label document could not be assembled or failed verification."""

    def __init__(self, message: str, pages: Optional[int] = None):
        details = {"pages": pages} if pages is not None else None
        super().__init__(message, details)


class PrinterUnavailableError(LabelPrintError):
    """
    The printer could not be reached or refused the document.

    Physical delivery is never retried automatically; the caller decides
    whether to reprint the confirmed payload.
    """

    def __init__(self, destination_id: str, reason: str):
        super().__init__(
            f"Printer {destination_id} unavailable: {reason}",
            {
                "destination_id": destination_id,
                "resolution": "Check the printer is on and reachable, then retry the print",
            },
        )
        self.destination_id = destination_id
        self.reason = reason
