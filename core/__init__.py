"""
Core module for LabelSheetPrint.

Contains fundamental infrastructure components:
- exceptions: Custom exception hierarchy
- retry: Bounded exponential backoff for code registration
- registration_client: Async client for the QR registration backend
"""

from .exceptions import (
    LabelPrintError,
    ConfigurationError,
    RegistrationError,
    CodeGenerationError,
    RenderError,
    PrinterUnavailableError,
)
from .retry import RetryPolicy, call_with_retry
from .registration_client import RegistrationClient

__all__ = [
    "LabelPrintError",
    "ConfigurationError",
    "RegistrationError",
    "CodeGenerationError",
    "RenderError",
    "PrinterUnavailableError",
    "RetryPolicy",
    "call_with_retry",
    "RegistrationClient",
]
