"""
Print result data models.

These models describe how a label job ends (PrintResult) and how it
progresses (PrintJobStatus). They are produced by the print orchestrator
inside a job thread and read by the Flask thread through JobResultStore.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .label import PrintPayload


class PrintErrorKind(Enum):
    """
    Failure taxonomy for a label job.

    Every kind is explicitly classified as retryable or not; the
    registration retry loop consults ``retryable`` and nothing else.
    """

    NO_ITEMS = "no_items"
    """Nothing to print. User-correctable."""

    NOT_CONFIGURED = "not_configured"
    """Missing or invalid backend endpoint/credentials. Operator-correctable."""

    BACKEND_ERROR = "backend_error"
    """The registration backend rejected the batch."""

    NETWORK_ERROR = "network_error"
    """Transport failure talking to the registration backend."""

    PRINTER_UNAVAILABLE = "printer_unavailable"
    """The printer sink did not accept the document."""

    RENDER_ERROR = "render_error"
    """The label document could not be assembled."""

    CANCELLED = "cancelled"
    """The user dismissed an interactive print preview."""

    @property
    def retryable(self) -> bool:
        """Whether registration should be attempted again after this failure."""
        return self in _RETRYABLE_KINDS

    def describe(self, detail: str = "") -> str:
        """Human-readable message for this failure."""
        prefix = _MESSAGES[self]
        if detail and self not in (PrintErrorKind.NO_ITEMS, PrintErrorKind.CANCELLED):
            return f"{prefix}: {detail}"
        return prefix


_RETRYABLE_KINDS = frozenset({
    PrintErrorKind.BACKEND_ERROR,
    PrintErrorKind.NETWORK_ERROR,
})

_MESSAGES = {
    PrintErrorKind.NO_ITEMS: "No items to print",
    PrintErrorKind.NOT_CONFIGURED: "Label printing is not configured",
    PrintErrorKind.BACKEND_ERROR: "Label backend error",
    PrintErrorKind.NETWORK_ERROR: "Network error while registering labels",
    PrintErrorKind.PRINTER_UNAVAILABLE: (
        "Printer unavailable. Check the printer is on and connected, then retry the print"
    ),
    PrintErrorKind.RENDER_ERROR: "Label rendering failed",
    PrintErrorKind.CANCELLED: "Print cancelled",
}


@dataclass(frozen=True)
class PrintResult:
    """
    Terminal outcome of one label job.

    Exactly one PrintResult is produced per job. A delivery failure still
    reports ``qr_codes_registered`` because the codes were durably recorded
    before the printer was contacted; ``payload`` keeps the confirmed batch
    so the caller can reprint without registering again.
    """

    success: bool
    """True when the printer accepted the document."""

    items_printed: int = 0
    """Labels delivered to the printer (0 on failure)."""

    qr_codes_registered: int = 0
    """Codes confirmed by the backend for the batch this job printed."""

    kind: Optional[PrintErrorKind] = None
    """Failure kind (None on success)."""

    detail: str = ""
    """Failure detail for logs and messages."""

    finished_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    """When the job ended."""

    payload: Optional["PrintPayload"] = field(default=None, compare=False, repr=False)
    """Confirmed payload, present whenever registration succeeded."""

    @classmethod
    def succeeded(
        cls,
        items_printed: int,
        qr_codes_registered: int,
        payload: Optional["PrintPayload"] = None,
    ) -> "PrintResult":
        return cls(
            success=True,
            items_printed=items_printed,
            qr_codes_registered=qr_codes_registered,
            payload=payload,
        )

    @classmethod
    def failed(
        cls,
        kind: PrintErrorKind,
        detail: str = "",
        qr_codes_registered: int = 0,
        payload: Optional["PrintPayload"] = None,
    ) -> "PrintResult":
        return cls(
            success=False,
            kind=kind,
            detail=detail,
            qr_codes_registered=qr_codes_registered,
            payload=payload,
        )

    @property
    def message(self) -> str:
        """User-facing message for the terminal state."""
        if self.success:
            return (
                f"Printed {self.items_printed} label(s) "
                f"({self.qr_codes_registered} code(s) registered)"
            )
        return self.kind.describe(self.detail)

    @property
    def can_reprint(self) -> bool:
        """True when the printer failed after codes were confirmed."""
        return (
            not self.success
            and self.payload is not None
            and self.kind in (PrintErrorKind.PRINTER_UNAVAILABLE, PrintErrorKind.CANCELLED)
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "success": self.success,
            "items_printed": self.items_printed,
            "qr_codes_registered": self.qr_codes_registered,
            "kind": self.kind.value if self.kind else None,
            "detail": self.detail,
            "message": self.message,
            "can_reprint": self.can_reprint,
            "finished_at": self.finished_at.isoformat(),
        }


class JobState(Enum):
    """
    Orchestrator states.

    Lifecycle (linear):
        PREPARING -> REGISTERING_CODES -> CODES_REGISTERED -> RENDERING
        -> SENDING -> COMPLETED

    FAILED is reachable only from PREPARING / REGISTERING_CODES.
    Render and delivery failures end in COMPLETED with a failed result.
    """

    PREPARING = "preparing"
    REGISTERING_CODES = "registering_codes"
    CODES_REGISTERED = "codes_registered"
    RENDERING = "rendering"
    SENDING = "sending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


@dataclass(frozen=True)
class PrintJobStatus:
    """One entry of a job's status stream."""

    state: JobState
    count: Optional[int] = None
    """Code count for REGISTERING_CODES / CODES_REGISTERED."""

    pages: Optional[int] = None
    """Sheet count for RENDERING."""

    result: Optional[PrintResult] = None
    """Result for COMPLETED and FAILED."""

    @classmethod
    def preparing(cls) -> "PrintJobStatus":
        return cls(JobState.PREPARING)

    @classmethod
    def registering_codes(cls, count: int) -> "PrintJobStatus":
        return cls(JobState.REGISTERING_CODES, count=count)

    @classmethod
    def codes_registered(cls, count: int) -> "PrintJobStatus":
        return cls(JobState.CODES_REGISTERED, count=count)

    @classmethod
    def rendering(cls, pages: int) -> "PrintJobStatus":
        return cls(JobState.RENDERING, pages=pages)

    @classmethod
    def sending(cls) -> "PrintJobStatus":
        return cls(JobState.SENDING)

    @classmethod
    def completed(cls, result: PrintResult) -> "PrintJobStatus":
        return cls(JobState.COMPLETED, result=result)

    @classmethod
    def failed(cls, result: PrintResult) -> "PrintJobStatus":
        return cls(JobState.FAILED, result=result)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"state": self.state.value}
        if self.count is not None:
            data["count"] = self.count
        if self.pages is not None:
            data["pages"] = self.pages
        if self.result is not None:
            data["result"] = self.result.to_dict()
        return data
