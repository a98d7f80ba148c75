"""
Printer sinks.

A sink accepts a rendered LabelDocument and a destination id and reports
whether the printer took it. Delivery is a single attempt; sinks never
retry, and they report transport failures as ``False`` rather than raising.

Destination ids are opaque URLs chosen by the caller:
    socket://10.0.0.20:9100   raw TCP (JetDirect / port 9100)
    file://front-desk         PDF written into the spool directory

The interactive variant (PreviewSink) shows the document to a person
first and reports PRINTED, CANCELLED or FAILED. Preview dialogs are
callback-based and may fire their completion more than once; the
OneShotResult guard turns the first callback into the awaited outcome
and ignores the rest.
"""

from __future__ import annotations

import asyncio
import re
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar
from urllib.parse import urlparse

from core.exceptions import PrinterUnavailableError
from logging_config import get_logger
from modules.label_renderer import LabelDocument


logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_RAW_PORT = 9100


class PrinterSink(ABC):
    """Direct, fire-and-wait delivery."""

    @abstractmethod
    async def send(self, document: LabelDocument, destination_id: str) -> bool:
        """Deliver ``document``; True when the printer accepted it."""


# =============================================================================
# DIRECT SINKS
# =============================================================================

def parse_socket_destination(destination_id: str) -> Tuple[str, int]:
    """Split ``socket://host[:port]`` into (host, port)."""
    parsed = urlparse(destination_id)
    if parsed.scheme != "socket" or not parsed.hostname:
        raise ValueError(f"Not a socket destination: {destination_id}")
    return parsed.hostname, parsed.port or DEFAULT_RAW_PORT


class SocketPrinterSink(PrinterSink):
    """Streams the PDF to a network printer's raw port."""

    def __init__(self, timeout_seconds: float = 10.0):
        self._timeout = timeout_seconds

    async def send(self, document: LabelDocument, destination_id: str) -> bool:
        try:
            await self._transmit(document, destination_id)
        except PrinterUnavailableError as e:
            logger.error(str(e))
            return False
        logger.info(
            f"Sent '{document.job_name}' ({document.page_count} page(s)) to {destination_id}"
        )
        return True

    async def _transmit(self, document: LabelDocument, destination_id: str) -> None:
        try:
            host, port = parse_socket_destination(destination_id)
        except ValueError as e:
            raise PrinterUnavailableError(destination_id, str(e))

        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            raise PrinterUnavailableError(destination_id, f"connect timed out after {self._timeout}s")
        except OSError as e:
            raise PrinterUnavailableError(destination_id, f"connect failed: {e}")

        try:
            writer.write(document.pdf_bytes)
            await asyncio.wait_for(writer.drain(), timeout=self._timeout)
        except (asyncio.TimeoutError, OSError) as e:
            raise PrinterUnavailableError(destination_id, f"send failed: {e!r}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass


_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


class SpoolDirectoryPrinterSink(PrinterSink):
    """
    Writes documents into ``<spool_dir>/<queue>/`` for a spooler to pick up.

    ``file://front-desk`` spools into the ``front-desk`` queue.
    """

    def __init__(self, spool_dir: str):
        self._spool_dir = Path(spool_dir)

    def queue_dir(self, destination_id: str) -> Path:
        parsed = urlparse(destination_id)
        if parsed.scheme != "file":
            raise ValueError(f"Not a file destination: {destination_id}")
        queue = _UNSAFE_NAME.sub("_", (parsed.netloc + parsed.path).strip("/")) or "default"
        return self._spool_dir / queue

    async def send(self, document: LabelDocument, destination_id: str) -> bool:
        try:
            path = await asyncio.to_thread(self._write, document, destination_id)
        except (ValueError, OSError) as e:
            logger.error(str(PrinterUnavailableError(destination_id, str(e))))
            return False
        logger.info(f"Spooled '{document.job_name}' to {path}")
        return True

    def _write(self, document: LabelDocument, destination_id: str) -> Path:
        queue_dir = self.queue_dir(destination_id)
        queue_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
        name = _UNSAFE_NAME.sub("_", document.job_name).strip("_") or "labels"
        path = queue_dir / f"{stamp}-{name}.pdf"
        path.write_bytes(document.pdf_bytes)
        return path


class PrinterSinkRouter(PrinterSink):
    """Dispatches to a sink by destination scheme."""

    def __init__(self, sinks: Dict[str, PrinterSink]):
        self._sinks = dict(sinks)

    def sink_for(self, destination_id: str) -> Optional[PrinterSink]:
        return self._sinks.get(urlparse(destination_id).scheme)

    async def send(self, document: LabelDocument, destination_id: str) -> bool:
        sink = self.sink_for(destination_id)
        if sink is None:
            logger.error(f"No printer sink handles destination '{destination_id}'")
            return False
        return await sink.send(document, destination_id)


# =============================================================================
# INTERACTIVE PREVIEW
# =============================================================================

class PreviewOutcome(Enum):
    """How an interactive print preview ended."""

    PRINTED = "printed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class OneShotResult(Generic[T]):
    """
    Resolve-once bridge from a callback to an awaitable.

    ``resolve`` may be called from any thread, any number of times; only
    the first call sets the value. Must be created inside the event loop
    that will await it.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop or asyncio.get_running_loop()
        self._future: asyncio.Future = self._loop.create_future()
        self._lock = threading.Lock()
        self._resolved = False

    @property
    def resolved(self) -> bool:
        with self._lock:
            return self._resolved

    def resolve(self, value: T) -> bool:
        """Set the result; False when it was already set."""
        with self._lock:
            if self._resolved:
                return False
            self._resolved = True
        self._loop.call_soon_threadsafe(self._set, value)
        return True

    def _set(self, value: T) -> None:
        if not self._future.done():
            self._future.set_result(value)

    async def wait(self) -> T:
        return await self._future


class PreviewSink(ABC):
    """Interactive delivery that can be cancelled by the user."""

    @abstractmethod
    async def present(self, document: LabelDocument, destination_id: Optional[str]) -> PreviewOutcome:
        """Show ``document`` for confirmation and report the outcome."""


PreviewPresenter = Callable[[LabelDocument, Optional[str], Callable[[PreviewOutcome], bool]], None]


class CallbackPreviewSink(PreviewSink):
    """
    Adapts a callback-style preview presenter.

    The presenter receives the document, the destination and a completion
    callback; it may call the callback from any thread, more than once.
    """

    def __init__(self, presenter: PreviewPresenter):
        self._presenter = presenter

    async def present(self, document: LabelDocument, destination_id: Optional[str]) -> PreviewOutcome:
        result: OneShotResult[PreviewOutcome] = OneShotResult()
        try:
            self._presenter(document, destination_id, result.resolve)
        except Exception as e:
            logger.error(f"Print preview could not be shown: {e!r}")
            result.resolve(PreviewOutcome.FAILED)
        return await result.wait()
