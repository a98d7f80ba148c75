"""
Label job service with thread-per-job architecture.

Each submitted label job runs in its own thread with its own event loop
(asyncio.run of the print orchestrator) - complete isolation between jobs.

THREAD ISOLATION:
    - Each job thread builds its OWN orchestrator and printer settings snapshot
    - Job threads do NOT share mutable state with each other
    - JobResultStore is the ONLY communication channel back to the Flask thread

Thread Safety:
    - LabelJobRequest and PrintPayload are frozen - safe to pass to job threads
    - JobResultStore uses threading.Lock for all access

Flow:
    1. Flask thread builds a LabelJobRequest (immutable)
    2. Flask thread calls job_service.submit(request)
    3. Job thread snapshots printer settings, runs the orchestrator
    4. Every status transition is appended to the JobResultStore
    5. Flask thread polls job_service.get_job(job_id)
    6. If delivery failed, job_service.reprint(job_id) prints the SAME
       confirmed payload again - no new codes are registered

Usage:
    # At app startup
    job_service = LabelJobService(orchestrator_factory, settings_store)

    # On submission (Flask thread)
    job_id = job_service.submit(request)

    # Polling (Flask thread)
    record = job_service.get_job(job_id)
    if record and record.result:
        ...

    # At app shutdown
    job_service.shutdown()
"""

from __future__ import annotations

import asyncio
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from models.label import PrintPayload
from models.print_job import LabelJobRequest, PrinterSettings
from models.print_result import PrintErrorKind, PrintJobStatus, PrintResult
from modules.printer_config import PrinterSettingsStore
from services.print_orchestrator import PrintJobOrchestrator, StatusCallback
from logging_config import get_logger, get_job_logger, set_thread_name


# Module logger
logger = get_logger(__name__)


OrchestratorFactory = Callable[[PrinterSettings, StatusCallback, Any], PrintJobOrchestrator]
"""(settings snapshot, status callback, job logger) -> orchestrator for one run."""


@dataclass
class JobRecord:
    """
    Everything the Flask thread can see about one job.

    Mutated only by JobResultStore under its lock; readers get copies.
    """

    job_id: str
    job_name: str
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    statuses: List[PrintJobStatus] = field(default_factory=list)
    result: Optional[PrintResult] = None
    payload: Optional[PrintPayload] = None
    """Confirmed payload kept while the latest result is reprintable."""

    attempts: int = 0
    """Physical print attempts (first run + reprints)."""

    @property
    def latest_status(self) -> Optional[PrintJobStatus]:
        return self.statuses[-1] if self.statuses else None

    @property
    def is_finished(self) -> bool:
        return self.result is not None

    @property
    def can_reprint(self) -> bool:
        return self.payload is not None and self.result is not None and self.result.can_reprint

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON responses."""
        latest = self.latest_status
        return {
            "job_id": self.job_id,
            "job_name": self.job_name,
            "submitted_at": self.submitted_at.isoformat(),
            "state": latest.state.value if latest else None,
            "statuses": [status.to_dict() for status in self.statuses],
            "result": self.result.to_dict() if self.result else None,
            "can_reprint": self.can_reprint,
            "attempts": self.attempts,
        }


class JobResultStore:
    """
    Thread-safe storage for job status streams and results.

    This is the ONLY communication channel between job threads and the
    Flask thread. Job threads WRITE statuses and results here; the Flask
    thread READS copies.

    Unlike a consume-once queue, records stay until cleared: a job whose
    delivery failed must stay addressable for reprint.
    """

    def __init__(self):
        """Initialize empty result store."""
        self._records: Dict[str, JobRecord] = {}
        self._lock = threading.Lock()

    def create(self, job_id: str, job_name: str) -> None:
        with self._lock:
            self._records[job_id] = JobRecord(job_id=job_id, job_name=job_name)

    def append_status(self, job_id: str, status: PrintJobStatus) -> None:
        """Record a status transition (called by job thread)."""
        with self._lock:
            record = self._records.get(job_id)
            if record is None:
                return
            record.statuses.append(status)
            logger.debug(f"Job {job_id[:8]} -> {status.state.value}")

    def begin_attempt(self, job_id: str) -> None:
        """Reset the terminal result before a (re)print attempt."""
        with self._lock:
            record = self._records.get(job_id)
            if record is not None:
                record.result = None
                record.attempts += 1

    def put_result(self, job_id: str, result: PrintResult) -> None:
        """
        Store a job's terminal result (called by job thread).

        Keeps the confirmed payload only while the result allows a reprint
        (printer failure or cancellation); any other outcome releases it.
        """
        with self._lock:
            record = self._records.get(job_id)
            if record is None:
                return
            if result.success:
                result = replace(result, payload=None)
            record.payload = result.payload if result.can_reprint else None
            record.result = result
            logger.debug(f"Stored result for job {job_id[:8]}: {result.message}")

    def get(self, job_id: str) -> Optional[JobRecord]:
        """Snapshot of a job's record, or None when unknown."""
        with self._lock:
            record = self._records.get(job_id)
            if record is None:
                return None
            return replace(record, statuses=list(record.statuses))

    def clear(self) -> int:
        """
        Remove all stored records.

        Returns:
            Number of records removed
        """
        with self._lock:
            count = len(self._records)
            self._records.clear()
            logger.info(f"Cleared {count} job records from store")
            return count


class JobNotReprintableError(Exception):
    """A reprint was requested for a job with no confirmed payload to print."""


class LabelJobService:
    """
    Service for running label jobs in background threads.

    Creates one thread per job (and per reprint). Each thread:
    1. Takes a snapshot of the printer settings
    2. Builds its own orchestrator through the factory
    3. Runs the orchestrator on a fresh event loop
    4. Stores statuses and the result in JobResultStore

    Attributes:
        result_store: JobResultStore for reading job records
    """

    def __init__(
        self,
        orchestrator_factory: OrchestratorFactory,
        settings_store: PrinterSettingsStore,
    ):
        """
        Initialize job service.

        Args:
            orchestrator_factory: Builds an orchestrator for one run
            settings_store: Process-wide printer settings
        """
        self._factory = orchestrator_factory
        self._settings_store = settings_store
        self._result_store = JobResultStore()

        # Track active job threads for cleanup
        self._active_threads: Dict[str, threading.Thread] = {}
        self._threads_lock = threading.Lock()

        logger.info("LabelJobService initialized")

    @property
    def result_store(self) -> JobResultStore:
        """Access the job result store for reading results."""
        return self._result_store

    def submit(self, request: LabelJobRequest, job_id: Optional[str] = None) -> str:
        """
        Submit a label job for background processing.

        Args:
            request: Immutable job description
            job_id: Optional job ID (generated if not provided)

        Returns:
            job_id (UUID string)

        Note:
            This returns immediately. Poll get_job(job_id) for progress.
        """
        if job_id is None:
            job_id = str(uuid.uuid4())

        logger.info(
            f"Submitting job {job_id[:8]} for '{request.job_name}' ({request.total_units} label(s))"
        )
        self._result_store.create(job_id, request.job_name)
        with self._threads_lock:
            self._start_thread_locked(job_id, self._run_job, request)
        return job_id

    def reprint(self, job_id: str, destination_id: Optional[str] = None) -> str:
        """
        Print a failed job's confirmed payload again.

        Raises:
            KeyError: unknown job
            JobNotReprintableError: job still running, succeeded, or never registered codes
        """
        # Check and claim in one step: concurrent reprints of the same job
        # must not print the same codes twice
        with self._threads_lock:
            record = self._result_store.get(job_id)
            if record is None:
                raise KeyError(job_id)
            if job_id in self._active_threads:
                raise JobNotReprintableError(f"Job {job_id[:8]} is still running")
            if not record.can_reprint:
                raise JobNotReprintableError(f"Job {job_id[:8]} has no confirmed labels to reprint")

            logger.info(f"Reprinting job {job_id[:8]} ({len(record.payload.items)} label(s))")
            self._start_thread_locked(job_id, self._run_reprint, record.payload, destination_id)
        return job_id

    def get_job(self, job_id: str) -> Optional[JobRecord]:
        """Current record for ``job_id`` (None when unknown)."""
        return self._result_store.get(job_id)

    def is_job_pending(self, job_id: str) -> bool:
        """
        Check if a job is still being processed.

        Args:
            job_id: UUID of the job

        Returns:
            True if job thread is still running
        """
        with self._threads_lock:
            thread = self._active_threads.get(job_id)
            return thread is not None and thread.is_alive()

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[JobRecord]:
        """Block until the job's thread exits (used by tests and CLI callers)."""
        with self._threads_lock:
            thread = self._active_threads.get(job_id)
        if thread is not None:
            thread.join(timeout=timeout)
        return self.get_job(job_id)

    def shutdown(self, timeout_per_thread: float = 5.0) -> None:
        """
        Wait for all active job threads to complete.

        Call this during application shutdown.

        Args:
            timeout_per_thread: Max seconds to wait per thread
        """
        with self._threads_lock:
            active = list(self._active_threads.items())

        if not active:
            logger.info("No active job threads to wait for")
            return

        logger.info(f"Waiting for {len(active)} job threads to complete...")

        for job_id, thread in active:
            if thread.is_alive():
                thread.join(timeout=timeout_per_thread)
                if thread.is_alive():
                    logger.warning(f"Job thread {job_id[:8]} did not complete in time")

        logger.info("Job service shutdown complete")

    # =========================================================================
    # JOB THREADS
    # =========================================================================

    def _start_thread_locked(self, job_id: str, target: Callable[..., None], *args: Any) -> None:
        """Register and start a job thread. Caller holds ``_threads_lock``."""
        self._result_store.begin_attempt(job_id)
        thread = threading.Thread(
            target=self._thread_main,
            args=(job_id, target) + args,
            name=f"Job-{job_id[:8]}",
            daemon=True,
        )
        self._active_threads[job_id] = thread
        thread.start()

    def _thread_main(self, job_id: str, target: Callable[..., None], *args: Any) -> None:
        """
        Entry point of every job thread.

        Whatever happens inside, exactly one result is stored for the attempt.
        """
        set_thread_name(f"Job-{job_id[:8]}")
        job_logger = get_job_logger(job_id)
        job_logger.info("Job thread starting")

        result: Optional[PrintResult] = None
        try:
            result = target(job_id, job_logger, *args)
            job_logger.info(f"Job finished: {result.message}")
        except Exception as e:
            job_logger.exception(f"Job crashed: {e}")
            result = PrintResult.failed(PrintErrorKind.RENDER_ERROR, f"Unexpected error: {e}")
        finally:
            if result is not None:
                self._result_store.put_result(job_id, result)

            with self._threads_lock:
                if self._active_threads.get(job_id) is threading.current_thread():
                    del self._active_threads[job_id]

            job_logger.info("Job thread exiting")

    def _build_orchestrator(self, job_id: str, job_logger) -> PrintJobOrchestrator:
        # =====================================================================
        # Settings are read ONCE, here, for the whole run
        # =====================================================================
        settings = self._settings_store.snapshot()
        job_logger.debug(
            f"Printer settings snapshot: destination={settings.destination_id}, "
            f"start_position={settings.start_position}"
        )
        return self._factory(
            settings,
            lambda status: self._result_store.append_status(job_id, status),
            job_logger,
        )

    def _run_job(self, job_id: str, job_logger, request: LabelJobRequest) -> PrintResult:
        orchestrator = self._build_orchestrator(job_id, job_logger)
        return asyncio.run(orchestrator.run(request))

    def _run_reprint(
        self,
        job_id: str,
        job_logger,
        payload: PrintPayload,
        destination_id: Optional[str],
    ) -> PrintResult:
        orchestrator = self._build_orchestrator(job_id, job_logger)
        return asyncio.run(orchestrator.deliver(payload, destination_id))
