"""
Unit tests for LabelJobService and JobResultStore.

Tests cover:
- Thread-per-job execution with a settings snapshot per run
- Status streams and the single terminal result per attempt
- Reprint of a failed job's confirmed payload
- Crash containment inside a job thread
"""

import threading
from unittest.mock import AsyncMock, Mock

import pytest

from core.retry import RetryPolicy
from models.label import PrintCartItem
from models.print_job import LabelJobRequest
from models.print_result import JobState, PrintErrorKind, PrintJobStatus, PrintResult
from modules.printer_config import PrinterSettingsStore
from services.job_service import (
    JobNotReprintableError,
    JobResultStore,
    LabelJobService,
)
from services.print_orchestrator import PrintJobOrchestrator

from conftest import RecordingSink, SleepRecorder, no_images


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def settings_store():
    """In-memory printer settings with a selected printer."""
    store = PrinterSettingsStore()
    store.update(destination_id="socket://printer:9100")
    return store


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def factory_calls():
    return []


@pytest.fixture
def job_service(registration_client, sink, settings_store, factory_calls):
    """Job service whose orchestrators use the fake backend and recording sink."""

    def factory(settings, on_status, job_logger):
        factory_calls.append(settings)
        return PrintJobOrchestrator(
            registration_client,
            sink,
            settings=settings,
            retry_policy=RetryPolicy(),
            sleep=SleepRecorder(),
            image_loader=no_images,
            on_status=on_status,
            logger=job_logger,
        )

    service = LabelJobService(factory, settings_store)
    yield service
    service.shutdown()


@pytest.fixture
def request_for(sale_context):
    def _make(*items):
        return LabelJobRequest(store_id="store-1", items=tuple(items), sale_context=sale_context)

    return _make


# =============================================================================
# Tests for JobResultStore
# =============================================================================

class TestJobResultStore:
    """Thread-safe record storage."""

    def test_unknown_job(self):
        store = JobResultStore()
        assert store.get("nope") is None
        store.append_status("nope", PrintJobStatus.preparing())
        store.put_result("nope", PrintResult.succeeded(1, 1))
        assert store.get("nope") is None

    def test_get_returns_copy(self):
        store = JobResultStore()
        store.create("job-1", "Labels o")
        store.append_status("job-1", PrintJobStatus.preparing())

        snapshot = store.get("job-1")
        snapshot.statuses.append(PrintJobStatus.sending())

        assert len(store.get("job-1").statuses) == 1

    def test_success_releases_payload(self, make_payload):
        store = JobResultStore()
        store.create("job-1", "Labels o")
        store.put_result("job-1", PrintResult.succeeded(2, 2, payload=make_payload(2)))

        record = store.get("job-1")
        assert record.payload is None
        assert record.result.payload is None
        assert not record.can_reprint

    def test_failure_keeps_payload(self, make_payload):
        store = JobResultStore()
        store.create("job-1", "Labels o")
        payload = make_payload(2)
        store.put_result(
            "job-1",
            PrintResult.failed(PrintErrorKind.PRINTER_UNAVAILABLE, qr_codes_registered=2, payload=payload),
        )

        record = store.get("job-1")
        assert record.payload is payload
        assert record.can_reprint

    def test_render_failure_releases_payload(self, make_payload):
        store = JobResultStore()
        store.create("job-1", "Labels o")
        store.put_result(
            "job-1",
            PrintResult.failed(PrintErrorKind.RENDER_ERROR, "Label 1", qr_codes_registered=2, payload=make_payload(2)),
        )

        record = store.get("job-1")
        assert record.payload is None
        assert not record.can_reprint
        assert record.to_dict()["can_reprint"] is False
        assert record.result.to_dict()["can_reprint"] is False

    def test_begin_attempt_resets_result(self):
        store = JobResultStore()
        store.create("job-1", "Labels o")
        store.put_result("job-1", PrintResult.failed(PrintErrorKind.NETWORK_ERROR))
        store.begin_attempt("job-1")

        record = store.get("job-1")
        assert record.result is None
        assert record.attempts == 1

    def test_clear(self):
        store = JobResultStore()
        store.create("a", "A")
        store.create("b", "B")
        assert store.clear() == 2
        assert store.get("a") is None


# =============================================================================
# Tests for LabelJobService
# =============================================================================

class TestSubmit:
    """Background execution."""

    def test_job_runs_to_completion(self, job_service, request_for, sink):
        job_id = job_service.submit(request_for(PrintCartItem("prod-1", 2)))

        record = job_service.wait(job_id, timeout=30)

        assert record.result.success
        assert record.result.items_printed == 2
        assert record.latest_status.state is JobState.COMPLETED
        assert record.attempts == 1
        assert record.job_name == "Labels order-1"
        assert not job_service.is_job_pending(job_id)
        assert len(sink.sent) == 1

    def test_custom_job_id(self, job_service, request_for):
        job_id = job_service.submit(request_for(PrintCartItem("prod-1", 1)), job_id="fixed-job-id")
        assert job_id == "fixed-job-id"
        assert job_service.wait(job_id, timeout=30).result.success

    def test_empty_job_ends_with_no_items(self, job_service, request_for, fake_backend):
        job_id = job_service.submit(request_for())
        record = job_service.wait(job_id, timeout=30)

        assert record.result.kind is PrintErrorKind.NO_ITEMS
        assert [s.state for s in record.statuses] == [JobState.PREPARING, JobState.FAILED]
        assert fake_backend.prepare_calls == []

    def test_settings_snapshot_taken_at_start(self, job_service, request_for, settings_store, factory_calls):
        job_id = job_service.submit(request_for(PrintCartItem("prod-1", 1)))
        job_service.wait(job_id, timeout=30)
        settings_store.update(start_position=5)

        assert factory_calls[0].start_position == 0
        assert settings_store.snapshot().start_position == 5

    def test_concurrent_jobs_are_isolated(self, job_service, request_for, sink):
        job_ids = [job_service.submit(request_for(PrintCartItem("prod-1", n + 1))) for n in range(4)]

        results = [job_service.wait(job_id, timeout=60).result for job_id in job_ids]

        assert all(result.success for result in results)
        assert sorted(result.items_printed for result in results) == [1, 2, 3, 4]
        assert len(sink.sent) == 4

    def test_crash_becomes_single_result(self, settings_store, request_for):
        def factory(settings, on_status, job_logger):
            orchestrator = Mock()
            orchestrator.run.side_effect = RuntimeError("boom")
            return orchestrator

        service = LabelJobService(factory, settings_store)
        job_id = service.submit(request_for(PrintCartItem("prod-1", 1)))
        record = service.wait(job_id, timeout=30)

        assert record.result.kind is PrintErrorKind.RENDER_ERROR
        assert "boom" in record.result.detail

    def test_job_thread_is_named(self, settings_store, request_for):
        seen = []

        def factory(settings, on_status, job_logger):
            seen.append((threading.current_thread().name, job_logger.name))
            raise RuntimeError("stop here")

        service = LabelJobService(factory, settings_store)
        job_id = service.submit(request_for(PrintCartItem("prod-1", 1)), job_id="abcdef123456")
        service.wait(job_id, timeout=30)

        assert seen == [("Job-abcdef12", "label_print.job.abcdef12")]


class TestReprint:
    """Reprinting a failed job's confirmed payload."""

    def test_reprint_after_printer_failure(self, job_service, request_for, sink, fake_backend):
        sink.accept = False
        job_id = job_service.submit(request_for(PrintCartItem("prod-1", 3)))
        failed = job_service.wait(job_id, timeout=30)

        assert failed.result.kind is PrintErrorKind.PRINTER_UNAVAILABLE
        assert failed.result.qr_codes_registered == 3
        assert failed.can_reprint

        sink.accept = True
        job_service.reprint(job_id)
        record = job_service.wait(job_id, timeout=30)

        assert record.result.success
        assert record.result.qr_codes_registered == 3
        assert record.attempts == 2
        assert record.payload is None
        assert len(fake_backend.prepare_calls) == 1
        assert len(sink.sent) == 2

    def test_reprint_to_other_destination(self, job_service, request_for, sink):
        sink.accept = False
        job_id = job_service.submit(request_for(PrintCartItem("prod-1", 1)))
        job_service.wait(job_id, timeout=30)

        sink.accept = True
        job_service.reprint(job_id, "file://back-office")
        job_service.wait(job_id, timeout=30)

        assert sink.sent[-1][1] == "file://back-office"

    def test_unknown_job(self, job_service):
        with pytest.raises(KeyError):
            job_service.reprint("missing")

    def test_successful_job_cannot_be_reprinted(self, job_service, request_for):
        job_id = job_service.submit(request_for(PrintCartItem("prod-1", 1)))
        job_service.wait(job_id, timeout=30)

        with pytest.raises(JobNotReprintableError):
            job_service.reprint(job_id)

    def test_registration_failure_cannot_be_reprinted(self, job_service, request_for):
        job_id = job_service.submit(request_for())
        job_service.wait(job_id, timeout=30)

        with pytest.raises(JobNotReprintableError):
            job_service.reprint(job_id)

    def test_render_failure_cannot_be_reprinted(self, settings_store, request_for, make_payload):
        failure = PrintResult.failed(
            PrintErrorKind.RENDER_ERROR, "Label 1", qr_codes_registered=2, payload=make_payload(2)
        )

        def factory(settings, on_status, job_logger):
            orchestrator = Mock()
            orchestrator.run = AsyncMock(return_value=failure)
            return orchestrator

        service = LabelJobService(factory, settings_store)
        job_id = service.submit(request_for(PrintCartItem("prod-1", 2)))
        record = service.wait(job_id, timeout=30)

        assert record.result.kind is PrintErrorKind.RENDER_ERROR
        assert not record.can_reprint
        with pytest.raises(JobNotReprintableError):
            service.reprint(job_id)

    def test_concurrent_reprints_deliver_once(self, job_service, request_for, sink, fake_backend):
        sink.accept = False
        job_id = job_service.submit(request_for(PrintCartItem("prod-1", 2)))
        job_service.wait(job_id, timeout=30)
        sink.accept = True

        barrier = threading.Barrier(2)
        outcomes = []

        def request_reprint():
            barrier.wait()
            try:
                job_service.reprint(job_id)
                outcomes.append("started")
            except JobNotReprintableError:
                outcomes.append("rejected")

        callers = [threading.Thread(target=request_reprint) for _ in range(2)]
        for caller in callers:
            caller.start()
        for caller in callers:
            caller.join()
        record = job_service.wait(job_id, timeout=30)

        assert sorted(outcomes) == ["rejected", "started"]
        assert record.result.success
        assert record.attempts == 2
        assert len(sink.sent) == 2
        assert len(fake_backend.prepare_calls) == 1
