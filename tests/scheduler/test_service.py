"""
SchedulerService Tests.

Wiring, configured defaults, status reporting and retention cleanup.
"""

import pytest

from src.infra.settings import SchedulerSettings
from src.infra.webhook import WebhookEventSink
from src.scheduler import (
    CompositeEventSink,
    InMemoryEventSink,
    InvalidSpecError,
    JobOutcome,
    JobStatus,
    NodeRegistration,
    SchedulerService,
)

from .conftest import MockClock


@pytest.fixture
def settings(temp_db_path):
    return SchedulerSettings(
        db_path=temp_db_path,
        max_queue_size=10,
        heartbeat_timeout_seconds=180,
        job_retention_days=30,
        tick_interval_seconds=60,
        default_priority=7,
        default_max_retries=1,
        default_timeout_seconds=120,
        job_types=("ocr", "pdf_parse"),
    )


@pytest.fixture
def clock():
    return MockClock()


@pytest.fixture
def service(settings, clock):
    return SchedulerService.create(settings, event_sink=InMemoryEventSink(), clock=clock)


def run_job_to_completion(service, job_type="ocr"):
    node = service.register_node(NodeRegistration(hostname="worker-1", capabilities=[job_type]))
    job = service.submit_job(job_type)
    service.claim_jobs(node.node_id, capacity=1)
    return service.report_result(job.job_id, node.node_id, JobOutcome.COMPLETED, result={"ok": True})


class TestCreate:

    def test_default_sink_logs_only(self, settings):
        service = SchedulerService.create(settings)
        sink = service.lifecycle.events.sink

        assert isinstance(sink, CompositeEventSink)
        assert not any(isinstance(s, WebhookEventSink) for s in sink.sinks)

    def test_webhook_sink_added_when_url_configured(self, temp_db_path):
        settings = SchedulerSettings(
            db_path=temp_db_path,
            event_webhook_url="http://hooks.example.com/scheduler",
        )

        service = SchedulerService.create(settings)
        webhooks = [s for s in service.lifecycle.events.sink.sinks if isinstance(s, WebhookEventSink)]

        assert len(webhooks) == 1
        assert webhooks[0].url == "http://hooks.example.com/scheduler"

    def test_ticker_uses_configured_interval(self, service):
        assert service.ticker.interval == 60
        assert not service.is_running


class TestSubmitDefaults:

    def test_omitted_fields_take_settings(self, service):
        job = service.submit_job("ocr", submitted_by="alice")

        assert job.priority == 7
        assert job.max_retries == 1
        assert job.timeout_seconds == 120
        assert job.parameters == {}
        assert job.submitted_by == "alice"

    def test_explicit_fields_win(self, service):
        job = service.submit_job("ocr", priority=2, max_retries=0, timeout_seconds=5, tags=["x"])

        assert (job.priority, job.max_retries, job.timeout_seconds, job.tags) == (2, 0, 5, ["x"])

    def test_unconfigured_job_type_rejected(self, service):
        with pytest.raises(InvalidSpecError):
            service.submit_job("render")


class TestCleanup:

    def test_removes_terminal_jobs_past_retention(self, service, clock):
        done = run_job_to_completion(service)
        queued = service.submit_job("ocr")

        clock.tick(31 * 24 * 3600)
        deleted = service.cleanup_old_jobs()

        assert deleted == 1
        jobs, total = service.list_jobs()
        assert [j.job_id for j in jobs] == [queued.job_id]
        assert done.job_id not in {j.job_id for j in jobs}

    def test_recent_jobs_survive(self, service, clock):
        run_job_to_completion(service)

        clock.tick(3600)

        assert service.cleanup_old_jobs() == 0
        assert service.cleanup_old_jobs(retention_days=0) == 1

    def test_negative_retention_rejected(self, service):
        with pytest.raises(InvalidSpecError):
            service.cleanup_old_jobs(retention_days=-1)


class TestStatus:

    def test_status_shape(self, service):
        service.submit_job("ocr", priority=9)
        service.tick()

        status = service.get_status()

        assert status["ticker_running"] is False
        assert status["tick_interval_seconds"] == 60
        assert status["queue"]["queue_size"] == 1
        assert status["queue"]["high_priority"] == 1
        assert status["jobs"][JobStatus.QUEUED.value] == 1
        assert set(status["jobs"]) == {s.value for s in JobStatus}

    def test_tick_through_service_requeues_stalled_job(self, service, clock):
        node = service.register_node(NodeRegistration(hostname="worker-1", capabilities=["ocr"]))
        job = service.submit_job("ocr", timeout_seconds=30)
        service.claim_jobs(node.node_id, capacity=1)

        clock.tick(31)
        stats = service.tick()

        assert stats["jobs_requeued"] == 1
        assert service.get_job(job.job_id).status == JobStatus.QUEUED
