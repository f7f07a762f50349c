"""Tests for the webhook event sink."""

import threading
from unittest.mock import MagicMock, patch

import httpx
import pytest

from src.infra.webhook import (
    USER_AGENT,
    WEBHOOK_MAX_RETRIES,
    WEBHOOK_RETRY_MAX_DELAY,
    WebhookEventSink,
    build_event_payload,
    send_event_sync,
)
from src.scheduler import EventType, SchedulerEvent


WEBHOOK_URL = "https://example.com/scheduler-events"


@pytest.fixture
def sample_event():
    return SchedulerEvent(
        event_type=EventType.JOB_RESULT,
        entity_id="job-123",
        payload={"job_id": "job-123", "status": "COMPLETED"},
        occurred_at="2026-01-05T12:00:00.000000Z",
    )


@pytest.fixture
def mock_client():
    """Patch httpx.Client so each ``with`` block yields the same mock."""
    with patch("src.infra.webhook.httpx.Client") as client_cls:
        client = MagicMock()
        client_cls.return_value.__enter__.return_value = client
        yield client


@pytest.fixture
def no_sleep():
    with patch("src.infra.webhook.time.sleep") as sleep:
        yield sleep


def response(status_code: int, text: str = "") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = text
    return resp


class TestBuildEventPayload:

    def test_payload_is_event_dict(self, sample_event):
        payload = build_event_payload(sample_event)

        assert payload == {
            "event": "JobResult",
            "entity_id": "job-123",
            "payload": {"job_id": "job-123", "status": "COMPLETED"},
            "occurred_at": "2026-01-05T12:00:00.000000Z",
        }


class TestSendEventSync:

    def test_success(self, sample_event, mock_client, no_sleep):
        mock_client.post.return_value = response(200)

        success, error = send_event_sync(WEBHOOK_URL, build_event_payload(sample_event))

        assert success is True
        assert error is None
        args, kwargs = mock_client.post.call_args
        assert args[0] == WEBHOOK_URL
        assert kwargs["headers"]["X-Scheduler-Event"] == "JobResult"
        assert kwargs["headers"]["User-Agent"] == USER_AGENT
        no_sleep.assert_not_called()

    def test_retries_then_succeeds(self, sample_event, mock_client, no_sleep):
        mock_client.post.side_effect = [response(503, "busy"), response(204)]

        success, error = send_event_sync(WEBHOOK_URL, build_event_payload(sample_event))

        assert success is True
        assert mock_client.post.call_count == 2
        no_sleep.assert_called_once_with(1.0)

    def test_gives_up_after_max_retries(self, sample_event, mock_client, no_sleep):
        mock_client.post.return_value = response(500, "boom")

        success, error = send_event_sync(WEBHOOK_URL, build_event_payload(sample_event))

        assert success is False
        assert error == "HTTP 500: boom"
        assert mock_client.post.call_count == WEBHOOK_MAX_RETRIES
        assert [c.args[0] for c in no_sleep.call_args_list] == [1.0, 2.0]

    def test_timeout_and_request_errors(self, sample_event, mock_client, no_sleep):
        mock_client.post.side_effect = [
            httpx.TimeoutException("slow"),
            httpx.ConnectError("refused"),
        ]

        success, error = send_event_sync(
            WEBHOOK_URL, build_event_payload(sample_event), max_retries=2
        )

        assert success is False
        assert error.startswith("Request error")

    def test_backoff_is_capped(self, sample_event, mock_client, no_sleep):
        mock_client.post.return_value = response(500)

        send_event_sync(WEBHOOK_URL, build_event_payload(sample_event), max_retries=4, base_delay=8.0)

        assert all(c.args[0] <= WEBHOOK_RETRY_MAX_DELAY for c in no_sleep.call_args_list)


class TestWebhookEventSink:

    def test_requires_url(self):
        with pytest.raises(ValueError):
            WebhookEventSink("")

    def test_foreground_delivery(self, sample_event, mock_client, no_sleep):
        mock_client.post.return_value = response(200)
        sink = WebhookEventSink(WEBHOOK_URL, background=False)

        sink.publish(sample_event)

        assert mock_client.post.call_args.kwargs["json"]["entity_id"] == "job-123"

    def test_background_delivery_does_not_block(self, sample_event):
        delivered = threading.Event()
        sink = WebhookEventSink(WEBHOOK_URL)

        with patch("src.infra.webhook.send_event_sync", side_effect=lambda *a, **kw: delivered.set()):
            sink.publish(sample_event)
            assert delivered.wait(timeout=5)

    def test_failed_delivery_does_not_raise(self, sample_event, mock_client, no_sleep):
        mock_client.post.side_effect = httpx.ConnectError("refused")
        sink = WebhookEventSink(WEBHOOK_URL, background=False, max_retries=1)

        sink.publish(sample_event)
