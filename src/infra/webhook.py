"""
Webhook event sink.

POSTs every scheduler event to a configured URL in fire-and-forget mode:
each delivery runs on a daemon thread with bounded retries, so a slow or
failing receiver never blocks or fails a scheduler operation.
"""

import logging
import threading
import time
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

# Webhook configuration
WEBHOOK_TIMEOUT_SECONDS = 10
WEBHOOK_MAX_RETRIES = 3
WEBHOOK_RETRY_BASE_DELAY = 1.0  # seconds
WEBHOOK_RETRY_MAX_DELAY = 10.0  # seconds

USER_AGENT = "JobScheduler/1.0"


def build_event_payload(event) -> Dict[str, Any]:
    """Build webhook payload from a scheduler event."""
    return event.to_dict()


def send_event_sync(
    url: str,
    payload: Dict[str, Any],
    timeout: float = WEBHOOK_TIMEOUT_SECONDS,
    max_retries: int = WEBHOOK_MAX_RETRIES,
    base_delay: float = WEBHOOK_RETRY_BASE_DELAY,
) -> tuple[bool, Optional[str]]:
    """
    Send a webhook notification synchronously with retry logic.

    Args:
        url: Webhook URL to POST to
        payload: JSON body
        timeout: Request timeout in seconds
        max_retries: Maximum number of attempts
        base_delay: First backoff delay; doubles per attempt

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    last_error: Optional[str] = None
    event_type = payload.get("event", "unknown")

    for attempt in range(max_retries):
        try:
            with httpx.Client(timeout=timeout) as client:
                response = client.post(
                    url,
                    json=payload,
                    headers={
                        "Content-Type": "application/json",
                        "User-Agent": USER_AGENT,
                        "X-Scheduler-Event": event_type,
                    },
                )

            if 200 <= response.status_code < 300:
                logger.debug(
                    f"Webhook {event_type} delivered to {url} "
                    f"(attempt {attempt + 1}/{max_retries}, status={response.status_code})"
                )
                return True, None

            last_error = f"HTTP {response.status_code}: {response.text[:200]}"
            logger.warning(
                f"Webhook {event_type} failed to {url} "
                f"(attempt {attempt + 1}/{max_retries}): {last_error}"
            )

        except httpx.TimeoutException:
            last_error = f"Timeout after {timeout}s"
            logger.warning(
                f"Webhook {event_type} timeout to {url} "
                f"(attempt {attempt + 1}/{max_retries})"
            )

        except httpx.RequestError as e:
            last_error = f"Request error: {e}"
            logger.warning(
                f"Webhook {event_type} request error to {url} "
                f"(attempt {attempt + 1}/{max_retries}): {e}"
            )

        # Exponential backoff before retry
        if attempt < max_retries - 1:
            delay = min(base_delay * (2 ** attempt), WEBHOOK_RETRY_MAX_DELAY)
            time.sleep(delay)

    logger.error(f"Webhook {event_type} failed after {max_retries} attempts to {url}: {last_error}")
    return False, last_error


class WebhookEventSink:
    """Event sink that POSTs each event to ``url`` on a background thread."""

    def __init__(
        self,
        url: str,
        timeout: float = WEBHOOK_TIMEOUT_SECONDS,
        max_retries: int = WEBHOOK_MAX_RETRIES,
        base_delay: float = WEBHOOK_RETRY_BASE_DELAY,
        background: bool = True,
    ):
        if not url:
            raise ValueError("webhook url is required")
        self.url = url
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.background = background

    def _deliver(self, payload: Dict[str, Any]) -> None:
        send_event_sync(
            self.url,
            payload,
            timeout=self.timeout,
            max_retries=self.max_retries,
            base_delay=self.base_delay,
        )

    def publish(self, event) -> None:
        payload = build_event_payload(event)

        if not self.background:
            self._deliver(payload)
            return

        thread = threading.Thread(
            target=self._deliver,
            args=(payload,),
            name=f"webhook-{event.event_type.value}",
            daemon=True,  # Daemon thread won't prevent process exit
        )
        thread.start()
