"""
Infrastructure module - settings, logging, and event delivery.
"""

from .logging_config import setup_logging
from .settings import SchedulerSettings, get_project_root
from .webhook import WebhookEventSink, send_event_sync

__all__ = [
    # logging
    "setup_logging",
    # settings
    "SchedulerSettings",
    "get_project_root",
    # webhook
    "WebhookEventSink",
    "send_event_sync",
]
