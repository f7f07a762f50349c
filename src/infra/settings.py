"""
Scheduler configuration.

Values come from environment variables, optionally seeded from a ``.env``
file. They are read once into an immutable ``SchedulerSettings`` that is
passed explicitly to the service.

Environment Variables:
- SCHEDULER_DB_PATH: SQLite database file (default: data/scheduler.db)
- MAX_QUEUE_SIZE: Admission queue capacity (default: 1000)
- HEARTBEAT_TIMEOUT_SECONDS: Node liveness timeout (default: 180)
- JOB_RETENTION_DAYS: Retention window for terminal jobs (default: 30)
- TICK_INTERVAL_SECONDS: Supervisor tick period (default: 15)
- DEFAULT_PRIORITY / DEFAULT_MAX_RETRIES / DEFAULT_TIMEOUT_SECONDS
- JOB_TYPES: Comma-separated recognised job types (default: ocr,pdf_parse)
- LOG_LEVEL: Logging level (default: INFO)
- LOG_DIR: Log file directory (default: logs)
- EVENT_WEBHOOK_URL: POST lifecycle events to this URL (default: unset)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger("job_scheduler")


DEFAULT_JOB_TYPES = ("ocr", "pdf_parse")


def get_project_root() -> Path:
    """
    Get the project root directory.

    File is at src/infra/settings.py, so project root is 2 levels up.
    """
    return Path(__file__).parent.parent.parent.resolve()


def _get_env_int(key: str, default: int) -> int:
    """Get integer value from environment variable."""
    val = os.getenv(key)
    if val is not None:
        try:
            return int(val)
        except ValueError:
            logger.warning(f"[Settings] Invalid integer for {key}: {val}, using default: {default}")
    return default


def _get_env_float(key: str, default: float) -> float:
    """Get float value from environment variable."""
    val = os.getenv(key)
    if val is not None:
        try:
            return float(val)
        except ValueError:
            logger.warning(f"[Settings] Invalid number for {key}: {val}, using default: {default}")
    return default


def _get_env_list(key: str, default: tuple) -> tuple:
    """Get comma-separated values from environment variable."""
    val = os.getenv(key)
    if val is None:
        return default
    items = tuple(item.strip() for item in val.split(",") if item.strip())
    return items or default


@dataclass(frozen=True)
class SchedulerSettings:
    """Externally configured values read by the scheduler."""

    db_path: str = str(get_project_root() / "data" / "scheduler.db")
    max_queue_size: int = 1000
    heartbeat_timeout_seconds: float = 180.0
    job_retention_days: int = 30
    tick_interval_seconds: float = 15.0
    default_priority: int = 5
    default_max_retries: int = 3
    default_timeout_seconds: int = 3600
    job_types: tuple = DEFAULT_JOB_TYPES
    log_level: str = "INFO"
    log_dir: str = "logs"
    event_webhook_url: Optional[str] = None

    @classmethod
    def from_env(cls, dotenv_path: Optional[str | Path] = None) -> "SchedulerSettings":
        """
        Build settings from the environment.

        A ``.env`` file is loaded first if present; variables already set
        in the environment take precedence over it.
        """
        load_dotenv(dotenv_path=dotenv_path)

        defaults = cls()
        return cls(
            db_path=os.getenv("SCHEDULER_DB_PATH", defaults.db_path),
            max_queue_size=_get_env_int("MAX_QUEUE_SIZE", defaults.max_queue_size),
            heartbeat_timeout_seconds=_get_env_float(
                "HEARTBEAT_TIMEOUT_SECONDS", defaults.heartbeat_timeout_seconds
            ),
            job_retention_days=_get_env_int("JOB_RETENTION_DAYS", defaults.job_retention_days),
            tick_interval_seconds=_get_env_float(
                "TICK_INTERVAL_SECONDS", defaults.tick_interval_seconds
            ),
            default_priority=_get_env_int("DEFAULT_PRIORITY", defaults.default_priority),
            default_max_retries=_get_env_int("DEFAULT_MAX_RETRIES", defaults.default_max_retries),
            default_timeout_seconds=_get_env_int(
                "DEFAULT_TIMEOUT_SECONDS", defaults.default_timeout_seconds
            ),
            job_types=_get_env_list("JOB_TYPES", defaults.job_types),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
            log_dir=os.getenv("LOG_DIR", defaults.log_dir),
            event_webhook_url=os.getenv("EVENT_WEBHOOK_URL") or None,
        )
