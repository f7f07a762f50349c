"""
Tests for scheduler settings loaded from the environment.
"""

import logging
import os
from unittest.mock import patch

import pytest

from src.infra.settings import SchedulerSettings, get_project_root


SETTINGS_ENV_VARS = (
    "SCHEDULER_DB_PATH",
    "MAX_QUEUE_SIZE",
    "HEARTBEAT_TIMEOUT_SECONDS",
    "JOB_RETENTION_DAYS",
    "TICK_INTERVAL_SECONDS",
    "DEFAULT_PRIORITY",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_TIMEOUT_SECONDS",
    "JOB_TYPES",
    "LOG_LEVEL",
    "LOG_DIR",
    "EVENT_WEBHOOK_URL",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Clear scheduler variables and point .env loading at an empty file."""
    dotenv = tmp_path / ".env"
    dotenv.write_text("")
    # load_dotenv writes into os.environ; patch.dict undoes that too
    with patch.dict(os.environ):
        for key in SETTINGS_ENV_VARS:
            monkeypatch.delenv(key, raising=False)
        yield dotenv


class TestDefaults:

    def test_defaults(self, clean_env):
        settings = SchedulerSettings.from_env(clean_env)

        assert settings.max_queue_size == 1000
        assert settings.heartbeat_timeout_seconds == 180.0
        assert settings.job_retention_days == 30
        assert settings.tick_interval_seconds == 15.0
        assert settings.default_priority == 5
        assert settings.default_max_retries == 3
        assert settings.default_timeout_seconds == 3600
        assert settings.job_types == ("ocr", "pdf_parse")
        assert settings.log_level == "INFO"
        assert settings.event_webhook_url is None
        assert settings.db_path == str(get_project_root() / "data" / "scheduler.db")

    def test_settings_are_immutable(self):
        settings = SchedulerSettings()

        with pytest.raises(AttributeError):
            settings.max_queue_size = 5


class TestFromEnv:

    def test_reads_environment(self, clean_env, monkeypatch):
        monkeypatch.setenv("SCHEDULER_DB_PATH", "/var/lib/scheduler/jobs.db")
        monkeypatch.setenv("MAX_QUEUE_SIZE", "50")
        monkeypatch.setenv("HEARTBEAT_TIMEOUT_SECONDS", "45.5")
        monkeypatch.setenv("JOB_TYPES", " ocr , render,,pdf_parse ")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("EVENT_WEBHOOK_URL", "http://hooks.local/events")

        settings = SchedulerSettings.from_env(clean_env)

        assert settings.db_path == "/var/lib/scheduler/jobs.db"
        assert settings.max_queue_size == 50
        assert settings.heartbeat_timeout_seconds == 45.5
        assert settings.job_types == ("ocr", "render", "pdf_parse")
        assert settings.log_level == "DEBUG"
        assert settings.event_webhook_url == "http://hooks.local/events"

    def test_dotenv_file_is_loaded(self, clean_env):
        clean_env.write_text("MAX_QUEUE_SIZE=7\nDEFAULT_PRIORITY=9\n")

        settings = SchedulerSettings.from_env(clean_env)

        assert settings.max_queue_size == 7
        assert settings.default_priority == 9

    def test_environment_wins_over_dotenv(self, clean_env, monkeypatch):
        clean_env.write_text("MAX_QUEUE_SIZE=7\n")
        monkeypatch.setenv("MAX_QUEUE_SIZE", "99")

        assert SchedulerSettings.from_env(clean_env).max_queue_size == 99

    def test_invalid_numbers_fall_back(self, clean_env, monkeypatch, caplog):
        monkeypatch.setenv("MAX_QUEUE_SIZE", "lots")
        monkeypatch.setenv("TICK_INTERVAL_SECONDS", "soon")

        with caplog.at_level(logging.WARNING, logger="job_scheduler"):
            settings = SchedulerSettings.from_env(clean_env)

        assert settings.max_queue_size == 1000
        assert settings.tick_interval_seconds == 15.0
        assert "MAX_QUEUE_SIZE" in caplog.text

    def test_blank_job_types_fall_back(self, clean_env, monkeypatch):
        monkeypatch.setenv("JOB_TYPES", " , ")

        assert SchedulerSettings.from_env(clean_env).job_types == ("ocr", "pdf_parse")

    def test_empty_webhook_url_is_unset(self, clean_env, monkeypatch):
        monkeypatch.setenv("EVENT_WEBHOOK_URL", "")

        assert SchedulerSettings.from_env(clean_env).event_webhook_url is None
