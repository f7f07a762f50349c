"""
Logging configuration module.

Daily log rotation with process start time tracking.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

APP_LOGGER_NAME = "job_scheduler"

# Module loggers live under the ``src`` package namespace
PACKAGE_LOGGER_NAME = "src"

LOG_FILE_PREFIX = "scheduler"

# Process start time is captured once and reused for all daily logs
_PROCESS_START_TIME: Optional[str] = None


class DailyRotatingFileHandler(logging.FileHandler):
    """
    Daily rotating file handler.

    Creates one log file per calendar day with format:
    <log_dir>/<prefix>_YYYYMMDD_<START_HHMMSS>.log

    START_HHMMSS is fixed at process start, only YYYYMMDD changes.
    """

    def __init__(self, log_dir: str = "logs", prefix: str = LOG_FILE_PREFIX, encoding: str = "utf-8"):
        global _PROCESS_START_TIME

        self.prefix = prefix
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        if _PROCESS_START_TIME is None:
            _PROCESS_START_TIME = datetime.now().strftime("%H%M%S")

        self._start_hhmmss = _PROCESS_START_TIME
        self._current_date: Optional[str] = None

        super().__init__(self._get_current_log_path(), mode="a", encoding=encoding)
        self._current_date = datetime.now().strftime("%Y%m%d")

    def _get_current_log_path(self) -> str:
        """Get log file path for current date."""
        date_str = datetime.now().strftime("%Y%m%d")
        return str(self.log_dir / f"{self.prefix}_{date_str}_{self._start_hhmmss}.log")

    def emit(self, record: logging.LogRecord) -> None:
        """Emit a record, rotating to new file if date changed."""
        current_date = datetime.now().strftime("%Y%m%d")

        if self._current_date != current_date:
            self.close()
            self.baseFilename = self._get_current_log_path()
            self._current_date = current_date
            self.stream = self._open()

        super().emit(record)


def _configure(logger: logging.Logger, level: int, handlers: list) -> None:
    logger.setLevel(level)
    # Prevent propagation to root logger (avoid duplicate logs)
    logger.propagate = False
    if logger.handlers:
        logger.handlers.clear()
    for handler in handlers:
        logger.addHandler(handler)


def setup_logging(log_level: str = "INFO", log_dir: str = "logs") -> logging.Logger:
    """
    Configure logging and return the application logger.

    The same console and daily-rotating file handlers are attached to the
    application logger and to the package logger that every scheduler
    module logs under, so calling this again replaces rather than
    duplicates them.

    Format: <log_dir>/scheduler_YYYYMMDD_<START_HHMMSS>.log

    Args:
        log_level (str): Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir (str): Directory for log files

    Returns:
        logging.Logger: Configured application logger
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    console_handler = logging.StreamHandler()
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)

    file_handler = DailyRotatingFileHandler(log_dir=log_dir, encoding="utf-8")
    file_handler.setLevel(numeric_level)
    file_handler.setFormatter(formatter)

    handlers = [console_handler, file_handler]
    logger = logging.getLogger(APP_LOGGER_NAME)
    _configure(logger, numeric_level, handlers)
    _configure(logging.getLogger(PACKAGE_LOGGER_NAME), numeric_level, handlers)

    logger.info(f"Logging started - level: {log_level}, log file: {file_handler.baseFilename}")

    return logger
