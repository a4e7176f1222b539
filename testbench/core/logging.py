"""Structured logging for testbench.

Provides JSON-formatted logs with file and console output.
"""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional
from logging.handlers import RotatingFileHandler


_FIELD_NAMES = ["component", "project", "duration_ms", "success"]


class JSONFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in _FIELD_NAMES:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        return json.dumps(log_data, default=str)


class ColoredFormatter(logging.Formatter):
    """Colored console formatter for human-readable output."""

    COLORS = {
        "DEBUG": "\033[36m",    # Cyan
        "INFO": "\033[32m",     # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",    # Red
        "CRITICAL": "\033[35m", # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        timestamp = datetime.now().strftime("%H:%M:%S")

        prefix = f"{color}[{timestamp}] {record.levelname:8}{self.RESET}"
        if hasattr(record, "component"):
            prefix += f" [{record.component}]"

        message = record.getMessage()

        extras = []
        if hasattr(record, "project"):
            extras.append(f"project={record.project}")
        if hasattr(record, "duration_ms"):
            extras.append(f"time={record.duration_ms:.0f}ms")
        if extras:
            message += f" ({', '.join(extras)})"

        return f"{prefix} {message}"


class TestbenchLogger:
    """Logger wrapper that turns keyword arguments into structured fields."""
    __test__ = False

    def __init__(self, name: str, logger: logging.Logger):
        self._name = name
        self._logger = logger

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs):
        self._log(logging.CRITICAL, message, **kwargs)

    def _log(self, level: int, message: str, **kwargs):
        """Log with extra context fields."""
        extra = {}

        # Known fields become record attributes
        for key in _FIELD_NAMES:
            if key in kwargs:
                extra[key] = kwargs.pop(key)

        if kwargs:
            extra["extra_data"] = kwargs

        self._logger.log(level, message, extra=extra)

    # Convenience methods for run lifecycle

    def run_started(self, source_lines: int, test_lines: int, project: Optional[str] = None):
        fields = {"project": project} if project else {}
        self.debug(
            "Run started",
            component="executor",
            source_lines=source_lines,
            test_lines=test_lines,
            **fields
        )

    def run_completed(self, passed: int, failed: int, duration_ms: float):
        level = logging.INFO if failed == 0 else logging.WARNING
        self._logger.log(
            level,
            f"Run completed: {passed} passed, {failed} failed",
            extra={
                "component": "executor",
                "success": True,
                "duration_ms": duration_ms,
                "extra_data": {"passed": passed, "failed": failed},
            }
        )

    def run_failed(self, error: str, duration_ms: float):
        self._logger.log(
            logging.WARNING,
            f"Run failed: {error}",
            extra={"component": "executor", "success": False, "duration_ms": duration_ms}
        )


# Global logger registry
_loggers: dict[str, TestbenchLogger] = {}
_initialized = False


def setup_logging(
    level: str = "INFO",
    format_type: str = "json",
    log_dir: Optional[Path] = None,
    file_enabled: bool = True,
    console_enabled: bool = True
) -> None:
    """Initialize the logging system.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: "json" or "text"
        log_dir: Directory for log files
        file_enabled: Write logs to file
        console_enabled: Write logs to console
    """
    global _initialized

    if _initialized:
        return

    root = logging.getLogger("testbench")
    root.setLevel(getattr(logging, level.upper()))
    root.handlers.clear()

    if console_enabled:
        # stderr keeps command output on stdout clean
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(logging.DEBUG)

        if format_type == "json":
            console.setFormatter(JSONFormatter())
        else:
            console.setFormatter(ColoredFormatter())

        root.addHandler(console)

    if file_enabled and log_dir:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / "testbench.log"

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)

    _initialized = True


def get_logger(name: str = "testbench") -> TestbenchLogger:
    """Get a testbench logger instance."""
    if name not in _loggers:
        logger = logging.getLogger(f"testbench.{name}")
        _loggers[name] = TestbenchLogger(name, logger)
    return _loggers[name]
