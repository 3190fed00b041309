"""
Structured logging for viewtracker.

Messages carry keyword context rendered as JSON. Besides plain logging the
logger keeps counters for provider traffic and per-video refresh outcomes,
so a run can finish with a one-screen health summary. One instance is
shared by all updater worker threads.
"""

import copy
import json
import logging
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _empty_metrics() -> dict:
    return {
        "api_calls": 0,
        "fetches_attempted": 0,
        "fetches_successful": 0,
        "fetches_failed": 0,
        "errors_by_type": {},
        "update_outcomes": {},
    }


class StructuredLogger:
    """
    Wrapper around a stdlib logger with optional stdout and daily-file
    output plus thread-safe refresh counters.
    """

    def __init__(
        self,
        name: str = "viewtracker",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Args:
            name: Name of the underlying stdlib logger
            level: Threshold for the logger and its console output
            log_dir: Where the daily log file goes (default: ./logs)
            enable_file: Attach the file handler (always at DEBUG)
            enable_console: Attach the stdout handler
        """
        numeric_level = getattr(logging, level.upper())
        self.logger = logging.getLogger(name)
        self.logger.setLevel(numeric_level)
        self.logger.handlers.clear()
        self.logger.propagate = False

        self._lock = threading.Lock()
        self.metrics = _empty_metrics()

        if enable_console:
            self._attach(logging.StreamHandler(sys.stdout), numeric_level, CONSOLE_FORMAT)
        if enable_file:
            log_dir = log_dir or Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)
            log_file = log_dir / f"viewtracker_{datetime.now():%Y%m%d}.log"
            self._attach(logging.FileHandler(log_file, encoding="utf-8"), logging.DEBUG, FILE_FORMAT)

    def _attach(self, handler: logging.Handler, level: int, fmt: str) -> None:
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(fmt=fmt, datefmt=DATE_FORMAT))
        self.logger.addHandler(handler)

    def debug(self, message: str, **context):
        self._emit(logging.DEBUG, message, context)

    def info(self, message: str, **context):
        self._emit(logging.INFO, message, context)

    def warning(self, message: str, **context):
        self._emit(logging.WARNING, message, context)

    def error(self, message: str, **context):
        self._emit(logging.ERROR, message, context)

    def critical(self, message: str, **context):
        self._emit(logging.CRITICAL, message, context)

    def _emit(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Counters

    def _bump(self, key: str, bucket: Optional[str] = None):
        with self._lock:
            if bucket is None:
                self.metrics[key] += 1
            else:
                counts = self.metrics[key]
                counts[bucket] = counts.get(bucket, 0) + 1

    def record_api_call(self):
        """One HTTP request sent to the provider (retries count separately)."""
        self._bump("api_calls")

    def record_fetch_attempt(self):
        self._bump("fetches_attempted")

    def record_fetch_success(self):
        self._bump("fetches_successful")

    def record_fetch_failure(self, error_type: str):
        """A fetch that gave up, after retries or on a terminal error."""
        with self._lock:
            self.metrics["fetches_failed"] += 1
            counts = self.metrics["errors_by_type"]
            counts[error_type] = counts.get(error_type, 0) + 1

    def record_update_outcome(self, outcome: str):
        self._bump("update_outcomes", outcome)

    def get_metrics(self) -> dict:
        """Snapshot of the counters plus the derived fetch success rate."""
        with self._lock:
            snapshot = copy.deepcopy(self.metrics)
        attempted = snapshot["fetches_attempted"]
        snapshot["fetch_success_rate"] = (
            round(snapshot["fetches_successful"] / attempted, 3) if attempted else 0.0
        )
        return snapshot

    def log_metrics_summary(self):
        m = self.get_metrics()
        lines = [
            "=== Updater Session Metrics ===",
            f"API Calls: {m['api_calls']}",
            f"Fetches: {m['fetches_successful']}/{m['fetches_attempted']} "
            f"({m['fetch_success_rate'] * 100:.1f}% success)",
        ]
        if m["update_outcomes"]:
            lines.append("Update Outcomes:")
            lines.extend(f"  {k}: {v}" for k, v in sorted(m["update_outcomes"].items()))
        if m["errors_by_type"]:
            lines.append("Error Types:")
            lines.extend(f"  {k}: {v}" for k, v in m["errors_by_type"].items())
        for line in lines:
            self.info(line)


# Process-wide default instance
_global_logger: Optional[StructuredLogger] = None
_global_lock = threading.Lock()


def get_logger(name: str = "viewtracker", level: str = "INFO", **kwargs) -> StructuredLogger:
    """
    Return the shared logger, creating it on first use.

    Arguments only matter on the first call; later calls get the
    existing instance unchanged.
    """
    global _global_logger

    with _global_lock:
        if _global_logger is None:
            _global_logger = StructuredLogger(name=name, level=level, **kwargs)
        return _global_logger


def reset_logger():
    """Drop the shared logger so the next get_logger() builds a fresh one."""
    global _global_logger
    with _global_lock:
        _global_logger = None
