"""
Structured logging system for skillhub maintenance jobs.

Provides centralized logging with multiple output destinations,
log levels, and metrics tracking for monitoring backfill runs.
"""

import copy
import logging
import os
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for monitoring backfill progress.
    """

    def __init__(
        self,
        name: str = "skillhub",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)

        # Metrics tracking
        self.metrics = {
            "pages_fetched": 0,
            "items_scanned": 0,
            "patches_applied": 0,
            "blob_retries": 0,
            "errors_by_type": {},
            "job_runs": {},
        }

        self.configure(level, log_dir, enable_file, enable_console)

    def configure(
        self,
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """Replace level and handlers; metrics are kept."""
        self.logger.setLevel(getattr(logging, level.upper()))
        for handler in list(self.logger.handlers):
            handler.close()
        self.logger.handlers.clear()  # Remove existing handlers

        # Console handler
        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        # File handler
        if enable_file:
            if log_dir is None:
                log_dir = Path(os.getenv("SKILLHUB_LOG_DIR", "logs"))
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"skillhub_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        """Internal logging method with context."""
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_page_fetch(self, items: int):
        """Count one fetched page and the items it carried."""
        self.metrics["pages_fetched"] += 1
        self.metrics["items_scanned"] += items

    def record_patch_applied(self):
        """Increment applied patch counter."""
        self.metrics["patches_applied"] += 1

    def record_blob_retry(self):
        """Count one retried blob fetch."""
        self.metrics["blob_retries"] += 1

    def record_run_start(self, job: str):
        """Record a backfill run starting."""
        if job not in self.metrics["job_runs"]:
            self.metrics["job_runs"][job] = {
                "started": 0,
                "completed": 0,
                "incomplete": 0,
            }
        self.metrics["job_runs"][job]["started"] += 1

    def record_run_complete(self, job: str):
        """Record a backfill run that reached the end of its scan."""
        if job in self.metrics["job_runs"]:
            self.metrics["job_runs"][job]["completed"] += 1

    def record_run_failure(self, job: str, error_type: str):
        """Record a failed backfill run."""
        if job in self.metrics["job_runs"] and error_type == "BackfillIncompleteError":
            self.metrics["job_runs"][job]["incomplete"] += 1

        # Track error types
        if error_type not in self.metrics["errors_by_type"]:
            self.metrics["errors_by_type"][error_type] = 0
        self.metrics["errors_by_type"][error_type] += 1

    def get_metrics(self) -> dict:
        """Return current metrics."""
        # Calculate completion rates
        metrics_copy = copy.deepcopy(self.metrics)
        for job, stats in metrics_copy["job_runs"].items():
            if stats["started"] > 0:
                stats["completion_rate"] = round(
                    stats["completed"] / stats["started"], 3
                )

        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== Backfill Session Metrics ===")
        self.info(f"Pages: {metrics['pages_fetched']} ({metrics['items_scanned']} items)")
        self.info(f"Patches applied: {metrics['patches_applied']}")
        if metrics["blob_retries"]:
            self.info(f"Blob fetch retries: {metrics['blob_retries']}")

        if metrics["job_runs"]:
            self.info("Job Runs:")
            for job, stats in metrics["job_runs"].items():
                rate = stats.get("completion_rate", 0) * 100
                self.info(f"  {job}: {stats['completed']}/{stats['started']} completed ({rate:.1f}%)")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "skillhub",
    level: str = "INFO",
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
