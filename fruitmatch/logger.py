"""
Structured logging system for fruitmatch.

Provides centralized logging with console and file outputs, log levels,
and metrics tracking for monitoring the matching pipeline.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for fruit arrivals, scoring and text generation.
    """

    def __init__(
        self,
        name: str = "fruitmatch",
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
            "llm_calls": 0,
            "llm_unavailable": 0,
            "fruits_created": {},
            "matches_scored": 0,
            "best_matches": 0,
            "narrative_fallbacks": 0,
            "errors_by_type": {},
            "unavailable_by_reason": {},
        }

        self.configure(level, log_dir, enable_file, enable_console)

    def configure(
        self,
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """Replace handlers and level; metrics are kept."""
        self.logger.setLevel(getattr(logging, level.upper()))
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        # Console handler; stdout carries command output
        if enable_console:
            console_handler = logging.StreamHandler(sys.stderr)
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
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"fruitmatch_{datetime.now().strftime('%Y%m%d')}.log"
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

    def record_llm_call(self):
        """Increment LLM call counter."""
        self.metrics["llm_calls"] += 1

    def record_llm_unavailable(self, reason: str):
        """Record a generation call that produced no usable text."""
        self.metrics["llm_unavailable"] += 1
        reasons = self.metrics["unavailable_by_reason"]
        reasons[reason] = reasons.get(reason, 0) + 1

    def record_fruit_created(self, kind: str):
        """Record a stored incoming fruit."""
        created = self.metrics["fruits_created"]
        created[kind] = created.get(kind, 0) + 1

    def record_matches_scored(self, count: int):
        """Record match records persisted for one arrival."""
        self.metrics["matches_scored"] += count

    def record_best_match(self):
        """Record a chosen best match."""
        self.metrics["best_matches"] += 1

    def record_narrative_fallback(self):
        """Record a match message replaced by templated text."""
        self.metrics["narrative_fallbacks"] += 1

    def record_failure(self, error_type: str):
        """Record a pipeline failure by exception type."""
        errors = self.metrics["errors_by_type"]
        errors[error_type] = errors.get(error_type, 0) + 1

    def get_metrics(self) -> dict:
        """Return current metrics."""
        metrics_copy = self.metrics.copy()
        calls = metrics_copy["llm_calls"]
        if calls > 0:
            metrics_copy["llm_availability"] = round(
                (calls - metrics_copy["llm_unavailable"]) / calls, 3
            )
        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== Matching Session Metrics ===")
        created = metrics["fruits_created"]
        total_created = sum(created.values())
        self.info(f"Fruits created: {total_created}")
        for kind, count in created.items():
            self.info(f"  {kind}: {count}")
        self.info(f"Matches scored: {metrics['matches_scored']}")
        self.info(f"Best matches: {metrics['best_matches']}")

        calls = metrics["llm_calls"]
        available = calls - metrics["llm_unavailable"]
        self.info(f"LLM calls: {available}/{calls} usable")
        if metrics["narrative_fallbacks"]:
            self.info(f"Narrative fallbacks: {metrics['narrative_fallbacks']}")

        if metrics["unavailable_by_reason"]:
            self.info("Unavailable reasons:")
            for reason, count in metrics["unavailable_by_reason"].items():
                self.info(f"  {reason}: {count}")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "fruitmatch",
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
