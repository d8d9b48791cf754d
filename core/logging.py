"""
Logging configuration for Greyhound Form Stats.

Structured console logging: any `extra=` fields are appended to the line
as key=value pairs so ingestion and compute runs can be grepped by
jurisdiction, meeting or step.

Usage:
    from core.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Fetched meetings", extra={"jurisdiction": "VIC", "count": 4})
    logger.warning("Races unavailable", extra={"meeting_id": 123})
"""

import logging
import sys
from typing import Optional


# Attributes every LogRecord carries; anything else came in through extra=
_RESERVED_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "asctime", "taskName",
}


class StructuredFormatter(logging.Formatter):
    """Formatter that includes extra fields in log output."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)

        extras = [
            f"{key}={value}"
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS
        ]

        if extras:
            return f"{base} | {' '.join(extras)}"
        return base


def get_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """
    Get a configured logger.

    Args:
        name: Logger name (usually __name__)
        level: Logging level

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        logger.setLevel(level)

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(StructuredFormatter(
            "%(asctime)s - %(levelname)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))

        logger.addHandler(handler)

    return logger


class LogContext:
    """
    Context manager for adding context to log messages.

    Usage:
        with LogContext(logger, jurisdiction="NSW", year=2025, month=11):
            logger.info("Inserting runs")  # includes jurisdiction=NSW year=2025 month=11
    """

    def __init__(self, logger: logging.Logger, **context):
        self.logger = logger
        self.context = context
        self._old_factory = None

    def __enter__(self):
        self._old_factory = logging.getLogRecordFactory()

        def factory(*args, **kwargs):
            record = self._old_factory(*args, **kwargs)
            for key, value in self.context.items():
                setattr(record, key, value)
            return record

        logging.setLogRecordFactory(factory)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        logging.setLogRecordFactory(self._old_factory)
        return False


def log_api_call(
    logger: logging.Logger,
    endpoint: str,
    params: Optional[dict],
    success: bool,
    duration_ms: Optional[float] = None,
    error: Optional[str] = None,
) -> None:
    """Log a Topaz API call with standard format."""
    extra = {
        "endpoint": endpoint,
        "params": str(params or {}),
        "success": success,
    }
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)
    if error:
        extra["error"] = error

    if success:
        logger.debug(f"API call: {endpoint}", extra=extra)
    else:
        logger.warning(f"API call failed: {endpoint}", extra=extra)


def log_fetch_failure(
    logger: logging.Logger,
    branch: str,
    key,
    error: str,
) -> None:
    """Log a fan-out branch that failed and was replaced by an empty result."""
    logger.error(
        f"Failed to get {branch} for {key}",
        extra={"branch": branch, "key": key, "error": error},
    )


def log_stage(
    logger: logging.Logger,
    step: int,
    total: int,
    description: str,
    **details,
) -> None:
    """Log the start of a numbered pipeline step."""
    logger.info(
        f"Step {step}/{total}: {description}",
        extra={"step": step, **details},
    )
