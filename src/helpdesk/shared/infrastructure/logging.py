"""
Structured Logging
==================

One JSON object per log line, written to a single stream.

Every line carries a UTC timestamp and the deployment environment. Request
handlers add the correlation id; SLA code adds owner and ticket context
through ``extra``:

    from helpdesk.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("SLA breach detected", extra={"ticket_number": "TKT-0001"})
"""

import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional, TextIO

from pythonjsonlogger import jsonlogger

REDACTED = "***REDACTED***"

# Substrings of field names whose string values never reach the log
_SECRET_FIELD_MARKERS = ("password", "api_key", "secret", "token")

# Third-party loggers that are chatty at INFO
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "apscheduler")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that stamps time and environment and masks secrets."""

    def __init__(self, *args: Any, environment: str = "unknown", **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.environment = environment

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        log_record["environment"] = getattr(record, "environment", self.environment)

        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id is not None:
            log_record["correlation_id"] = correlation_id

        for key, value in list(log_record.items()):
            if isinstance(value, str) and _is_secret_field(key):
                log_record[key] = REDACTED


def _is_secret_field(name: str) -> bool:
    lowered = name.lower()
    return any(marker in lowered for marker in _SECRET_FIELD_MARKERS)


def setup_logging(
    level: str = "INFO",
    environment: str = "development",
    stream: Optional[TextIO] = None,
) -> None:
    """
    Route all logging through one JSON handler on the root logger.

    Replaces any handlers installed earlier, so calling it again (for
    instance once per test app) does not duplicate lines.

    Args:
        level: Root level name (DEBUG, INFO, WARNING, ERROR)
        environment: Value of the ``environment`` field on every line
        stream: Destination, stdout unless given
    """
    numeric_level = getattr(logging, level.upper())

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(CustomJsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        environment=environment,
    ))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Module logger; pass ``__name__``."""
    return logging.getLogger(name)


@contextmanager
def log_latency(logger: logging.Logger, operation: str, **extra_context: Any) -> Iterator[None]:
    """
    Log how long the wrapped block took, whether or not it raised.

    Usage:
        with log_latency(logger, "sla_breach_scan", owner_id="owner-1"):
            result = await scanner.check_breaches("owner-1")

    The line is ``"<operation> completed"`` with ``latency_ms`` and
    ``succeeded`` plus the given context. Exceptions propagate unchanged.
    """
    start = time.perf_counter()
    succeeded = False
    try:
        yield
        succeeded = True
    finally:
        logger.info(
            f"{operation} completed",
            extra={
                "operation": operation,
                "latency_ms": round((time.perf_counter() - start) * 1000, 2),
                "succeeded": succeeded,
                **extra_context,
            },
        )
