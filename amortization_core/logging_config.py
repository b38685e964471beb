"""
Structured Logging Configuration Module

Provides JSON-formatted structured logging for calculation and event-handling operations.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Optional


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, 'correlation_id', None),
            "loan_id": getattr(record, 'loan_id', None),
            "event_type": getattr(record, 'event_type', None),
            "action": getattr(record, 'action', None),
            "extra": getattr(record, 'extra', None)
        }

        # Remove None values
        log_entry = {k: v for k, v in log_entry.items() if v is not None}

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(
    level: str = "INFO",
    logger_name: str = "amortization",
    format_type: str = "json"
) -> logging.Logger:
    """
    Setup logging for the amortization core.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logger_name: Name of the logger
        format_type: "json" or "text"

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Remove existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    if format_type == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Prevent propagation to avoid duplicate logs
    logger.propagate = False

    return logger


def get_logger(name: str = "amortization") -> logging.Logger:
    """Get logger instance"""
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               loan_id: Optional[str] = None, action: Optional[str] = None,
               event_type: Optional[str] = None, correlation_id: Optional[str] = None,
               extra: Optional[dict] = None):
    """
    Log an action with structured data.

    Args:
        logger: Logger instance
        level: Log level (info, warning, error, etc.)
        message: Log message
        loan_id: Loan the action applies to
        action: Action being performed
        event_type: Borrower event type being processed
        correlation_id: Correlation ID for request tracing
        extra: Additional structured data
    """
    record_level = getattr(logging, level.upper())
    if not logger.isEnabledFor(record_level):
        return

    record = logger.makeRecord(
        logger.name, record_level,
        __name__, 0, message, (), None
    )

    if loan_id:
        record.loan_id = loan_id
    if action:
        record.action = action
    if event_type:
        record.event_type = event_type
    if correlation_id:
        record.correlation_id = correlation_id
    if extra:
        record.extra = extra

    logger.handle(record)
