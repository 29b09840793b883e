"""Structured logging configuration for the rate limiter.

This module provides a structured logging setup using Python's standard
logging module with JSON formatting for production environments.
"""

import hashlib
import json
import logging
import logging.config
import sys
import traceback
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from quotagate.core.config import Settings


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Outputs log records as JSON objects for consumption by log aggregation
    systems like ELK Stack or Grafana Loki.

    Attributes:
        fields: List of fields to include in JSON output
    """

    # Standard fields always included
    STANDARD_FIELDS = ["name", "levelname", "message", "timestamp"]

    # Contextual fields for admission decisions
    CONTEXT_FIELDS = [
        "limiter_key",   # Hashed limiter key (never the raw key)
        "namespace",     # Limiter namespace
        "algorithm",     # Algorithm variant
        "backend",       # Counter store backend (memory, redis)
        "cost",          # Permits requested
        "allowed",       # Decision outcome
        "retry_after",   # Retry hint in seconds
        "attempts",      # Compare-and-swap attempts used
    ]

    _RESERVED = {
        "name", "msg", "args", "levelname", "levelno", "pathname",
        "filename", "module", "exc_info", "exc_text", "stack_info",
        "lineno", "funcName", "created", "msecs", "relativeCreated",
        "thread", "threadName", "processName", "process", "message",
        "asctime", "timestamp", "logger", "level", "source", "taskName",
    }

    def __init__(
        self,
        fields: Optional[list] = None,
        datefmt: Optional[str] = None,
    ):
        """Initialize JSON formatter.

        Args:
            fields: Custom fields to include (defaults to all standard + context)
            datefmt: Date format string (ISO8601 by default)
        """
        super().__init__(datefmt=datefmt)
        self.fields = fields or (self.STANDARD_FIELDS + self.CONTEXT_FIELDS)

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON string representation of the log record
        """
        log_data: Dict[str, Any] = {}

        record.message = record.getMessage()

        log_data["timestamp"] = datetime.now().astimezone().isoformat()
        log_data["level"] = record.levelname
        log_data["logger"] = record.name
        log_data["message"] = record.message

        log_data["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        for field in self.CONTEXT_FIELDS:
            if hasattr(record, field):
                value = getattr(record, field)
                if value is not None:
                    log_data[field] = value

        for key, value in record.__dict__.items():
            if key in self._RESERVED or key in self.CONTEXT_FIELDS:
                continue
            log_data.setdefault("extra", {})[key] = value

        if record.exc_info and record.exc_info != (None, None, None):
            log_data["exception"] = traceback.format_exception(*record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """Logging filter that adds contextual fields to log records.

    Adds default values for the limiter context fields if not already
    present, so format strings referencing them never fail.
    """

    CONTEXT_DEFAULTS = {
        "limiter_key": None,
        "namespace": None,
        "algorithm": None,
        "backend": None,
        "cost": None,
        "allowed": None,
        "retry_after": None,
        "attempts": None,
    }

    def filter(self, record: logging.LogRecord) -> bool:
        """Add context fields to log record if not present.

        Args:
            record: Log record to enrich

        Returns:
            True to allow the record through
        """
        for field, default in self.CONTEXT_DEFAULTS.items():
            if not hasattr(record, field):
                setattr(record, field, default)
        return True


def get_logging_config(config: Optional["Settings"] = None) -> Dict[str, Any]:
    """Get logging configuration dictionary.

    Args:
        config: Settings to read level and format from (defaults to global settings)

    Returns:
        Logging configuration dict compatible with logging.config.dictConfig
    """
    if config is None:
        from quotagate.core.config import settings as config

    log_format = config.log_format.lower()
    log_level = "DEBUG" if config.debug else config.log_level.upper()

    formatters: Dict[str, Dict[str, Any]] = {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        },
        "structured": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s - limiter_key=%(limiter_key)s - algorithm=%(algorithm)s - backend=%(backend)s"
        },
    }

    if log_format == "json":
        formatters["json"] = {
            "()": "quotagate.core.logging.JSONFormatter",
        }
        default_formatter = "json"
    else:
        default_formatter = "structured" if log_format == "structured" else "standard"

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": default_formatter,
            "stream": sys.stdout,
            "filters": ["context"],
        },
    }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": {
            "context": {
                "()": "quotagate.core.logging.ContextFilter",
            },
        },
        "handlers": handlers,
        "loggers": {
            "quotagate": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }


def setup_logging(config: Optional["Settings"] = None) -> None:
    """Configure logging for the rate limiter."""
    logging.config.dictConfig(get_logging_config(config))
    logging.getLogger("redis").setLevel(logging.WARNING)


def get_logger(name: str = "quotagate") -> logging.Logger:
    """Get a logger instance with the specified name.

    Args:
        name: Logger name, defaults to "quotagate"

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def hash_key(key: str) -> str:
    """Hash a limiter key for logging without exposing client identifiers."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def get_log_context(
    limiter_key: Optional[str] = None,
    algorithm: Optional[str] = None,
    backend: Optional[str] = None,
    **extra
) -> Dict[str, Any]:
    """Create a log context dictionary for use with extra parameter.

    The raw limiter key is hashed before it is placed in the context.

    Args:
        limiter_key: Raw limiter key
        algorithm: Algorithm variant name
        backend: Counter store backend name
        **extra: Additional custom fields

    Returns:
        Dictionary suitable for passing as extra= parameter to logging calls

    Example:
        >>> logger.warning(
        ...     "Rate limit contention",
        ...     extra=get_log_context(limiter_key="ip:1.2.3.4", attempts=5)
        ... )
    """
    context = {
        "limiter_key": hash_key(limiter_key) if limiter_key is not None else None,
        "algorithm": algorithm,
        "backend": backend,
    }
    context.update(extra)
    return {k: v for k, v in context.items() if v is not None}
