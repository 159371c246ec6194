# 📄 File: recurring_billing/shared/utils/logging.py

# 🧭 Purpose (Layman Explanation):
# This file sets up a smart logging system that records what the billing engine does in a
# structured way, so it is easy to follow every charge, retry and failure afterwards.

# 🧪 Purpose (Technical Summary):
# Implements structured logging with JSON formatting, contextual information (subscription and
# correlation ids), gateway call timing and billing event logging for engine observability.

# 🔗 Dependencies:
# - python-json-logger: JSON log formatting
# - logging: Python standard logging
# - contextvars: Per-task context tracking

# 🔄 Connected Modules / Calls From:
# Used by: All engine modules for consistent logging, the payment processor and gateway
# clients for call timing, engine startup/shutdown

import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from pythonjsonlogger.json import JsonFormatter

from recurring_billing.shared.config.settings import Settings, get_settings

# Context variables for billing task tracking
subscription_id_var: ContextVar[str] = ContextVar('subscription_id', default='')
correlation_id_var: ContextVar[str] = ContextVar('correlation_id', default='')

SERVICE_NAME = 'recurring-billing-engine'
PACKAGE_LOGGER = 'recurring_billing'

# Global logging configuration
_logging_configured = False
_loggers_cache: Dict[str, "StructuredLogger"] = {}


def _hostname() -> str:
    return os.uname().nodename if hasattr(os, 'uname') else 'unknown'


class ContextualFormatter(logging.Formatter):
    """
    Text formatter that adds contextual information to log records.

    Adds subscription ID, correlation ID, host and service name
    to every log message for better traceability.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.hostname = _hostname()
        self.service_name = SERVICE_NAME

    def format(self, record):
        record.subscription_id = subscription_id_var.get('')
        record.correlation_id = correlation_id_var.get('')
        record.hostname = self.hostname
        record.service = self.service_name
        record.timestamp = datetime.now(timezone.utc).isoformat()
        return super().format(record)


class BillingJsonFormatter(JsonFormatter):
    """
    JSON formatter for structured logging.

    Emits one JSON object per record with a consistent structure
    for log aggregation and analysis tools.
    """

    def __init__(self):
        super().__init__(
            '%(levelname)s %(name)s %(message)s %(module)s %(funcName)s %(lineno)d',
            rename_fields={'levelname': 'level', 'name': 'logger', 'funcName': 'function', 'lineno': 'line'},
            json_ensure_ascii=False,
        )
        self.hostname = _hostname()

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]):
        super().add_fields(log_record, record, message_dict)
        log_record['timestamp'] = datetime.now(timezone.utc).isoformat()
        log_record['service'] = SERVICE_NAME
        log_record['hostname'] = self.hostname

        if subscription_id_var.get():
            log_record['subscription_id'] = subscription_id_var.get()
        if correlation_id_var.get():
            log_record['correlation_id'] = correlation_id_var.get()

        # Structured fields travel under one key so they never collide with record attributes
        extra_fields = log_record.pop('extra_fields', None)
        if extra_fields:
            log_record['extra'] = extra_fields


class StructuredLogger:
    """
    Logger wrapper with structured logging capabilities.

    Keyword arguments passed to the log methods become structured
    extra fields on the record.
    """

    _RESERVED = ('exc_info', 'stack_info', 'stacklevel')

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def debug(self, message: str, extra: Optional[Dict] = None, **kwargs):
        self._log(logging.DEBUG, message, extra, **kwargs)

    def info(self, message: str, extra: Optional[Dict] = None, **kwargs):
        self._log(logging.INFO, message, extra, **kwargs)

    def warning(self, message: str, extra: Optional[Dict] = None, **kwargs):
        self._log(logging.WARNING, message, extra, **kwargs)

    def error(self, message: str, extra: Optional[Dict] = None, exc_info: bool = False, **kwargs):
        self._log(logging.ERROR, message, extra, exc_info=exc_info, **kwargs)

    def critical(self, message: str, extra: Optional[Dict] = None, exc_info: bool = False, **kwargs):
        self._log(logging.CRITICAL, message, extra, exc_info=exc_info, **kwargs)

    def log(self, level: int, message: str, extra: Optional[Dict] = None, **kwargs):
        self._log(level, message, extra, **kwargs)

    def _log(self, level: int, message: str, extra: Optional[Dict] = None, **kwargs):
        """Internal log method with extra fields handling."""
        extra_fields = dict(extra or {})
        for key, value in kwargs.items():
            if key not in self._RESERVED:
                extra_fields[key] = value

        clean_kwargs = {k: v for k, v in kwargs.items() if k in self._RESERVED}
        clean_kwargs.setdefault('stacklevel', 3)
        if extra_fields:
            clean_kwargs['extra'] = {'extra_fields': extra_fields}

        self.logger.log(level, message, **clean_kwargs)

    def log_gateway_call(
        self,
        gateway: str,
        operation: str,
        success: bool,
        duration_ms: float,
        status_code: Optional[int] = None,
        extra: Optional[Dict] = None
    ):
        """Log a payment gateway call with its timing."""
        extra_fields = {
            'event_type': 'gateway_call',
            'gateway': gateway,
            'operation': operation,
            'success': success,
            'duration_ms': round(duration_ms, 2),
            **(extra or {})
        }
        if status_code is not None:
            extra_fields['status_code'] = status_code

        level = logging.INFO if success else logging.WARNING
        self._log(
            level,
            f"Gateway {gateway} {operation} - {'ok' if success else 'failed'} - {duration_ms:.2f}ms",
            extra_fields
        )

    def log_billing_event(
        self,
        event_type: str,
        description: str,
        subscription_id: Optional[str] = None,
        extra: Optional[Dict] = None
    ):
        """Log billing lifecycle events for audit and analytics."""
        extra_fields = {
            'event_type': 'billing_event',
            'billing_event_type': event_type,
            **(extra or {})
        }
        if subscription_id:
            extra_fields['subscription_id'] = subscription_id

        self._log(logging.INFO, description, extra_fields)


def setup_logging(
    settings: Optional[Settings] = None,
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_file: Optional[str] = None,
    enable_console: bool = True,
    force: bool = False
) -> logging.Logger:
    """
    Setup engine logging configuration.

    Handlers go on the package logger only; the root logger and the host
    application's handlers are left alone. Records still propagate, so an
    application that configures the root logger sees them too.

    Safe to call more than once; only the first call (or a forced call)
    installs handlers.

    Args:
        settings: Settings to read defaults from, the global settings if omitted
        log_level: Level name, defaults to settings.LOG_LEVEL
        log_format: 'json' or 'text', defaults to settings.LOG_FORMAT
        log_file: Optional file path, defaults to settings.LOG_FILE
        enable_console: Attach a stdout handler
        force: Reconfigure even if logging was already set up

    Returns:
        The package logger
    """
    global _logging_configured

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if _logging_configured and not force:
        return package_logger

    settings = settings or get_settings()
    log_level = log_level or settings.LOG_LEVEL
    log_format = log_format or settings.LOG_FORMAT
    log_file = log_file or settings.LOG_FILE

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    if log_format.lower() == 'json':
        formatter: logging.Formatter = BillingJsonFormatter()
    else:
        formatter = ContextualFormatter(
            '%(timestamp)s - %(name)s - %(levelname)s - [%(subscription_id)s] %(message)s'
        )

    package_logger.setLevel(numeric_level)
    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)
        handler.close()

    if enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(formatter)
        package_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    _logging_configured = True
    return package_logger


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        StructuredLogger instance
    """
    if name in _loggers_cache:
        return _loggers_cache[name]

    logger = StructuredLogger(name)
    _loggers_cache[name] = logger
    return logger


@contextmanager
def log_context(subscription_id: Optional[str] = None, correlation_id: Optional[str] = None):
    """
    Context manager for adding billing context to logs.

    Args:
        subscription_id: Subscription being processed
        correlation_id: Correlation identifier (e.g. the history record id)
    """
    subscription_token = subscription_id_var.set(subscription_id or '')
    correlation_token = correlation_id_var.set(correlation_id or '')

    try:
        yield {
            'subscription_id': subscription_id,
            'correlation_id': correlation_id
        }
    finally:
        subscription_id_var.reset(subscription_token)
        correlation_id_var.reset(correlation_token)


def log_startup_event(service_name: str, version: str, extra: Optional[Dict] = None):
    """Log engine startup event."""
    get_logger(f'{PACKAGE_LOGGER}.startup').info(
        f"Service {service_name} starting up",
        extra={
            'event_type': 'service_startup',
            'service_name': service_name,
            'version': version,
            **(extra or {})
        }
    )


def log_shutdown_event(service_name: str, extra: Optional[Dict] = None):
    """Log engine shutdown event."""
    get_logger(f'{PACKAGE_LOGGER}.shutdown').info(
        f"Service {service_name} shutting down",
        extra={
            'event_type': 'service_shutdown',
            'service_name': service_name,
            **(extra or {})
        }
    )
