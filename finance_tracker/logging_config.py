import functools
import inspect
import logging
import logging.handlers
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Optional, Dict, Any


APP_LOGGER_NAME = "finance_tracker"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [user=%(user_id)s op=%(operation)s] - %(message)s"

# User and operation of the ledger step currently running in this thread / task
_ledger_context: ContextVar[Dict[str, Any]] = ContextVar("ledger_context", default={})


class LedgerContextFilter(logging.Filter):
    """
    Stamp every record with the user id and operation set by log_context.

    Records emitted outside a lifecycle operation get "-" for both, so the
    formatter never fails on a missing attribute.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        context = _ledger_context.get()
        record.user_id = context.get("user_id", "-")
        record.operation = context.get("operation", "-")
        return True


@contextmanager
def log_context(**fields):
    """
    Attach fields (user_id, operation) to every log line emitted inside the block.

    Nested blocks extend the outer context; the outer values come back on exit.
    """
    token = _ledger_context.set({**_ledger_context.get(), **fields})
    try:
        yield
    finally:
        _ledger_context.reset(token)


def ledger_operation(operation: str):
    """
    Decorator running a crud operation inside log_context, with the caller's
    user_id argument and the operation name attached to every line it logs.
    """
    def decorator(func):
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            user_id = signature.bind_partial(*args, **kwargs).arguments.get("user_id", "-")
            with log_context(user_id=user_id, operation=operation):
                return func(*args, **kwargs)
        return wrapper
    return decorator


def setup_logging(
    app_log_level: Optional[str] = None,
    third_party_log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """
    Set up logging configuration for the Finance Tracker API.

    Args:
        app_log_level: Log level for application logs (default: INFO)
        third_party_log_level: Log level for third-party libraries (default: WARNING)
        log_file: Optional log file path. If None, logs only to console
        max_file_size: Maximum size of log file before rotation (bytes)
        backup_count: Number of backup log files to keep

    Returns:
        Logger instance for the application
    """
    # Get log levels from environment variables or use defaults
    app_log_level = app_log_level or os.getenv("APP_LOG_LEVEL", "INFO")
    third_party_log_level = third_party_log_level or os.getenv("THIRD_PARTY_LOG_LEVEL", "WARNING")
    log_file = log_file or os.getenv("LOG_FILE")

    # Convert string levels to logging constants
    app_level = getattr(logging, app_log_level.upper(), logging.INFO)
    third_party_level = getattr(logging, third_party_log_level.upper(), logging.WARNING)

    # Create application logger
    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.setLevel(app_level)

    # Clear any existing handlers to avoid duplicates
    app_logger.handlers.clear()

    # Ledger lines carry the user and lifecycle operation they belong to
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    context_filter = LedgerContextFilter()

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(app_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(context_filter)
    app_logger.addHandler(console_handler)

    # File handler (optional)
    if log_file:
        # Ensure log directory exists
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # Rotating file handler
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_file_size,
            backupCount=backup_count
        )
        file_handler.setLevel(app_level)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(context_filter)
        app_logger.addHandler(file_handler)

    # Configure third-party loggers
    third_party_loggers = [
        "sqlalchemy.engine",
        "sqlalchemy.engine.Engine",
        "sqlalchemy.dialects",
        "sqlalchemy.pool",
        "sqlalchemy.orm",
        "alembic",
        "uvicorn.access",
        "uvicorn.error",
        "httpx",
        "faker",
    ]

    for logger_name in third_party_loggers:
        logging.getLogger(logger_name).setLevel(third_party_level)

    # Prevent duplicate logs by not propagating to root logger
    app_logger.propagate = False

    return app_logger


def get_logger(name: str = APP_LOGGER_NAME) -> logging.Logger:
    """
    Get a logger instance for the specified module.

    Module names already under the application package (finance_tracker.crud.crud_account)
    are used as-is; anything else is nested under the application logger.
    """
    if name == APP_LOGGER_NAME or name.startswith(f"{APP_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{APP_LOGGER_NAME}.{name}")
