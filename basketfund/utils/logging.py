"""Logging configuration for the basket fund engine.

Every module obtains its logger through get_logger(__name__) so that all
fund output lives under the ``basketfund`` hierarchy and can be tuned from
configuration.
"""

import logging
import sys
from pathlib import Path
from typing import Any

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are too chatty at INFO
_NOISY_LOGGERS = ("apscheduler",)


def setup_logging(
    level: str = "INFO",
    log_format: str | None = None,
    log_file: str | Path | None = None,
) -> None:
    """Configure logging for the application.

    Sets up the root logger with the given level and format. Logs go to
    stdout, and additionally to ``log_file`` when one is given.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom format string. If None, uses DEFAULT_FORMAT.
        log_file: Optional path of a file to append logs to

    Example:
        >>> from basketfund.utils.logging import setup_logging
        >>> setup_logging(level="DEBUG")
    """
    if log_format is None:
        log_format = DEFAULT_FORMAT

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    logging.basicConfig(
        level=numeric_level,
        format=log_format,
        handlers=handlers,
        force=True,
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a module.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    **context: Any,
) -> None:
    """Log a message with structured context.

    Context is appended to the message in key=value format, in the order
    given. None values are dropped.

    Args:
        logger: Logger instance
        level: Log level (debug, info, warning, error, critical)
        message: Log message
        **context: Additional context fields

    Example:
        >>> log_with_context(
        ...     logger, "info", "Deposit accepted",
        ...     fund="a1b2", amount=10**18, shares=10**18,
        ... )
        # Logs: "Deposit accepted | fund=a1b2 amount=1000000000000000000 shares=..."
    """
    log_func = getattr(logger, level.lower())

    fields = {k: v for k, v in context.items() if v is not None}
    if fields:
        context_str = " ".join(f"{k}={v}" for k, v in fields.items())
        full_message = f"{message} | {context_str}"
    else:
        full_message = message

    log_func(full_message)
