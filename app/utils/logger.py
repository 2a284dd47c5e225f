"""Logging configuration for Mintoons backend."""

import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict

# Third-party loggers that are too chatty at DEBUG
_QUIET_LOGGERS = ("httpx", "httpcore", "anthropic", "groq", "urllib3")


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Log record to format.

        Returns:
            JSON-formatted log string.
        """
        log_data: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra_data = getattr(record, "extra_data", None)
        if isinstance(extra_data, dict):
            log_data.update(extra_data)

        # Story text and emoji reactions are logged as-is
        return json.dumps(log_data, default=str, ensure_ascii=False)


def configure_logging(debug: bool = False) -> logging.Logger:
    """
    Configure application logging.

    Args:
        debug: Enable debug logging.

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger("mintoons")
    logger.handlers.clear()

    log_level = logging.DEBUG if debug else logging.INFO
    logger.setLevel(log_level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(JSONFormatter())
    logger.addHandler(console_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get logger instance for a module.

    Args:
        name: Logger name (usually __name__).

    Returns:
        Logger instance.
    """
    return logging.getLogger(f"mintoons.{name}")


def log_with_data(logger: logging.Logger, level: int, message: str, **data: Any) -> None:
    """Log a message with structured fields merged into the JSON record."""
    logger.log(level, message, extra={"extra_data": data})
