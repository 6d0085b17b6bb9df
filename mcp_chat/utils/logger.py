"""JSON logging for the service."""
import logging
import sys
from pathlib import Path
from typing import Iterable, Optional

from pythonjsonlogger import jsonlogger

SERVICE_NAME = "mcp-chat"

# Libraries that log every HTTP request or protocol frame at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "mcp.client", "openai")


class ServiceJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that tags every record with the service name."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record.setdefault("service", SERVICE_NAME)


def _formatter() -> ServiceJsonFormatter:
    return ServiceJsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        rename_fields={"levelname": "level", "name": "logger"},
        json_ensure_ascii=False
    )


def setup_logger(
    name: str = "",
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    quiet: Iterable[str] = NOISY_LOGGERS
) -> logging.Logger:
    """
    Attach JSON console (and optionally file) handlers to a logger.

    Called once with the root logger on application start; module
    loggers propagate to it.

    Args:
        name: Logger name (empty string for root logger)
        log_level: Logging level name
        log_file: Optional path to log file; parent directories are created
        quiet: Loggers raised to WARNING unless ``log_level`` is DEBUG
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    logger = logging.getLogger(name)
    logger.setLevel(level)

    if level > logging.DEBUG:
        for noisy in quiet:
            logging.getLogger(noisy).setLevel(logging.WARNING)

    if any(isinstance(h.formatter, ServiceJsonFormatter) for h in logger.handlers):
        return logger

    formatter = _formatter()
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
