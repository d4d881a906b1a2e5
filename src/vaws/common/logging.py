"""Centralized logging configuration using structlog."""

import logging
import sys

import structlog
from structlog.typing import Processor


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: str | None = None,
    console_level: str | None = None,
) -> None:
    """Configure structured logging for the dashboard.

    The terminal UI owns stdout while it is running, so console output goes to
    stderr. Callers embedding the dashboard usually pass ``log_file`` for the
    full record and a higher ``console_level`` to keep the screen quiet.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, output JSON formatted logs
        log_file: Optional file path to write logs to
        console_level: Threshold for the stderr handler (defaults to ``level``)
    """
    log_level = _parse_level(level)
    stderr_level = _parse_level(console_level) if console_level else log_level

    root_logger = logging.getLogger()
    root_logger.handlers = []
    root_logger.setLevel(min(log_level, stderr_level))

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(stderr_level)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(console_handler)

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        root_logger.addHandler(file_handler)


def _parse_level(level: str) -> int:
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a configured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]
