"""
Logging configuration for apigee-discovery.

Console output goes through Rich (or a plain formatter), with an optional
file handler. All agent loggers live under the ``apigee_discovery`` namespace.
"""

import logging
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "apigee_discovery"


class FileFormatter(logging.Formatter):
    """Formatter for file logs - clean and parseable."""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")


class ConsoleFormatter(logging.Formatter):
    """Plain console format: ``LEVEL: timestamp - msg``; errors also show file:line."""

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        base = f"{record.levelname}: {self.formatTime(record)} - {record.getMessage()}"
        if record.levelno >= logging.ERROR and record.pathname:
            base = (
                f"{record.levelname}: {self.formatTime(record)} - "
                f"{Path(record.pathname).name}:{record.lineno} - {record.getMessage()}"
            )
        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)
        return base


LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _parse_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        return LEVEL_MAP.get(level.upper(), logging.INFO)
    return logging.INFO


def setup_logging(
    level: str | int = logging.INFO,
    log_file: str | Path | None = None,
    format_string: str | None = None,
    file_mode: str = "a",
    console: Console | None = None,
    console_enabled: bool = True,
    use_rich: bool = True,
) -> logging.Logger:
    """
    Setup logging for the agent.

    Args:
        level: Logging level as string (DEBUG, INFO, etc.) or int (default: INFO)
        log_file: Optional file path to write logs to (default: console only)
        format_string: Optional custom format string for the plain console handler
        file_mode: 'a' to append to the log file, 'w' to overwrite
        console: Optional Rich Console for the Rich handler
        console_enabled: Whether to log to the console at all
        use_rich: Use RichHandler (True) or a plain StreamHandler (False)

    Returns:
        The ``apigee_discovery`` logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.handlers.clear()

    level_int = _parse_level(level)
    logger.setLevel(level_int)

    if console_enabled:
        handler: logging.Handler
        if use_rich:
            handler = RichHandler(
                level=level_int,
                console=console or Console(stderr=True),
                show_time=True,
                show_path=True,
                rich_tracebacks=True,
                tracebacks_show_locals=False,
                log_time_format="[%X]",
                omit_repeated_times=False,
            )
        else:
            handler = logging.StreamHandler(sys.stderr)
            handler.setLevel(level_int)
            handler.setFormatter(logging.Formatter(format_string) if format_string else ConsoleFormatter())
        logger.addHandler(handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode=file_mode)
        # File captures everything the logger lets through
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(FileFormatter())
        logger.addHandler(file_handler)

    return logger


def setup_logging_from_config(
    config: dict[str, Any], project_dir: Path | None = None, console: Console | None = None
) -> logging.Logger:
    """
    Setup logging from the ``logging`` section of the agent configuration.

    Recognised keys: ``level``, ``file``, ``file_mode``, ``format``,
    ``console_enabled``, ``console_type`` (``rich`` or ``plain``) and ``json``.
    """
    logging_config = config.get("logging", {}) or {}

    if logging_config.get("json"):
        from apigee_discovery.observability.structured_logging import setup_structured_logging

        setup_structured_logging(level=str(logging_config.get("level", "INFO")), json_format=True)
        return logging.getLogger(ROOT_LOGGER)

    log_file = logging_config.get("file")
    if log_file and project_dir:
        log_file = Path(log_file)
        if not log_file.is_absolute():
            log_file = project_dir / log_file

    console_enabled = logging_config.get("console_enabled", True)
    use_rich = logging_config.get("console_type", "rich") == "rich"
    return setup_logging(
        level=logging_config.get("level", logging.INFO),
        log_file=log_file,
        format_string=logging_config.get("format"),
        file_mode=logging_config.get("file_mode", "a"),
        console=console if use_rich else None,
        console_enabled=console_enabled,
        use_rich=use_rich,
    )


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (default: "apigee_discovery")
    """
    logger = logging.getLogger(name)
    logger.propagate = True
    return logger
