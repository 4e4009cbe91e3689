"""
Logging setup for JNI Home Automation services.

Two setups are supported, selected by the LOG_SETUP setting:
- prod: plain single-line console output at INFO
- dev: colorized console at DEBUG plus error.log and all.log file sinks

Loggers are built explicitly and handed to the components that need them.
"""

import logging
import sys
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

import click

from .exceptions import ConfigurationError

LOG_SETUP_NAME = "LOG_SETUP"
DEFAULT_LOGGER_NAME = "jni_home_shared"
DEFAULT_LOG_DIR = "logs"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LEVEL_COLORS = {
    'DEBUG': 'blue',
    'INFO': 'green',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'magenta',
}


class LogSetup(Enum):
    PRODUCTION = "prod"
    DEVELOPMENT = "dev"


class PlainFormatter(logging.Formatter):
    """Single-line `timestamp level: message` output."""

    def __init__(self):
        super().__init__(datefmt=DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, self.datefmt)
        line = f"{timestamp} {record.levelname.lower()}: {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        if record.stack_info:
            line = f"{line}\n{self.formatStack(record.stack_info)}"
        return line


class ColorizedFormatter(PlainFormatter):
    """Plain format with a grey timestamp and a colored level name."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = click.style(self.formatTime(record, self.datefmt), fg='bright_black')
        level = click.style(record.levelname.lower(), fg=LEVEL_COLORS.get(record.levelname))
        line = f"{timestamp} {level}: {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        if record.stack_info:
            line = f"{line}\n{self.formatStack(record.stack_info)}"
        return line


class ExtendedLogger:
    """Thin wrapper adding `trace()` to a standard library logger."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    @staticmethod
    def _text(message: Any) -> str:
        return message if isinstance(message, str) else str(message)

    def trace(self, level: int = logging.ERROR) -> None:
        """Log the caller's stack, at ERROR unless told otherwise."""
        self.logger.log(level, "Trace", stack_info=True, stacklevel=2)

    def error(self, message: Any, *args: Any) -> None:
        self.logger.error(self._text(message), *args)

    def warning(self, message: Any, *args: Any) -> None:
        self.logger.warning(self._text(message), *args)

    warn = warning

    def info(self, message: Any, *args: Any) -> None:
        self.logger.info(self._text(message), *args)

    def debug(self, message: Any, *args: Any) -> None:
        self.logger.debug(self._text(message), *args)


def parse_log_setup(value: Optional[Union[str, LogSetup]]) -> LogSetup:
    """Map a LOG_SETUP value onto a LogSetup member."""
    if isinstance(value, LogSetup):
        return value
    try:
        return LogSetup(value.strip().lower() if isinstance(value, str) else value)
    except ValueError:
        raise ConfigurationError(f"Log level not supported: {value!r}")


def _production_handlers():
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(PlainFormatter())
    return [console_handler]


def _development_handlers(log_dir: Path):
    log_dir.mkdir(parents=True, exist_ok=True)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColorizedFormatter())

    error_handler = logging.FileHandler(log_dir / "error.log", encoding="utf-8")
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(PlainFormatter())

    all_handler = logging.FileHandler(log_dir / "all.log", encoding="utf-8")
    all_handler.setFormatter(PlainFormatter())

    return [console_handler, error_handler, all_handler]


def create_logger(setup: Union[str, LogSetup],
                  name: str = DEFAULT_LOGGER_NAME,
                  log_dir: Union[str, Path] = DEFAULT_LOG_DIR) -> ExtendedLogger:
    """
    Build a logger for the given setup.

    Args:
        setup: LogSetup member or its value ("prod" / "dev")
        name: Name of the underlying standard library logger
        log_dir: Directory for the dev file sinks

    Raises:
        ConfigurationError: If the setup is not supported
    """
    log_setup = parse_log_setup(setup)
    logger = logging.getLogger(name)

    # Replace handlers from an earlier setup of the same logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_setup is LogSetup.PRODUCTION:
        logger.setLevel(logging.INFO)
        handlers = _production_handlers()
    else:
        logger.setLevel(logging.DEBUG)
        handlers = _development_handlers(Path(log_dir))

    for handler in handlers:
        logger.addHandler(handler)
    logger.propagate = False
    return ExtendedLogger(logger)


def get_logger(name: str) -> ExtendedLogger:
    """Wrap a module logger without configuring it."""
    return ExtendedLogger(logging.getLogger(name))
