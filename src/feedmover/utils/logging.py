"""
Logging configuration for feedmover.

Console output goes through rich when available; an optional file handler
writes a clean, parseable log. The operator-facing run log is separate
(see ``feedmover.core.runlog``).
"""

import logging
import sys
from pathlib import Path
from typing import Any

try:
    import importlib.util

    RICH_AVAILABLE = importlib.util.find_spec("rich.logging") is not None
except Exception:
    RICH_AVAILABLE = False


class FileFormatter(logging.Formatter):
    """Formatter for file logs - clean and parseable."""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")


class ConsoleFormatter(logging.Formatter):
    """Plain console format: ``level: timestamp - msg``, with file:line for errors."""

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        base = f"{record.levelname}: {self.formatTime(record)} - {record.getMessage()}"
        if record.levelno >= logging.ERROR and record.pathname:
            filename = Path(record.pathname).name
            base = f"{record.levelname}: {self.formatTime(record)} - {filename}:{record.lineno} - {record.getMessage()}"
        return base


LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _parse_level(level: str | int | None) -> int:
    """Parse logging level from string or int, defaulting to INFO."""
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
    console_enabled: bool = True,
    use_rich: bool = True,
) -> logging.Logger:
    """
    Setup logging for feedmover.

    Args:
        level: Logging level as string (DEBUG, INFO, etc.) or int (default: INFO)
        log_file: Optional file path to write logs to (default: console only)
        format_string: Optional custom console format string
        file_mode: 'a' to append, 'w' to overwrite (default: 'a')
        console_enabled: Whether to log to the console (default: True)
        use_rich: Use rich's RichHandler for console output when installed

    Returns:
        The ``feedmover`` logger
    """
    logger = logging.getLogger("feedmover")
    # Repeated setup (tests, CLI re-entry) must not stack handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    level_int = _parse_level(level)
    logger.setLevel(level_int)

    if console_enabled:
        if use_rich and RICH_AVAILABLE and format_string is None:
            from rich.console import Console
            from rich.logging import RichHandler

            console_handler: logging.Handler = RichHandler(
                console=Console(stderr=True),
                level=level_int,
                show_time=True,
                show_path=False,
                markup=False,
                rich_tracebacks=True,
                log_time_format="[%X]",
                omit_repeated_times=False,
            )
        else:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(level_int)
            console_handler.setFormatter(
                logging.Formatter(format_string) if format_string else ConsoleFormatter()
            )
        logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode=file_mode)
        # File captures everything the logger lets through
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(FileFormatter())
        logger.addHandler(file_handler)

    return logger


def setup_logging_from_config(config: dict[str, Any], project_dir: Path | None = None) -> logging.Logger:
    """
    Setup logging from the ``logging:`` section of the configuration.

    Keys: ``level``, ``file`` (relative paths resolve against project_dir),
    ``file_mode``, ``format``, ``console_enabled``, ``console_type``
    (``rich`` or ``plain``).
    """
    logging_config = config.get("logging") or {}

    log_file = logging_config.get("file")
    if log_file and project_dir:
        log_file = Path(log_file)
        if not log_file.is_absolute():
            log_file = project_dir / log_file

    return setup_logging(
        level=logging_config.get("level", logging.INFO),
        log_file=log_file,
        format_string=logging_config.get("format"),
        file_mode=logging_config.get("file_mode", "a"),
        console_enabled=logging_config.get("console_enabled", True),
        use_rich=logging_config.get("console_type", "rich") == "rich",
    )


def get_logger(name: str = "feedmover") -> logging.Logger:
    """
    Get a logger in the ``feedmover`` hierarchy.

    Args:
        name: Logger name (default: "feedmover")
    """
    logger = logging.getLogger(name)
    logger.propagate = True
    return logger
