"""
Logging configuration for mapsync.

Console output goes through a Rich handler; an optional plain-text file
handler captures everything at DEBUG for post-mortem reading.
"""

import logging
import sys
import threading
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "mapsync"


class FileFormatter(logging.Formatter):
    """Formatter for file logs - clean and parseable."""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")


LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _parse_level(level: str | int) -> int:
    """Parse a level name or number, falling back to INFO."""
    if isinstance(level, int):
        return level
    if isinstance(level, str) and level.upper() in LEVEL_MAP:
        return LEVEL_MAP[level.upper()]
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
    Setup logging for the ``mapsync`` logger tree.

    Args:
        level: Logging level as string (DEBUG, INFO, etc.) or int
        log_file: Optional file path to write logs to
        format_string: Optional format for the plain console handler
        file_mode: 'a' to append to the log file, 'w' to overwrite
        console: Optional Rich Console for the Rich handler
        console_enabled: Whether to log to the console at all
        use_rich: Use RichHandler for the console (plain StreamHandler otherwise)

    Returns:
        The configured ``mapsync`` logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.handlers.clear()

    level_int = _parse_level(level)
    logger.setLevel(level_int)

    if console_enabled:
        if use_rich:
            logger.addHandler(
                RichHandler(
                    level=level_int,
                    console=console or Console(stderr=True),
                    show_time=True,
                    show_path=False,
                    markup=False,
                    rich_tracebacks=True,
                    log_time_format="[%X]",
                )
            )
        else:
            handler = logging.StreamHandler(sys.stderr)
            handler.setLevel(level_int)
            handler.setFormatter(
                logging.Formatter(format_string or "%(levelname)s: %(asctime)s - %(name)s - %(message)s")
            )
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
    Setup logging from the ``logging`` section of the configuration.

    Recognised keys: ``level``, ``file``, ``file_mode``, ``format``,
    ``console_enabled`` and ``console_type`` (``rich`` or ``plain``).
    Relative log file paths resolve against ``project_dir``.
    """
    logging_config = config.get("logging", {}) or {}

    log_file = logging_config.get("file")
    if log_file and project_dir:
        log_file = Path(log_file)
        if not log_file.is_absolute():
            log_file = project_dir / log_file

    console_enabled = logging_config.get("console_enabled", True)
    return setup_logging(
        level=logging_config.get("level", logging.INFO),
        log_file=log_file,
        format_string=logging_config.get("format"),
        file_mode=logging_config.get("file_mode", "a"),
        console=console,
        console_enabled=console_enabled,
        use_rich=logging_config.get("console_type", "rich") == "rich",
    )


_logging_setup_done = False
_logging_setup_lock = threading.Lock()


def _auto_setup_logging() -> None:
    """Configure logging from the global config the first time a logger is requested."""
    global _logging_setup_done

    if _logging_setup_done or logging.getLogger(ROOT_LOGGER).handlers:
        _logging_setup_done = True
        return

    with _logging_setup_lock:
        if _logging_setup_done:
            return

        from mapsync.config.singleton import get_config

        config_obj = get_config()
        if config_obj is None:
            # Nothing loaded yet; stay with Python's defaults until a later call
            return
        setup_logging_from_config(config_obj.data, project_dir=config_obj.data.get("_project_dir"))
        _logging_setup_done = True


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """
    Get a logger in the ``mapsync`` tree.

    Sets up logging from the global config on first use if nobody has
    called ``setup_logging`` explicitly.
    """
    _auto_setup_logging()
    logger = logging.getLogger(name)
    logger.propagate = True
    return logger
