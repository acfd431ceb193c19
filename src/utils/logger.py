import atexit
import logging
import os
from typing import Optional, TextIO

from rich.console import Console
from rich.logging import RichHandler

_log_console: Optional[Console] = None
_log_file: Optional[TextIO] = None


class CenteredFormatter(logging.Formatter):
    longest_name_length = 14  # Initial default width

    def __init__(self, fmt=None, datefmt=None, style="%", initial_width=14):
        super().__init__(fmt, datefmt, style)
        CenteredFormatter.longest_name_length = initial_width

    def format(self, record):
        CenteredFormatter.longest_name_length = max(
            CenteredFormatter.longest_name_length, len(record.name)
        )

        dynamic_width = CenteredFormatter.longest_name_length + 2
        record.name = f"{record.name.center(dynamic_width - 2)}"
        return super().format(record)


def _console() -> Console:
    """
    Console shared by every handler. With STOREFRONT_LOG_FILE set, logs go to
    that file so they don't draw over the terminal UI.
    """
    global _log_console, _log_file
    if _log_console is None:
        log_file = os.getenv("STOREFRONT_LOG_FILE")
        if log_file:
            directory = os.path.dirname(log_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            _log_file = open(log_file, "a", encoding="utf-8")
            atexit.register(close_log_file)
            _log_console = Console(file=_log_file, width=120, color_system=None)
        else:
            _log_console = Console(stderr=True)
    return _log_console


def close_log_file() -> None:
    """Close the STOREFRONT_LOG_FILE stream; called at exit."""
    global _log_file
    if _log_file is not None and not _log_file.closed:
        _log_file.close()
    _log_file = None


def get_logger(name=None) -> logging.Logger:
    """
    Creates and returns a logger configured with RichHandler for rich output.
    """
    if name is None:
        name = "storefront"
    logger = logging.getLogger(name)
    log_level = logging.DEBUG if os.getenv("DEBUG") else logging.INFO
    logger.setLevel(log_level)

    if not logger.handlers:
        format_pattern = "[%(name)s]  %(message)s"
        formatter = CenteredFormatter(format_pattern)

        handler = RichHandler(
            console=_console(),
            show_time=True,
            show_level=True,
            show_path=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
        )
        handler.setFormatter(formatter)
        handler.setLevel(log_level)
        logger.addHandler(handler)

        logger.propagate = False
        logger.debug(f"Logger for '{name}' initialized with RichHandler.")

    return logger
