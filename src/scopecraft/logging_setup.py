"""Logging configuration for the command-line entry point."""

import logging
import sys


class _ConsoleNoiseFilter(logging.Filter):
    """Let scopecraft records through at the configured level, others only on errors."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith("scopecraft."):
            return True
        return record.levelno >= logging.ERROR


def setup_logging(level: int | str = logging.WARNING) -> None:
    """Send log records to stderr. Call once, before the first log call."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    root = logging.getLogger()
    root.setLevel(level)

    # Replace a handler installed by an earlier call
    for handler in list(root.handlers):
        if getattr(handler, "_scopecraft", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    handler.addFilter(_ConsoleNoiseFilter())
    handler._scopecraft = True
    root.addHandler(handler)

    logging.captureWarnings(True)
