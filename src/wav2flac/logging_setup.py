"""Logging configuration with dual output: rich console + rotating file."""

from __future__ import annotations

import logging
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.logging import RichHandler

LOG_FORMAT = "%(asctime)s - [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(log_level: str, log_file: Path) -> None:
    """Configure the root logger with rich console and rotating file handlers.

    Each handler serializes its own writes, so lines from concurrent
    workers never interleave mid-line.

    Args:
        log_level: Logging level string (e.g. "INFO", "DEBUG").
        log_file: Path to the log file. Parent directories are created if needed.
            The file is appended to across runs.
    """
    log_file.parent.mkdir(parents=True, exist_ok=True)

    level = getattr(logging, log_level.upper(), logging.INFO)

    # Route Python warnings through the logging system so they respect log level.
    logging.captureWarnings(True)
    if level > logging.WARNING:
        warnings.filterwarnings("ignore")

    root = logging.getLogger()
    root.setLevel(level)

    # Remove any existing handlers to avoid duplicate output
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()

    console_handler = RichHandler(
        level=level,
        rich_tracebacks=True,
        show_path=False,
    )
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(console_handler)

    # Rotating file handler (10 MB, keep 3 backups)
    file_handler = RotatingFileHandler(
        log_file,
        mode="a",
        maxBytes=10 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(file_handler)
