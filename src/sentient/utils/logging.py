"""Logging configuration using loguru."""

import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{thread.name}</magenta> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {thread.name} | {name}:{function}:{line} - {message}"


def configure_logging(logging_settings) -> None:
    """Route loguru output to stderr and, optionally, a rotating file.

    The inference worker logs from its own thread, so the thread name is
    part of every line and file writes go through loguru's queue.
    """
    logger.remove()
    logger.add(sys.stderr, level=logging_settings.level, format=CONSOLE_FORMAT)

    if not logging_settings.output_file:
        return

    log_file = Path(logging_settings.output_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    serialize = logging_settings.format == "json"
    logger.add(
        log_file,
        level=logging_settings.level,
        format="{message}" if serialize else FILE_FORMAT,
        serialize=serialize,
        enqueue=True,
        rotation="10 MB",
        retention="1 week",
    )


def dump_debug_text(dump_dir, filename: str, text: str) -> None:
    """Write the last prompt or raw generation to ``dump_dir`` when set."""
    if not dump_dir:
        return
    try:
        path = Path(dump_dir)
        path.mkdir(parents=True, exist_ok=True)
        (path / filename).write_text(text, encoding="utf-8")
    except OSError as e:
        logger.warning(f"Could not write debug file {filename}: {e}")
