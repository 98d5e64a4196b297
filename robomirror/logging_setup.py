"""Logging configuration helpers and log directory access."""

import logging
import os
import subprocess
import sys
from datetime import datetime
from pathlib import Path

LOGGER_NAME = "robomirror"
SESSION_LOG_PATTERN = "session_*.log"
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(message)s"


class ConsoleFilter(logging.Filter):
    """Drops transcript-only records, which the caller has already printed."""

    def filter(self, record: logging.LogRecord) -> bool:
        return not getattr(record, "transcript_only", False)


def record_transcript(message: str) -> None:
    """Write a line that went straight to the terminal into the session log."""
    logging.getLogger(f"{LOGGER_NAME}.console").info(message, extra={"transcript_only": True})


def setup_logging(log_dir: Path, log_level: str = "INFO", console: bool = True) -> logging.Logger:
    """
    Configure the session transcript file handler and a stdout handler.

    Safe to call multiple times; existing handlers are reused.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)
    if logger.handlers:
        return logger

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    session_log = log_dir / f"session_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    formatter = logging.Formatter(LOG_FORMAT)

    fh = logging.FileHandler(str(session_log), encoding="utf-8")
    fh.setFormatter(formatter)
    logger.addHandler(fh)

    if console:
        ch = logging.StreamHandler(sys.stdout)
        ch.setFormatter(formatter)
        ch.addFilter(ConsoleFilter())
        logger.addHandler(ch)

    logger.debug(f"Session log: {session_log}")
    return logger


def shutdown_logging() -> None:
    """Close and detach the handlers installed by setup_logging."""
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def open_log_directory(log_dir: Path) -> bool:
    """Open the log directory in the platform's file browser."""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(LOGGER_NAME)

    try:
        if sys.platform == "win32":
            os.startfile(str(log_dir))
        elif sys.platform == "darwin":
            subprocess.Popen(["open", str(log_dir)])
        else:
            subprocess.Popen(["xdg-open", str(log_dir)])
    except OSError as e:
        logger.error(f"Could not open log directory {log_dir}: {e}")
        return False

    logger.info(f"Opened log directory: {log_dir}")
    return True
