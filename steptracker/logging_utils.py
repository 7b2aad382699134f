from __future__ import annotations

import logging
import os
import sys
import threading
import traceback
from datetime import datetime
from pathlib import Path

_LOGGER = logging.getLogger("steptracker.logging")
LOG_DIR_ENV = "STEPTRACKER_LOG_DIR"
DEBUG_ENV = "STEPTRACKER_DEBUG"
_LOG_FILE = "steptracker.log"
_logging_configured = False
_CONSOLE_FORMAT = "%(level_prefix)s %(name)s%(thread_tag)s: %(message)s"
_FILE_FORMAT = "%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s"
_FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_LEVEL_PREFIXES = {
    logging.DEBUG: "🐛",
    logging.INFO: "ℹ️",
    logging.WARNING: "⚠️",
    logging.ERROR: "❌",
    logging.CRITICAL: "💥",
}


class _ConsoleEmojiFormatter(logging.Formatter):
    """Emoji level prefix; records from voice or playback threads are tagged with the thread."""

    def format(self, record: logging.LogRecord) -> str:
        record.level_prefix = _LEVEL_PREFIXES.get(record.levelno, "")
        record.thread_tag = "" if record.threadName == "MainThread" else f" [{record.threadName}]"
        return super().format(record)


def debug_enabled() -> bool:
    return bool(os.environ.get(DEBUG_ENV))


def get_log_dir() -> Path:
    configured = os.environ.get(LOG_DIR_ENV)
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".cache" / "steptracker" / "logs"


def get_log_path() -> Path:
    return get_log_dir() / _LOG_FILE


def _prepare_log_path() -> Path:
    path = get_log_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def configure_logging(*, force: bool = False, verbose: bool = False) -> None:
    """Console plus file logging for the ``steptracker`` logger tree.

    The console shows INFO unless ``verbose`` or ``STEPTRACKER_DEBUG`` asks
    for the per-row DEBUG trace; the file always records DEBUG.
    """
    global _logging_configured
    if _logging_configured and not force:
        return

    logger = logging.getLogger("steptracker")
    logger.setLevel(logging.DEBUG)

    if force:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    if force or not logging.getLogger().handlers:
        console_handler = logging.StreamHandler(stream=sys.__stderr__)
        console_handler.setLevel(logging.DEBUG if verbose or debug_enabled() else logging.INFO)
        console_handler.setFormatter(_ConsoleEmojiFormatter(_CONSOLE_FORMAT))
        logger.addHandler(console_handler)

    try:
        file_handler = logging.FileHandler(_prepare_log_path(), encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATE_FORMAT))
        logger.addHandler(file_handler)
    except OSError as exc:
        _LOGGER.warning("Failed to configure file logging: %s", exc, exc_info=True)

    # caplog and other harness handlers sit on the root logger.
    logger.propagate = True
    _logging_configured = True


def log_exception(context: str, exc: BaseException) -> Path | None:
    """Append ``exc`` and its traceback to the log file; returns the file path."""
    try:
        path = _prepare_log_path()
        timestamp = datetime.now().isoformat()
        thread = threading.current_thread().name
        with path.open("a", encoding="utf-8") as handle:
            handle.write(f"[{timestamp}] ({thread}) {context} failed: {type(exc).__name__}: {exc}\n")
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=handle)
            handle.write("\n")
        return path
    except OSError as log_exc:
        _LOGGER.warning("Failed to write log file: %s", log_exc, exc_info=True)
        return None
