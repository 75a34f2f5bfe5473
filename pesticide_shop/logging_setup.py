"""Root logger configuration shared by the web app and CLI commands."""

import logging

from .config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging() -> None:
    """Apply ``LOG_LEVEL`` and ``LOG_FILE`` to the root logger.

    Safe to call repeatedly: the console handler is added once and the file
    handler is replaced so a changed ``LOG_FILE`` takes effect.
    """
    level_name = str(settings.LOG_LEVEL or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    has_console = any(
        type(handler) is logging.StreamHandler for handler in root_logger.handlers
    )
    if not has_console:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        root_logger.addHandler(stream_handler)

    for handler in [h for h in root_logger.handlers if isinstance(h, logging.FileHandler)]:
        root_logger.removeHandler(handler)
        handler.close()

    log_file = settings.LOG_FILE
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    logging.getLogger(__name__).debug("Logging configured at %s", level_name)


def read_log_tail(limit: int = 200) -> list:
    """Return the last ``limit`` lines of the log file, newest first."""
    log_file = settings.LOG_FILE
    if not log_file:
        return []
    with open(log_file, "r", encoding="utf-8", errors="replace") as handle:
        lines = handle.readlines()[-limit:]
    return [line.rstrip() for line in reversed(lines)]
