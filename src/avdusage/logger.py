"""Per-pipeline file logging for avdusage."""

import logging
from pathlib import Path

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_log_line(level: str, message: str, timestamp: str) -> str:
    """Render a line in the same layout the file handler produces."""
    return f"[{timestamp}] [{level}] {message}"


def _ensure_handlers(base: logging.Logger, log_file: Path) -> None:
    if getattr(base, "_avdusage_log_file", None) == log_file:
        return

    for handler in list(base.handlers):
        base.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setFormatter(formatter)
    base.addHandler(file_handler)

    # Unattended runs: only problems reach stderr
    stream = logging.StreamHandler()
    stream.setLevel(logging.WARNING)
    stream.setFormatter(formatter)
    base.addHandler(stream)

    base.propagate = False
    setattr(base, "_avdusage_log_file", log_file)


def get_logger(pipeline: str, log_dir: Path, level: str | int = logging.INFO) -> logging.Logger:
    """
    Build the logger for one pipeline.

    Log lines are appended to ``<log_dir>/<pipeline>.log``. Calling this again
    with the same arguments reuses the existing handlers.

    Args:
        pipeline: Pipeline name, also used as the log file stem.
        log_dir: Directory holding the log files. Created if missing.
        level: Logging level name or number.

    Returns:
        The configured logger.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    base = logging.getLogger(f"avdusage.{pipeline}")
    base.setLevel(level.upper() if isinstance(level, str) else level)
    _ensure_handlers(base, log_dir / f"{pipeline}.log")
    return base


def close_logger(logger: logging.Logger) -> None:
    """Detach and close all handlers, releasing the log file."""
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    if hasattr(logger, "_avdusage_log_file"):
        delattr(logger, "_avdusage_log_file")
