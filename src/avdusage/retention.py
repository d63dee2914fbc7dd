"""Housekeeping: artifact retention and log size control."""

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path

from avdusage.config import Settings
from avdusage.logger import LOG_DATE_FORMAT, format_log_line

DEFAULT_KEEP_RATIO = 0.75


@dataclass(slots=True)
class SweepResult:
    """Files removed, and files that could not be examined or removed."""

    deleted: list[Path] = field(default_factory=list)
    failed: list[Path] = field(default_factory=list)


def prune_expired(
    directory: Path,
    max_age: timedelta,
    logger: logging.Logger,
    now: datetime | None = None,
    pattern: str = "*",
) -> SweepResult:
    """
    Delete files in ``directory`` last modified before ``now - max_age``.

    A file that cannot be removed is logged and the sweep moves on.
    """
    result = SweepResult()
    if not directory.is_dir():
        logger.info("Skipping retention for missing directory %s", directory)
        return result

    cutoff = ((now or datetime.now()) - max_age).timestamp()
    for path in sorted(directory.glob(pattern)):
        try:
            if not path.is_file() or path.stat().st_mtime >= cutoff:
                continue
            path.unlink()
        except OSError as exc:
            logger.warning("Could not delete %s: %s", path, exc)
            result.failed.append(path)
            continue
        result.deleted.append(path)

    logger.info(
        "Retention sweep of %s: %d deleted, %d failed",
        directory,
        len(result.deleted),
        len(result.failed),
    )
    return result


def truncate_log(
    path: Path,
    max_bytes: int,
    logger: logging.Logger,
    keep_ratio: float = DEFAULT_KEEP_RATIO,
    now: datetime | None = None,
) -> bool:
    """
    Shrink a log file to its most recent tail when it exceeds ``max_bytes``.

    The last ``keep_ratio`` of the bytes is kept, the partial line at the cut
    is dropped and a marker line is written first.

    Returns:
        True when the file was truncated.
    """
    size = path.stat().st_size
    if size <= max_bytes:
        return False

    start = size - int(size * keep_ratio)
    with path.open("rb") as handle:
        # One byte of lookbehind tells whether the cut lands on a line start
        handle.seek(start - 1)
        tail = handle.read()

    # A tail without any line break is a single partial line
    newline = tail.find(b"\n")
    tail = tail[newline + 1 :] if newline != -1 else b""

    stamp = (now or datetime.now()).strftime(LOG_DATE_FORMAT)
    marker = format_log_line(
        "INFO", f"Log truncated from {size} bytes, kept the last {len(tail)} bytes", stamp
    )
    with path.open("wb") as handle:
        handle.write((marker + os.linesep).encode("utf-8"))
        handle.write(tail)

    logger.info("Truncated %s from %d to %d bytes", path, size, len(tail))
    return True


class Housekeeper:
    """Prunes expired artifacts and logs, then caps log sizes."""

    def __init__(
        self,
        settings: Settings,
        logger: logging.Logger,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._settings = settings
        self._logger = logger
        self._clock = clock

    def run(self) -> int:
        """Run one housekeeping pass. Returns the number of failed operations."""
        settings = self._settings
        now = self._clock()
        horizon = timedelta(days=settings.retention_days)
        failures = 0

        self._logger.info("Housekeeping started, retention %d days", settings.retention_days)
        for directory in (settings.process_dir, settings.session_dir):
            failures += len(prune_expired(directory, horizon, self._logger, now, "*.csv").failed)
            # Leftovers of runs killed between write and rename
            failures += len(prune_expired(directory, horizon, self._logger, now, ".*.tmp").failed)
        failures += len(prune_expired(settings.log_dir, horizon, self._logger, now, "*.log").failed)

        if settings.log_dir.is_dir():
            for log_file in sorted(settings.log_dir.glob("*.log")):
                try:
                    truncate_log(
                        log_file,
                        settings.log_max_bytes,
                        self._logger,
                        settings.log_keep_ratio,
                        now,
                    )
                except OSError as exc:
                    self._logger.warning("Could not truncate %s: %s", log_file, exc)
                    failures += 1

        self._logger.info("Housekeeping completed with %d failures", failures)
        return failures
