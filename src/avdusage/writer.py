"""Serialization of output records into transport-ready CSV artifacts."""

import csv
import io
import logging
import os
from collections.abc import Callable, Iterable, Sequence
from dataclasses import astuple, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

DELIMITER = ","
LINE_TERMINATOR = "\r\n"
ENCODING = "utf-8"  # no BOM
FILENAME_TIME_FORMAT = "%Y%m%d-%H%M"


@dataclass(slots=True, frozen=True)
class WriteOutcome:
    """Result of a single artifact write."""

    path: Path
    records_written: int
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _format_field(value: Any) -> str:
    return "" if value is None else str(value)


def serialize_records(records: Iterable[Any], delimiter: str = DELIMITER) -> str:
    """
    Render dataclass records as delimited text, one per line.

    Fields keep dataclass declaration order, records keep input order. Fields
    containing the delimiter or quotes are quoted; everything else is written
    verbatim. Every line, including the last, ends with CRLF.
    """
    buffer = io.StringIO(newline="")
    writer = csv.writer(buffer, delimiter=delimiter, lineterminator=LINE_TERMINATOR)
    for record in records:
        writer.writerow([_format_field(value) for value in astuple(record)])
    return buffer.getvalue()


def artifact_name(prefix: str, moment: datetime) -> str:
    """Per-minute artifact name, so reruns within a minute overwrite."""
    return f"{prefix}-{moment.strftime(FILENAME_TIME_FORMAT)}.csv"


class RecordWriter:
    """
    Writes one artifact per run into an output directory.

    The file is created through a temporary sibling and ``os.replace`` so a
    reader never sees a half-written artifact. Write failures are logged and
    reported through the returned ``WriteOutcome``, never raised.
    """

    def __init__(
        self,
        output_dir: Path,
        prefix: str,
        logger: logging.Logger,
        clock: Callable[[], datetime] = datetime.now,
        delimiter: str = DELIMITER,
    ) -> None:
        """
        Initialize the writer.

        Args:
            output_dir: Directory receiving the artifacts. Created on write.
            prefix: Artifact filename prefix.
            logger: Pipeline logger.
            clock: Returns the current local time. Used for the filename.
            delimiter: Field delimiter.
        """
        self._output_dir = output_dir
        self._prefix = prefix
        self._logger = logger
        self._clock = clock
        self._delimiter = delimiter

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    def output_path(self, moment: datetime | None = None) -> Path:
        """Path of the artifact for the given (or current) local time."""
        return self._output_dir / artifact_name(self._prefix, moment or self._clock())

    def write(self, records: Sequence[Any]) -> WriteOutcome:
        """Serialize and atomically write the records."""
        path = self.output_path()
        tmp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
        try:
            payload = serialize_records(records, self._delimiter).encode(ENCODING)
            self._output_dir.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("wb") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, path)
        except (OSError, UnicodeError) as exc:
            self._logger.error("Failed to write %d records to %s: %s", len(records), path, exc)
            try:
                tmp_path.unlink(missing_ok=True)
            except OSError:
                self._logger.warning("Could not remove temporary file %s", tmp_path)
            return WriteOutcome(path=path, records_written=0, error=str(exc))

        self._logger.info("Wrote %d records to %s", len(records), path)
        return WriteOutcome(path=path, records_written=len(records))
