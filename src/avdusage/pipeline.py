"""Sampling pipelines: enumerate, correlate, write, log."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from enum import Enum
from pathlib import Path
from typing import Any

from avdusage.config import Settings
from avdusage.correlator import Correlator
from avdusage.models import SessionDescriptor, SessionOutputRecord, format_utc
from avdusage.processes import ProcessEnumerator, ProcessSource, PsutilProcessSource
from avdusage.sessions import QuserSessionSource, SessionEnumerator, SessionSource
from avdusage.writer import RecordWriter


class RunState(Enum):
    """States of a single pipeline run."""

    IDLE = "idle"
    ENUMERATING = "enumerating"
    CORRELATING = "correlating"
    WRITING = "writing"
    COMPLETED = "completed"
    FAILED_WRITE = "failed_write"


@dataclass(slots=True)
class RunResult:
    """Terminal result of a pipeline run."""

    pipeline: str
    state: RunState
    output_path: Path | None = None
    records_written: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        return 0 if self.state is RunState.COMPLETED else 1


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _Pipeline:
    """Shared run bookkeeping: state transitions, capture time, writing."""

    name = "pipeline"

    def __init__(
        self,
        settings: Settings,
        logger: logging.Logger,
        writer: RecordWriter,
        utc_clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._settings = settings
        self._logger = logger
        self._writer = writer
        self._utc_clock = utc_clock
        self.state = RunState.IDLE

    def _enter(self, state: RunState) -> None:
        self._logger.debug("%s: %s -> %s", self.name, self.state.value, state.value)
        self.state = state

    def _write(self, records: list[Any], warnings: list[str]) -> RunResult:
        self._enter(RunState.WRITING)
        outcome = self._writer.write(records)
        if not outcome.ok:
            self._enter(RunState.FAILED_WRITE)
            self._logger.error("%s run failed, output path %s", self.name, outcome.path)
            return RunResult(self.name, self.state, outcome.path, 0, warnings)

        self._enter(RunState.COMPLETED)
        self._logger.info(
            "%s run completed: %d records, %d warnings",
            self.name,
            outcome.records_written,
            len(warnings),
        )
        return RunResult(self.name, self.state, outcome.path, outcome.records_written, warnings)


class SessionPipeline(_Pipeline):
    """Samples the session table into the session artifact."""

    name = "sessions"

    def __init__(
        self,
        settings: Settings,
        logger: logging.Logger,
        source: SessionSource | None = None,
        writer: RecordWriter | None = None,
        utc_clock: Callable[[], datetime] = _utc_now,
        local_tz: tzinfo | None = None,
    ) -> None:
        super().__init__(
            settings,
            logger,
            writer
            or RecordWriter(settings.session_dir, settings.session_file_prefix, logger),
            utc_clock,
        )
        source = source or QuserSessionSource(timeout=settings.session_query_timeout)
        self._enumerator = SessionEnumerator(source, logger, local_tz)

    def run(self) -> RunResult:
        """Run enumerate, normalize and write once."""
        self._logger.info("Session sampling started on %s", self._settings.host_name)
        captured_at = format_utc(self._utc_clock())

        self._enter(RunState.ENUMERATING)
        sessions = self._enumerator.enumerate()
        self._logger.info("Found %d sessions", len(sessions))

        self._enter(RunState.CORRELATING)
        records = [
            to_session_record(descriptor, captured_at, self._settings.host_name)
            for descriptor in sessions.values()
        ]
        return self._write(records, [])


class ProcessPipeline(_Pipeline):
    """Samples per-session processes into the process artifact."""

    name = "processes"

    def __init__(
        self,
        settings: Settings,
        logger: logging.Logger,
        session_source: SessionSource | None = None,
        process_source: ProcessSource | None = None,
        writer: RecordWriter | None = None,
        utc_clock: Callable[[], datetime] = _utc_now,
        local_tz: tzinfo | None = None,
    ) -> None:
        super().__init__(
            settings,
            logger,
            writer
            or RecordWriter(settings.process_dir, settings.process_file_prefix, logger),
            utc_clock,
        )
        session_source = session_source or QuserSessionSource(
            timeout=settings.session_query_timeout
        )
        self._sessions = SessionEnumerator(session_source, logger, local_tz)
        self._processes = ProcessEnumerator(process_source or PsutilProcessSource(), logger)
        self._correlator = Correlator(logger, settings.excluded_process_names)

    def run(self) -> RunResult:
        """Run enumerate, correlate and write once."""
        self._logger.info("Process sampling started on %s", self._settings.host_name)
        captured_at = format_utc(self._utc_clock())

        self._enter(RunState.ENUMERATING)
        sessions = self._sessions.enumerate()
        entries = self._processes.enumerate()
        self._logger.info("Found %d sessions and %d processes", len(sessions), len(entries))

        self._enter(RunState.CORRELATING)
        result = self._correlator.correlate(
            entries, sessions, captured_at, self._settings.host_name
        )
        users = {record.username for record in result.records}
        self._logger.info(
            "Retained %d processes for %d users, excluded %d, skipped %d",
            len(result.records),
            len(users),
            result.excluded,
            len(result.warnings),
        )
        return self._write(result.records, result.warnings)


def to_session_record(
    descriptor: SessionDescriptor, captured_at: str, host_name: str
) -> SessionOutputRecord:
    """Flatten a session descriptor into its output record."""
    return SessionOutputRecord(
        captured_at=captured_at,
        host_name=host_name,
        username=descriptor.username,
        session_name=descriptor.session_name,
        session_id=descriptor.session_id,
        state=descriptor.state,
        idle_time=descriptor.idle_time,
        logon_time_utc=descriptor.logon_time_utc,
    )
