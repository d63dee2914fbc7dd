"""Joins process entries to the session snapshot of the same run."""

import logging
import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from avdusage.config import DEFAULT_EXCLUDED_PROCESSES
from avdusage.models import (
    NO_USER_NAME,
    ProcessOutputRecord,
    ProcessRecord,
    RawProcessEntry,
    SessionDescriptor,
)

IMAGE_SUFFIX = ".exe"

SYSTEM_ACCOUNT_RE = re.compile(
    r"^(?:NT AUTHORITY\\.*|Window Manager\\.*|Font Driver Host\\.*"
    r"|(?:.*\\)?(?:SYSTEM|LOCAL SERVICE|NETWORK SERVICE|DWM-\d+|UMFD-\d+))$",
    re.IGNORECASE,
)


@dataclass(slots=True)
class CorrelationResult:
    """Records that made it through correlation, plus per-entry warnings."""

    records: list[ProcessOutputRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    excluded: int = 0


def fallback_session_name(session_id: int) -> str:
    """Name used when a session id is missing from the snapshot."""
    return "console" if session_id == 1 else f"rdp-tcp {session_id}"


def normalize_image_name(name: str) -> str:
    """Append the executable suffix unless it is already there."""
    base = name[: -len(IMAGE_SUFFIX)] if name.lower().endswith(IMAGE_SUFFIX) else name
    return f"{base}{IMAGE_SUFFIX}"


def _image_stem(name: str | None) -> str:
    if name is not None and not isinstance(name, str):
        raise ValueError(f"image name is not text: {name!r}")
    stem = (name or "").strip().lower()
    return stem[: -len(IMAGE_SUFFIX)] if stem.endswith(IMAGE_SUFFIX) else stem


def is_system_account(username: str | None) -> bool:
    return bool(username) and SYSTEM_ACCOUNT_RE.match(username) is not None


def to_process_record(entry: RawProcessEntry) -> ProcessRecord:
    """
    Validate a raw entry.

    Raises:
        ValueError: A required field is missing, of the wrong type, non-finite
            or negative.
    """
    if not isinstance(entry.name, str) or not entry.name.strip():
        raise ValueError("missing image name")
    if entry.username is not None and not isinstance(entry.username, str):
        raise ValueError(f"owner is not text: {entry.username!r}")
    if entry.pid is None or entry.session_id is None:
        raise ValueError("missing pid or session id")
    if entry.memory_bytes is None or entry.cpu_seconds is None:
        raise ValueError("missing memory or cpu counters")

    raw_cpu = float(entry.cpu_seconds)
    if not math.isfinite(raw_cpu):
        raise ValueError(f"non-finite cpu time: {raw_cpu}")
    memory_bytes = int(entry.memory_bytes)
    cpu_seconds = int(round(raw_cpu))
    if memory_bytes < 0 or cpu_seconds < 0:
        raise ValueError("negative resource counter")

    return ProcessRecord(
        image_name=normalize_image_name(entry.name.strip()),
        pid=int(entry.pid),
        session_id=int(entry.session_id),
        memory_bytes=memory_bytes,
        cpu_time_seconds=cpu_seconds,
        username=entry.username or NO_USER_NAME,
    )


class Correlator:
    """Applies exclusion rules and resolves session names."""

    def __init__(
        self,
        logger: logging.Logger,
        excluded_names: Iterable[str] = DEFAULT_EXCLUDED_PROCESSES,
    ) -> None:
        self._logger = logger
        self._excluded_names = {_image_stem(name) for name in excluded_names}

    def is_excluded(self, entry: RawProcessEntry) -> bool:
        """Whether an entry must never reach the output."""
        if entry.session_id is not None and entry.session_id <= 0:
            return True
        if is_system_account(entry.username):
            return True
        return _image_stem(entry.name) in self._excluded_names

    def correlate(
        self,
        entries: Iterable[RawProcessEntry],
        sessions: Mapping[int, SessionDescriptor],
        captured_at: str,
        host_name: str,
    ) -> CorrelationResult:
        """
        Build one output record per retained entry, in enumeration order.

        Malformed entries are skipped and reported in ``warnings``.
        """
        result = CorrelationResult()
        for entry in entries:
            try:
                if self.is_excluded(entry):
                    result.excluded += 1
                    continue
                record = to_process_record(entry)
            except (TypeError, ValueError, ArithmeticError) as exc:
                warning = f"Skipped process {entry.name!r} (pid {entry.pid}): {exc}"
                self._logger.warning(warning)
                result.warnings.append(warning)
                continue

            descriptor = sessions.get(record.session_id)
            session_name = (
                descriptor.session_name
                if descriptor is not None
                else fallback_session_name(record.session_id)
            )
            result.records.append(
                ProcessOutputRecord(
                    captured_at=captured_at,
                    host_name=host_name,
                    image_name=record.image_name,
                    pid=record.pid,
                    username=record.username,
                    session_name=session_name,
                    session_id=record.session_id,
                    memory_bytes=record.memory_bytes,
                    cpu_time_seconds=record.cpu_time_seconds,
                )
            )
        return result
