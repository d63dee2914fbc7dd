"""Data models for avdusage."""

from dataclasses import dataclass
from datetime import datetime, timezone

NO_USER_NAME = "NoUserName"


def format_utc(moment: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with a trailing Z."""
    if moment.tzinfo is None:
        moment = moment.astimezone()
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(slots=True, frozen=True)
class SessionDescriptor:
    """Normalized row of the local session table."""

    session_id: int
    session_name: str  # lowercase, '#' replaced by a space
    username: str
    state: str  # 'Active', 'Disc', ...
    idle_time: str
    logon_time_utc: str  # ISO-8601, or the raw value when unparseable


@dataclass(slots=True, frozen=True)
class RawProcessEntry:
    """Process table entry as reported by a process source, unvalidated."""

    name: str | None
    pid: int | None
    session_id: int | None
    memory_bytes: int | None
    cpu_seconds: float | None
    username: str | None


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Validated process observation."""

    image_name: str
    pid: int
    session_id: int
    memory_bytes: int  # Working set, bytes
    cpu_time_seconds: int
    username: str


@dataclass(slots=True, frozen=True)
class ProcessOutputRecord:
    """One line of the process artifact, in column order."""

    captured_at: str
    host_name: str
    image_name: str
    pid: int
    username: str
    session_name: str
    session_id: int
    memory_bytes: int
    cpu_time_seconds: int


@dataclass(slots=True, frozen=True)
class SessionOutputRecord:
    """One line of the session artifact, in column order."""

    captured_at: str
    host_name: str
    username: str
    session_name: str
    session_id: int
    state: str
    idle_time: str
    logon_time_utc: str
